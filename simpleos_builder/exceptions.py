"""Custom exceptions for the image build pipeline.

This module defines a hierarchy of exceptions so callers (mainly the CLI) can
tell configuration mistakes, failing build stages and missing tools apart and
map them to distinct exit codes.

Exception Hierarchy:
    BuilderError (base)
        ├── ConfigurationError
        │   ├── InvalidVariantError
        │   ├── GeometryMismatchError
        │   │   └── ImageTooSmallError
        │   └── BuildGraphError
        │       ├── DuplicateOutputError
        │       ├── GraphCycleError
        │       └── UnknownOutputError
        ├── MissingInputError
        ├── BuildActionInconsistencyError
        ├── TargetFailedError
        ├── ExternalBuildFailedError
        ├── PackagingFailedError
        └── ExternalToolError
            ├── ExternalToolNotFoundError
            └── ExternalToolFailedError

Usage:
    from simpleos_builder.exceptions import ImageTooSmallError

    if required > available:
        raise ImageTooSmallError(required, available)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path


class BuilderError(Exception):
    """Base exception for all build pipeline errors."""



class ConfigurationError(BuilderError):
    """Invalid or missing configuration, detected before any build work."""

    def __init__(self, message: str, option: str | None = None):
        self.option = option
        super().__init__(message)


class InvalidVariantError(ConfigurationError):
    """The variant selector is not one of the recognized tokens."""

    def __init__(self, selector: str, accepted: Iterable[str]):
        self.selector = selector
        self.accepted = list(accepted)
        super().__init__(
            f"Invalid build variant {selector!r}; "
            f"expected one of: {', '.join(self.accepted)}",
            option="variant",
        )


class GeometryMismatchError(ConfigurationError):
    """Disk geometry values disagree with each other or with the payload."""



class ImageTooSmallError(GeometryMismatchError):
    """The filesystem image does not fit at the fixed partition offset."""

    def __init__(self, required_bytes: int, image_bytes: int):
        self.required_bytes = required_bytes
        self.image_bytes = image_bytes
        super().__init__(
            f"Disk image too small: partition payload needs {required_bytes} bytes "
            f"but the image is {image_bytes} bytes"
        )


class BuildGraphError(ConfigurationError):
    """Base exception for malformed build graphs."""



class DuplicateOutputError(BuildGraphError):
    """Two targets declare the same output path."""

    def __init__(self, output: Path, existing: str, duplicate: str):
        self.output = output
        self.existing = existing
        self.duplicate = duplicate
        super().__init__(
            f"Output {output} is produced by both {existing!r} and {duplicate!r}"
        )


class GraphCycleError(BuildGraphError):
    """The targets reachable from a request form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle: {' -> '.join(self.cycle)}")


class UnknownOutputError(BuildGraphError):
    """A requested output is not produced by any target."""

    def __init__(self, output: Path):
        self.output = output
        super().__init__(f"No target produces {output}")


class MissingInputError(BuilderError):
    """A target input does not exist and no target produces it."""

    def __init__(self, target: str, path: Path):
        self.target = target
        self.path = path
        super().__init__(f"Input {path} of target {target!r} is missing and has no rule to make it")


class BuildActionInconsistencyError(BuilderError):
    """A target action returned but did not leave fresh outputs behind."""

    def __init__(self, target: str, detail: str):
        self.target = target
        self.detail = detail
        super().__init__(f"Target {target!r} did not produce fresh outputs: {detail}")


class TargetFailedError(BuilderError):
    """A target action failed; wraps the underlying error."""

    def __init__(self, target: str, error: BaseException):
        self.target = target
        self.error = error
        super().__init__(f"Target {target!r} failed: {error}")


class ExternalBuildFailedError(BuilderError):
    """The external compiler for an artifact returned a non-zero status."""

    def __init__(self, artifact: str, output: str = "", returncode: int | None = None):
        self.artifact = artifact
        self.output = output
        self.returncode = returncode
        message = f"Building {artifact} failed"
        if returncode is not None:
            message += f" (exit status {returncode})"
        if output:
            message += f":\n{output}"
        super().__init__(message)


class PackagingFailedError(BuilderError):
    """The FAT32 filesystem image could not be assembled."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class ExternalToolError(BuilderError):
    """Base exception for conversion, emulator and debugger tools."""

    def __init__(self, message: str, tool: str):
        self.tool = tool
        super().__init__(message)


class ExternalToolNotFoundError(ExternalToolError):
    """The external program is not installed or not on PATH."""

    def __init__(self, tool: str):
        super().__init__(f"External tool not found: {tool}", tool)


class ExternalToolFailedError(ExternalToolError):
    """The external program ran but reported failure."""

    def __init__(self, tool: str, message: str, returncode: int | None = None):
        self.returncode = returncode
        super().__init__(f"{tool} failed: {message}", tool)
