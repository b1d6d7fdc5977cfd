"""Locating and building the cargo artifacts.

The locator knows where cargo puts the bootloader and kernel binaries for a
variant and how to ask cargo to (re)build them. It never compiles anything
itself.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from simpleos_builder.build.variants import BuildVariant
from simpleos_builder.command_runners import require_tool, run_streaming_command
from simpleos_builder.config.settings import BuildConfig
from simpleos_builder.domain.models import ArtifactKind
from simpleos_builder.exceptions import ExternalBuildFailedError
from simpleos_builder.logging import LoggerFactory


_UNESCAPED_WHITESPACE = re.compile(r"(?<!\\)\s+")


class ArtifactLocator:
    """Path conventions and cargo invocations for the two binaries."""

    def __init__(self, config: BuildConfig):
        self.config = config

    def crate_dir(self, kind: ArtifactKind) -> Path:
        return self.config.project_root / kind.crate

    def locate(self, kind: ArtifactKind, variant: BuildVariant) -> Path:
        """Where cargo writes ``kind`` for ``variant``."""
        return self.config.target_dir / kind.target_triple / variant.tag / kind.binary_name

    def dep_info_path(self, kind: ArtifactKind, variant: BuildVariant) -> Path:
        """cargo's dep-info file, written next to the binary."""
        return self.locate(kind, variant).with_suffix(".d")

    def source_inputs(self, kind: ArtifactKind, variant: BuildVariant) -> list[Path]:
        """Files whose changes make the compiled binary stale.

        After a first build, every file rustc read is taken from the dep-info
        file cargo left next to the binary, which covers shared crates and
        ``include!``-ed files. Before that, the crate's ``src`` tree stands in.
        Manifests, the lock file, ``build.rs``, cargo configuration and custom
        target specifications are always included when present.
        """
        crate = self.crate_dir(kind)
        root = self.config.project_root
        candidates = [
            crate / "Cargo.toml",
            crate / "build.rs",
            crate / ".cargo" / "config.toml",
            root / "Cargo.toml",
            root / "Cargo.lock",
            root / ".cargo" / "config.toml",
        ]
        if crate.is_dir():
            candidates.extend(crate.glob("*.json"))

        dep_info = self.dep_info_path(kind, variant)
        if dep_info.is_file():
            candidates.extend(read_dep_info(dep_info, base=crate))
        else:
            source_dir = crate / "src"
            if source_dir.is_dir():
                candidates.extend(source_dir.rglob("*"))
        return sorted({path for path in candidates if path.is_file()})

    def cargo_command(self, variant: BuildVariant, subcommand: str = "build") -> list[str]:
        return [self.config.cargo, subcommand, *variant.cargo_flags]

    def ensure_built(self, kind: ArtifactKind, variant: BuildVariant) -> Path:
        """Run cargo for ``kind`` and return the produced binary.

        cargo decides for itself whether anything needs compiling. When it
        reports success but leaves a binary older than the sources (nothing to
        do on its side), the binary's modification time is refreshed so the
        build graph sees a fresh output.

        Raises:
            ExternalToolNotFoundError: If cargo is not installed.
            ExternalBuildFailedError: If cargo fails or produces no binary.
        """
        log = LoggerFactory.for_toolchain(kind.value)
        require_tool(self.config.cargo)
        crate = self.crate_dir(kind)
        command = self.cargo_command(variant)
        log.info(f"Building {kind.value} ({variant.value}) in {crate}")

        result = run_streaming_command(command, cwd=crate, source=kind.value)
        if result.returncode != 0:
            raise ExternalBuildFailedError(kind.value, result.stdout, result.returncode)

        binary = self.locate(kind, variant)
        if not binary.exists():
            raise ExternalBuildFailedError(
                kind.value, f"cargo succeeded but {binary} was not produced"
            )

        sources = self.source_inputs(kind, variant)
        if sources:
            newest = max(path.stat().st_mtime_ns for path in sources)
            if binary.stat().st_mtime_ns < newest:
                log.debug(f"{binary.name} is current according to cargo; refreshing its timestamp")
                os.utime(binary)
                if binary.stat().st_mtime_ns < newest:
                    os.utime(binary, ns=(newest, newest))
        return binary

    def clippy(self, kind: ArtifactKind, variant: BuildVariant) -> None:
        """Run ``cargo clippy`` for ``kind``.

        Raises:
            ExternalBuildFailedError: If clippy reports errors.
        """
        require_tool(self.config.cargo)
        result = run_streaming_command(
            self.cargo_command(variant, "clippy"), cwd=self.crate_dir(kind), source=kind.value
        )
        if result.returncode != 0:
            raise ExternalBuildFailedError(f"{kind.value} (clippy)", result.stdout, result.returncode)


def read_dep_info(path: Path, base: Path) -> list[Path]:
    """Prerequisites listed in a make-style dep-info file.

    Relative entries are taken relative to ``base``. Escaped spaces in paths
    are honoured.
    """
    text = path.read_text(encoding="utf-8").replace("\\\n", " ")
    prerequisites = []
    for line in text.splitlines():
        _target, separator, rest = line.partition(": ")
        if not separator:
            continue
        for token in _UNESCAPED_WHITESPACE.split(rest.strip()):
            if token:
                prerequisites.append(base / token.replace("\\ ", " "))
    return prerequisites
