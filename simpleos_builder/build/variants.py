"""Build variant selection."""

from __future__ import annotations

from enum import Enum

from simpleos_builder.exceptions import InvalidVariantError


class BuildVariant(Enum):
    """Build configuration passed to the cargo builds.

    ``tag`` is cargo's profile directory name and namespaces every output
    directory, so the two variants never share or satisfy each other's files.
    """

    DEBUG = "debug"
    OPTIMIZED = "optimized"

    @property
    def tag(self) -> str:
        return "debug" if self is BuildVariant.DEBUG else "release"

    @property
    def cargo_flags(self) -> tuple[str, ...]:
        return () if self is BuildVariant.DEBUG else ("--release",)


ACCEPTED_VARIANTS = tuple(variant.value for variant in BuildVariant)


def resolve(selector: str) -> BuildVariant:
    """Map a selector such as ``"Debug"`` to a :class:`BuildVariant`.

    Matching is case-insensitive and ignores surrounding whitespace.

    Raises:
        InvalidVariantError: If the selector is not a recognized token.
    """
    normalized = (selector or "").strip().lower()
    for variant in BuildVariant:
        if variant.value == normalized:
            return variant
    raise InvalidVariantError(selector, ACCEPTED_VARIANTS)
