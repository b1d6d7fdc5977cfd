"""Build variants, artifact locations and the dependency graph."""

from .graph import BuildGraph, BuildResult, Target
from .variants import ACCEPTED_VARIANTS, BuildVariant, resolve

__all__ = [
    "ACCEPTED_VARIANTS",
    "BuildGraph",
    "BuildResult",
    "BuildVariant",
    "Target",
    "resolve",
]
