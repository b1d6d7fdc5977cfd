"""Filesystem and disk image writers."""

from .composer import compose
from .fat32 import Fat32Builder, Fat32Reader
from .gpt import GptHeader, GptPartition, read_gpt
from .packager import pack

__all__ = [
    "Fat32Builder",
    "Fat32Reader",
    "GptHeader",
    "GptPartition",
    "compose",
    "pack",
    "read_gpt",
]
