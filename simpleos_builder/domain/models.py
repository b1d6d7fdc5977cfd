"""Domain model for the image build pipeline.

Plain value objects shared by the build graph, the storage writers and the
VM launchers. Everything here is immutable so a variant's build can be
described once and passed around explicitly.
"""

from __future__ import annotations

import subprocess
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from simpleos_builder.exceptions import GeometryMismatchError


# ==============================================================================
# Artifact Domain
# ==============================================================================

EFI_BOOT_DIR = "EFI/BOOT"


class ArtifactKind(Enum):
    """Binary produced by an external cargo build."""

    BOOTLOADER = "bootloader"
    KERNEL = "kernel"

    @property
    def crate(self) -> str:
        """Crate directory relative to the project root."""
        return self.value

    @property
    def target_triple(self) -> str:
        return {
            ArtifactKind.BOOTLOADER: "x86_64-unknown-uefi",
            ArtifactKind.KERNEL: "x86_64-unknown-none",
        }[self]

    @property
    def binary_name(self) -> str:
        """File name cargo writes into the profile directory."""
        return {
            ArtifactKind.BOOTLOADER: "bootloader.efi",
            ArtifactKind.KERNEL: "kernel",
        }[self]

    @property
    def packaged_name(self) -> str:
        """File name inside /EFI/BOOT on the system partition."""
        return {
            ArtifactKind.BOOTLOADER: "BOOTX64.EFI",
            ArtifactKind.KERNEL: "kernel.sys",
        }[self]


@dataclass(frozen=True)
class PackagedFile:
    """A host file and the path it gets inside the FAT volume."""

    source: Path
    destination: str  # e.g., "EFI/BOOT/BOOTX64.EFI"

    @classmethod
    def for_artifact(cls, kind: ArtifactKind, source: Path) -> PackagedFile:
        return cls(source=source, destination=f"{EFI_BOOT_DIR}/{kind.packaged_name}")


# ==============================================================================
# Disk Geometry Domain
# ==============================================================================

SECTOR_SIZE = 512

ESP_TYPE_GUID = uuid.UUID("C12A7328-F81F-11D2-BA4B-00A0C93EC93B")

# Fixed identifiers keep repeated builds bit-identical.
DEFAULT_DISK_GUID = uuid.UUID("5d3f6a0e-2c41-4b8e-9f57-6a1d0c9e4b21")
DEFAULT_PARTITION_GUID = uuid.UUID("8b2e41c7-93d5-4f0a-a6e8-1c47f2d09b53")

# Primary header + 128 entries of 128 bytes in front, the same mirrored at the end.
GPT_RESERVED_SECTORS = 1 + 32


@dataclass(frozen=True)
class DiskGeometry:
    """Fixed layout of the raw disk image.

    The partition range and the filesystem image size are coupled: the
    packager must produce exactly ``partition_sectors`` sectors.
    """

    total_sectors: int = 110_000
    partition_start: int = 2048
    partition_sectors: int = 102_400
    sector_size: int = SECTOR_SIZE
    partition_type_guid: uuid.UUID = ESP_TYPE_GUID
    partition_attributes: int = 0
    partition_name: str = "SimpleOS-rs"
    disk_guid: uuid.UUID = DEFAULT_DISK_GUID
    partition_guid: uuid.UUID = DEFAULT_PARTITION_GUID

    @property
    def partition_end(self) -> int:
        """Last LBA of the partition (inclusive)."""
        return self.partition_start + self.partition_sectors - 1

    @property
    def partition_offset(self) -> int:
        return self.partition_start * self.sector_size

    @property
    def partition_bytes(self) -> int:
        return self.partition_sectors * self.sector_size

    @property
    def total_bytes(self) -> int:
        return self.total_sectors * self.sector_size

    @property
    def first_usable_lba(self) -> int:
        return 1 + GPT_RESERVED_SECTORS

    @property
    def last_usable_lba(self) -> int:
        return self.total_sectors - 1 - GPT_RESERVED_SECTORS

    def validate(self) -> None:
        """Check the geometry is self-consistent.

        Raises:
            GeometryMismatchError: If the partition falls outside the GPT
                usable area or the values are not positive.
        """
        if self.sector_size != SECTOR_SIZE:
            raise GeometryMismatchError(
                f"Unsupported sector size {self.sector_size}; only {SECTOR_SIZE} is supported"
            )
        if self.partition_sectors <= 0 or self.total_sectors <= 0:
            raise GeometryMismatchError("Sector counts must be positive")
        if self.partition_start < self.first_usable_lba:
            raise GeometryMismatchError(
                f"Partition start LBA {self.partition_start} overlaps the GPT "
                f"(first usable LBA is {self.first_usable_lba})"
            )
        if self.partition_end > self.last_usable_lba:
            raise GeometryMismatchError(
                f"Partition end LBA {self.partition_end} is past the last usable "
                f"LBA {self.last_usable_lba} of a {self.total_sectors} sector image"
            )
        if len(self.partition_name.encode("utf-16-le")) > 72:
            raise GeometryMismatchError(
                f"Partition name {self.partition_name!r} is longer than 36 characters"
            )


# ==============================================================================
# Debug Launch Domain
# ==============================================================================


@dataclass
class DebugSession:
    """Emulator and debugger processes started by a debug launch.

    The two processes only share the rendezvous port.
    """

    emulator: subprocess.Popen
    debugger: subprocess.Popen
    port: int

    def wait(self) -> int:
        """Wait for the debugger to exit and return its status."""
        return self.debugger.wait()
