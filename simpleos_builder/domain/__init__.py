"""Domain models for the image build pipeline."""

from __future__ import annotations

from .models import (
    EFI_BOOT_DIR,
    ESP_TYPE_GUID,
    SECTOR_SIZE,
    ArtifactKind,
    DebugSession,
    DiskGeometry,
    PackagedFile,
)


__all__ = [
    "EFI_BOOT_DIR",
    "ESP_TYPE_GUID",
    "SECTOR_SIZE",
    "ArtifactKind",
    "DebugSession",
    "DiskGeometry",
    "PackagedFile",
]
