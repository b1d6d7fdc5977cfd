"""Settings storage for build configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from simpleos_builder.domain.models import DiskGeometry
from simpleos_builder.exceptions import ConfigurationError


SETTINGS_FILENAME = "simpleos-builder.json"
SETTINGS_PATH_ENV = "SIMPLEOS_BUILDER_SETTINGS_PATH"
OVMF_DIR_ENV = "SIMPLEOS_OVMF_DIR"

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_FILESYSTEM_SECTORS = 102_400
DEFAULT_IMAGE_SECTORS = 110_000
DEFAULT_PARTITION_START = 2048
DEFAULT_GDB_PORT = 26000
DEFAULT_VDI_UUID = "430eee2a-0fdf-4d2a-88f0-5b99ea8cffcb"

DEFAULT_SETTINGS: dict[str, Any] = {
    "cargo": "cargo",
    "vboxmanage": "VBoxManage",
    "qemu": "qemu-system-x86_64",
    "gdb": "gdb",
    "ovmf_dir": None,
    "vm_name": "SimpleOS-rs",
    "vdi_uuid": DEFAULT_VDI_UUID,
    "gdb_port": DEFAULT_GDB_PORT,
    "qemu_memory_mb": 4096,
    "filesystem_sectors": DEFAULT_FILESYSTEM_SECTORS,
    "image_sectors": DEFAULT_IMAGE_SECTORS,
    "partition_start": DEFAULT_PARTITION_START,
    "volume_label": "SIMPLEOS",
    "debugger_script": "debug-kernel.cmd",
    "log_dir": None,
}

_INT_KEYS = (
    "gdb_port",
    "qemu_memory_mb",
    "filesystem_sectors",
    "image_sectors",
    "partition_start",
)


def settings_path(project_root: Path) -> Path:
    """Location of the settings file for a project."""
    override = os.environ.get(SETTINGS_PATH_ENV)
    if override:
        return Path(override)
    return project_root / SETTINGS_FILENAME


def load_settings(path: Optional[Path] = None) -> dict[str, Any]:
    """Return the default settings overlaid with the JSON file at ``path``.

    A missing file is not an error. An unreadable or malformed file is
    logged and ignored.
    """
    values = dict(DEFAULT_SETTINGS)
    if path is not None and path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            logger.warning(f"Ignoring unreadable settings file {path}: {error}")
            data = None
        if isinstance(data, dict):
            values.update(data)
        elif data is not None:
            logger.warning(f"Ignoring settings file {path}: expected a JSON object")
    if os.environ.get(OVMF_DIR_ENV):
        values["ovmf_dir"] = os.environ[OVMF_DIR_ENV]
    return values


def save_settings(values: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


@dataclass(frozen=True)
class BuildConfig:
    """Resolved configuration passed explicitly through the pipeline."""

    project_root: Path
    cargo: str = DEFAULT_SETTINGS["cargo"]
    vboxmanage: str = DEFAULT_SETTINGS["vboxmanage"]
    qemu: str = DEFAULT_SETTINGS["qemu"]
    gdb: str = DEFAULT_SETTINGS["gdb"]
    ovmf_dir: Optional[Path] = None
    vm_name: str = DEFAULT_SETTINGS["vm_name"]
    vdi_uuid: str = DEFAULT_VDI_UUID
    gdb_port: int = DEFAULT_GDB_PORT
    qemu_memory_mb: int = DEFAULT_SETTINGS["qemu_memory_mb"]
    filesystem_sectors: int = DEFAULT_FILESYSTEM_SECTORS
    image_sectors: int = DEFAULT_IMAGE_SECTORS
    partition_start: int = DEFAULT_PARTITION_START
    volume_label: str = DEFAULT_SETTINGS["volume_label"]
    debugger_script: str = DEFAULT_SETTINGS["debugger_script"]
    log_dir: Optional[Path] = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def target_dir(self) -> Path:
        return self.project_root / "target"

    @property
    def image_root(self) -> Path:
        return self.target_dir / "image"

    def geometry(self) -> DiskGeometry:
        """Disk geometry with the partition sized to the filesystem image."""
        return DiskGeometry(
            total_sectors=self.image_sectors,
            partition_start=self.partition_start,
            partition_sectors=self.filesystem_sectors,
        )

    @classmethod
    def from_settings(cls, values: dict[str, Any], project_root: Path) -> BuildConfig:
        """Build a config from a settings dict (see DEFAULT_SETTINGS).

        Raises:
            ConfigurationError: If a numeric setting is not an integer.
        """
        merged = dict(DEFAULT_SETTINGS)
        merged.update(values)
        for key in _INT_KEYS:
            try:
                merged[key] = int(merged[key])
            except (TypeError, ValueError) as error:
                raise ConfigurationError(
                    f"Setting {key!r} must be an integer, got {merged[key]!r}", option=key
                ) from error

        known = set(DEFAULT_SETTINGS)
        extra = {key: value for key, value in merged.items() if key not in known}
        ovmf_dir = merged["ovmf_dir"]
        log_dir = merged["log_dir"]
        return cls(
            project_root=Path(project_root),
            cargo=merged["cargo"],
            vboxmanage=merged["vboxmanage"],
            qemu=merged["qemu"],
            gdb=merged["gdb"],
            ovmf_dir=Path(ovmf_dir).expanduser() if ovmf_dir else None,
            vm_name=merged["vm_name"],
            vdi_uuid=str(merged["vdi_uuid"]),
            gdb_port=merged["gdb_port"],
            qemu_memory_mb=merged["qemu_memory_mb"],
            filesystem_sectors=merged["filesystem_sectors"],
            image_sectors=merged["image_sectors"],
            partition_start=merged["partition_start"],
            volume_label=merged["volume_label"],
            debugger_script=merged["debugger_script"],
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            extra=extra,
        )


def load_config(project_root: Path, path: Optional[Path] = None, **overrides: Any) -> BuildConfig:
    """Load settings for ``project_root`` and apply non-None overrides."""
    values = load_settings(path or settings_path(project_root))
    values.update({key: value for key, value in overrides.items() if value is not None})
    return BuildConfig.from_settings(values, project_root)
