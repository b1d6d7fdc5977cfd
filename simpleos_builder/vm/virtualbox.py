"""VirtualBox disk conversion and VM start."""

from __future__ import annotations

import shutil
from pathlib import Path

from simpleos_builder.command_runners import require_tool, run_command
from simpleos_builder.config.settings import BuildConfig
from simpleos_builder.logging import LoggerFactory


log = LoggerFactory.for_vm()

VM_DISK_NAME = "image.vdi"


def convert_to_vdi(raw_image: Path, vdi_path: Path, config: BuildConfig) -> Path:
    """Convert ``raw_image`` to a VDI with the configured fixed UUID.

    VBoxManage refuses to overwrite, so an existing VDI is removed first. The
    fixed UUID keeps the disk attachable to the same VM after every rebuild.

    Raises:
        ExternalToolNotFoundError: If VBoxManage is not installed.
        ExternalToolFailedError: If the conversion fails.
    """
    vdi_path = Path(vdi_path)
    require_tool(config.vboxmanage)
    if vdi_path.exists():
        log.debug(f"Removing previous {vdi_path}")
        vdi_path.unlink()
    vdi_path.parent.mkdir(parents=True, exist_ok=True)
    run_command(
        [
            config.vboxmanage,
            "convertfromraw",
            str(raw_image),
            str(vdi_path),
            "--format",
            "VDI",
            "--uuid",
            config.vdi_uuid,
        ]
    )
    log.info(f"Converted {raw_image} to {vdi_path}")
    return vdi_path


def vm_disk_path(config: BuildConfig) -> Path:
    """The disk the VirtualBox VM is attached to."""
    return config.image_root / VM_DISK_NAME


def start_vm(vdi_path: Path, config: BuildConfig) -> Path:
    """Copy the variant's VDI to the VM's disk path and start the VM.

    Raises:
        ExternalToolNotFoundError: If VBoxManage is not installed.
        ExternalToolFailedError: If VirtualBox cannot start the VM.
    """
    require_tool(config.vboxmanage)
    attached = vm_disk_path(config)
    attached.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(vdi_path, attached)
    log.debug(f"Copied {vdi_path} to {attached}")
    run_command([config.vboxmanage, "startvm", config.vm_name])
    log.info(f"Started VirtualBox VM {config.vm_name}")
    return attached
