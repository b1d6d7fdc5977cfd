"""QEMU + GDB debug launch.

The emulator starts halted (``-S``) with a GDB stub on a TCP port, and the
debugger connects to that port. The two processes share nothing else; this
module starts both and returns without waiting for either.
"""

from __future__ import annotations

import socket
import time
from pathlib import Path
from typing import Optional

from simpleos_builder.command_runners import require_tool, spawn_background
from simpleos_builder.config.settings import OVMF_DIR_ENV, BuildConfig
from simpleos_builder.domain.models import DebugSession
from simpleos_builder.exceptions import ConfigurationError, ExternalToolFailedError
from simpleos_builder.logging import LoggerFactory


log = LoggerFactory.for_vm()

OVMF_CODE = "OVMF_CODE.fd"
OVMF_VARS = "OVMF_VARS.fd"
STARTUP_GRACE_SECONDS = 0.5


def firmware_paths(config: BuildConfig) -> tuple[Path, Path]:
    """Return the OVMF code and variable store images.

    Raises:
        ConfigurationError: If no firmware directory is configured or a file is missing.
    """
    if config.ovmf_dir is None:
        raise ConfigurationError(
            f"No OVMF firmware directory configured; set 'ovmf_dir', "
            f"{OVMF_DIR_ENV} or pass --ovmf-dir",
            option="ovmf_dir",
        )
    code = config.ovmf_dir / OVMF_CODE
    variables = config.ovmf_dir / OVMF_VARS
    for path in (code, variables):
        if not path.is_file():
            raise ConfigurationError(f"OVMF firmware file not found: {path}", option="ovmf_dir")
    return code, variables


def emulator_command(raw_image: Path, config: BuildConfig) -> list[str]:
    code, variables = firmware_paths(config)
    return [
        config.qemu,
        "-gdb",
        f"tcp::{config.gdb_port}",
        "-m",
        str(config.qemu_memory_mb),
        "-machine",
        "q35",
        "-cpu",
        "qemu64",
        "-net",
        "none",
        "-drive",
        f"if=pflash,unit=0,format=raw,file={code},readonly=on",
        "-drive",
        f"if=pflash,unit=1,format=raw,file={variables},readonly=on",
        "-drive",
        f"file={raw_image},if=ide",
        "-S",
    ]


def debugger_command(kernel_symbols: Path, config: BuildConfig) -> list[str]:
    command = [
        config.gdb,
        "-ex",
        f"file {kernel_symbols}",
        "-ex",
        f"target remote localhost:{config.gdb_port}",
    ]
    script = config.project_root / config.debugger_script
    if script.is_file():
        command.append(f"--command={script}")
    return command


def port_in_use(port: int, host: str = "localhost") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.5)
        return sock.connect_ex((host, port)) == 0


def debug_launch(
    raw_image: Path,
    kernel_symbols: Path,
    config: BuildConfig,
    startup_grace: Optional[float] = STARTUP_GRACE_SECONDS,
) -> DebugSession:
    """Start QEMU halted with a GDB stub, then GDB attached to it.

    Raises:
        ConfigurationError: If the firmware is missing or the port is taken.
        ExternalToolNotFoundError: If qemu or gdb is not installed.
        ExternalToolFailedError: If the emulator exits right after starting.
    """
    emulator_cmd = emulator_command(raw_image, config)
    debugger_cmd = debugger_command(kernel_symbols, config)
    require_tool(config.qemu)
    require_tool(config.gdb)

    if port_in_use(config.gdb_port):
        raise ConfigurationError(
            f"GDB port {config.gdb_port} is already in use", option="gdb_port"
        )

    emulator = spawn_background(emulator_cmd, cwd=config.project_root)
    if startup_grace:
        time.sleep(startup_grace)
    returncode = emulator.poll()
    if returncode is not None:
        raise ExternalToolFailedError(
            config.qemu, f"emulator exited immediately with status {returncode}", returncode
        )
    log.info(f"Emulator waiting for debugger on port {config.gdb_port}")

    try:
        debugger = spawn_background(debugger_cmd, cwd=config.project_root)
    except Exception:
        emulator.terminate()
        raise
    log.info(f"Debugger attached to {kernel_symbols}")
    return DebugSession(emulator=emulator, debugger=debugger, port=config.gdb_port)
