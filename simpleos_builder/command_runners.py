"""External command execution with logging.

Every external program the builder drives (cargo, VBoxManage, qemu, gdb) goes
through these helpers so that missing tools, failing tools and their output
are reported the same way.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from simpleos_builder.exceptions import ExternalToolFailedError, ExternalToolNotFoundError
from simpleos_builder.logging import get_logger


log = get_logger(source="command", tags=["command"])


def _format_command(command: Sequence[str]) -> str:
    return " ".join(str(part) for part in command)


def require_tool(tool: str) -> str:
    """Return the resolved path of ``tool`` or raise ExternalToolNotFoundError."""
    resolved = shutil.which(tool)
    if resolved is None:
        raise ExternalToolNotFoundError(tool)
    return resolved


def run_command(command, cwd=None, check=True, log_output=True, log_command=True):
    """Run a command, capturing its output.

    Raises:
        ExternalToolNotFoundError: If the program does not exist.
        ExternalToolFailedError: If ``check`` is set and the exit status is non-zero.
    """
    command = [str(part) for part in command]
    if log_command:
        log.debug(f"Running command: {_format_command(command)}")
    try:
        result = subprocess.run(command, cwd=cwd, text=True, capture_output=True)
    except FileNotFoundError as error:
        raise ExternalToolNotFoundError(command[0]) from error
    if result.stdout and (log_output or result.returncode != 0):
        log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    if check and result.returncode != 0:
        stderr = result.stderr.strip() if result.stderr else ""
        stdout = result.stdout.strip() if result.stdout else ""
        message = stderr or stdout or "Command failed"
        raise ExternalToolFailedError(command[0], message, result.returncode)
    return result


def run_streaming_command(command, cwd: Optional[Path] = None, source: Optional[str] = None):
    """Run a command, logging its combined output line by line.

    Returns:
        CompletedProcess with the full combined output in ``stdout``. The
        caller decides what a non-zero return code means.

    Raises:
        ExternalToolNotFoundError: If the program does not exist.
    """
    command = [str(part) for part in command]
    stream_log = get_logger(source=source or Path(command[0]).name, tags=["command", "output"])
    stream_log.debug(f"Running command: {_format_command(command)}")
    try:
        process = subprocess.Popen(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as error:
        raise ExternalToolNotFoundError(command[0]) from error

    output_lines = []
    for line in process.stdout:
        output_lines.append(line)
        stream_log.debug(line.rstrip())
    process.wait()
    stream_log.debug(f"Command completed with return code {process.returncode}")
    return subprocess.CompletedProcess(
        command, process.returncode, stdout="".join(output_lines), stderr=""
    )


def spawn_background(command, cwd: Optional[Path] = None, **popen_kwargs) -> subprocess.Popen:
    """Start a long-running process and return without waiting for it.

    Raises:
        ExternalToolNotFoundError: If the program does not exist.
        ExternalToolFailedError: If the operating system refuses to start it.
    """
    command = [str(part) for part in command]
    log.debug(f"Spawning: {_format_command(command)}")
    try:
        process = subprocess.Popen(command, cwd=cwd, **popen_kwargs)
    except FileNotFoundError as error:
        raise ExternalToolNotFoundError(command[0]) from error
    except OSError as error:
        raise ExternalToolFailedError(command[0], str(error)) from error
    log.debug(f"Spawned {command[0]} with pid {process.pid}")
    return process


__all__ = [
    "require_tool",
    "run_command",
    "run_streaming_command",
    "spawn_background",
]
