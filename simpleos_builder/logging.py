from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

LOG_DIR_ENV = "SIMPLEOS_BUILDER_LOG_DIR"

# Note: TRACE level already exists in loguru at level 5 (below DEBUG which is 10)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup console logging and, optionally, persistent build logs.

    Logging Tiers:
    - ERROR: failed targets and tools
    - SUCCESS/INFO: targets started, rebuilt, skipped
    - DEBUG: staleness decisions, external tool output
    - TRACE: per-file and per-cluster details of image assembly

    Log Files (only when log_dir is given or SIMPLEOS_BUILDER_LOG_DIR is set):
    - build.log: DEBUG+ events (rotated at 10 MB, 5 files kept)
    - build.jsonl: structured JSON of INFO+ events

    Args:
        debug: Enable DEBUG level console output
        trace: Enable TRACE level console output (very verbose)
        log_dir: Directory for persistent log files
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "builder"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    if log_dir is None and os.environ.get(LOG_DIR_ENV):
        log_dir = Path(os.environ[LOG_DIR_ENV])
    if log_dir is None:
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Build log
    logger.add(
        log_dir / "build.log",
        level="TRACE" if trace else "DEBUG",
        rotation="10 MB",
        retention=5,
        backtrace=True,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <20} | "
            "{message}"
        ),
    )

    # SINK 3: Structured JSON log (INFO+)
    logger.add(
        log_dir / "build.jsonl",
        level="INFO",
        rotation="10 MB",
        retention=5,
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Identifier for the running operation
        tags: Tags for filtering (e.g., ["graph", "target"])
        source: Source component (e.g., "graph", "cargo", "vm")
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking a long-running operation with timing.

    Logs the start, the completion and any failure with its duration. The
    exception is always re-raised.

    Example:
        with operation_context("partition", variant="debug") as log:
            log.debug("Formatting FAT32 volume")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(f"{operation} completed", duration_seconds=round(duration, 2))
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_graph() -> Logger:
        """Logger for the dependency graph engine."""
        return logger.bind(source="graph", tags=["graph"])

    @staticmethod
    def for_toolchain(artifact: str | None = None) -> Logger:
        """Logger for the external cargo builds."""
        return logger.bind(source=artifact or "cargo", tags=["toolchain"])

    @staticmethod
    def for_storage() -> Logger:
        """Logger for filesystem packaging and disk composition."""
        return logger.bind(source="storage", tags=["storage", "image"])

    @staticmethod
    def for_vm() -> Logger:
        """Logger for VirtualBox conversion and QEMU/GDB launches."""
        return logger.bind(source="vm", tags=["vm"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for CLI startup, configuration and cleanup."""
        return logger.bind(source="system", tags=["system"])
