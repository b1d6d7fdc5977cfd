"""EFI system partition packaging.

Builds the FAT32 filesystem image holding ``/EFI/BOOT/BOOTX64.EFI`` and
``/EFI/BOOT/kernel.sys``.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable

from simpleos_builder.domain.models import EFI_BOOT_DIR, PackagedFile
from simpleos_builder.exceptions import PackagingFailedError
from simpleos_builder.logging import LoggerFactory
from simpleos_builder.storage.fat32 import Fat32Builder, Fat32Reader, compute_layout


log = LoggerFactory.for_storage()

DEFAULT_FILESYSTEM_SECTORS = 102_400
DEFAULT_VOLUME_LABEL = "SIMPLEOS"


def pack(
    files: Iterable[PackagedFile],
    output_path: Path,
    size_in_sectors: int = DEFAULT_FILESYSTEM_SECTORS,
    label: str = DEFAULT_VOLUME_LABEL,
) -> Path:
    """Write a FAT32 image containing ``files`` to ``output_path``.

    The ``EFI`` and ``EFI/BOOT`` directories are always created. Every
    intermediate directory of a destination is created as needed.

    Raises:
        PackagingFailedError: If the size cannot hold FAT32, a source cannot
            be read, two files collide, the volume is full, or the built
            image does not read back identically. Nothing is written then.
    """
    output_path = Path(output_path)
    files = list(files)
    compute_layout(size_in_sectors)

    payloads: list[tuple[str, bytes]] = []
    for packaged in files:
        try:
            data = Path(packaged.source).read_bytes()
        except OSError as error:
            raise PackagingFailedError(
                f"Cannot read {packaged.source}: {error}", path=Path(packaged.source)
            ) from error
        payloads.append((packaged.destination.strip("/"), data))

    builder = Fat32Builder(size_in_sectors, label=label)
    directories = ["EFI", EFI_BOOT_DIR]
    for destination, _data in payloads:
        parts = destination.split("/")[:-1]
        for depth in range(1, len(parts) + 1):
            directory = "/".join(parts[:depth])
            if directory not in directories:
                directories.append(directory)
    for directory in directories:
        builder.mkdir(directory)
    for destination, data in payloads:
        builder.add_file(destination, data)
        log.debug(f"Packaged {destination} ({len(data)} bytes)")

    image = builder.build()
    reader = Fat32Reader(image)
    for destination, data in payloads:
        try:
            stored = reader.read_file(destination)
        except FileNotFoundError as error:
            raise PackagingFailedError(f"{destination} missing from {output_path}", path=output_path) from error
        if stored != data:
            raise PackagingFailedError(f"{destination} in {output_path} does not match its source", path=output_path)

    _write_atomically(output_path, image)

    log.info(f"Wrote FAT32 image {output_path} ({size_in_sectors} sectors, {len(payloads)} files)")
    return output_path


def _write_atomically(output_path: Path, data: bytes) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=output_path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_name, output_path)
    except OSError as error:
        Path(temp_name).unlink(missing_ok=True)
        raise PackagingFailedError(f"Cannot write {output_path}: {error}", path=output_path) from error
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
