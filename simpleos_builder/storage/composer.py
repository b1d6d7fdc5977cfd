"""Raw disk image composition.

Places a finished filesystem image inside a GPT-partitioned raw disk. The
filesystem bytes are copied verbatim; the composer never interprets them.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from simpleos_builder.domain.models import DiskGeometry
from simpleos_builder.exceptions import GeometryMismatchError, ImageTooSmallError
from simpleos_builder.logging import LoggerFactory
from simpleos_builder.storage.gpt import write_partition_table


log = LoggerFactory.for_storage()

COPY_CHUNK_SIZE = 1024 * 1024


def check_fits(partition_image_size: int, geometry: DiskGeometry) -> None:
    """Validate the geometry against the filesystem image size.

    Raises:
        ImageTooSmallError: If the payload would run past the end of the disk.
        GeometryMismatchError: If the geometry is inconsistent or the payload
            is larger than the partition.
    """
    required = geometry.partition_offset + partition_image_size
    if required > geometry.total_bytes:
        raise ImageTooSmallError(required, geometry.total_bytes)
    geometry.validate()
    if partition_image_size > geometry.partition_bytes:
        raise GeometryMismatchError(
            f"Filesystem image is {partition_image_size} bytes but the partition "
            f"holds {geometry.partition_bytes} bytes"
        )


def compose(
    partition_image_path: Path,
    output_path: Path,
    geometry: DiskGeometry = DiskGeometry(),
) -> Path:
    """Write ``output_path``: a GPT disk with the filesystem image in its only partition.

    Nothing is written when validation fails. The image is assembled in a
    temporary sibling file and renamed into place.
    """
    partition_image_path = Path(partition_image_path)
    output_path = Path(output_path)
    check_fits(partition_image_path.stat().st_size, geometry)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=output_path.parent)
    try:
        with os.fdopen(fd, "w+b") as image:
            image.truncate(geometry.total_bytes)
            write_partition_table(image, geometry)
            image.seek(geometry.partition_offset)
            with open(partition_image_path, "rb") as source:
                shutil.copyfileobj(source, image, COPY_CHUNK_SIZE)
        os.replace(temp_name, output_path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise

    log.info(
        f"Wrote disk image {output_path} ({geometry.total_sectors} sectors, "
        f"partition {geometry.partition_start}-{geometry.partition_end})"
    )
    return output_path
