"""GUID Partition Table writer and reader.

Writes a protective MBR, the primary header and entry array at the start of
the disk and their backups at the end. GUIDs are stored mixed-endian
(``uuid.UUID.bytes_le``) as the UEFI specification requires.
"""

from __future__ import annotations

import struct
import uuid
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

from simpleos_builder.domain.models import SECTOR_SIZE, DiskGeometry
from simpleos_builder.exceptions import GeometryMismatchError


GPT_SIGNATURE = b"EFI PART"
GPT_REVISION = 0x00010000
GPT_HEADER_SIZE = 92
GPT_ENTRY_SIZE = 128
GPT_ENTRY_COUNT = 128
GPT_ENTRY_SECTORS = GPT_ENTRY_COUNT * GPT_ENTRY_SIZE // SECTOR_SIZE
PROTECTIVE_MBR_TYPE = 0xEE

_HEADER = struct.Struct("<8sIIIIQQQQ16sQIII")
_ENTRY = struct.Struct("<16s16sQQQ72s")


@dataclass(frozen=True)
class GptPartition:
    """One used partition entry."""

    index: int
    type_guid: uuid.UUID
    unique_guid: uuid.UUID
    first_lba: int
    last_lba: int
    attributes: int
    name: str

    @property
    def sectors(self) -> int:
        return self.last_lba - self.first_lba + 1


@dataclass(frozen=True)
class GptHeader:
    """Parsed GPT header."""

    my_lba: int
    alternate_lba: int
    first_usable_lba: int
    last_usable_lba: int
    disk_guid: uuid.UUID
    entries_lba: int
    entry_count: int
    entry_size: int
    entries_crc: int


def protective_mbr(total_sectors: int) -> bytes:
    """MBR with a single 0xEE partition covering the disk."""
    mbr = bytearray(SECTOR_SIZE)
    mbr[446] = 0x00  # not bootable
    mbr[447:450] = b"\x00\x02\x00"  # CHS start
    mbr[450] = PROTECTIVE_MBR_TYPE
    mbr[451:454] = b"\xff\xff\xff"  # CHS end
    struct.pack_into("<I", mbr, 454, 1)
    struct.pack_into("<I", mbr, 458, min(total_sectors - 1, 0xFFFFFFFF))
    mbr[510] = 0x55
    mbr[511] = 0xAA
    return bytes(mbr)


def partition_entries(geometry: DiskGeometry) -> bytes:
    """The full 128-entry array holding the single partition of ``geometry``."""
    entries = bytearray(GPT_ENTRY_COUNT * GPT_ENTRY_SIZE)
    _ENTRY.pack_into(
        entries,
        0,
        geometry.partition_type_guid.bytes_le,
        geometry.partition_guid.bytes_le,
        geometry.partition_start,
        geometry.partition_end,
        geometry.partition_attributes,
        geometry.partition_name.encode("utf-16-le"),
    )
    return bytes(entries)


def gpt_header(geometry: DiskGeometry, entries: bytes, *, backup: bool) -> bytes:
    """Primary (LBA 1) or backup (last LBA) header sector."""
    last_lba = geometry.total_sectors - 1
    if backup:
        my_lba, alternate_lba = last_lba, 1
        entries_lba = last_lba - GPT_ENTRY_SECTORS
    else:
        my_lba, alternate_lba = 1, last_lba
        entries_lba = 2

    def pack(crc: int) -> bytes:
        return _HEADER.pack(
            GPT_SIGNATURE,
            GPT_REVISION,
            GPT_HEADER_SIZE,
            crc,
            0,
            my_lba,
            alternate_lba,
            geometry.first_usable_lba,
            geometry.last_usable_lba,
            geometry.disk_guid.bytes_le,
            entries_lba,
            GPT_ENTRY_COUNT,
            GPT_ENTRY_SIZE,
            zlib.crc32(entries) & 0xFFFFFFFF,
        )

    header_crc = zlib.crc32(pack(0)) & 0xFFFFFFFF
    return pack(header_crc).ljust(SECTOR_SIZE, b"\x00")


def write_partition_table(image: BinaryIO, geometry: DiskGeometry) -> None:
    """Write the protective MBR, primary and backup GPT into an open image.

    The file must already be ``geometry.total_bytes`` long.
    """
    entries = partition_entries(geometry)
    last_lba = geometry.total_sectors - 1

    image.seek(0)
    image.write(protective_mbr(geometry.total_sectors))
    image.write(gpt_header(geometry, entries, backup=False))
    image.write(entries)

    image.seek((last_lba - GPT_ENTRY_SECTORS) * SECTOR_SIZE)
    image.write(entries)
    image.write(gpt_header(geometry, entries, backup=True))


def read_gpt(source: Union[Path, str, bytes], *, backup: bool = False) -> tuple[GptHeader, list[GptPartition]]:
    """Parse and CRC-check a GPT.

    Args:
        source: Image path or the raw bytes of the whole disk.
        backup: Read the backup header at the last LBA instead of LBA 1.

    Raises:
        GeometryMismatchError: If the signature or a checksum is wrong.
    """
    if isinstance(source, (str, Path)):
        with open(source, "rb") as handle:
            handle.seek(0, 2)
            size = handle.tell()
            header_lba = size // SECTOR_SIZE - 1 if backup else 1
            handle.seek(header_lba * SECTOR_SIZE)
            raw_header = handle.read(SECTOR_SIZE)
            header = _parse_header(raw_header)
            handle.seek(header.entries_lba * SECTOR_SIZE)
            raw_entries = handle.read(header.entry_count * header.entry_size)
    else:
        data = bytes(source)
        header_lba = len(data) // SECTOR_SIZE - 1 if backup else 1
        raw_header = data[header_lba * SECTOR_SIZE:(header_lba + 1) * SECTOR_SIZE]
        header = _parse_header(raw_header)
        start = header.entries_lba * SECTOR_SIZE
        raw_entries = data[start:start + header.entry_count * header.entry_size]

    if zlib.crc32(raw_entries) & 0xFFFFFFFF != header.entries_crc:
        raise GeometryMismatchError("GPT partition entry array CRC mismatch")

    partitions = []
    for index in range(header.entry_count):
        offset = index * header.entry_size
        type_raw, unique_raw, first, last, attributes, name_raw = _ENTRY.unpack_from(raw_entries, offset)
        if type_raw == bytes(16):
            continue
        name = name_raw.decode("utf-16-le", errors="replace").split("\x00", 1)[0]
        partitions.append(
            GptPartition(
                index=index + 1,
                type_guid=uuid.UUID(bytes_le=type_raw),
                unique_guid=uuid.UUID(bytes_le=unique_raw),
                first_lba=first,
                last_lba=last,
                attributes=attributes,
                name=name,
            )
        )
    return header, partitions


def _parse_header(raw: bytes) -> GptHeader:
    if len(raw) < GPT_HEADER_SIZE or raw[:8] != GPT_SIGNATURE:
        raise GeometryMismatchError("No GPT header found")
    fields = _HEADER.unpack_from(raw, 0)
    header_size, header_crc = fields[2], fields[3]
    check = bytearray(raw[:header_size])
    struct.pack_into("<I", check, 16, 0)
    if zlib.crc32(check) & 0xFFFFFFFF != header_crc:
        raise GeometryMismatchError("GPT header CRC mismatch")
    return GptHeader(
        my_lba=fields[5],
        alternate_lba=fields[6],
        first_usable_lba=fields[7],
        last_usable_lba=fields[8],
        disk_guid=uuid.UUID(bytes_le=fields[9]),
        entries_lba=fields[10],
        entry_count=fields[11],
        entry_size=fields[12],
        entries_crc=fields[13],
    )
