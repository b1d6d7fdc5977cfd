"""FAT32 volume writer and reader.

The writer builds a complete FAT32 volume in memory from a small directory
tree and serializes it deterministically: fixed volume id, fixed timestamps
and contiguous cluster allocation in tree order, so the same inputs always
give the same bytes.

Layout:
    Sector 0:        Boot sector / BPB
    Sector 1:        FSInfo
    Sector 6, 7:     Backup boot sector and FSInfo
    Sector 32:       FAT #1, followed by FAT #2
    Data region:     Clusters from 2, root directory at cluster 2

Names:
    Names that fit 8.3 are stored as plain short entries. All-lowercase base
    names or extensions use the NT case flags (how Linux vfat and mtools store
    ``kernel.sys``). Anything else gets VFAT long name entries plus a ``~N``
    short alias.
"""

from __future__ import annotations

import string
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from simpleos_builder.exceptions import PackagingFailedError
from simpleos_builder.logging import LoggerFactory


log = LoggerFactory.for_storage()

SECTOR_SIZE = 512
SECTORS_PER_CLUSTER = 1
CLUSTER_SIZE = SECTOR_SIZE * SECTORS_PER_CLUSTER
RESERVED_SECTORS = 32
NUM_FATS = 2
ROOT_CLUSTER = 2
FSINFO_SECTOR = 1
BACKUP_BOOT_SECTOR = 6
MEDIA_DESCRIPTOR = 0xF8

FAT32_MIN_CLUSTERS = 65525
FAT32_MAX_CLUSTERS = 0x0FFFFFF5 - 2
FAT_ENTRY_MASK = 0x0FFFFFFF
END_OF_CHAIN = 0x0FFFFFFF
BAD_CLUSTER = 0x0FFFFFF7

ATTR_READ_ONLY = 0x01
ATTR_HIDDEN = 0x02
ATTR_SYSTEM = 0x04
ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_LONG_NAME = ATTR_READ_ONLY | ATTR_HIDDEN | ATTR_SYSTEM | ATTR_VOLUME_ID

NT_LOWER_BASE = 0x08
NT_LOWER_EXT = 0x10

DIR_ENTRY_SIZE = 32
LFN_CHARS_PER_ENTRY = 13
LFN_LAST_ENTRY = 0x40
MAX_LONG_NAME = 255

# 1980-01-01 00:00:00, the FAT epoch.
FAT_DATE = (0 << 9) | (1 << 5) | 1
FAT_TIME = 0

DEFAULT_VOLUME_ID = 0x53494D50
DEFAULT_OEM_NAME = b"MSWIN4.1"

_BOOT_SECTOR = struct.Struct("<3s8sHBHBHHBHHHIIIHHIHH12sBBBI11s8s")
_DIR_ENTRY = struct.Struct("<11sBBBHHHHHHHI")

_SHORT_NAME_CHARS = frozenset(string.ascii_uppercase + string.digits + "$%'-_@~`!(){}^#&")
_INVALID_LONG_CHARS = frozenset('"*/:<>?\\|')


# =====================================================================
# Geometry
# =====================================================================


@dataclass(frozen=True)
class Fat32Layout:
    """Sector layout of a FAT32 volume of a given size."""

    total_sectors: int
    fat_sectors: int
    cluster_count: int

    @property
    def fat_start(self) -> int:
        return RESERVED_SECTORS

    @property
    def data_start(self) -> int:
        return RESERVED_SECTORS + NUM_FATS * self.fat_sectors

    @property
    def size_bytes(self) -> int:
        return self.total_sectors * SECTOR_SIZE

    def cluster_offset(self, cluster: int) -> int:
        """Byte offset of a data cluster inside the volume."""
        return (self.data_start + (cluster - 2) * SECTORS_PER_CLUSTER) * SECTOR_SIZE


def compute_layout(total_sectors: int) -> Fat32Layout:
    """Size the FATs for a volume of ``total_sectors`` sectors.

    Uses the FAT size formula from Microsoft's FAT specification.

    Raises:
        PackagingFailedError: If the volume is too small or too large for FAT32.
    """
    usable = total_sectors - RESERVED_SECTORS
    divisor = (256 * SECTORS_PER_CLUSTER + NUM_FATS) // 2
    fat_sectors = (usable + divisor - 1) // divisor if usable > 0 else 0
    cluster_count = (usable - NUM_FATS * fat_sectors) // SECTORS_PER_CLUSTER
    if cluster_count < FAT32_MIN_CLUSTERS:
        raise PackagingFailedError(
            f"{total_sectors} sectors is too small for FAT32 "
            f"({max(cluster_count, 0)} clusters, at least {FAT32_MIN_CLUSTERS} required)"
        )
    if cluster_count > FAT32_MAX_CLUSTERS:
        raise PackagingFailedError(f"{total_sectors} sectors is too large for FAT32")
    return Fat32Layout(total_sectors, fat_sectors, cluster_count)


def min_fat32_sectors() -> int:
    """Smallest sector count that still formats as FAT32."""
    divisor = (256 * SECTORS_PER_CLUSTER + NUM_FATS) // 2
    sectors = RESERVED_SECTORS + FAT32_MIN_CLUSTERS * SECTORS_PER_CLUSTER
    while True:
        usable = sectors - RESERVED_SECTORS
        fat_sectors = (usable + divisor - 1) // divisor
        if (usable - NUM_FATS * fat_sectors) // SECTORS_PER_CLUSTER >= FAT32_MIN_CLUSTERS:
            return sectors
        sectors += 1


# =====================================================================
# Names
# =====================================================================


def short_name_for(name: str) -> Optional[tuple[bytes, int]]:
    """Return the 11-byte 8.3 name and NT case flags, or None if a long name is needed."""
    if name in (".", "..") or name.count(".") > 1 or name.startswith("."):
        return None
    base, dot, ext = name.partition(".")
    if not 1 <= len(base) <= 8 or len(ext) > 3 or (dot and not ext):
        return None

    flags = 0
    for part, lower_flag in ((base, NT_LOWER_BASE), (ext, NT_LOWER_EXT)):
        upper = part.upper()
        if any(char not in _SHORT_NAME_CHARS for char in upper):
            return None
        if part == upper:
            continue
        if part == part.lower():
            flags |= lower_flag
        else:
            return None

    encoded = (base.upper().ljust(8) + ext.upper().ljust(3)).encode("ascii")
    if encoded[0] == 0xE5:
        encoded = b"\x05" + encoded[1:]
    return encoded, flags


def _short_alias(name: str, taken: set[bytes]) -> bytes:
    """Generate a unique ``BASIS~N.EXT`` alias for a long name."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        stem, ext = name, ""

    def clean(part: str) -> str:
        part = part.upper().replace(" ", "").replace(".", "")
        return "".join(c if c in _SHORT_NAME_CHARS else "_" for c in part)

    basis = clean(stem) or "_"
    ext_part = clean(ext)[:3]
    for number in range(1, 1_000_000):
        tail = f"~{number}"
        candidate = (basis[: 8 - len(tail)] + tail).ljust(8) + ext_part.ljust(3)
        encoded = candidate.encode("ascii")
        if encoded not in taken:
            return encoded
    raise PackagingFailedError(f"Could not generate a short name for {name!r}")


def lfn_checksum(short_name: bytes) -> int:
    """Checksum of an 11-byte short name, stored in each long name entry."""
    total = 0
    for byte in short_name:
        total = (((total & 1) << 7) + (total >> 1) + byte) & 0xFF
    return total


def _lfn_entries(name: str, short_name: bytes) -> list[bytes]:
    """Long name entries in on-disk order (highest sequence number first)."""
    units = name.encode("utf-16-le")
    chars = [units[i:i + 2] for i in range(0, len(units), 2)]
    if len(chars) % LFN_CHARS_PER_ENTRY:
        chars.append(b"\x00\x00")
    while len(chars) % LFN_CHARS_PER_ENTRY:
        chars.append(b"\xff\xff")

    checksum = lfn_checksum(short_name)
    count = len(chars) // LFN_CHARS_PER_ENTRY
    entries = []
    for index in range(count):
        chunk = chars[index * LFN_CHARS_PER_ENTRY:(index + 1) * LFN_CHARS_PER_ENTRY]
        sequence = index + 1
        if sequence == count:
            sequence |= LFN_LAST_ENTRY
        entry = bytearray(DIR_ENTRY_SIZE)
        entry[0] = sequence
        entry[1:11] = b"".join(chunk[0:5])
        entry[11] = ATTR_LONG_NAME
        entry[13] = checksum
        entry[14:26] = b"".join(chunk[5:11])
        entry[28:32] = b"".join(chunk[11:13])
        entries.append(bytes(entry))
    return list(reversed(entries))


def _validate_long_name(name: str) -> None:
    if not name or name in (".", ".."):
        raise PackagingFailedError(f"Invalid FAT name: {name!r}")
    if len(name) > MAX_LONG_NAME:
        raise PackagingFailedError(f"FAT name longer than {MAX_LONG_NAME} characters: {name!r}")
    if any(char in _INVALID_LONG_CHARS or ord(char) < 0x20 for char in name):
        raise PackagingFailedError(f"FAT name contains invalid characters: {name!r}")


def _split_path(path: str) -> list[str]:
    return [part for part in path.replace("\\", "/").split("/") if part]


# =====================================================================
# Writer
# =====================================================================


@dataclass
class _Node:
    name: str
    is_dir: bool
    data: bytes = b""
    children: list[_Node] = field(default_factory=list)
    short_name: bytes = b""
    nt_flags: int = 0
    long_entries: list[bytes] = field(default_factory=list)
    first_cluster: int = 0
    clusters: int = 0

    def child(self, name: str) -> Optional[_Node]:
        folded = name.casefold()
        for node in self.children:
            if node.name.casefold() == folded:
                return node
        return None


class Fat32Builder:
    """Assemble a FAT32 volume image in memory.

    Example:
        >>> builder = Fat32Builder(102_400, label="SIMPLEOS")
        >>> builder.mkdir("EFI")
        >>> builder.mkdir("EFI/BOOT")
        >>> builder.add_file("EFI/BOOT/BOOTX64.EFI", data)
        >>> image = builder.build()
    """

    def __init__(
        self,
        total_sectors: int,
        label: str = "NO NAME",
        volume_id: int = DEFAULT_VOLUME_ID,
        oem_name: bytes = DEFAULT_OEM_NAME,
        hidden_sectors: int = 0,
    ):
        self.layout = compute_layout(total_sectors)
        self.label = label.upper()[:11]
        self.volume_id = volume_id & 0xFFFFFFFF
        self.oem_name = oem_name[:8].ljust(8)
        self.hidden_sectors = hidden_sectors
        self._root = _Node(name="", is_dir=True)

    def _lookup_parent(self, path: str) -> tuple[_Node, str]:
        parts = _split_path(path)
        if not parts:
            raise PackagingFailedError("Empty path")
        node = self._root
        for part in parts[:-1]:
            child = node.child(part)
            if child is None or not child.is_dir:
                raise PackagingFailedError(f"Parent directory of {path!r} does not exist")
            node = child
        return node, parts[-1]

    def _insert(self, parent: _Node, node: _Node) -> None:
        _validate_long_name(node.name)
        if parent.child(node.name) is not None:
            raise PackagingFailedError(f"{node.name!r} already exists")
        taken = {child.short_name for child in parent.children}
        short = short_name_for(node.name)
        if short is not None and short[0] not in taken:
            node.short_name, node.nt_flags = short
        else:
            node.short_name = _short_alias(node.name, taken)
            node.long_entries = _lfn_entries(node.name, node.short_name)
        parent.children.append(node)

    def mkdir(self, path: str) -> None:
        """Create a directory; its parent must already exist."""
        parent, name = self._lookup_parent(path)
        self._insert(parent, _Node(name=name, is_dir=True))
        log.trace(f"FAT32 mkdir {path}")

    def add_file(self, path: str, data: bytes) -> None:
        """Add a file; its parent directory must already exist."""
        parent, name = self._lookup_parent(path)
        self._insert(parent, _Node(name=name, is_dir=False, data=bytes(data)))
        log.trace(f"FAT32 add {path} ({len(data)} bytes)")

    def _directory_entry_count(self, node: _Node) -> int:
        count = 1 if node is self._root else 2
        for child in node.children:
            count += 1 + len(child.long_entries)
        return count

    def _allocate(self) -> int:
        next_cluster = ROOT_CLUSTER
        last_cluster = self.layout.cluster_count + 1

        def take(count: int) -> int:
            nonlocal next_cluster
            if next_cluster + count - 1 > last_cluster:
                raise PackagingFailedError(
                    f"Volume full: {self.layout.cluster_count} clusters available"
                )
            first = next_cluster
            next_cluster += count
            return first

        def visit(node: _Node) -> None:
            size = self._directory_entry_count(node) * DIR_ENTRY_SIZE
            node.clusters = max(1, -(-size // CLUSTER_SIZE))
            node.first_cluster = take(node.clusters)
            for child in node.children:
                if child.is_dir:
                    visit(child)
                elif child.data:
                    child.clusters = -(-len(child.data) // CLUSTER_SIZE)
                    child.first_cluster = take(child.clusters)

        visit(self._root)
        return next_cluster

    def _entry(self, short_name: bytes, attr: int, nt_flags: int, cluster: int, size: int) -> bytes:
        return _DIR_ENTRY.pack(
            short_name,
            attr,
            nt_flags,
            0,
            FAT_TIME,
            FAT_DATE,
            FAT_DATE,
            (cluster >> 16) & 0xFFFF,
            FAT_TIME,
            FAT_DATE,
            cluster & 0xFFFF,
            size,
        )

    def _directory_bytes(self, node: _Node, parent: Optional[_Node]) -> bytes:
        entries = []
        if node is self._root:
            label = self.label.ljust(11).encode("ascii", errors="replace")
            entries.append(self._entry(label, ATTR_VOLUME_ID, 0, 0, 0))
        else:
            parent_cluster = 0 if parent is self._root else parent.first_cluster
            entries.append(self._entry(b".".ljust(11), ATTR_DIRECTORY, 0, node.first_cluster, 0))
            entries.append(self._entry(b"..".ljust(11), ATTR_DIRECTORY, 0, parent_cluster, 0))
        for child in node.children:
            entries.extend(child.long_entries)
            if child.is_dir:
                entries.append(
                    self._entry(child.short_name, ATTR_DIRECTORY, child.nt_flags, child.first_cluster, 0)
                )
            else:
                entries.append(
                    self._entry(
                        child.short_name,
                        ATTR_ARCHIVE,
                        child.nt_flags,
                        child.first_cluster,
                        len(child.data),
                    )
                )
        return b"".join(entries)

    def _boot_sector(self) -> bytes:
        sector = bytearray(SECTOR_SIZE)
        _BOOT_SECTOR.pack_into(
            sector,
            0,
            b"\xeb\x58\x90",
            self.oem_name,
            SECTOR_SIZE,
            SECTORS_PER_CLUSTER,
            RESERVED_SECTORS,
            NUM_FATS,
            0,  # root entry count, always 0 on FAT32
            0,  # 16-bit total sectors
            MEDIA_DESCRIPTOR,
            0,  # 16-bit FAT size
            32,  # sectors per track
            64,  # heads
            self.hidden_sectors,
            self.layout.total_sectors,
            self.layout.fat_sectors,
            0,  # ext flags: FATs mirrored
            0,  # version 0.0
            ROOT_CLUSTER,
            FSINFO_SECTOR,
            BACKUP_BOOT_SECTOR,
            bytes(12),
            0x80,
            0,
            0x29,
            self.volume_id,
            self.label.ljust(11).encode("ascii", errors="replace"),
            b"FAT32   ",
        )
        sector[510] = 0x55
        sector[511] = 0xAA
        return bytes(sector)

    def _fsinfo_sector(self, next_free: int) -> bytes:
        sector = bytearray(SECTOR_SIZE)
        free = self.layout.cluster_count + 2 - next_free
        struct.pack_into("<I", sector, 0, 0x41615252)
        struct.pack_into("<I", sector, 484, 0x61417272)
        struct.pack_into("<I", sector, 488, free)
        struct.pack_into("<I", sector, 492, next_free if free else 0xFFFFFFFF)
        struct.pack_into("<I", sector, 508, 0xAA550000)
        return bytes(sector)

    def build(self) -> bytearray:
        """Serialize the volume.

        Raises:
            PackagingFailedError: If the tree does not fit on the volume.
        """
        layout = self.layout
        next_free = self._allocate()
        image = bytearray(layout.size_bytes)

        boot = self._boot_sector()
        fsinfo = self._fsinfo_sector(next_free)
        for base in (0, BACKUP_BOOT_SECTOR):
            image[base * SECTOR_SIZE:(base + 1) * SECTOR_SIZE] = boot
            image[(base + 1) * SECTOR_SIZE:(base + 2) * SECTOR_SIZE] = fsinfo

        fat = bytearray(layout.fat_sectors * SECTOR_SIZE)
        struct.pack_into("<I", fat, 0, 0x0FFFFF00 | MEDIA_DESCRIPTOR)
        struct.pack_into("<I", fat, 4, END_OF_CHAIN)

        def write_chain(first: int, count: int, payload: bytes) -> None:
            for cluster in range(first, first + count):
                value = END_OF_CHAIN if cluster == first + count - 1 else cluster + 1
                struct.pack_into("<I", fat, cluster * 4, value)
            offset = layout.cluster_offset(first)
            image[offset:offset + len(payload)] = payload

        def write_node(node: _Node, parent: Optional[_Node]) -> None:
            write_chain(node.first_cluster, node.clusters, self._directory_bytes(node, parent))
            for child in node.children:
                if child.is_dir:
                    write_node(child, node)
                elif child.data:
                    write_chain(child.first_cluster, child.clusters, child.data)

        write_node(self._root, None)

        for index in range(NUM_FATS):
            start = (layout.fat_start + index * layout.fat_sectors) * SECTOR_SIZE
            image[start:start + len(fat)] = fat

        log.debug(
            f"FAT32 volume: {layout.cluster_count} clusters, FAT {layout.fat_sectors} sectors, "
            f"{next_free - ROOT_CLUSTER} clusters used"
        )
        return image


# =====================================================================
# Reader
# =====================================================================


@dataclass(frozen=True)
class DirEntry:
    """A parsed directory entry."""

    name: str
    short_name: str
    attributes: int
    first_cluster: int
    size: int

    @property
    def is_dir(self) -> bool:
        return bool(self.attributes & ATTR_DIRECTORY)


def _decode_short_name(raw: bytes, nt_flags: int) -> str:
    if raw[0] == 0x05:
        raw = b"\xe5" + raw[1:]
    base = raw[:8].decode("ascii", errors="replace").rstrip()
    ext = raw[8:].decode("ascii", errors="replace").rstrip()
    if nt_flags & NT_LOWER_BASE:
        base = base.lower()
    if nt_flags & NT_LOWER_EXT:
        ext = ext.lower()
    return f"{base}.{ext}" if ext else base


class Fat32Reader:
    """Read-only access to a FAT32 volume image."""

    def __init__(self, image: Union[bytes, bytearray, Path, str]):
        if isinstance(image, (str, Path)):
            image = Path(image).read_bytes()
        self._image = bytes(image)
        if len(self._image) < SECTOR_SIZE or self._image[510:512] != b"\x55\xaa":
            raise PackagingFailedError("Not a FAT volume: missing boot signature")

        fields = _BOOT_SECTOR.unpack_from(self._image, 0)
        (
            _jump,
            self.oem_name,
            self.bytes_per_sector,
            self.sectors_per_cluster,
            self.reserved_sectors,
            self.num_fats,
            root_entries,
            _total16,
            self.media,
            fat_size16,
            _spt,
            _heads,
            self.hidden_sectors,
            self.total_sectors,
            self.fat_sectors,
            _ext_flags,
            _version,
            self.root_cluster,
            self.fsinfo_sector,
            self.backup_boot_sector,
            _reserved,
            _drive,
            _reserved1,
            _boot_sig,
            self.volume_id,
            label,
            fs_type,
        ) = fields
        if fat_size16 != 0 or root_entries != 0 or self.fat_sectors == 0:
            raise PackagingFailedError("Not a FAT32 volume")
        if self.bytes_per_sector not in (512, 1024, 2048, 4096) or not self.sectors_per_cluster:
            raise PackagingFailedError("Corrupt FAT32 boot sector")

        self.label = label.decode("ascii", errors="replace").rstrip()
        self.fs_type = fs_type.decode("ascii", errors="replace").rstrip()
        self.cluster_size = self.bytes_per_sector * self.sectors_per_cluster
        self.data_start = self.reserved_sectors + self.num_fats * self.fat_sectors
        self.cluster_count = (self.total_sectors - self.data_start) // self.sectors_per_cluster
        fat_offset = self.reserved_sectors * self.bytes_per_sector
        self._fat = self._image[fat_offset:fat_offset + self.fat_sectors * self.bytes_per_sector]

    def fat_entry(self, cluster: int) -> int:
        return struct.unpack_from("<I", self._fat, cluster * 4)[0] & FAT_ENTRY_MASK

    def free_clusters(self) -> int:
        return sum(
            1 for cluster in range(2, self.cluster_count + 2) if self.fat_entry(cluster) == 0
        )

    def chain(self, first: int) -> list[int]:
        """Clusters of a chain starting at ``first``."""
        clusters = []
        cluster = first
        while 2 <= cluster < BAD_CLUSTER:
            if len(clusters) > self.cluster_count:
                raise PackagingFailedError(f"Cluster chain starting at {first} loops")
            clusters.append(cluster)
            cluster = self.fat_entry(cluster)
        return clusters

    def _read_chain(self, first: int) -> bytes:
        parts = []
        for cluster in self.chain(first):
            offset = (self.data_start + (cluster - 2) * self.sectors_per_cluster) * self.bytes_per_sector
            parts.append(self._image[offset:offset + self.cluster_size])
        return b"".join(parts)

    def _entries(self, cluster: int) -> list[DirEntry]:
        raw = self._read_chain(cluster)
        entries = []
        long_parts: list[bytes] = []
        long_checksum: Optional[int] = None
        for offset in range(0, len(raw), DIR_ENTRY_SIZE):
            entry = raw[offset:offset + DIR_ENTRY_SIZE]
            if entry[0] == 0x00:
                break
            if entry[0] == 0xE5:
                long_parts, long_checksum = [], None
                continue
            if entry[11] == ATTR_LONG_NAME:
                if entry[0] & LFN_LAST_ENTRY:
                    long_parts = []
                long_parts.append(entry[1:11] + entry[14:26] + entry[28:32])
                long_checksum = entry[13]
                continue

            fields = _DIR_ENTRY.unpack(entry)
            short_raw, attributes, nt_flags = fields[0], fields[1], fields[2]
            cluster_hi, cluster_lo, size = fields[7], fields[10], fields[11]
            short = _decode_short_name(short_raw, nt_flags)
            name = short
            if long_parts and long_checksum == lfn_checksum(short_raw):
                text = b"".join(reversed(long_parts)).decode("utf-16-le", errors="replace")
                name = text.split("\x00", 1)[0].rstrip("\uffff")
            long_parts, long_checksum = [], None
            entries.append(
                DirEntry(
                    name=name,
                    short_name=short,
                    attributes=attributes,
                    first_cluster=(cluster_hi << 16) | cluster_lo,
                    size=size,
                )
            )
        return entries

    def _lookup(self, path: str) -> Optional[DirEntry]:
        parts = _split_path(path)
        current = DirEntry("", "", ATTR_DIRECTORY, self.root_cluster, 0)
        for part in parts:
            if not current.is_dir:
                return None
            cluster = current.first_cluster or self.root_cluster
            folded = part.casefold()
            for entry in self._entries(cluster):
                if entry.attributes & ATTR_VOLUME_ID:
                    continue
                if folded in (entry.name.casefold(), entry.short_name.casefold()):
                    current = entry
                    break
            else:
                return None
        return current

    def exists(self, path: str) -> bool:
        return self._lookup(path) is not None

    def is_dir(self, path: str) -> bool:
        entry = self._lookup(path)
        return entry is not None and entry.is_dir

    def scandir(self, path: str = "/") -> list[DirEntry]:
        """Entries of a directory, without ``.``, ``..`` and the volume label."""
        entry = self._lookup(path)
        if entry is None or not entry.is_dir:
            raise FileNotFoundError(f"No such directory in FAT volume: {path}")
        return [
            child
            for child in self._entries(entry.first_cluster or self.root_cluster)
            if not child.attributes & ATTR_VOLUME_ID and child.name not in (".", "..")
        ]

    def listdir(self, path: str = "/") -> list[str]:
        return [entry.name for entry in self.scandir(path)]

    def read_file(self, path: str) -> bytes:
        entry = self._lookup(path)
        if entry is None or entry.is_dir:
            raise FileNotFoundError(f"No such file in FAT volume: {path}")
        if entry.size == 0:
            return b""
        return self._read_chain(entry.first_cluster)[: entry.size]
