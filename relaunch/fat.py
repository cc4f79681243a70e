"""Read-only access to FAT12, FAT16 and FAT32 volumes held in sector devices."""

from __future__ import annotations

import enum
import struct
from typing import Optional, Protocol

BYTES_PER_SECTOR = 512

CLUSTER_FREE = 0x00000000
CLUSTER_EOF = 0x0FFFFFFF
CLUSTER_FIRST = 0x00000002

_U32 = 0xFFFFFFFF
_FILE_LAST = 0x00
_ATTRIB_DIR = 0x10
_ATTRIB_VOL = 0x08
_FAT16_ROOT_DIR_CLUSTER = 0

_DIR_ENTRY = struct.Struct("<8s3sBBBHHHHHHHI")
_ENTRIES_PER_SECTOR = BYTES_PER_SECTOR // _DIR_ENTRY.size

_PARTITION_TABLE = range(0x1BE, 0x1FE, 0x10)


class FatError(Exception):
    """Raised when a volume cannot be read or makes no sense."""


class FileSystemType(enum.Enum):
    """The kind of file allocation table on a volume."""

    UNKNOWN = 0
    FAT12 = 1
    FAT16 = 2
    FAT32 = 3


class SectorDevice(Protocol):
    """Anything that can hand out runs of 512-byte sectors."""

    def read_sectors(self, sector: int, count: int) -> bytes:
        ...


class ImageDevice:
    """A sector device backed by an in-memory disc image."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    @property
    def sector_count(self) -> int:
        """Number of whole sectors in the image."""
        return len(self._data) // BYTES_PER_SECTOR

    def read_sectors(self, sector: int, count: int) -> bytes:
        """Return count sectors starting at sector."""
        start = sector * BYTES_PER_SECTOR
        end = start + count * BYTES_PER_SECTOR
        if sector < 0 or count < 0 or end > len(self._data):
            raise FatError(f"cannot read {count} sector(s) at {sector}")
        return self._data[start:end]


def _ucase(value: int) -> int:
    return value - 0x20 if 0x60 < value < 0x7B else value


def _find_partition(mbr: bytes) -> int:
    """Return the first sector of the first usable partition, or 0."""
    chosen = next((i for i in _PARTITION_TABLE if mbr[i] == 0x80), None)
    if chosen is None:
        chosen = next((i for i in _PARTITION_TABLE if mbr[i + 4] != 0x00), None)
    if chosen is None:
        return 0
    # The top byte of the start address is discarded, as the loader does.
    return mbr[chosen + 8] | (mbr[chosen + 9] << 8) | (mbr[chosen + 10] << 16)


class FatVolume:
    """A FAT file system located on a sector device.

    The boot sector (or the first partition of a master boot record) is read
    when the volume is created.
    """

    def __init__(self, device: SectorDevice) -> None:
        self.device = device
        first = device.read_sectors(0, 1)
        if first[0x36:0x39] == b"FAT" or first[0x52:0x55] == b"FAT":
            self.boot_sector = 0
        else:
            self.boot_sector = _find_partition(first)

        boot = device.read_sectors(self.boot_sector, 1)
        (
            bytes_per_sector,
            raw_sectors_per_cluster,
            reserved_sectors,
            num_fats,
            root_entries,
            small_sector_count,
        ) = struct.unpack_from("<HBHBHH", boot, 11)
        (sectors_per_fat16,) = struct.unpack_from("<H", boot, 22)
        (large_sector_count,) = struct.unpack_from("<I", boot, 32)
        sectors_per_fat32, ext_flags, _version, root_cluster = struct.unpack_from(
            "<IHHI", boot, 36
        )

        if raw_sectors_per_cluster == 0:
            raise FatError("boot sector gives zero sectors per cluster")

        self.sectors_per_fat = sectors_per_fat16 or sectors_per_fat32
        self.total_sectors = small_sector_count or large_sector_count
        self.sectors_per_cluster = (
            raw_sectors_per_cluster * bytes_per_sector // BYTES_PER_SECTOR
        )
        if self.sectors_per_cluster == 0:
            raise FatError("clusters are smaller than one sector")
        self.bytes_per_cluster = BYTES_PER_SECTOR * self.sectors_per_cluster
        self.fat_sector = self.boot_sector + reserved_sectors
        self.root_dir_sector = self.fat_sector + num_fats * self.sectors_per_fat
        self.data_sector = self.root_dir_sector + (
            root_entries * _DIR_ENTRY.size // BYTES_PER_SECTOR
        )

        clusters = (self.total_sectors - self.data_sector) // raw_sectors_per_cluster
        if clusters < 4085:
            self.file_system = FileSystemType.FAT12
        elif clusters < 65525:
            self.file_system = FileSystemType.FAT16
        else:
            self.file_system = FileSystemType.FAT32

        if self.file_system is FileSystemType.FAT32:
            self.root_dir_cluster = root_cluster
            if not ext_flags & 0x80:
                self.fat_sector += self.sectors_per_fat * (ext_flags & 0x0F)
        else:
            self.root_dir_cluster = _FAT16_ROOT_DIR_CLUSTER

    def _read_sector(self, sector: int) -> bytes:
        return self.device.read_sectors(sector, 1)

    def cluster_to_sector(self, cluster: int) -> int:
        """Return the first sector of a data cluster."""
        return ((cluster - 2) * self.sectors_per_cluster + self.data_sector) & _U32

    def next_cluster(self, cluster: int) -> int:
        """Return the cluster that follows cluster in its chain."""
        cluster &= _U32
        if self.file_system is FileSystemType.FAT12:
            position = (cluster * 3 // 2) & _U32
            sector = self.fat_sector + position // BYTES_PER_SECTOR
            offset = position % BYTES_PER_SECTOR
            value = self._read_sector(sector)[offset]
            offset += 1
            if offset >= BYTES_PER_SECTOR:
                offset = 0
                sector += 1
            value |= self._read_sector(sector)[offset] << 8
            return value >> 4 if cluster & 1 else value & 0x0FFF

        if self.file_system is FileSystemType.FAT16:
            sector = self.fat_sector + ((cluster << 1) & _U32) // BYTES_PER_SECTOR
            offset = cluster % (BYTES_PER_SECTOR >> 1)
            (value,) = struct.unpack_from("<H", self._read_sector(sector), offset * 2)
            return CLUSTER_EOF if value >= 0xFFF7 else value

        if self.file_system is FileSystemType.FAT32:
            sector = self.fat_sector + ((cluster << 2) & _U32) // BYTES_PER_SECTOR
            offset = cluster % (BYTES_PER_SECTOR >> 2)
            (value,) = struct.unpack_from("<I", self._read_sector(sector), offset * 4)
            value &= 0x0FFFFFFF
            return CLUSTER_EOF if value >= 0x0FFFFFF7 else value

        return CLUSTER_FREE

    def find_boot_file(self, name: str) -> int:
        """Return the first cluster of an 8.3 file in the root directory.

        The name is compared with upper-cased directory entries, so it should
        be given in upper case. Returns CLUSTER_FREE when nothing matches.
        """
        if "." not in name:
            raise ValueError(f"file name {name!r} has no extension")
        encoded = name.encode("latin-1")
        name_length = encoded.index(b".")
        stem = encoded[:name_length]
        extension = encoded[name_length + 1:name_length + 4].ljust(3, b"\0")

        cluster = self.root_dir_cluster
        first_sector = self.root_dir_sector
        sector_index = 0
        buffer = self._read_sector(first_sector)
        entry_index = -1
        while True:
            entry_index += 1
            if entry_index == _ENTRIES_PER_SECTOR:
                entry_index = 0
                sector_index += 1
                if (
                    sector_index == self.sectors_per_cluster
                    and cluster != _FAT16_ROOT_DIR_CLUSTER
                ):
                    sector_index = 0
                    cluster = self.next_cluster(cluster)
                    if cluster == CLUSTER_EOF:
                        return CLUSTER_FREE
                    first_sector = self.cluster_to_sector(cluster)
                elif cluster == _FAT16_ROOT_DIR_CLUSTER and sector_index == (
                    self.data_sector - self.root_dir_sector
                ):
                    return CLUSTER_FREE
                buffer = self._read_sector(first_sector + sector_index)

            start = entry_index * _DIR_ENTRY.size
            record = buffer[start:start + _DIR_ENTRY.size]
            fields = _DIR_ENTRY.unpack(record)
            attrib, cluster_high, cluster_low = fields[2], fields[8], fields[11]

            found = not attrib & (_ATTRIB_DIR | _ATTRIB_VOL)
            if found and name_length < 8 and record[name_length] != 0x20:
                found = False
            if found:
                found = all(
                    _ucase(record[i]) == stem[i] for i in range(name_length)
                ) and all(_ucase(record[8 + i]) == extension[i] for i in range(3))

            if record[0] == _FILE_LAST:
                return CLUSTER_FREE
            if found:
                return cluster_low | (cluster_high << 16)

    def read(self, cluster: int, offset: int, length: int) -> bytes:
        """Read length bytes, starting offset bytes into the chain at cluster."""
        if offset < 0 or length < 0:
            raise ValueError("offset and length must not be negative")
        cluster &= _U32
        if cluster in (CLUSTER_FREE, CLUSTER_EOF):
            return b""

        for _ in range(offset // self.bytes_per_cluster):
            cluster = self.next_cluster(cluster)

        sector = (offset % self.bytes_per_cluster) // BYTES_PER_SECTOR
        byte = offset % BYTES_PER_SECTOR
        buffer = self._read_sector(sector + self.cluster_to_sector(cluster))
        sector += 1

        begin = BYTES_PER_SECTOR - byte if BYTES_PER_SECTOR < length + byte else length
        out = bytearray(buffer[byte:byte + begin])

        chunks = (length - begin) // BYTES_PER_SECTOR
        while chunks > 0:
            if sector >= self.sectors_per_cluster:
                sector = 0
                cluster = self.next_cluster(cluster)
            count = min(self.sectors_per_cluster - sector, chunks)
            out += self.device.read_sectors(
                sector + self.cluster_to_sector(cluster), count
            )
            chunks -= count
            sector += count

        if len(out) < length:
            if sector >= self.sectors_per_cluster:
                sector = 0
                cluster = self.next_cluster(cluster)
            buffer = self._read_sector(sector + self.cluster_to_sector(cluster))
            out += buffer[:length - len(out)]

        return bytes(out)

    def read_file(self, name: str, length: int) -> Optional[bytes]:
        """Read the first length bytes of a root-directory file, or None."""
        cluster = self.find_boot_file(name)
        if cluster == CLUSTER_FREE:
            return None
        return self.read(cluster, 0, length)