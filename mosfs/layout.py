"""On-disk layout of the file system: constants, file nodes and the super block."""

import struct
from dataclasses import dataclass, field
from enum import IntEnum

PAGE_SIZE = 4096
BLOCK_SIZE = PAGE_SIZE
BLOCK_SIZE_BIT = BLOCK_SIZE * 8

MAXNAMELEN = 128
MAXPATHLEN = 1024
NDIRECT = 10
NINDIRECT = BLOCK_SIZE // 4
MAXFILESIZE = NINDIRECT * BLOCK_SIZE

FILE_STRUCT_SIZE = 256
FILE2BLK = BLOCK_SIZE // FILE_STRUCT_SIZE

FS_MAGIC = 0x68286097

SECT_SIZE = 512
SECT2BLK = BLOCK_SIZE // SECT_SIZE
DISKMAX = 0x40000000

# Page permission bits used when handing pages to clients.
PTE_V = 0x0002 << 6
PTE_D = 0x0004 << 6
PTE_COW = 0x0001
PTE_LIBRARY = 0x0002
PTE_DIRTY = 0x0004

# name, size, type, direct[10], indirect, in-memory dir pointer, padding
_FILE_STRUCT = struct.Struct(f"<{MAXNAMELEN}sII{NDIRECT}II4x72x")
_SUPER_HEADER = struct.Struct("<II")
SUPER_SIZE = _SUPER_HEADER.size + FILE_STRUCT_SIZE


def _check_power_of_two(n):
    if n <= 0 or n & (n - 1):
        raise ValueError(f"{n} is not a power of two")


def round_up(value, n):
    """Round ``value`` up to a multiple of the power of two ``n``."""
    _check_power_of_two(n)
    return (value + n - 1) & ~(n - 1)


def round_down(value, n):
    """Round ``value`` down to a multiple of the power of two ``n``."""
    _check_power_of_two(n)
    return value & ~(n - 1)


class FileType(IntEnum):
    REG = 0
    DIR = 1


def _encode_name(name):
    raw = name.encode("utf-8", errors="surrogateescape")
    if len(raw) >= MAXNAMELEN:
        raise ValueError(f"file name longer than {MAXNAMELEN - 1} bytes")
    if b"\0" in raw:
        raise ValueError("file name contains a NUL byte")
    return raw


@dataclass
class File:
    """A file node as stored in a directory block."""

    name: str = ""
    size: int = 0
    ftype: int = FileType.REG
    direct: list = field(default_factory=lambda: [0] * NDIRECT)
    indirect: int = 0

    @property
    def is_dir(self):
        return self.ftype == FileType.DIR

    def pack(self):
        """Return the node's FILE_STRUCT_SIZE on-disk bytes."""
        if len(self.direct) != NDIRECT:
            raise ValueError(f"a file has exactly {NDIRECT} direct pointers")
        return _FILE_STRUCT.pack(
            _encode_name(self.name), self.size, int(self.ftype), *self.direct, self.indirect
        )

    @classmethod
    def from_bytes(cls, data):
        """Decode a node from at least FILE_STRUCT_SIZE bytes."""
        if len(data) < FILE_STRUCT_SIZE:
            raise ValueError("not enough bytes for a file node")
        raw_name, size, ftype, *rest = _FILE_STRUCT.unpack_from(data)
        name = raw_name.split(b"\0", 1)[0].decode("utf-8", errors="surrogateescape")
        try:
            ftype = FileType(ftype)
        except ValueError:
            pass
        return cls(name=name, size=size, ftype=ftype, direct=rest[:NDIRECT], indirect=rest[NDIRECT])


@dataclass
class Super:
    """The super block: magic number, disk size in blocks and the root node."""

    magic: int = FS_MAGIC
    nblocks: int = 0
    root: File = field(default_factory=lambda: File(name="/", ftype=FileType.DIR))

    def pack(self):
        return _SUPER_HEADER.pack(self.magic, self.nblocks) + self.root.pack()

    @classmethod
    def from_bytes(cls, data):
        if len(data) < SUPER_SIZE:
            raise ValueError("not enough bytes for a super block")
        magic, nblocks = _SUPER_HEADER.unpack_from(data)
        root = File.from_bytes(bytes(data[_SUPER_HEADER.size:SUPER_SIZE]))
        return cls(magic=magic, nblocks=nblocks, root=root)