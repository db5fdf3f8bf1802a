"""Sector-level access to up to two IDE disks backed by images."""

import os

from .layout import SECT_SIZE

MAX_DISKS = 2
# LBA28 addressing: the sector number fits in 28 bits.
LBA_LIMIT = 1 << 28


class _MemoryDisk:
    def __init__(self, data):
        self._data = data

    @property
    def size(self):
        return len(self._data)

    def read(self, offset, length):
        return bytes(self._data[offset:offset + length])

    def write(self, offset, data):
        self._data[offset:offset + len(data)] = data


class _ImageDisk:
    def __init__(self, path):
        self._file = open(path, "r+b")

    @property
    def size(self):
        return os.fstat(self._file.fileno()).st_size

    def read(self, offset, length):
        self._file.seek(offset)
        return self._file.read(length)

    def write(self, offset, data):
        self._file.seek(offset)
        self._file.write(data)
        self._file.flush()

    def close(self):
        self._file.close()


class IdeController:
    """Reads and writes 512-byte sectors on disk 0 and disk 1.

    Each disk is a ``bytearray`` (changed in place) or the path of a raw image file.
    """

    def __init__(self, *args):
        if len(args) > MAX_DISKS:
            raise ValueError(f"at most {MAX_DISKS} disks can be attached")
        self._disks = [self._attach(disk) for disk in args]

    @staticmethod
    def _attach(disk):
        if isinstance(disk, bytearray):
            return _MemoryDisk(disk)
        if isinstance(disk, (str, os.PathLike)):
            return _ImageDisk(disk)
        raise TypeError("a disk is a bytearray or the path of an image file")

    def _locate(self, diskno, secno, nsecs):
        if not 0 <= diskno < MAX_DISKS:
            raise ValueError(f"disk number {diskno} out of range")
        if diskno >= len(self._disks):
            raise ValueError(f"no disk attached as disk {diskno}")
        if secno < 0 or nsecs < 0 or secno + nsecs > LBA_LIMIT:
            raise ValueError("sector range outside the addressable range")
        disk = self._disks[diskno]
        if (secno + nsecs) * SECT_SIZE > disk.size:
            raise ValueError("sector range beyond the end of the disk")
        return disk

    def read(self, diskno, secno, nsecs):
        """Return ``nsecs`` sectors starting at ``secno``."""
        disk = self._locate(diskno, secno, nsecs)
        return disk.read(secno * SECT_SIZE, nsecs * SECT_SIZE)

    def write(self, diskno, secno, data):
        """Write whole sectors of ``data`` starting at ``secno``."""
        if len(data) % SECT_SIZE:
            raise ValueError(f"data must be a multiple of {SECT_SIZE} bytes")
        disk = self._locate(diskno, secno, len(data) // SECT_SIZE)
        disk.write(secno * SECT_SIZE, bytes(data))

    def close(self):
        """Close any image files; in-memory disks need no release."""
        for disk in self._disks:
            if isinstance(disk, _ImageDisk):
                disk.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()