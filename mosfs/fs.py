"""Block cache, allocation bitmap and file operations on an IDE disk."""

import logging
import struct

from .errors import BadPathError, FileExists, FsError, InvalidError, NoDiskError, NotFoundError
from .layout import (
    BLOCK_SIZE,
    BLOCK_SIZE_BIT,
    DISKMAX,
    FILE2BLK,
    FILE_STRUCT_SIZE,
    FS_MAGIC,
    MAXNAMELEN,
    NDIRECT,
    NINDIRECT,
    SECT2BLK,
    SUPER_SIZE,
    File,
    FileType,
    Super,
    round_up,
)

log = logging.getLogger(__name__)

_U32 = struct.Struct("<I")
_DISK = 0
_SUPER_BLOCK = 1
_BITMAP_START = 2
_FIRST_DATA_BLOCK = 3
# The root node follows the magic number and block count in the super block.
_ROOT_OFFSET = 8
# Offset of the direct pointers inside a file node: name, size, type.
_DIRECT_OFFSET = MAXNAMELEN + 8
_SMASH = b"OOPS!\n\0"


def _encode(name):
    return name.encode("utf-8", errors="surrogateescape")


class _Pointer:
    """A 32-bit block number stored inside a cached disk block."""

    __slots__ = ("_fs", "_blockno", "_offset")

    def __init__(self, fs, blockno, offset):
        self._fs = fs
        self._blockno = blockno
        self._offset = offset

    @property
    def value(self):
        return _U32.unpack_from(self._fs.read_block(self._blockno), self._offset)[0]

    @value.setter
    def value(self, blockno):
        _U32.pack_into(self._fs.read_block(self._blockno), self._offset, blockno)

    def __repr__(self):
        return f"_Pointer(block={self._blockno}, offset={self._offset})"


class Node:
    """A file node stored in slot ``slot`` of disk block ``blockno``.

    The root directory lives in the super block and has ``slot`` None.
    ``parent`` is the directory the node was found in, when known.
    """

    def __init__(self, fs, blockno, slot, parent):
        self.fs = fs
        self.blockno = blockno
        self.slot = slot
        self.parent = parent

    @property
    def offset(self):
        """Byte offset of the node inside its block."""
        if self.slot is None:
            return _ROOT_OFFSET
        return self.slot * FILE_STRUCT_SIZE

    def _block(self):
        return self.fs.read_block(self.blockno)

    def load(self):
        """Return a copy of the node's on-disk record."""
        start = self.offset
        return File.from_bytes(bytes(self._block()[start:start + FILE_STRUCT_SIZE]))

    def _update(self, **changes):
        record = self.load()
        for key, value in changes.items():
            setattr(record, key, value)
        start = self.offset
        self._block()[start:start + FILE_STRUCT_SIZE] = record.pack()

    @property
    def name(self):
        return self.load().name

    @name.setter
    def name(self, value):
        self._update(name=value)

    @property
    def size(self):
        return self.load().size

    @size.setter
    def size(self, value):
        self._update(size=value)

    @property
    def ftype(self):
        return self.load().ftype

    @ftype.setter
    def ftype(self, value):
        self._update(ftype=value)

    @property
    def indirect(self):
        return self.load().indirect

    @indirect.setter
    def indirect(self, value):
        self._update(indirect=value)

    @property
    def direct(self):
        return tuple(self.load().direct)

    @property
    def is_dir(self):
        return self.ftype == FileType.DIR

    def _direct_pointer(self, index):
        return _Pointer(self.fs, self.blockno, self.offset + _DIRECT_OFFSET + 4 * index)

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return self.fs is other.fs and (self.blockno, self.slot) == (other.blockno, other.slot)

    def __hash__(self):
        return hash((self.blockno, self.slot))

    def __repr__(self):
        return f"Node(block={self.blockno}, slot={self.slot})"


class FileSystem:
    """A file system on disk 0 of an IDE controller, with a write-back block cache."""

    def __init__(self, ide):
        self.ide = ide
        self._cache = {}
        self._dirty = set()
        self._nblocks = None
        self._bitmap_ready = False

    @property
    def nblocks(self):
        """Number of blocks on the disk, or None before the super block is read."""
        return self._nblocks

    @property
    def root(self):
        self._require_super()
        return Node(self, _SUPER_BLOCK, None, None)

    def _require_super(self):
        if self._nblocks is None:
            raise RuntimeError("the super block has not been read")

    def _require_bitmap(self):
        self._require_super()
        if not self._bitmap_ready:
            raise RuntimeError("the block bitmap has not been read")

    # Block cache

    def _fetch(self, blockno):
        blk = self._cache.get(blockno)
        if blk is None:
            blk = bytearray(self.ide.read(_DISK, blockno * SECT2BLK, SECT2BLK))
            self._cache[blockno] = blk
        return blk

    def block_is_mapped(self, blockno):
        """Return the cached contents of a block, or None if it is not cached."""
        return self._cache.get(blockno)

    def block_is_dirty(self, blockno):
        return blockno in self._cache and blockno in self._dirty

    def dirty_block(self, blockno):
        """Mark a cached block as needing write-back."""
        if blockno not in self._cache:
            raise NotFoundError(f"block {blockno} is not cached")
        self._dirty.add(blockno)

    def write_block(self, blockno):
        """Write a cached block out to disk."""
        blk = self._cache.get(blockno)
        if blk is None:
            raise ValueError(f"write unmapped block {blockno:08x}")
        self.ide.write(_DISK, blockno * SECT2BLK, blk)

    def read_block(self, blockno):
        """Return the cached contents of a block, loading it from disk if needed."""
        if blockno < 0 or (self._nblocks is not None and blockno >= self._nblocks):
            raise ValueError(f"reading non-existent block {blockno:08x}")
        if self._bitmap_ready and self.block_is_free(blockno):
            raise ValueError(f"reading free block {blockno:08x}")
        return self._fetch(blockno)

    def map_block(self, blockno):
        """Give a block a zero-filled cache page unless it already has one."""
        if blockno not in self._cache:
            self._cache[blockno] = bytearray(BLOCK_SIZE)

    def unmap_block(self, blockno):
        """Drop a block from the cache, writing it back first if it is in use and dirty."""
        if not self.block_is_free(blockno) and self.block_is_dirty(blockno):
            self.write_block(blockno)
        self._cache.pop(blockno, None)
        self._dirty.discard(blockno)

    # Allocation bitmap

    def _bitmap_position(self, blockno):
        blk = self._fetch(_BITMAP_START + blockno // BLOCK_SIZE_BIT)
        return blk, (blockno % BLOCK_SIZE_BIT) // 8, 1 << (blockno % 8)

    def block_is_free(self, blockno):
        if self._nblocks is None or not self._bitmap_ready:
            return False
        if not 0 <= blockno < self._nblocks:
            return False
        blk, index, bit = self._bitmap_position(blockno)
        return bool(blk[index] & bit)

    def free_block(self, blockno):
        """Mark a block free; block 0 and out-of-range numbers are ignored."""
        self._require_bitmap()
        if blockno == 0 or blockno >= self._nblocks:
            return
        blk, index, bit = self._bitmap_position(blockno)
        blk[index] |= bit

    def alloc_block_num(self):
        """Claim the first free block in the bitmap and write the bitmap block out."""
        self._require_bitmap()
        for blockno in range(_FIRST_DATA_BLOCK, self._nblocks):
            blk, index, bit = self._bitmap_position(blockno)
            if blk[index] & bit:
                blk[index] &= ~bit & 0xFF
                self.write_block(blockno // BLOCK_SIZE_BIT + _BITMAP_START)
                return blockno
        raise NoDiskError()

    def alloc_block(self):
        """Allocate a block and give it a cache page."""
        blockno = self.alloc_block_num()
        try:
            self.map_block(blockno)
        except FsError:
            self.free_block(blockno)
            raise
        return blockno

    # Mounting

    def read_super(self):
        """Read and validate the super block."""
        blk = self.read_block(_SUPER_BLOCK)
        sup = Super.from_bytes(bytes(blk[:SUPER_SIZE]))
        if sup.magic != FS_MAGIC:
            raise ValueError(f"bad file system magic number {sup.magic:x} {FS_MAGIC:x}")
        if sup.nblocks > DISKMAX // BLOCK_SIZE:
            raise ValueError("file system is too large")
        self._nblocks = sup.nblocks
        log.debug("superblock is good")
        return sup

    def read_bitmap(self):
        """Load the bitmap blocks and check the reserved blocks are marked in use."""
        self._require_super()
        nbitmap = self._nblocks // BLOCK_SIZE_BIT + 1
        for i in range(nbitmap):
            self.read_block(i + _BITMAP_START)
        self._bitmap_ready = True
        reserved = [0, _SUPER_BLOCK, *range(_BITMAP_START, _BITMAP_START + nbitmap)]
        for blockno in reserved:
            if self.block_is_free(blockno):
                self._bitmap_ready = False
                raise ValueError(f"reserved block {blockno} is marked free")
        log.debug("read_bitmap is good")

    def check_write_block(self):
        """Smash the super block on disk, read it back, then restore it."""
        self._nblocks = None
        backup = self.read_block(0)
        backup[:] = self.read_block(_SUPER_BLOCK)

        smashed = self.read_block(_SUPER_BLOCK)
        smashed[:len(_SMASH)] = _SMASH
        self.write_block(_SUPER_BLOCK)

        self._cache.pop(_SUPER_BLOCK)
        self._dirty.discard(_SUPER_BLOCK)
        if self.read_block(_SUPER_BLOCK)[:len(_SMASH)] != _SMASH:
            raise RuntimeError("block written to disk could not be read back")

        restored = self.read_block(_SUPER_BLOCK)
        restored[:] = backup
        self.write_block(_SUPER_BLOCK)
        self._nblocks = Super.from_bytes(bytes(restored[:SUPER_SIZE])).nblocks

    def mount(self):
        """Read the super block, check the disk works and load the bitmap."""
        self.read_super()
        self.check_write_block()
        self.read_bitmap()
        return self

    # Files

    def file_block_walk(self, node, filebno, alloc=False):
        """Return the slot holding the disk block number of a file block."""
        if filebno < NDIRECT:
            return node._direct_pointer(filebno)
        if filebno < NINDIRECT:
            if node.indirect == 0:
                if not alloc:
                    raise NotFoundError("file has no indirect block")
                node.indirect = self.alloc_block()
            indirect = node.indirect
            self.read_block(indirect)
            return _Pointer(self, indirect, 4 * filebno)
        raise InvalidError(f"file block {filebno} out of range")

    def file_map_block(self, node, filebno, alloc=False):
        """Return the disk block number of a file block, allocating it if asked."""
        ptr = self.file_block_walk(node, filebno, alloc)
        if ptr.value == 0:
            if not alloc:
                raise NotFoundError(f"file block {filebno} does not exist")
            ptr.value = self.alloc_block()
        return ptr.value

    def file_clear_block(self, node, filebno):
        """Free a file block if present."""
        ptr = self.file_block_walk(node, filebno, False)
        if ptr.value:
            self.free_block(ptr.value)
            ptr.value = 0

    def file_get_block(self, node, filebno):
        """Return the cached contents of a file block, allocating it if needed."""
        return self.read_block(self.file_map_block(node, filebno, True))

    def file_dirty(self, node, offset):
        """Mark the block holding byte ``offset`` of a file dirty."""
        self.dirty_block(self.file_map_block(node, offset // BLOCK_SIZE, False))

    def _dir_blocks(self, directory):
        for i in range(directory.size // BLOCK_SIZE):
            diskbno = self.file_map_block(directory, i, True)
            yield diskbno, self.read_block(diskbno)

    def dir_lookup(self, directory, name):
        """Find the entry called ``name`` in a directory."""
        target = _encode(name)
        for diskbno, blk in self._dir_blocks(directory):
            for slot in range(FILE2BLK):
                start = slot * FILE_STRUCT_SIZE
                if blk[start:start + MAXNAMELEN].split(b"\0", 1)[0] == target:
                    return Node(self, diskbno, slot, directory)
        raise NotFoundError(f"{name!r} not found")

    def dir_alloc_file(self, directory):
        """Return a free entry in a directory, growing it by a block if it is full."""
        nblock = directory.size // BLOCK_SIZE
        for diskbno, blk in self._dir_blocks(directory):
            for slot in range(FILE2BLK):
                if blk[slot * FILE_STRUCT_SIZE] == 0:
                    return Node(self, diskbno, slot, directory)
        directory.size = directory.size + BLOCK_SIZE
        diskbno = self.file_map_block(directory, nblock, True)
        self.read_block(diskbno)
        return Node(self, diskbno, 0, directory)

    def _walk(self, path):
        """Return (directory, node, None), or (directory, None, name) if only the last element is missing."""
        path = path.lstrip("/")
        node = self.root
        directory = None
        while path:
            directory = node
            name, _, path = path.partition("/")
            path = path.lstrip("/")
            if len(_encode(name)) >= MAXNAMELEN:
                raise BadPathError(f"path element {name[:16]!r}... is too long")
            if not directory.is_dir:
                raise NotFoundError(f"{directory.name!r} is not a directory")
            try:
                node = self.dir_lookup(directory, name)
            except NotFoundError:
                if not path:
                    return directory, None, name
                raise
        return directory, node, None

    def walk_path(self, path):
        """Return (directory, node) for a path; the directory is None for the root."""
        directory, node, name = self._walk(path)
        if node is None:
            raise NotFoundError(f"{name!r} not found")
        return directory, node

    def file_open(self, path):
        return self.walk_path(path)[1]

    def file_create(self, path):
        """Create an empty entry for ``path`` and return it."""
        directory, node, name = self._walk(path)
        if node is not None:
            raise FileExists(f"{path!r} already exists")
        try:
            node = self.dir_alloc_file(directory)
        except FsError as exc:
            raise NotFoundError(f"cannot create {path!r}") from exc
        node.name = name
        return node

    def file_truncate(self, node, newsize):
        """Shrink a file, freeing the blocks past its new end."""
        old_nblocks = round_up(node.size, BLOCK_SIZE) // BLOCK_SIZE
        new_nblocks = round_up(newsize, BLOCK_SIZE) // BLOCK_SIZE if newsize else 0
        for bno in range(new_nblocks, old_nblocks):
            self.file_clear_block(node, bno)
        if new_nblocks <= NDIRECT and node.indirect:
            self.free_block(node.indirect)
            node.indirect = 0
        node.size = newsize

    def file_set_size(self, node, newsize):
        if node.size > newsize:
            self.file_truncate(node, newsize)
        node.size = newsize
        if node.parent is not None:
            self.file_flush(node.parent)

    def file_flush(self, node):
        """Write out every dirty block of a file."""
        for bno in range(round_up(node.size, BLOCK_SIZE) // BLOCK_SIZE):
            try:
                diskbno = self.file_map_block(node, bno, False)
            except FsError:
                continue
            if self.block_is_dirty(diskbno):
                self.write_block(diskbno)

    def sync(self):
        """Write out every dirty block on the disk."""
        self._require_super()
        for blockno in range(self._nblocks):
            if self.block_is_dirty(blockno):
                self.write_block(blockno)

    def file_close(self, node):
        """Flush a file and the directory block that holds its entry."""
        self.file_flush(node)
        parent = node.parent
        if parent is None:
            return
        for i in range(parent.size // BLOCK_SIZE):
            try:
                diskbno = self.file_map_block(parent, i, False)
                self.read_block(diskbno)
            except FsError:
                log.debug("file_close: cannot reach directory block %d", i)
                break
            if diskbno == node.blockno:
                self.dirty_block(diskbno)
                break
        self.file_flush(parent)

    def file_remove(self, path):
        """Truncate a file to nothing and clear its name."""
        node = self.walk_path(path)[1]
        self.file_truncate(node, 0)
        node.name = ""
        self.file_flush(node)
        if node.parent is not None:
            self.file_flush(node.parent)