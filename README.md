# mosfs

`mosfs` implements a small block-based file system of the kind used in
teaching operating systems. It works on raw disk images, or on in-memory
`bytearray` disks.

The on-disk format uses 4096-byte blocks made of 512-byte sectors:

* block 0 is reserved (the mount check uses it as scratch space),
* block 1 holds the super block: the magic number `0x68286097`, the number
  of blocks, and the root directory entry,
* blocks from 2 onwards hold the free-block bitmap, where a set bit means
  the block is free,
* every file entry is 256 bytes: a name of up to 127 bytes, a size, a type
  (regular file or directory), ten direct block pointers and one indirect
  block pointer. A directory's contents are blocks of 16 such entries.

## What is in the package

* `mosfs.layout` – the `File` and `Super` records with `pack()` and
  `from_bytes()`, the `FileType` enumeration (`REG`, `DIR`), the format
  constants, and the `round_up` / `round_down` helpers for powers of two.
* `mosfs.ide` – `IdeController`, sector-level `read(diskno, secno, nsecs)`
  and `write(diskno, secno, data)` on up to two disks. Each disk is a
  `bytearray` (changed in place) or the path of an image file; the
  controller is a context manager that closes image files on exit.
* `mosfs.fs` – `FileSystem`, a write-back block cache and bitmap allocator
  on disk 0, with file operations: `file_open`, `file_create`,
  `file_get_block`, `file_map_block`, `file_dirty`, `file_set_size`,
  `file_truncate`, `file_flush`, `file_close`, `file_remove`, `walk_path`,
  `dir_lookup`, `dir_alloc_file` and `sync`. Files and directories are
  handled through `Node` objects, whose `name`, `size`, `ftype` and
  `indirect` read and write the entry in the cached directory block.
* `mosfs.server` – `FileServer`, which answers `OpenRequest`, `MapRequest`,
  `SetSizeRequest`, `CloseRequest`, `DirtyRequest`, `RemoveRequest`,
  `SyncRequest` and `CreateRequest` through `handle()`, keeping a table of
  up to 1024 open files. Open modes are given by `OpenMode`.
* `mosfs.check` – `fs_check()`, a self-check of a mounted file system, and
  the `mosfs-check` command.
* `mosfs.errors` – one exception class per error condition, all derived
  from `FsError` and carrying a numeric `code`, with `error_for_code()` to
  turn a code (positive or negative) back into an exception.
* `mosfs.bitops` – `genmask`, `genmask_ull` and `log2`.
* `mosfs.args` – `parse_args(argv, with_values)`, a single-letter option
  parser that raises `ArgumentMissing` when an option's value is absent.

## Using the file system

```python
from mosfs.errors import NotFoundError
from mosfs.fs import FileSystem
from mosfs.ide import IdeController

with IdeController("fs.img") as ide:
    fs = FileSystem(ide).mount()   # reads the super block, checks the disk, loads the bitmap

    try:
        node = fs.file_open("/motd")
    except NotFoundError:
        node = fs.file_create("/motd")

    fs.file_set_size(node, 100)
    blk = fs.file_get_block(node, 0)   # the cached block, a bytearray
    blk[:6] = b"hello\n"
    fs.file_dirty(node, 0)
    fs.file_close(node)
    fs.sync()
```

Failures are raised as exceptions: a missing path raises `NotFoundError`,
a full disk raises `NoDiskError`, a path element of 128 bytes or more
raises `BadPathError`, a file block number beyond the indirect block
raises `InvalidError`, and creating a file that already exists raises
`FileExists`. A damaged image (wrong magic number, a reserved block marked
free, reading a free or non-existent block) raises `ValueError`.

## Serving requests

`FileServer` wraps a mounted `FileSystem` and answers client requests,
returning a `Reply` for each one. A reply's `value` is 0 on success or the
negated error code; an open or map request also hands back a `page` (the
`Filefd` descriptor or the cached block). An object that is not a known
request gets `None`.

```python
from mosfs.server import FileServer, OpenMode, OpenRequest, CloseRequest

server = FileServer(fs)
reply = server.handle(1, OpenRequest("/newmotd", OpenMode.RDWR))
if reply.ok:
    fileid = reply.page.fileid
    server.handle(1, CloseRequest(fileid))
```

## Checking a disk image

The `mosfs-check` command mounts a disk image and runs a self-check of the
allocator and the file operations against the `/newmotd` file in it,
printing each stage that passes. It rewrites `/newmotd`, so run it on a
copy of an image:

```
mosfs-check fs.img
```

It exits with status 1 and a message on standard error if a stage fails.

## What the package does not do

* It does not create or format disk images: it needs an image that already
  holds a super block, a bitmap and a root directory.
* `FileServer` is an in-process object; it has no transport of its own for
  talking to clients in other processes.

## Running the tests

```
pip install -e ".[test]"
pytest
```