"""Self-check of the file system against the stock root image."""

import argparse
import logging
import sys

from .errors import FsError, NotFoundError
from .fs import FileSystem
from .ide import IdeController
from .layout import BLOCK_SIZE_BIT

log = logging.getLogger(__name__)

MSG = b"This is the NEW message of the day!\n"
DIFF_MSG = b"This is a different massage of the day!\n"
_BITMAP_START = 2


def _bitmap_snapshot(fs):
    nbitmap = fs.nblocks // BLOCK_SIZE_BIT + 1
    return b"".join(bytes(fs.read_block(_BITMAP_START + i)) for i in range(nbitmap))


def fs_check(fs):
    """Exercise allocation, lookup, block access, truncation and rewrite on a mounted fs.

    Returns the stages that passed; raises on the first failure.
    """
    passed = []

    def stage(message):
        log.debug(message)
        passed.append(message)

    bits = _bitmap_snapshot(fs)
    blockno = fs.alloc_block()
    if not bits[blockno // 8] >> (blockno % 8) & 1:
        raise RuntimeError(f"alloc_block returned block {blockno} that was not free")
    if fs.block_is_free(blockno):
        raise RuntimeError(f"block {blockno} is still free after alloc_block")
    stage("alloc_block is good")

    try:
        fs.file_open("/not-found")
    except NotFoundError:
        pass
    else:
        raise RuntimeError("file_open /not-found succeeded!")
    node = fs.file_open("/newmotd")
    stage("file_open is good")

    blk = fs.file_get_block(node, 0)
    if bytes(blk[:len(MSG)]) != MSG:
        raise RuntimeError("file_get_block returned unexpected data")
    stage("file_get_block is good")

    fs.file_flush(node)
    stage("file_flush is good")

    fs.file_set_size(node, 0)
    if node.direct[0] != 0:
        raise RuntimeError("file truncation left a direct block in place")
    stage("file_truncate is good")

    fs.file_set_size(node, len(DIFF_MSG))
    blk = fs.file_get_block(node, 0)
    blk[:len(DIFF_MSG) + 1] = DIFF_MSG + b"\0"
    fs.file_flush(node)
    fs.file_close(node)
    stage("file rewrite is good")
    return passed


def main(argv=None):
    parser = argparse.ArgumentParser(prog="mosfs-check", description="Check a file system image.")
    parser.add_argument("image", help="raw disk image holding the file system")
    args = parser.parse_args(argv)
    try:
        with IdeController(args.image) as ide:
            fs = FileSystem(ide).mount()
            for message in fs_check(fs):
                print(message)
    except (FsError, RuntimeError, ValueError, OSError) as exc:
        print(f"check failed: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())