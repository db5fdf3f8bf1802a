"""File server: serves open, map, resize, close, dirty, remove, sync and create requests."""

import logging
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import ClassVar

from .errors import FileExists, FsError, InvalidError, MaxOpenError
from .layout import BLOCK_SIZE, MAXPATHLEN, PTE_D, PTE_LIBRARY, File, FileType

log = logging.getLogger(__name__)

MAXOPEN = 1024
FILE_DEV_ID = ord("f")
SHARED_PAGE = PTE_D | PTE_LIBRARY


class OpenMode(IntFlag):
    RDONLY = 0x0000
    WRONLY = 0x0001
    RDWR = 0x0002
    ACCMODE = 0x0003
    CREAT = 0x0100
    TRUNC = 0x0200
    EXCL = 0x0400
    MKDIR = 0x0800


class RequestType(IntEnum):
    OPEN = 0
    MAP = 1
    SET_SIZE = 2
    CLOSE = 3
    DIRTY = 4
    REMOVE = 5
    SYNC = 6
    CREATE = 7


def _check_path(path):
    if len(path.encode("utf-8", errors="surrogateescape")) >= MAXPATHLEN:
        raise ValueError(f"path longer than {MAXPATHLEN - 1} bytes")


@dataclass(frozen=True)
class OpenRequest:
    path: str
    omode: int = OpenMode.RDONLY
    kind: ClassVar[RequestType] = RequestType.OPEN

    def __post_init__(self):
        _check_path(self.path)


@dataclass(frozen=True)
class MapRequest:
    fileid: int
    offset: int
    kind: ClassVar[RequestType] = RequestType.MAP


@dataclass(frozen=True)
class SetSizeRequest:
    fileid: int
    size: int
    kind: ClassVar[RequestType] = RequestType.SET_SIZE


@dataclass(frozen=True)
class CloseRequest:
    fileid: int
    kind: ClassVar[RequestType] = RequestType.CLOSE


@dataclass(frozen=True)
class DirtyRequest:
    fileid: int
    offset: int
    kind: ClassVar[RequestType] = RequestType.DIRTY


@dataclass(frozen=True)
class RemoveRequest:
    path: str
    kind: ClassVar[RequestType] = RequestType.REMOVE

    def __post_init__(self):
        _check_path(self.path)


@dataclass(frozen=True)
class SyncRequest:
    kind: ClassVar[RequestType] = RequestType.SYNC


@dataclass(frozen=True)
class CreateRequest:
    path: str
    ftype: int = FileType.REG
    kind: ClassVar[RequestType] = RequestType.CREATE

    def __post_init__(self):
        _check_path(self.path)


@dataclass
class Filefd:
    """The page handed to a client for an open file: descriptor fields plus the file node."""

    omode: int = 0
    dev_id: int = 0
    offset: int = 0
    fileid: int = 0
    file: File = field(default_factory=File)


@dataclass(frozen=True)
class Reply:
    """Answer to a request: 0 or a negative error code, and an optional shared page."""

    value: int = 0
    page: object = None
    perm: int = 0

    @property
    def ok(self):
        return self.value == 0


@dataclass
class OpenFile:
    """An entry of the open file table; ``refs`` counts the clients holding its page."""

    fileid: int
    file: object = None
    mode: int = 0
    filefd: Filefd = field(default_factory=Filefd)
    refs: int = 0


class FileServer:
    """Serves client requests against a mounted file system."""

    def __init__(self, fs):
        self.fs = fs
        self.opentab = [OpenFile(fileid=i) for i in range(MAXOPEN)]
        self._handlers = {
            RequestType.OPEN: self.serve_open,
            RequestType.MAP: self.serve_map,
            RequestType.SET_SIZE: self.serve_set_size,
            RequestType.CLOSE: self.serve_close,
            RequestType.DIRTY: self.serve_dirty,
            RequestType.REMOVE: self.serve_remove,
            RequestType.SYNC: self.serve_sync,
            RequestType.CREATE: self.serve_create,
        }

    def open_alloc(self):
        """Return a table entry that no client holds, with a cleared descriptor page."""
        for entry in self.opentab:
            if entry.refs == 0:
                entry.filefd = Filefd()
                return entry
        raise MaxOpenError()

    def open_lookup(self, envid, fileid):
        """Return the open file ``fileid``; it must be held by a client."""
        if not 0 <= fileid < MAXOPEN:
            raise InvalidError(f"file id {fileid} out of range")
        entry = self.opentab[fileid]
        if entry.refs < 1:
            raise InvalidError(f"file id {fileid} is not open")
        return entry

    def serve_open(self, envid, request):
        entry = self.open_alloc()
        if request.omode & OpenMode.CREAT:
            try:
                self.fs.file_create(request.path)
            except FileExists:
                pass
        node = self.fs.file_open(request.path)
        entry.file = node
        if request.omode & OpenMode.TRUNC:
            self.fs.file_set_size(node, 0)
        ff = entry.filefd
        ff.file = node.load()
        ff.fileid = entry.fileid
        entry.mode = request.omode
        ff.omode = entry.mode
        ff.dev_id = FILE_DEV_ID
        entry.refs += 1
        return Reply(0, ff, SHARED_PAGE)

    def serve_map(self, envid, request):
        entry = self.open_lookup(envid, request.fileid)
        blk = self.fs.file_get_block(entry.file, request.offset // BLOCK_SIZE)
        return Reply(0, blk, SHARED_PAGE)

    def serve_set_size(self, envid, request):
        entry = self.open_lookup(envid, request.fileid)
        self.fs.file_set_size(entry.file, request.size)
        return Reply()

    def serve_close(self, envid, request):
        """Flush the file and release the client's hold on its table entry."""
        entry = self.open_lookup(envid, request.fileid)
        self.fs.file_close(entry.file)
        entry.refs -= 1
        return Reply()

    def serve_remove(self, envid, request):
        self.fs.file_remove(request.path)
        return Reply()

    def serve_dirty(self, envid, request):
        entry = self.open_lookup(envid, request.fileid)
        self.fs.file_dirty(entry.file, request.offset)
        return Reply()

    def serve_sync(self, envid, request):
        self.fs.sync()
        return Reply()

    def serve_create(self, envid, request):
        node = self.fs.file_create(request.path)
        node.ftype = request.ftype
        return Reply()

    def handle(self, envid, request):
        """Dispatch a request; errors become negative codes, unknown requests get no reply."""
        handler = self._handlers.get(getattr(request, "kind", None))
        if handler is None:
            log.debug("invalid request %r from %08x", request, envid)
            return None
        try:
            return handler(envid, request)
        except FsError as exc:
            return Reply(value=-exc.code)