import pytest

from mosfs.errors import InvalidError, MaxOpenError
from mosfs.fs import FileSystem
from mosfs.ide import IdeController
from mosfs.layout import BLOCK_SIZE, NDIRECT, File, FileType, Super
from mosfs.server import (
    MAXOPEN,
    CloseRequest,
    CreateRequest,
    DirtyRequest,
    FileServer,
    Filefd,
    MapRequest,
    OpenMode,
    OpenRequest,
    RemoveRequest,
    RequestType,
    SetSizeRequest,
    SyncRequest,
)

MOTD = b"This is the message of the day!\n"
NEWMOTD = b"This is the NEW message of the day!\n"

E_INVAL = 3
E_MAX_OPEN = 9
E_NOT_FOUND = 10
E_FILE_EXISTS = 12


def make_image(files, nblocks=64):
    disk = bytearray(nblocks * BLOCK_SIZE)
    next_free = 3

    def take():
        nonlocal next_free
        blockno = next_free
        next_free += 1
        return blockno

    dir_block = take()
    for slot, (name, data) in enumerate(files):
        direct = [0] * NDIRECT
        for start in range(0, len(data), BLOCK_SIZE):
            blockno = take()
            chunk = data[start:start + BLOCK_SIZE]
            disk[blockno * BLOCK_SIZE:blockno * BLOCK_SIZE + len(chunk)] = chunk
            direct[start // BLOCK_SIZE] = blockno
        record = File(name=name, size=len(data), ftype=FileType.REG, direct=direct)
        base = dir_block * BLOCK_SIZE + slot * 256
        disk[base:base + 256] = record.pack()
    root = File(name="/", size=BLOCK_SIZE, ftype=FileType.DIR, direct=[dir_block] + [0] * (NDIRECT - 1))
    packed = Super(nblocks=nblocks, root=root).pack()
    disk[BLOCK_SIZE:BLOCK_SIZE + len(packed)] = packed
    bitmap = bytearray(BLOCK_SIZE)
    for blockno in range(next_free, nblocks):
        bitmap[blockno // 8] |= 1 << (blockno % 8)
    disk[2 * BLOCK_SIZE:3 * BLOCK_SIZE] = bitmap
    return disk


@pytest.fixture
def disk():
    return make_image([("motd", MOTD), ("newmotd", NEWMOTD)])


@pytest.fixture
def server(disk):
    return FileServer(FileSystem(IdeController(disk)).mount())


def open_file(server, path, mode=OpenMode.RDONLY):
    reply = server.handle(1, OpenRequest(path, mode))
    assert reply.value == 0
    return reply.page


def test_request_numbers_follow_protocol(server):
    assert RequestType(7) is RequestType.CREATE
    assert RequestType(0) is RequestType.OPEN
    ff = open_file(server, "/fresh", OpenMode.CREAT | OpenMode.RDWR)
    assert ff.omode == 0x102
    ff = open_file(server, "/motd", OpenMode.TRUNC | OpenMode.WRONLY)
    assert ff.omode == 0x201


def test_open_existing_file_returns_filefd(server):
    reply = server.handle(1, OpenRequest("/motd", OpenMode.RDWR))
    assert reply.ok
    assert isinstance(reply.page, Filefd)
    assert reply.page.file.name == "motd"
    assert reply.page.file.size == len(MOTD)
    assert reply.page.fileid == 0
    assert reply.page.omode == OpenMode.RDWR


def test_open_missing_file_reports_not_found(server):
    reply = server.handle(1, OpenRequest("/missing"))
    assert reply.value == -E_NOT_FOUND
    assert reply.page is None


def test_failed_open_does_not_consume_entry(server):
    server.handle(1, OpenRequest("/missing"))
    assert open_file(server, "/motd").fileid == 0


def test_open_with_create_makes_file(server):
    ff = open_file(server, "/fresh", OpenMode.CREAT | OpenMode.RDWR)
    assert ff.file.name == "fresh"
    assert ff.file.size == 0
    assert server.fs.file_open("/fresh").name == "fresh"


def test_open_with_create_on_existing_file(server):
    ff = open_file(server, "/motd", OpenMode.CREAT)
    assert ff.file.size == len(MOTD)


def test_open_with_truncate(server):
    ff = open_file(server, "/motd", OpenMode.TRUNC | OpenMode.WRONLY)
    assert ff.file.size == 0
    assert server.fs.file_open("/motd").size == 0


def test_map_returns_file_block(server):
    ff = open_file(server, "/newmotd")
    reply = server.handle(1, MapRequest(ff.fileid, 0))
    assert reply.ok
    assert bytes(reply.page[:len(NEWMOTD)]) == NEWMOTD


def test_map_unopened_file_is_invalid(server):
    assert server.handle(1, MapRequest(5, 0)).value == -E_INVAL
    assert server.handle(1, MapRequest(MAXOPEN, 0)).value == -E_INVAL


def test_open_lookup_raises(server):
    with pytest.raises(InvalidError):
        server.open_lookup(1, 0)
    with pytest.raises(InvalidError):
        server.open_lookup(1, -1)


def test_set_size(server):
    ff = open_file(server, "/motd")
    assert server.handle(1, SetSizeRequest(ff.fileid, 3)).ok
    assert server.fs.file_open("/motd").size == 3


def test_close_releases_entry(server):
    ff = open_file(server, "/motd")
    assert server.handle(1, CloseRequest(ff.fileid)).ok
    with pytest.raises(InvalidError):
        server.open_lookup(1, ff.fileid)
    assert open_file(server, "/newmotd").fileid == ff.fileid


def test_open_table_exhaustion(server):
    ids = {open_file(server, "/motd").fileid for _ in range(MAXOPEN)}
    assert len(ids) == MAXOPEN
    assert server.handle(1, OpenRequest("/motd")).value == -E_MAX_OPEN
    with pytest.raises(MaxOpenError):
        server.open_alloc()


def test_remove(server):
    assert server.handle(1, RemoveRequest("/motd")).ok
    assert server.handle(1, OpenRequest("/motd")).value == -E_NOT_FOUND
    assert server.handle(1, RemoveRequest("/motd")).value == -E_NOT_FOUND


def test_dirty_and_sync_write_to_disk(server, disk):
    ff = open_file(server, "/motd")
    page = server.handle(1, MapRequest(ff.fileid, 0)).page
    page[:5] = b"HELLO"
    assert server.handle(1, DirtyRequest(ff.fileid, 0)).ok
    blockno = server.fs.file_open("/motd").direct[0]
    assert server.fs.block_is_dirty(blockno)
    assert server.handle(1, SyncRequest()).ok
    assert bytes(disk[blockno * BLOCK_SIZE:blockno * BLOCK_SIZE + 5]) == b"HELLO"


def test_dirty_past_end_of_file(server):
    ff = open_file(server, "/motd")
    reply = server.handle(1, DirtyRequest(ff.fileid, 5 * BLOCK_SIZE))
    assert reply.value == -E_NOT_FOUND


def test_create_directory(server):
    assert server.handle(1, CreateRequest("/dir", FileType.DIR)).ok
    assert server.fs.file_open("/dir").is_dir
    assert server.handle(1, CreateRequest("/dir", FileType.DIR)).value == -E_FILE_EXISTS


def test_unknown_request_gets_no_reply(server):
    assert server.handle(1, object()) is None


def test_overlong_path_rejected():
    with pytest.raises(ValueError):
        OpenRequest("/" + "a" * 2000)