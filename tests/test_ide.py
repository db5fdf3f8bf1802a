import pytest

from mosfs.ide import IdeController
from mosfs.layout import SECT_SIZE

SECTORS = 16


def make_disk():
    return bytearray(SECTORS * SECT_SIZE)


def test_write_then_read_round_trip():
    disk = make_disk()
    ide = IdeController(disk)
    payload = bytes(range(256)) * 4
    ide.write(0, 3, payload)
    assert ide.read(0, 3, 2) == payload
    assert disk[3 * SECT_SIZE:5 * SECT_SIZE] == payload


def test_untouched_sectors_stay_zero():
    ide = IdeController(make_disk())
    ide.write(0, 1, b"\xab" * SECT_SIZE)
    assert ide.read(0, 0, 1) == bytes(SECT_SIZE)
    assert ide.read(0, 2, 1) == bytes(SECT_SIZE)


def test_disks_are_independent():
    first, second = make_disk(), make_disk()
    ide = IdeController(first, second)
    ide.write(1, 0, b"\x01" * SECT_SIZE)
    assert ide.read(0, 0, 1) == bytes(SECT_SIZE)
    assert ide.read(1, 0, 1) == b"\x01" * SECT_SIZE


def test_bad_disk_number():
    ide = IdeController(make_disk())
    with pytest.raises(ValueError):
        ide.read(2, 0, 1)
    with pytest.raises(ValueError):
        ide.read(1, 0, 1)


def test_out_of_range_sectors():
    ide = IdeController(make_disk())
    with pytest.raises(ValueError):
        ide.read(0, SECTORS - 1, 2)
    with pytest.raises(ValueError):
        ide.write(0, SECTORS, b"\0" * SECT_SIZE)


def test_partial_sector_write_rejected():
    ide = IdeController(make_disk())
    with pytest.raises(ValueError):
        ide.write(0, 0, b"short")


def test_too_many_disks():
    with pytest.raises(ValueError):
        IdeController(make_disk(), make_disk(), make_disk())


def test_image_file_backing(tmp_path):
    image = tmp_path / "fs.img"
    image.write_bytes(bytes(SECTORS * SECT_SIZE))
    payload = b"\x5a" * SECT_SIZE
    with IdeController(str(image)) as ide:
        ide.write(0, 7, payload)
        assert ide.read(0, 7, 1) == payload
    assert image.read_bytes()[7 * SECT_SIZE:8 * SECT_SIZE] == payload


def test_zero_sectors_read_is_empty():
    ide = IdeController(make_disk())
    assert ide.read(0, 0, 0) == b""