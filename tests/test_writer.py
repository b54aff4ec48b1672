import os
from datetime import timedelta, timezone

import pytest

from tcppc.writer import RotWriter, WriterError


def make_writer(tmp_path, fmt="sub/%H%M%S.jsonl", rot_int=0, rot_offset=0):
    return RotWriter(str(tmp_path / fmt), rot_int, rot_offset, timezone.utc)


def test_find_file_name_epoch(tmp_path):
    w = RotWriter(str(tmp_path / "%Y%m%d.jsonl"), 0, 0, timezone.utc)
    assert w.find_file_name(0) == str(tmp_path / "19700101.jsonl")


def test_find_file_name_uses_timezone(tmp_path):
    w = RotWriter(str(tmp_path / "%H"), 0, 0, timezone(timedelta(hours=9)))
    assert w.find_file_name(0) == str(tmp_path / "09")


def test_update_creates_directories_and_file(tmp_path):
    w = make_writer(tmp_path)
    w.update(100)
    expected = w.find_file_name(100)
    assert w.current_file_name == expected
    assert os.path.isfile(expected)
    w.close()


def test_write_appends_lines(tmp_path):
    w = make_writer(tmp_path)
    w.update(100)
    assert w.write(b'{"a":1}') == len(b'{"a":1}') + 1
    w.write('{"b":2}')
    assert w.num_sessions == 2
    name = w.current_file_name
    w.close()
    with open(name, "rb") as fh:
        assert fh.read() == b'{"a":1}\n{"b":2}\n'


def test_rotation_on_interval(tmp_path):
    w = make_writer(tmp_path, rot_int=10, rot_offset=0)
    w.update(100)
    first = w.current_file_name
    w.write(b"one")
    w.update(105)
    assert w.current_file_name == first
    assert w.num_sessions == 1
    w.update(110)
    second = w.current_file_name
    assert second == w.find_file_name(110)
    assert second != first
    assert w.num_sessions == 0
    w.write(b"two")
    w.close()
    with open(first, "rb") as fh:
        assert fh.read() == b"one\n"
    with open(second, "rb") as fh:
        assert fh.read() == b"two\n"


def test_rotation_respects_offset(tmp_path):
    w = make_writer(tmp_path, rot_int=10, rot_offset=3)
    w.update(100)
    first = w.current_file_name
    w.update(110)
    assert w.current_file_name == first
    w.update(113)
    assert w.current_file_name == w.find_file_name(113)
    w.close()


def test_no_rotation_without_interval(tmp_path):
    w = make_writer(tmp_path, rot_int=0)
    w.update(100)
    first = w.current_file_name
    w.update(200)
    assert w.current_file_name == first
    w.close()


def test_appends_to_existing_file(tmp_path):
    w = make_writer(tmp_path, fmt="fixed.jsonl")
    w.update(1)
    w.write(b"first")
    w.close()
    w2 = make_writer(tmp_path, fmt="fixed.jsonl")
    w2.update(2)
    w2.write(b"second")
    w2.close()
    assert (tmp_path / "fixed.jsonl").read_bytes() == b"first\nsecond\n"


def test_unwritable_path_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    w = RotWriter(str(blocker / "out.jsonl"), 0, 0, timezone.utc)
    with pytest.raises(WriterError):
        w.update(100)


def test_write_after_close_raises(tmp_path):
    w = make_writer(tmp_path)
    w.update(100)
    w.close()
    assert w.closed
    with pytest.raises(WriterError):
        w.write(b"late")


def test_start_after_close_raises(tmp_path):
    w = make_writer(tmp_path)
    w.close()
    with pytest.raises(WriterError):
        w.start()


def test_context_manager_writes_and_closes(tmp_path):
    with RotWriter(str(tmp_path / "ctx.jsonl"), 0, 0, timezone.utc) as w:
        w.write(b"hello")
    assert w.closed
    assert w.current_file_name is None
    assert (tmp_path / "ctx.jsonl").read_bytes() == b"hello\n"


def test_write_opens_file_lazily(tmp_path):
    w = RotWriter(str(tmp_path / "lazy.jsonl"), 0, 0, timezone.utc)
    assert w.current_file_name is None
    w.write(b"data")
    w.close()
    assert (tmp_path / "lazy.jsonl").read_bytes() == b"data\n"