import pytest

from ptreex import PersistentNode, SeekOrigin
from ptreex.core.view import PayloadStream
from ptreex.errors import InvariantViolation, StorageIOError
from tests.utils import encode_record, load_bytes

_B_PAYLOAD = bytes(range(10))


def _three_children():
    data = encode_record(
        b"root",
        [encode_record(_B_PAYLOAD), encode_record(b"CCCC"), encode_record(b"tail-bytes")],
    )
    root, source = load_bytes(data)
    return root, source, data


def test_loaded_nodes_are_windowed_views():
    root, _, data = _three_children()
    node_b = root[0]

    assert root.is_windowed and node_b.is_windowed
    begin, length = node_b.window
    assert length == 10
    assert data[begin : begin + length] == _B_PAYLOAD
    root.close()


def test_read_never_crosses_window_end():
    root, _, _ = _three_children()
    node_b = root[0]

    assert node_b.read(100) == _B_PAYLOAD
    assert node_b.read(1) == b""
    node_b.seek(7)
    assert node_b.read() == _B_PAYLOAD[7:]
    root.close()


def test_interleaved_access_resynchronizes_cursor():
    root, _, _ = _three_children()
    node_b, node_c = root[0], root[1]

    assert node_b.read(2) == _B_PAYLOAD[:2]
    assert node_c.read(2) == b"CC"
    assert root.read(2) == b"ro"
    assert node_b.read(2) == _B_PAYLOAD[2:4]
    assert node_c.read() == b"CC"
    assert node_b.tell() == 4
    root.close()


def test_seek_end_counts_offset_back_from_window_end():
    root, _, _ = _three_children()
    node_b = root[0]

    assert node_b.seek(3, SeekOrigin.END) == 7
    assert node_b.read() == _B_PAYLOAD[7:]
    assert node_b.seek(0, SeekOrigin.END) == 10
    assert node_b.is_windowed
    root.close()


def test_seek_current_and_begin_are_window_relative():
    root, _, _ = _three_children()
    node_c = root[1]

    assert node_c.seek(1) == 1
    assert node_c.seek(2, SeekOrigin.CURRENT) == 3
    assert node_c.read() == b"C"
    root.close()


def test_seek_before_window_start_is_rejected():
    root, _, _ = _three_children()
    with pytest.raises(StorageIOError):
        root[1].seek(-1)
    root.close()


def test_seek_past_window_materializes_at_logical_target():
    root, source, data = _three_children()
    node_b = root[0]

    assert node_b.seek(12) == 12
    assert not node_b.is_windowed
    node_b.write(b"\x09\x09")
    node_b.seek(0)

    assert node_b.read() == _B_PAYLOAD + b"\x00\x00\x09\x09"
    assert source.getvalue() == data
    root.close()


def test_overflowing_write_materializes_exactly_once(monkeypatch: pytest.MonkeyPatch):
    root, source, data = _three_children()
    node_b = root[0]
    calls = []
    original = PayloadStream._promote

    def counting_promote(self, target_bytes):
        calls.append(target_bytes)
        return original(self, target_bytes)

    monkeypatch.setattr(PayloadStream, "_promote", counting_promote)

    node_b.seek(8)
    node_b.write(b"abcdef")
    node_b.write(b"gh")

    assert calls == [8]
    node_b.seek(0)
    assert node_b.read() == _B_PAYLOAD[:8] + b"abcdefgh"
    assert root[1].read() == b"CCCC"
    assert source.getvalue() == data
    root.close()


def test_in_window_write_goes_through_writable_source():
    root, source, data = _three_children()
    node_c = root[1]
    begin, _ = node_c.window

    node_c.seek(1)
    node_c.write(b"xy")

    assert node_c.is_windowed
    node_c.seek(0)
    assert node_c.read() == b"CxyC"
    assert source.getvalue()[begin : begin + 4] == b"CxyC"
    root.close()


def test_in_window_write_on_read_only_source_copies_first(tmp_path):
    path = tmp_path / "tree.bin"
    data = encode_record(b"", [encode_record(b"CCCC")])
    path.write_bytes(data)
    root = PersistentNode()
    root.load(path)
    node_c = root[0]

    node_c.seek(1)
    node_c.write(b"xy")

    assert not node_c.is_windowed
    node_c.seek(0)
    assert node_c.read() == b"CxyC"
    assert path.read_bytes() == data
    root.close()


def test_shrinking_resize_stays_windowed():
    root, _, _ = _three_children()
    node_b = root[0]

    node_b.resize(4)

    assert node_b.is_windowed
    assert node_b.size == 4
    assert node_b.tell() == 4
    node_b.seek(0)
    assert node_b.read() == _B_PAYLOAD[:4]
    root.close()


def test_resize_to_zero_drops_content():
    root, _, _ = _three_children()
    node_b = root[0]

    node_b.size = 0

    assert not node_b.is_windowed
    assert node_b.size == 0
    assert node_b.read() == b""
    root.close()


def test_growing_resize_extends_after_promotion():
    root, _, _ = _three_children()
    node_b = root[0]

    node_b.resize(14)

    assert not node_b.is_windowed
    assert node_b.size == 14
    node_b.seek(0)
    assert node_b.read() == _B_PAYLOAD + b"\x00" * 4
    root.close()


def test_truncate_cuts_at_current_position():
    root, _, _ = _three_children()
    node_b = root[0]

    node_b.seek(6)
    assert node_b.truncate() == 6
    assert node_b.size == 6
    assert node_b.is_windowed
    root.close()


def test_materialize_partial_keeps_prefix():
    root, _, _ = _three_children()
    node_b = root[0]

    node_b.materialize(3)

    assert node_b.window is None
    assert node_b.size == 3
    node_b.seek(0)
    assert node_b.read() == _B_PAYLOAD[:3]
    root.close()


def test_deep_materialize_releases_shared_source():
    root, _, _ = _three_children()
    shared = root.shared_handle

    root.materialize(deep=True)

    assert all(not node.is_windowed for node in root.walk())
    assert shared.closed
    root[2].seek(0)
    assert root[2].read() == b"tail-bytes"
    root.close()


def test_owned_seek_end_follows_file_semantics():
    node = PersistentNode()
    node.write(b"abcdef")

    assert node.seek(-2, SeekOrigin.END) == 4
    assert node.read() == b"ef"
    node.close()


def test_closed_node_rejects_io():
    node = PersistentNode()
    node.close()

    with pytest.raises(InvariantViolation):
        node.read()
    with pytest.raises(InvariantViolation):
        node.write(b"x")
    with pytest.raises(InvariantViolation):
        node.seek(0)
