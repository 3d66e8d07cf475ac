import threading
import time

import pytest

from tailstream.events import End, Eof, Truncate
from tailstream.sink import SinkClosed, StreamSink


def test_items_come_out_in_push_order():
    sink = StreamSink()
    sink.push(b"a")
    sink.emit(Truncate("/x", new_size=0, old_size=1))
    sink.push(b"b")
    sink.emit(Eof("/x"))
    got = [sink.get(timeout=0) for _ in range(4)]
    assert got[0] == b"a" and got[2] == b"b"
    assert isinstance(got[1], Truncate) and isinstance(got[3], Eof)
    assert sink.get(timeout=0) is None


def test_push_reports_backpressure_but_keeps_the_chunk():
    sink = StreamSink(high_water_mark=4)
    assert sink.push(b"ab") is True
    assert sink.push(b"cd") is False
    assert sink.push(b"ef") is False
    assert not sink.writable
    assert sink.buffered_bytes == 6
    assert [sink.get(0), sink.get(0), sink.get(0)] == [b"ab", b"cd", b"ef"]


def test_on_drain_fires_once_when_consumer_catches_up():
    calls = []
    sink = StreamSink(high_water_mark=4, on_drain=lambda: calls.append(1))
    sink.push(b"abcd")
    sink.push(b"efgh")
    sink.get(0)
    assert calls == []  # still at the mark
    sink.get(0)
    assert calls == [1]
    sink.push(b"x")
    sink.get(0)
    assert calls == [1]


def test_end_is_idempotent_and_final():
    sink = StreamSink()
    assert sink.end(End("/x", reason="closed")) is True
    assert sink.end(End("/x", reason="again")) is False
    assert sink.push(b"late") is False
    sink.emit(Eof("/x"))
    item = sink.get(0)
    assert isinstance(item, End) and item.reason == "closed"
    with pytest.raises(SinkClosed):
        sink.get(0)


def test_get_blocks_until_an_item_arrives():
    sink = StreamSink()

    def producer():
        time.sleep(0.05)
        sink.push(b"hello")

    t = threading.Thread(target=producer)
    t.start()
    assert sink.get(timeout=2.0) == b"hello"
    t.join()
