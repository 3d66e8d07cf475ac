"""End-to-end tailing against the real filesystem, with both watcher kinds."""
import os
import sys
import threading
import time
from pathlib import Path

import pytest

from tailstream import create_tail_session
from tailstream.events import End, Move, Replace, TailEvent, Truncate
from tailstream.state import LifecycleState

needs_proc = pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="rename tracking of an open file needs /proc"
)


@pytest.fixture(params=[True, False], ids=["watch", "poll"])
def use_watch(request):
    return request.param


class Collector:
    def __init__(self, session):
        self.session = session
        self.items = []
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        for item in self.session.items():
            self.items.append(item)

    @property
    def data(self) -> bytes:
        return b"".join(i for i in list(self.items) if isinstance(i, bytes))

    def events(self, kind=TailEvent):
        return [i for i in list(self.items) if isinstance(i, kind)]

    def wait(self, predicate, timeout=5.0):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    def stop(self):
        self.session.close()
        self._thread.join(timeout=2.0)


def append(path: Path, data: bytes) -> None:
    with path.open("ab") as fh:
        fh.write(data)


def test_appends_are_streamed(tmp_path, use_watch):
    p = tmp_path / "app.log"
    p.write_bytes(b"one\n")
    c = Collector(create_tail_session(str(p), use_watch=use_watch, poll_interval=0.02))
    try:
        assert c.wait(lambda: c.data == b"one\n"), c.items
        append(p, b"two\n")
        append(p, b"three\n")
        assert c.wait(lambda: c.data == b"one\ntwo\nthree\n"), c.items
        assert c.session.bytes_read == len(c.data)
    finally:
        c.stop()
    ends = c.events(End)
    assert len(ends) == 1 and ends[0].reason == "closed"


def test_truncate_reset_restarts_from_zero(tmp_path, use_watch):
    p = tmp_path / "app.log"
    p.write_bytes(b"0123456789\n")
    c = Collector(create_tail_session(str(p), use_watch=use_watch, poll_interval=0.02, on_truncate="reset"))
    try:
        assert c.wait(lambda: c.data == b"0123456789\n")
        p.write_bytes(b"")
        assert c.wait(lambda: len(c.events(Truncate)) == 1), c.items
        append(p, b"fresh\n")
        assert c.wait(lambda: c.data.endswith(b"fresh\n")), c.items
    finally:
        c.stop()
    truncate = c.events(Truncate)[0]
    assert truncate.old_size == 11 and truncate.new_size == 0
    assert c.data == b"0123456789\nfresh\n"


def test_truncate_end_closes_the_stream(tmp_path, use_watch):
    p = tmp_path / "app.log"
    p.write_bytes(b"abcdef")
    session = create_tail_session(str(p), use_watch=use_watch, poll_interval=0.02)
    c = Collector(session)
    try:
        assert c.wait(lambda: c.data == b"abcdef")
        p.write_bytes(b"ab")
        assert c.wait(lambda: bool(c.events(End)))
    finally:
        c.stop()
    assert c.events(End)[0].reason == "truncated"
    assert session.state is LifecycleState.CLOSED


@needs_proc
def test_rename_is_followed(tmp_path, use_watch):
    p = tmp_path / "app.log"
    p.write_bytes(b"before\n")
    c = Collector(create_tail_session(str(p), use_watch=use_watch, poll_interval=0.02))
    try:
        assert c.wait(lambda: c.data == b"before\n")
        rotated = tmp_path / "app.log.1"
        os.rename(p, rotated)
        assert c.wait(lambda: bool(c.events(Move))), c.items
        append(rotated, b"after\n")
        assert c.wait(lambda: c.data == b"before\nafter\n"), c.items
    finally:
        c.stop()
    move = c.events(Move)[0]
    assert os.path.realpath(move.new_path) == os.path.realpath(rotated)
    assert os.path.realpath(c.session.path) == os.path.realpath(rotated)


@pytest.mark.skipif(os.name == "nt", reason="open files cannot be unlinked on Windows")
def test_delete_then_recreate_reads_new_file(tmp_path, use_watch):
    p = tmp_path / "app.log"
    p.write_bytes(b"old\n")
    c = Collector(create_tail_session(str(p), use_watch=use_watch, poll_interval=0.02))
    try:
        assert c.wait(lambda: c.data == b"old\n")
        os.unlink(p)
        assert c.wait(lambda: c.session.state is LifecycleState.WAITING_FOR_REAPPEAR), c.items
        p.write_bytes(b"new\n")
        assert c.wait(lambda: c.data == b"old\nnew\n"), c.items
    finally:
        c.stop()
    assert [e.name for e in c.events() if e.name in ("error", "replace")] == ["error", "replace"]
    assert c.events()[-1].name == "end"


def test_wait_for_create(tmp_path, use_watch):
    p = tmp_path / "later.log"
    c = Collector(create_tail_session(str(p), use_watch=use_watch, poll_interval=0.02, wait_for_create=True))
    try:
        assert c.session.state is LifecycleState.WAITING_FOR_REAPPEAR
        p.write_bytes(b"hello\n")
        assert c.wait(lambda: c.data == b"hello\n"), c.items
    finally:
        c.stop()
    assert len(c.events(Replace)) == 1


def test_slow_consumer_gets_every_byte(tmp_path):
    p = tmp_path / "big.log"
    payload = bytes(range(256)) * 400
    p.write_bytes(payload)
    session = create_tail_session(str(p), use_watch=False, poll_interval=0.02, buffer_size=512, high_water_mark=2048)
    got = []
    try:
        deadline = time.time() + 5.0
        while sum(map(len, got)) < len(payload) and time.time() < deadline:
            chunk = session.read(timeout=0.5)
            if chunk:
                got.append(chunk)
                time.sleep(0.001)
    finally:
        session.close()
    assert b"".join(got) == payload


@pytest.mark.skipif(os.name == "nt", reason="needs symlinks")
def test_symlinked_path_streams_appends(tmp_path, use_watch):
    real = tmp_path / "real.log"
    real.write_bytes(b"first\n")
    link = tmp_path / "current.log"
    os.symlink(real, link)
    c = Collector(create_tail_session(str(link), use_watch=use_watch, poll_interval=0.02))
    try:
        assert c.wait(lambda: c.data == b"first\n"), c.items
        append(real, b"more\n")
        assert c.wait(lambda: c.data == b"first\nmore\n"), c.items
    finally:
        c.stop()
    assert not c.events(Move)
    assert c.session.path == str(link)
