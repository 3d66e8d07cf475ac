import json

from conftest import drain
from tailstream.sinks import JsonlEventSink, MultiSink, attach


class ListSink:
    def __init__(self):
        self.events = []
        self.closed = False

    def emit(self, event):
        self.events.append(event)

    def close(self):
        self.closed = True


class BrokenSink:
    def emit(self, event):
        raise RuntimeError("disk full")

    def close(self):
        raise RuntimeError("still full")


def test_jsonl_sink_appends_one_object_per_line(tmp_path):
    out = tmp_path / "events.jsonl"
    sink = JsonlEventSink(str(out))
    sink.emit({"event": "eof", "path": "/x", "time": 1.0})
    sink.emit({"event": "end", "path": "/x", "time": 2.0, "reason": "closed"})
    sink.close()
    lines = out.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["event"] for line in lines] == ["eof", "end"]


def test_jsonl_sink_can_skip_eof(tmp_path):
    out = tmp_path / "events.jsonl"
    sink = JsonlEventSink(str(out), include_eof=False)
    sink.emit({"event": "eof", "path": "/x", "time": 1.0})
    sink.close()
    assert out.read_text(encoding="utf-8") == ""


def test_multi_sink_isolates_failures(caplog):
    good = ListSink()
    multi = MultiSink([BrokenSink(), good])
    multi.emit({"event": "eof"})
    multi.close()
    assert good.events == [{"event": "eof"}]
    assert good.closed
    assert "disk full" in caplog.text


def test_attach_forwards_consumed_events(tmp_path, manual_session):
    p = tmp_path / "app.log"
    p.write_bytes(b"abc")
    s = manual_session(p)
    sink = ListSink()
    attach(s, sink)
    drain(s)
    s.close()
    drain(s)
    assert [e["event"] for e in sink.events] == ["eof", "end"]
    assert sink.events[-1]["reason"] == "closed"
