"""Lifecycle event sinks.

Pluggable destinations for the events a session reports (replace, move,
truncate, eof, error, end). Used by the CLI for ``--events-jsonl``; embedders
can register any object with ``emit``/``close`` through ``attach``.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Protocol

from ..events import EVENT_NAMES, TailEvent
from ..logutil import get_logger

logger = get_logger("sinks")


class EventSink(Protocol):  # pragma: no cover - simple protocol
    def emit(self, event: Dict[str, Any]) -> None: ...  # noqa: D401,E701 - protocol stub
    def close(self) -> None: ...


class JsonlEventSink:
    def __init__(self, path: str, include_eof: bool = True) -> None:
        self.path = path
        self.include_eof = include_eof
        self._fh = open(path, "a", encoding="utf-8")

    def emit(self, event: Dict[str, Any]) -> None:
        if not self.include_eof and event.get("event") == "eof":
            return
        self._fh.write(json.dumps(event) + "\n")
        self._fh.flush()

    def close(self) -> None:
        self._fh.close()


class MultiSink:
    def __init__(self, sinks: List[EventSink]):
        self._sinks = sinks

    def emit(self, event: Dict[str, Any]) -> None:
        for s in self._sinks:
            try:
                s.emit(event)
            except Exception as exc:  # noqa: BLE001 - one failing sink must not starve the others
                logger.warning("event sink %r failed: %s", s, exc)

    def close(self) -> None:
        for s in self._sinks:
            try:
                s.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("closing event sink %r failed: %s", s, exc)


def attach(session, sink: EventSink) -> None:
    """Forward every lifecycle event of ``session`` to ``sink`` as a dict."""

    def _forward(event: TailEvent) -> None:
        sink.emit(event.to_dict())

    for name in EVENT_NAMES:
        session.on(name, _forward)


__all__ = ["EventSink", "JsonlEventSink", "MultiSink", "attach"]
