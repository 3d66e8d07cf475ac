"""Ordered, unbounded buffer between a tail engine and its consumer.

Chunks accepted here count as delivered: the engine has already advanced its
cursor, so nothing is ever dropped. ``push`` reports whether the consumer is
keeping up (buffered bytes under the high-water mark); the engine uses that
to stop issuing immediate re-reads until ``on_drain`` fires.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Optional, Union

from .events import End, TailEvent

Item = Union[bytes, TailEvent]


class SinkClosed(Exception):
    """Raised by ``get`` once end-of-stream has been consumed."""


class StreamSink:
    def __init__(self, high_water_mark: int = 1024 * 1024, on_drain: Optional[Callable[[], None]] = None) -> None:
        self.high_water_mark = high_water_mark
        self.on_drain = on_drain
        self._items: Deque[Item] = deque()
        self._buffered = 0
        self._blocked = False
        self._ended = False
        self._drained_end = False
        self._cond = threading.Condition()

    @property
    def buffered_bytes(self) -> int:
        return self._buffered

    @property
    def writable(self) -> bool:
        """False while the consumer is behind by at least the high-water mark."""
        return self._buffered < self.high_water_mark

    @property
    def ended(self) -> bool:
        return self._ended

    def __len__(self) -> int:
        return len(self._items)

    def push(self, chunk: bytes) -> bool:
        with self._cond:
            if self._ended:
                return False
            self._items.append(chunk)
            self._buffered += len(chunk)
            self._cond.notify_all()
            ready = self._buffered < self.high_water_mark
            if not ready:
                self._blocked = True
            return ready

    def emit(self, event: TailEvent) -> None:
        with self._cond:
            if self._ended:
                return
            self._items.append(event)
            self._cond.notify_all()

    def end(self, event: End) -> bool:
        """Queue end-of-stream; later pushes and emits are dropped. Idempotent."""
        with self._cond:
            if self._ended:
                return False
            self._ended = True
            self._items.append(event)
            self._cond.notify_all()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[Item]:
        """Next item in order, or None on timeout. Raises SinkClosed after End."""
        deadline = None if timeout is None else time.monotonic() + timeout
        drained = False
        with self._cond:
            while not self._items:
                if self._drained_end:
                    raise SinkClosed()
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self._cond.wait(remaining)
            item = self._items.popleft()
            if isinstance(item, bytes):
                self._buffered -= len(item)
                if self._blocked and self._buffered < self.high_water_mark:
                    self._blocked = False
                    drained = True
            elif isinstance(item, End):
                self._drained_end = True
        if drained and self.on_drain is not None:
            self.on_drain()
        return item


__all__ = ["StreamSink", "SinkClosed", "Item"]
