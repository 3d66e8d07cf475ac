"""Consumer handle for a tail session.

Typical usage::

    from tailstream import create_tail_session

    with create_tail_session("/var/log/app.log", on_truncate="reset") as session:
        session.on("move", lambda ev: print("moved to", ev.new_path))
        for chunk in session:
            handle(chunk)

Iterating yields raw ``bytes`` until end-of-stream. ``items()`` yields the
chunks and lifecycle events interleaved in the order they were detected.
Listeners registered with ``on`` run in the consumer's thread as events are
consumed, so a ``truncate`` listener always runs before any chunk read
after the reset.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, DefaultDict, Iterator, List, Mapping, Optional

from .config import TailConfig
from .engine import TailEngine, WatcherFactory
from .errors import TailError
from .events import EVENT_NAMES, End, TailEvent
from .signals import Drained
from .sink import Item, SinkClosed, StreamSink
from .state import LifecycleState

Listener = Callable[[TailEvent], Any]


class TailSession:
    def __init__(
        self,
        path: str,
        config: Optional[TailConfig] = None,
        watcher_factory: Optional[WatcherFactory] = None,
    ) -> None:
        self.config = config or TailConfig()
        self.sink = StreamSink(self.config.high_water_mark, on_drain=self._on_drain)
        self.engine = TailEngine(path, self.config, self.sink, watcher_factory=watcher_factory)
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def start(self, run_thread: bool = True) -> "TailSession":
        self.engine.start(run_thread=run_thread)
        return self

    def _on_drain(self) -> None:
        self.engine.post(Drained())

    # -- state -----------------------------------------------------------

    @property
    def path(self) -> str:
        return self.engine.state.path

    @property
    def bytes_read(self) -> int:
        return self.engine.state.bytes_read

    @property
    def last_size(self) -> Optional[int]:
        return self.engine.state.last_size

    @property
    def state(self) -> LifecycleState:
        return self.engine.state.lifecycle

    @property
    def closed(self) -> bool:
        return self.engine.closed

    @property
    def end_reason(self) -> Optional[str]:
        return self.engine.end_reason

    @property
    def last_error(self) -> Optional[TailError]:
        return self.engine.last_error

    # -- events ----------------------------------------------------------

    def on(self, name: str, callback: Listener) -> "TailSession":
        if name not in EVENT_NAMES:
            raise ValueError(f"unknown event {name!r}; expected one of {', '.join(EVENT_NAMES)}")
        self._listeners[name].append(callback)
        return self

    def off(self, name: str, callback: Listener) -> None:
        listeners = self._listeners.get(name, [])
        if callback in listeners:
            listeners.remove(callback)

    def _notify(self, event: TailEvent) -> None:
        for callback in list(self._listeners.get(event.name, ())):
            callback(event)

    # -- consumption -----------------------------------------------------

    def items(self, timeout: Optional[float] = None) -> Iterator[Item]:
        """Yield chunks and events in order; stops at end-of-stream or on timeout."""
        while True:
            try:
                item = self.sink.get(timeout)
            except SinkClosed:
                return
            if item is None:
                return
            if isinstance(item, TailEvent):
                self._notify(item)
            yield item
            if isinstance(item, End):
                return

    def __iter__(self) -> Iterator[bytes]:
        for item in self.items():
            if isinstance(item, bytes):
                yield item

    def read(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Next chunk, or None once the stream ended or ``timeout`` elapsed."""
        for item in self.items(timeout):
            if isinstance(item, bytes):
                return item
        return None

    def close(self, reason: str = "closed") -> bool:
        return self.engine.close(reason)

    def __enter__(self) -> "TailSession":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<TailSession path={self.path!r} state={self.state.value} bytes_read={self.bytes_read}>"


def create_tail_session(
    path: str,
    options: Optional[Mapping[str, Any]] = None,
    watcher_factory: Optional[WatcherFactory] = None,
    **overrides: Any,
) -> TailSession:
    """Start tailing ``path``.

    ``options`` and keyword overrides are validated by
    ``TailConfig.from_options``; unknown keys raise ``ConfigError``. Raises
    ``TailError`` (kind OPEN_FAILED) when the file cannot be opened and
    ``wait_for_create`` is off.
    """
    config = TailConfig.from_options(options, **overrides)
    return TailSession(path, config, watcher_factory=watcher_factory).start()


__all__ = ["TailSession", "create_tail_session"]
