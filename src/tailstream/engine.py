"""The tailing state machine.

A ``TailEngine`` owns one ``TailState`` (path, handle, cursor, lifecycle,
watch) and is the only code that mutates it. Watchers and the consumer post
messages into an inbox; a single engine thread takes them one at a time and
runs ``dispatch`` under the engine lock, so cursor, lifecycle and watch are
always read and written together.

Lifecycle::

    STARTING -> READING | WAITING_FOR_REAPPEAR
    READING <-> WAITING_FOR_DATA
    READING <-> IDLE                 (consumer behind; resumes on Drained)
    any -> WAITING_FOR_REAPPEAR      (rename under STAY, unlink)
    WAITING_FOR_REAPPEAR -> READING  (entry reappears at the path)
    any -> CLOSED
"""
from __future__ import annotations

import os
import queue
import threading
from typing import Callable, Optional

from . import events, paths
from .config import MovePolicy, TailConfig, TruncatePolicy
from .errors import ErrorKind, TailError
from .logutil import get_logger
from .readloop import ReadLoop
from .signals import (
    Chunk,
    DataChanged,
    Drained,
    Eof,
    Message,
    PathReappeared,
    PathRenamed,
    PathVanished,
    ReadFailed,
    ReadOutcome,
    SeekToEnd,
    Sized,
    Truncated,
)
from .sink import StreamSink
from .state import LifecycleState, TailState
from .watchers import ChangeWatcher, WatchMode, create_watcher

logger = get_logger("engine")

WatcherFactory = Callable[..., ChangeWatcher]

_STOP = object()

_ACTIVE = (LifecycleState.READING, LifecycleState.WAITING_FOR_DATA, LifecycleState.IDLE)


class TailEngine:
    def __init__(
        self,
        path: str,
        config: TailConfig,
        sink: StreamSink,
        watcher_factory: Optional[WatcherFactory] = None,
        reader: Optional[ReadLoop] = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.state = TailState(path=paths.resolve(path), config=config)
        self.reader = reader or ReadLoop(config)
        self.end_reason: Optional[str] = None
        self.last_error: Optional[TailError] = None
        self.moves = 0
        self.truncations = 0
        self.replacements = 0
        self._watcher_factory = watcher_factory or create_watcher
        self._lock = threading.RLock()
        self._inbox: "queue.Queue[object]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    # -- lifecycle -------------------------------------------------------

    def start(self, run_thread: bool = True) -> None:
        """Open the path and schedule the first read cycle.

        Raises TailError(OPEN_FAILED) if the path cannot be opened and
        ``wait_for_create`` is off; the engine is closed in that case.
        """
        with self._lock:
            st = self.state
            if st.lifecycle is not LifecycleState.STARTING:
                raise RuntimeError("engine already started")
            try:
                st.handle = open(st.path, "rb", buffering=0)
            except OSError as exc:
                if not self.config.wait_for_create:
                    st.lifecycle = LifecycleState.CLOSED
                    self.end_reason = "open_failed"
                    detail = exc.strerror or str(exc)
                    raise TailError(ErrorKind.OPEN_FAILED, f"cannot open file: {detail}", path=st.path, errno=exc.errno) from exc
                logger.debug("%s does not exist yet; waiting for it", st.path)
                # a file created later is a new file, read from offset 0
                st.first_read = False
                self._wait_for_reappear()
            else:
                st.lifecycle = LifecycleState.READING
                self._watch(WatchMode.FILE)
                self.post(DataChanged())
        if run_thread:
            self._thread = threading.Thread(
                target=self._run, name=f"tailstream:{os.path.basename(self.state.path)}", daemon=True
            )
            self._thread.start()

    def post(self, message: Message) -> None:
        """Enqueue a message from any thread; never blocks."""
        self._inbox.put(message)

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            if message is _STOP:
                return
            try:
                self.dispatch(message)  # type: ignore[arg-type]
            except Exception as exc:  # noqa: BLE001 - end the stream rather than hang the consumer
                logger.exception("unexpected failure handling %r for %s", message, self.state.path)
                with self._lock:
                    if not self.state.closed:
                        self._emit_error(TailError(ErrorKind.IO_ERROR, f"internal error: {exc}", path=self.state.path))
                        self._end("error")
                return

    def run_pending(self) -> int:
        """Dispatch everything queued so far on the calling thread (no engine thread)."""
        handled = 0
        while True:
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            if message is _STOP:
                continue
            self.dispatch(message)  # type: ignore[arg-type]
            handled += 1

    def close(self, reason: str = "closed", timeout: Optional[float] = 1.0) -> bool:
        """End the session; idempotent. Returns False if it was already closed."""
        with self._lock:
            if self.state.closed:
                return False
            self._end(reason)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        return True

    @property
    def closed(self) -> bool:
        return self.state.closed

    # -- transitions -----------------------------------------------------

    def dispatch(self, message: Message) -> None:
        """Apply one message to the session. Messages after close are no-ops."""
        with self._lock:
            st = self.state
            if st.closed:
                logger.debug("ignoring %r after close of %s", message, st.path)
                return
            if isinstance(message, (DataChanged, Drained)):
                self._on_data_changed()
            elif isinstance(message, PathRenamed):
                self._on_renamed(message.new_path)
            elif isinstance(message, PathReappeared):
                self._on_reappeared()
            elif isinstance(message, PathVanished):
                self._on_vanished()
            elif isinstance(message, (Sized, SeekToEnd, Truncated, Chunk, Eof, ReadFailed)):
                self._apply(message)
            else:
                raise TypeError(f"unknown message {message!r}")

    def _on_data_changed(self) -> None:
        if self.state.lifecycle in _ACTIVE:
            self._read_cycle()

    def _on_renamed(self, new_path: str) -> None:
        st = self.state
        if st.lifecycle not in _ACTIVE:
            return
        new_path = paths.resolve(new_path)
        old_path = st.path
        if new_path == old_path:
            return
        policy = self.config.on_move
        logger.debug("%s moved to %s (policy=%s)", old_path, new_path, policy.value)
        if policy is MovePolicy.END:
            st.path = new_path
            self._end("moved")
        elif policy is MovePolicy.EXIT:
            st.path = new_path
            self._fail(TailError(ErrorKind.MOVE_DETECTED, f"file moved from {old_path}", path=new_path))
            if not st.closed:
                self._rewatch()
        elif policy is MovePolicy.STAY:
            self.moves += 1
            self.sink.emit(events.Move(old_path, old_path=old_path, new_path=new_path))
            self._wait_for_reappear()
        elif policy is MovePolicy.FOLLOW:
            st.path = new_path
            self.moves += 1
            self.sink.emit(events.Move(new_path, old_path=old_path, new_path=new_path))
            self._rewatch()
            # appends that landed between the rename and the new watch
            self._read_cycle()
        else:  # pragma: no cover - exhaustive over MovePolicy
            raise AssertionError(policy)

    def _on_vanished(self) -> None:
        st = self.state
        if st.lifecycle not in _ACTIVE:
            return
        if paths.same_file(st.handle, st.path):
            return
        current = paths.current_path_of(st.handle)
        if current is not None and paths.resolve(current) != st.path and os.path.exists(current):
            self._on_renamed(current)
            return
        if os.path.exists(st.path):
            # another entry took the name (editor save, rotate-and-recreate)
            logger.debug("%s was replaced by a new file", st.path)
            self._wait_for_reappear()
            return
        # bytes appended before the unlink still belong to the stream
        self._drain_handle()
        self._fail(TailError(ErrorKind.NOT_FOUND, "file deleted", path=st.path))
        if not st.closed:
            self._wait_for_reappear()

    def _on_reappeared(self) -> None:
        st = self.state
        if st.lifecycle is not LifecycleState.WAITING_FOR_REAPPEAR:
            return
        try:
            handle = open(st.path, "rb", buffering=0)
        except OSError as exc:
            logger.debug("ignoring reappearance of %s: %s", st.path, exc)
            return
        st.handle = handle
        st.bytes_read = 0
        st.last_size = None
        st.first_read = False
        self._close_watcher()
        self._watch(WatchMode.FILE)
        st.lifecycle = LifecycleState.READING
        self.replacements += 1
        self.sink.emit(events.Replace(st.path))
        self._read_cycle()

    # -- reading ---------------------------------------------------------

    def _read_cycle(self) -> None:
        st = self.state
        st.lifecycle = LifecycleState.READING
        if st.first_read and not self.config.begins_at_end:
            if self.config.begin_at:
                st.bytes_read = int(self.config.begin_at)
            st.first_read = False
        reads = 0
        while st.lifecycle is LifecycleState.READING:
            if not self.sink.writable:
                logger.debug("consumer behind on %s; pausing at offset %d", st.path, st.bytes_read)
                st.lifecycle = LifecycleState.IDLE
                return
            if reads >= self.config.max_reads_per_cycle:
                # let other messages interleave; pick up where we left off
                self.post(DataChanged())
                return
            reads += 1
            for outcome in self.reader.check_and_read(st):
                self._apply(outcome)
                if st.lifecycle is not LifecycleState.READING:
                    break

    def _apply(self, outcome: ReadOutcome) -> None:
        st = self.state
        if isinstance(outcome, Sized):
            st.last_size = outcome.size
        elif isinstance(outcome, SeekToEnd):
            st.bytes_read = outcome.size
            st.last_size = outcome.size
            st.first_read = False
            st.lifecycle = LifecycleState.WAITING_FOR_DATA
            self.sink.emit(events.Eof(st.path))
        elif isinstance(outcome, Truncated):
            self.truncations += 1
            self.sink.emit(events.Truncate(st.path, new_size=outcome.new_size, old_size=outcome.old_size))
            st.last_size = outcome.new_size
            if self.config.on_truncate is TruncatePolicy.RESET:
                st.bytes_read = 0
            elif self.config.on_truncate is TruncatePolicy.END:
                self._end("truncated")
            else:  # pragma: no cover - exhaustive over TruncatePolicy
                raise AssertionError(self.config.on_truncate)
        elif isinstance(outcome, Chunk):
            if st.handle is None:
                return
            st.bytes_read += len(outcome.data)
            st.chunks_delivered += 1
            st.bytes_delivered += len(outcome.data)
            self.sink.push(outcome.data)
        elif isinstance(outcome, Eof):
            st.lifecycle = LifecycleState.WAITING_FOR_DATA
            self.sink.emit(events.Eof(st.path))
        elif isinstance(outcome, ReadFailed):
            if outcome.advisory:
                self._emit_error(outcome.error)
                return
            if outcome.error.kind is ErrorKind.NOT_FOUND:
                # the name is gone: settle rename vs deletion once, the same
                # way a watcher's PathVanished does
                self._on_vanished()
                return
            self._fail(outcome.error)
            if not st.closed:
                # retried on the next data signal
                st.lifecycle = LifecycleState.WAITING_FOR_DATA
        else:  # pragma: no cover - exhaustive over ReadOutcome
            raise AssertionError(outcome)

    def _drain_handle(self) -> None:
        """Deliver whatever is left in the open file before letting it go."""
        st = self.state
        if st.handle is None or st.lifecycle not in _ACTIVE:
            return
        while True:
            outcome = self.reader.read(st)
            if isinstance(outcome, Chunk):
                self._apply(outcome)
                continue
            if isinstance(outcome, ReadFailed):
                logger.warning("could not drain %s before closing it: %s", st.path, outcome.error)
            return

    # -- helpers ---------------------------------------------------------

    def _emit_error(self, error: TailError) -> None:
        self.last_error = error
        logger.debug("error on %s: %s", self.state.path, error)
        self.sink.emit(events.Error(error.path or self.state.path, error=error))

    def _fail(self, error: TailError) -> None:
        self._emit_error(error)
        if self.config.end_on_error:
            self._end("error")

    def _wait_for_reappear(self) -> None:
        st = self.state
        self._drain_handle()
        self._close_watcher()
        self._close_handle()
        st.lifecycle = LifecycleState.WAITING_FOR_REAPPEAR
        self._watch(WatchMode.DIRECTORY)

    def _watch(self, mode: WatchMode) -> None:
        st = self.state
        if st.watcher is not None:
            return
        st.watcher = self._watcher_factory(
            st.path,
            mode,
            self.post,
            use_watch=self.config.use_watch,
            poll_interval=self.config.poll_interval,
        )

    def _rewatch(self) -> None:
        self._close_watcher()
        self._watch(WatchMode.FILE)

    def _close_watcher(self) -> None:
        st = self.state
        watcher, st.watcher = st.watcher, None
        if watcher is not None:
            watcher.close()

    def _close_handle(self) -> None:
        st = self.state
        handle, st.handle = st.handle, None
        if handle is not None:
            try:
                handle.close()
            except OSError as exc:
                logger.warning("closing %s failed: %s", st.path, exc)

    def _end(self, reason: str) -> None:
        st = self.state
        st.lifecycle = LifecycleState.CLOSED
        self.end_reason = reason
        self._close_handle()
        self._close_watcher()
        self.sink.end(events.End(st.path, reason=reason))
        self._inbox.put(_STOP)
        logger.debug("closed %s (%s)", st.path, reason)


__all__ = ["TailEngine", "WatcherFactory"]
