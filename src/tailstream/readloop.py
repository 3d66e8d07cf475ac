"""Truncation check and chunked reads at the session cursor."""
from __future__ import annotations

import os
from typing import List, Optional

from .config import MovePolicy, TailConfig
from .errors import ErrorKind, TailError, classify_os_error
from .signals import Chunk, Eof, ReadFailed, ReadOutcome, SeekToEnd, Sized, Truncated
from .state import TailState


class ReadLoop:
    def __init__(self, config: TailConfig) -> None:
        self.config = config

    def needs_check(self, state: TailState) -> bool:
        return self.config.detect_truncate or (state.first_read and self.config.begins_at_end)

    def check(self, state: TailState) -> Optional[ReadOutcome]:
        """Stat the path and compare against the last known size.

        Returns ``None`` when the stat failure is expected (file moved away
        under the follow policy) and the read should simply go ahead.
        """
        try:
            st = os.stat(state.path)
        except OSError as exc:
            return self._check_failed(state, exc)
        size = st.st_size
        if state.first_read and self.config.begins_at_end:
            return SeekToEnd(size)
        if state.last_size is not None and size < state.last_size:
            return Truncated(size, state.last_size)
        return Sized(size)

    def _check_failed(self, state: TailState, exc: OSError) -> Optional[ReadOutcome]:
        if state.first_read and self.config.begins_at_end and state.handle is not None:
            # the path is gone but the open file still knows where its end is
            try:
                return SeekToEnd(os.fstat(state.handle.fileno()).st_size)
            except OSError:
                pass
        if isinstance(exc, FileNotFoundError):
            if self.config.on_move is MovePolicy.FOLLOW:
                return None
            return ReadFailed(TailError(ErrorKind.NOT_FOUND, "file deleted", path=state.path, errno=exc.errno))
        detail = exc.strerror or str(exc)
        err = TailError(
            ErrorKind.TRUNCATE_CHECK_FAILED,
            f"error during truncate detection: {detail}",
            path=state.path,
            errno=exc.errno,
        )
        return ReadFailed(err, advisory=True)

    def read(self, state: TailState) -> ReadOutcome:
        handle = state.handle
        if handle is None:
            return ReadFailed(TailError(ErrorKind.READ_FAILED, "no open file", path=state.path))
        try:
            handle.seek(state.bytes_read)
            data = handle.read(self.config.buffer_size)
        except OSError as exc:
            return ReadFailed(classify_os_error(exc, ErrorKind.READ_FAILED, "read failed", state.path))
        if not data:
            return Eof()
        return Chunk(bytes(data))

    def check_and_read(self, state: TailState) -> List[ReadOutcome]:
        """Run one cycle, returning outcomes in the order they were observed.

        A cycle stops short of reading when the check alone decides what
        happens next (seek to end, truncation); the engine applies the
        policy and starts another cycle if appropriate.
        """
        outcomes: List[ReadOutcome] = []
        if self.needs_check(state):
            checked = self.check(state)
            if checked is not None:
                outcomes.append(checked)
                if isinstance(checked, (SeekToEnd, Truncated)):
                    return outcomes
        outcomes.append(self.read(state))
        return outcomes


__all__ = ["ReadLoop"]
