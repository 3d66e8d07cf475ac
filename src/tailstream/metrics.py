"""Metrics helper for tail sessions.

Provides a lightweight, dependency-free snapshot of a session's cursor and
counters suitable for exposure via HTTP or logging. Avoids mutating the session.
"""
from __future__ import annotations

from typing import Any, Dict

from .session import TailSession


def session_metrics(session: TailSession) -> Dict[str, Any]:
    engine = session.engine
    st = engine.state
    last_error = engine.last_error
    return {
        "path": st.path,
        "state": st.lifecycle.value,
        "bytes_read": st.bytes_read,
        "last_size": st.last_size,
        "chunks_delivered": st.chunks_delivered,
        "bytes_delivered": st.bytes_delivered,
        "buffered_bytes": session.sink.buffered_bytes,
        "buffered_items": len(session.sink),
        "moves": engine.moves,
        "truncations": engine.truncations,
        "replacements": engine.replacements,
        "watcher": type(st.watcher).__name__ if st.watcher is not None else None,
        "end_reason": engine.end_reason,
        "last_error": str(last_error) if last_error is not None else None,
        "config": session.config.as_dict(),
    }

__all__ = ["session_metrics"]
