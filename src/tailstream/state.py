"""Per-session record owned by the tail engine."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import IO, Any, Optional

from .config import TailConfig


class LifecycleState(enum.Enum):
    STARTING = "starting"
    IDLE = "idle"
    READING = "reading"
    WAITING_FOR_DATA = "waiting_for_data"
    WAITING_FOR_REAPPEAR = "waiting_for_reappear"
    CLOSED = "closed"


# states in which no file handle is held
HANDLELESS_STATES = frozenset(
    {LifecycleState.STARTING, LifecycleState.WAITING_FOR_REAPPEAR, LifecycleState.CLOSED}
)


@dataclass
class TailState:
    path: str
    config: TailConfig
    handle: Optional[IO[bytes]] = None
    # offset of the next unread byte
    bytes_read: int = 0
    # last size seen by stat; truncation detection only, never a read boundary
    last_size: Optional[int] = None
    lifecycle: LifecycleState = LifecycleState.STARTING
    watcher: Optional[Any] = None
    # begin_at has not been applied yet
    first_read: bool = True
    chunks_delivered: int = 0
    bytes_delivered: int = field(default=0)

    @property
    def closed(self) -> bool:
        return self.lifecycle is LifecycleState.CLOSED


__all__ = ["LifecycleState", "TailState", "HANDLELESS_STATES"]
