"""Messages delivered to a tail engine.

Watchers and the consumer side only ever *post* one of these values; the
engine applies them one at a time in ``TailEngine.dispatch``. Read outcomes
are produced by ``ReadLoop`` and applied through the same function.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .errors import TailError


# Watcher signals

@dataclass(frozen=True)
class DataChanged:
    """Content of the watched file may have changed."""


@dataclass(frozen=True)
class PathRenamed:
    new_path: str


@dataclass(frozen=True)
class PathReappeared:
    """An entry showed up at the watched name while it was absent."""


@dataclass(frozen=True)
class PathVanished:
    """The watched name no longer refers to the open file; no rename target known."""


# Consumer signal

@dataclass(frozen=True)
class Drained:
    """The sink dropped below its high-water mark."""


# Read outcomes

@dataclass(frozen=True)
class Sized:
    size: int


@dataclass(frozen=True)
class SeekToEnd:
    size: int


@dataclass(frozen=True)
class Truncated:
    new_size: int
    old_size: int


@dataclass(frozen=True)
class Chunk:
    data: bytes


@dataclass(frozen=True)
class Eof:
    pass


@dataclass(frozen=True)
class ReadFailed:
    error: TailError
    # informational failures never end the stream
    advisory: bool = False


WatcherSignal = Union[DataChanged, PathRenamed, PathReappeared, PathVanished]
ReadOutcome = Union[Sized, SeekToEnd, Truncated, Chunk, Eof, ReadFailed]
Message = Union[WatcherSignal, Drained, ReadOutcome]

__all__ = [
    "DataChanged",
    "PathRenamed",
    "PathReappeared",
    "PathVanished",
    "Drained",
    "Sized",
    "SeekToEnd",
    "Truncated",
    "Chunk",
    "Eof",
    "ReadFailed",
    "WatcherSignal",
    "ReadOutcome",
    "Message",
]
