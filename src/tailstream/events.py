"""Lifecycle events delivered to consumers alongside the byte chunks."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

from .errors import ErrorKind, TailError


@dataclass(frozen=True)
class TailEvent:
    name: ClassVar[str] = "event"
    path: str
    time: float = field(default_factory=time.time, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "path": self.path, "time": self.time}


@dataclass(frozen=True)
class Replace(TailEvent):
    name: ClassVar[str] = "replace"


@dataclass(frozen=True)
class Move(TailEvent):
    name: ClassVar[str] = "move"
    old_path: str = ""
    new_path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update(old_path=self.old_path, new_path=self.new_path)
        return out


@dataclass(frozen=True)
class Truncate(TailEvent):
    name: ClassVar[str] = "truncate"
    new_size: int = 0
    old_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update(new_size=self.new_size, old_size=self.old_size)
        return out


@dataclass(frozen=True)
class Eof(TailEvent):
    name: ClassVar[str] = "eof"


@dataclass(frozen=True)
class Error(TailEvent):
    name: ClassVar[str] = "error"
    error: Optional[TailError] = None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def message(self) -> str:
        return self.error.message if self.error is not None else ""

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update(
            kind=self.kind.value if self.kind is not None else None,
            message=self.message,
            errno=self.error.errno if self.error is not None else None,
        )
        return out


@dataclass(frozen=True)
class End(TailEvent):
    name: ClassVar[str] = "end"
    reason: str = "closed"

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["reason"] = self.reason
        return out


EVENT_NAMES = ("replace", "move", "truncate", "eof", "error", "end")

__all__ = ["TailEvent", "Replace", "Move", "Truncate", "Eof", "Error", "End", "EVENT_NAMES"]
