"""Error kinds and the exception type surfaced by tail sessions."""
from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    OPEN_FAILED = "open_failed"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    TRUNCATE_CHECK_FAILED = "truncate_check_failed"
    READ_FAILED = "read_failed"
    MOVE_DETECTED = "move_detected"
    IO_ERROR = "io_error"


class ConfigError(ValueError):
    """Raised for unrecognized option keys or invalid option values."""


class TailError(Exception):
    """A condition a tail session could not resolve internally.

    Carries enough context (path, OS errno, kind) for a consumer to log or
    alert on it. Instances travel inside ``Error`` lifecycle events; only
    session construction raises them directly.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        path: Optional[str] = None,
        errno: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = path
        self.errno = errno

    def __str__(self) -> str:
        where = f" ({self.path})" if self.path else ""
        return f"{self.kind.value}: {self.message}{where}"

    def __repr__(self) -> str:
        return f"TailError({self.kind.value!r}, {self.message!r}, path={self.path!r}, errno={self.errno!r})"


def classify_os_error(exc: OSError, default: ErrorKind, message: str, path: Optional[str] = None) -> TailError:
    """Wrap an OSError, keeping NotFound/PermissionDenied distinguishable."""
    if isinstance(exc, FileNotFoundError):
        kind = ErrorKind.NOT_FOUND
    elif isinstance(exc, PermissionError):
        kind = ErrorKind.PERMISSION_DENIED
    else:
        kind = default
    detail = exc.strerror or str(exc)
    return TailError(kind, f"{message}: {detail}", path=path or exc.filename, errno=exc.errno)


__all__ = ["ErrorKind", "ConfigError", "TailError", "classify_os_error"]
