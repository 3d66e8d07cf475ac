"""Path resolution helpers.

``current_path_of`` recovers the path currently backing an open file so a
rename can be told apart from a deletion. Linux exposes this through
``/proc/self/fd``; macOS through ``fcntl(F_GETPATH)``. Elsewhere the caller's
fallback name is returned.
"""
from __future__ import annotations

import os
import sys
from typing import IO, Optional

_DELETED_SUFFIX = " (deleted)"


def resolve(path: str) -> str:
    """Absolute, normalized form of ``path`` (no symlink resolution, no I/O)."""
    return os.path.normpath(os.path.abspath(os.path.expanduser(os.fspath(path))))


def current_path_of(handle: Optional[IO[bytes]], fallback: Optional[str] = None) -> Optional[str]:
    if handle is None or handle.closed:
        return fallback
    try:
        fd = handle.fileno()
    except (OSError, ValueError):
        return fallback
    proc_link = f"/proc/self/fd/{fd}"
    if os.path.exists("/proc/self/fd"):
        try:
            target = os.readlink(proc_link)
        except OSError:
            return fallback
        if target.endswith(_DELETED_SUFFIX):
            # unlinked while open; nothing to follow
            return None
        return target
    if sys.platform == "darwin":
        import fcntl

        getpath = getattr(fcntl, "F_GETPATH", None)
        if getpath is not None:
            try:
                raw = fcntl.fcntl(fd, getpath, bytes(1024))
            except OSError:
                return fallback
            return os.fsdecode(raw.split(b"\0", 1)[0]) or fallback
    return fallback


def same_file(handle: Optional[IO[bytes]], path: str) -> bool:
    """True when ``path`` still names the inode ``handle`` has open."""
    if handle is None or handle.closed:
        return False
    try:
        st_handle = os.fstat(handle.fileno())
        st_path = os.stat(path)
    except (OSError, ValueError):
        return False
    return (st_handle.st_dev, st_handle.st_ino) == (st_path.st_dev, st_path.st_ino)


__all__ = ["resolve", "current_path_of", "same_file"]
