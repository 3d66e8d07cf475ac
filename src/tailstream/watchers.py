"""Change notification for a single tailed path.

Two implementations sit behind the ``ChangeWatcher`` protocol:

- ``EventWatcher`` uses watchdog (inotify on Linux, FSEvents on macOS,
  ReadDirectoryChangesW on Windows). It always watches the *parent*
  directory non-recursively and filters events by name, so the watch
  survives the target being renamed, unlinked or recreated. When the name
  is a symlink the directory holding the real file is watched too, since
  writes are reported under the real name.
- ``PollingWatcher`` stats the path on a background thread.

Both translate what they see into ``signals`` values and hand them to a
``notify`` callable. They never touch session state themselves; the callable
is expected to enqueue and return immediately.

Modes:
    FILE       the path is open and being read: DataChanged, PathRenamed,
               PathVanished
    DIRECTORY  the path is absent and we wait for it: PathReappeared
"""
from __future__ import annotations

import enum
import os
import threading
from typing import Callable, List, Optional, Protocol, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from . import paths
from .logutil import get_logger
from .signals import DataChanged, PathReappeared, PathRenamed, PathVanished, WatcherSignal

logger = get_logger("watchers")

Notify = Callable[[WatcherSignal], None]


class WatchMode(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


class ChangeWatcher(Protocol):  # pragma: no cover - simple protocol
    path: str
    mode: WatchMode

    def start(self) -> None: ...  # noqa: E701
    def close(self) -> None: ...  # noqa: E701


def supports_native_watch() -> bool:
    """True when watchdog resolved to a kernel-backed observer on this platform."""
    return Observer is not PollingObserver


class _TargetHandler(FileSystemEventHandler):
    def __init__(self, watcher: "EventWatcher") -> None:
        super().__init__()
        self.watcher = watcher

    def _is_target(self, raw_path) -> bool:
        """The watched name itself."""
        if not raw_path:
            return False
        return paths.resolve(os.fsdecode(raw_path)) == self.watcher.path

    def _is_backing(self, raw_path) -> bool:
        """The watched name, or the file a symlinked name points at."""
        if not raw_path:
            return False
        resolved = paths.resolve(os.fsdecode(raw_path))
        return resolved == self.watcher.path or resolved == self.watcher.real_path

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if self.watcher.mode is WatchMode.FILE:
            if self._is_backing(event.src_path):
                self.watcher.notify(DataChanged())
        elif self._is_target(event.src_path):
            self.watcher.notify(PathReappeared())

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if self.watcher.mode is WatchMode.FILE:
            if self._is_backing(event.src_path):
                # a new entry took our name; the engine compares identities
                self.watcher.notify(PathVanished())
        elif self._is_target(event.src_path):
            self.watcher.notify(PathReappeared())

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if self.watcher.mode is WatchMode.FILE and self._is_backing(event.src_path):
            self.watcher.notify(PathVanished())

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        dest = getattr(event, "dest_path", None)
        if self.watcher.mode is WatchMode.FILE:
            if self._is_target(event.src_path):
                if dest:
                    self.watcher.notify(PathRenamed(paths.resolve(os.fsdecode(dest))))
                else:
                    self.watcher.notify(PathVanished())
            elif self._is_backing(event.src_path) or self._is_backing(dest):
                # the engine asks the open handle where it went
                self.watcher.notify(PathVanished())
        elif self._is_target(dest):
            self.watcher.notify(PathReappeared())


class EventWatcher:
    def __init__(self, path: str, mode: WatchMode, notify: Notify) -> None:
        self.path = paths.resolve(path)
        self.mode = mode
        self.notify = notify
        # where a symlinked name really lives; writes are reported there
        self.real_path: Optional[str] = None
        self._observer: Optional[Observer] = None

    def _directories(self) -> List[str]:
        dirs = [os.path.dirname(self.path)]
        if self.real_path is not None and self.real_path != self.path:
            real_dir = os.path.dirname(self.real_path)
            if real_dir not in dirs:
                dirs.append(real_dir)
        return dirs

    def start(self) -> None:
        """Schedule the parent directory (and the symlink target's, if any).

        Raises OSError if a directory cannot be watched.
        """
        if self._observer is not None:
            raise RuntimeError("watcher already started")
        if self.mode is WatchMode.FILE:
            self.real_path = os.path.realpath(self.path)
        observer = Observer()
        handler = _TargetHandler(self)
        try:
            for directory in self._directories():
                observer.schedule(handler, directory, recursive=False)
            observer.start()
        except OSError:
            observer.stop()
            raise
        self._observer = observer
        logger.debug("watching %s (%s, %s)", self.path, self.mode.value, type(observer).__name__)
        if self.mode is WatchMode.DIRECTORY and os.path.exists(self.path):
            # created between the caller's failed open and the schedule above
            self.notify(PathReappeared())

    def close(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        if threading.current_thread() is not observer:
            observer.join(timeout=2.0)

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


_Identity = Tuple[int, int]
_Shape = Tuple[int, int]


class PollingWatcher:
    def __init__(self, path: str, mode: WatchMode, notify: Notify, interval: float = 0.25) -> None:
        self.path = paths.resolve(path)
        self.mode = mode
        self.notify = notify
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._identity: Optional[_Identity] = None
        self._shape: Optional[_Shape] = None
        self._present = False

    def _stat(self) -> Optional[os.stat_result]:
        try:
            return os.stat(self.path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            # permission flaps and the like; try again next interval
            logger.debug("stat %s failed during poll: %s", self.path, exc)
            return None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("watcher already started")
        st = self._stat()
        if st is not None and self.mode is WatchMode.FILE:
            self._identity = (st.st_dev, st.st_ino)
            self._shape = (st.st_size, st.st_mtime_ns)
            self._present = True
        self._thread = threading.Thread(target=self._run, name=f"tailstream-poll:{os.path.basename(self.path)}", daemon=True)
        self._thread.start()
        logger.debug("polling %s every %.3fs (%s)", self.path, self.interval, self.mode.value)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.poll()

    def poll(self) -> None:
        """Compare the current stat against the last one and notify on change."""
        st = self._stat()
        if self.mode is WatchMode.DIRECTORY:
            present = st is not None
            if present and not self._present:
                self.notify(PathReappeared())
            self._present = present
            return
        if st is None:
            if self._present:
                self._present = False
                self.notify(PathVanished())
            return
        identity = (st.st_dev, st.st_ino)
        shape = (st.st_size, st.st_mtime_ns)
        if not self._present or identity != self._identity:
            self._present = True
            self._identity = identity
            self._shape = shape
            self.notify(PathVanished())
            return
        if shape != self._shape:
            self._shape = shape
            self.notify(DataChanged())

    def close(self) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self.interval * 2))

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def create_watcher(
    path: str,
    mode: WatchMode,
    notify: Notify,
    use_watch: bool = True,
    poll_interval: float = 0.25,
) -> ChangeWatcher:
    """Build and start the watcher selected by ``use_watch``.

    Falls back to polling when the OS watch cannot be established (missing
    parent directory, inotify watch limit, ...).
    """
    if use_watch:
        watcher = EventWatcher(path, mode, notify)
        try:
            watcher.start()
            return watcher
        except OSError as exc:
            logger.warning("cannot watch %s (%s); falling back to polling", path, exc)
    poller = PollingWatcher(path, mode, notify, interval=poll_interval)
    poller.start()
    return poller


__all__ = [
    "ChangeWatcher",
    "EventWatcher",
    "PollingWatcher",
    "WatchMode",
    "create_watcher",
    "supports_native_watch",
]
