from typing import List

import pytest

from tailstream.config import TailConfig
from tailstream.session import TailSession
from tailstream.watchers import WatchMode


class FakeWatcher:
    def __init__(self, path, mode, notify):
        self.path = path
        self.mode = mode
        self.notify = notify
        self.closed = False

    def start(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class WatcherRecorder:
    """Watcher factory that records what the engine asked to watch; never notifies."""

    def __init__(self) -> None:
        self.created: List[FakeWatcher] = []

    def __call__(self, path, mode, notify, use_watch=True, poll_interval=0.25):
        watcher = FakeWatcher(path, mode, notify)
        self.created.append(watcher)
        return watcher

    @property
    def current(self) -> FakeWatcher:
        return self.created[-1]

    def modes(self) -> List[WatchMode]:
        return [w.mode for w in self.created]


@pytest.fixture
def recorder() -> WatcherRecorder:
    return WatcherRecorder()


@pytest.fixture
def manual_session(recorder):
    """Build a session whose engine only advances when the test dispatches."""
    sessions: List[TailSession] = []

    def _make(path, **options) -> TailSession:
        session = TailSession(str(path), TailConfig.from_options(options), watcher_factory=recorder)
        session.start(run_thread=False)
        session.engine.run_pending()
        sessions.append(session)
        return session

    yield _make
    for s in sessions:
        s.close()


def drain(session: TailSession) -> list:
    """Everything currently buffered in the sink, without blocking."""
    return list(session.items(timeout=0))


def chunks(items) -> bytes:
    return b"".join(i for i in items if isinstance(i, bytes))


def names(items) -> List[str]:
    return [i.name for i in items if not isinstance(i, bytes)]
