"""Package metadata and public entry points for tailstream.

Expose a single source of truth for the version. Prefer reading from
importlib.metadata so that an editable install or wheel always reports
the version declared in pyproject.toml. Fallback to a hardcoded string
to avoid import errors when metadata is unavailable (e.g. direct source
usage without installation).
"""

from __future__ import annotations

from importlib import metadata as _metadata

_FALLBACK_VERSION = "0.3.0"  # MUST match pyproject.toml [project].version

try:  # pragma: no cover - success path covered indirectly via CLI test
	__version__ = _metadata.version("tailstream")  # type: ignore[assignment]
except Exception:  # pragma: no cover - fallback exercised if metadata missing
	__version__ = _FALLBACK_VERSION

from .config import BEGIN_AT_END, MovePolicy, TailConfig, TruncatePolicy  # noqa: E402
from .errors import ConfigError, ErrorKind, TailError  # noqa: E402
from .session import TailSession, create_tail_session  # noqa: E402

__all__ = [
	"__version__",
	"BEGIN_AT_END",
	"ConfigError",
	"ErrorKind",
	"MovePolicy",
	"TailConfig",
	"TailError",
	"TailSession",
	"TruncatePolicy",
	"create_tail_session",
]
