import enum
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigError

BEGIN_AT_END = "end"


class MovePolicy(enum.Enum):
    FOLLOW = "follow"
    END = "end"
    EXIT = "exit"
    STAY = "stay"

    @classmethod
    def parse(cls, value: Union[str, "MovePolicy"]) -> "MovePolicy":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "error":  # historical alias
            return cls.EXIT
        try:
            return cls(text)
        except ValueError:
            raise ConfigError(f"on_move must be one of follow, end, exit, error, stay (got {value!r})") from None


class TruncatePolicy(enum.Enum):
    END = "end"
    RESET = "reset"

    @classmethod
    def parse(cls, value: Union[str, "TruncatePolicy"]) -> "TruncatePolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigError(f"on_truncate must be 'end' or 'reset' (got {value!r})") from None


def _native_watch_available() -> bool:
    from .watchers import supports_native_watch

    return supports_native_watch()


@dataclass(frozen=True)
class TailConfig:
    # Initial cursor: byte offset, or BEGIN_AT_END to skip the existing backlog
    begin_at: Union[int, str] = 0
    # Stat the file before every read to catch shrinkage
    detect_truncate: bool = True
    on_move: MovePolicy = MovePolicy.FOLLOW
    on_truncate: TruncatePolicy = TruncatePolicy.END
    # Terminate the stream on read/stat errors instead of emitting an error event
    end_on_error: bool = False
    # Prefer OS notifications (watchdog) over stat polling; None means "if available"
    use_watch: Optional[bool] = None
    # Wait for a missing path to be created instead of failing at start
    wait_for_create: bool = False
    # Tuning
    buffer_size: int = 16 * 1024
    poll_interval: float = 0.25
    high_water_mark: int = 1024 * 1024
    max_reads_per_cycle: int = 64

    def __post_init__(self) -> None:
        object.__setattr__(self, "begin_at", _parse_begin_at(self.begin_at))
        object.__setattr__(self, "on_move", MovePolicy.parse(self.on_move))
        object.__setattr__(self, "on_truncate", TruncatePolicy.parse(self.on_truncate))
        if self.use_watch is None:
            object.__setattr__(self, "use_watch", _native_watch_available())
        for name in ("detect_truncate", "end_on_error", "use_watch", "wait_for_create"):
            object.__setattr__(self, name, bool(getattr(self, name)))
        if int(self.buffer_size) <= 0:
            raise ConfigError("buffer_size must be positive")
        if float(self.poll_interval) <= 0:
            raise ConfigError("poll_interval must be positive")
        if int(self.high_water_mark) <= 0:
            raise ConfigError("high_water_mark must be positive")
        if int(self.max_reads_per_cycle) <= 0:
            raise ConfigError("max_reads_per_cycle must be positive")

    @property
    def begins_at_end(self) -> bool:
        return self.begin_at == BEGIN_AT_END

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "TailConfig":
        """Build a config from a mapping of options, rejecting unknown keys.

        Both snake_case names and the camelCase spellings (``beginAt``,
        ``onMove``, ...) are accepted. Keyword overrides win over ``options``.
        """
        merged: Dict[str, Any] = {}
        for source in (options or {}, overrides):
            for key, value in source.items():
                name = _OPTION_ALIASES.get(key, key)
                if name not in _FIELD_NAMES:
                    raise ConfigError(f"unrecognized option {key!r}")
                merged[name] = value
        return cls(**merged)

    def with_options(self, **overrides: Any) -> "TailConfig":
        unknown = [k for k in overrides if _OPTION_ALIASES.get(k, k) not in _FIELD_NAMES]
        if unknown:
            raise ConfigError(f"unrecognized option {unknown[0]!r}")
        return replace(self, **{_OPTION_ALIASES.get(k, k): v for k, v in overrides.items()})

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if isinstance(value, enum.Enum) else value
        return out


def _parse_begin_at(value: Union[int, str]) -> Union[int, str]:
    if isinstance(value, bool):
        raise ConfigError("begin_at must be a byte offset or 'end'")
    if isinstance(value, int):
        if value < 0:
            raise ConfigError("begin_at must not be negative")
        return value
    text = str(value).strip().lower()
    if text == BEGIN_AT_END:
        return BEGIN_AT_END
    try:
        offset = int(text)
    except ValueError:
        raise ConfigError(f"begin_at must be a byte offset or 'end' (got {value!r})") from None
    if offset < 0:
        raise ConfigError("begin_at must not be negative")
    return offset


_FIELD_NAMES = {f.name for f in fields(TailConfig)}
_OPTION_ALIASES = {
    "beginAt": "begin_at",
    "detectTruncate": "detect_truncate",
    "onMove": "on_move",
    "onTruncate": "on_truncate",
    "endOnError": "end_on_error",
    "useWatch": "use_watch",
    "waitForCreate": "wait_for_create",
    "bufferSize": "buffer_size",
    "pollInterval": "poll_interval",
    "highWaterMark": "high_water_mark",
    "maxReadsPerCycle": "max_reads_per_cycle",
}
