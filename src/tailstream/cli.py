import argparse
import signal
import sys
import threading
from typing import Any, Dict, Optional, TYPE_CHECKING

from . import __version__
from .config import BEGIN_AT_END, MovePolicy, TruncatePolicy
from .errors import ConfigError, TailError
from .events import EVENT_NAMES, TailEvent
from .metrics import session_metrics
from .session import TailSession, create_tail_session
from .sinks import EventSink, JsonlEventSink, attach

if TYPE_CHECKING:  # pragma: no cover - typing only
    from rich.console import Console as _Console
    from rich.text import Text as _Text
else:  # runtime optional import
    try:  # noqa: SIM105
        from rich.console import Console as _Console  # type: ignore
        from rich.text import Text as _Text  # type: ignore
    except Exception:  # noqa: BLE001
        _Console = None  # type: ignore
        _Text = None  # type: ignore

ConsoleType = Optional["_Console"]

_EVENT_STYLES = {
    "replace": "cyan",
    "move": "magenta",
    "truncate": "yellow",
    "error": "red",
    "end": "dim",
}


def _maybe_console(args: argparse.Namespace) -> ConsoleType:
    if getattr(args, "no_color", False):
        return None
    if _Console is None:
        return None
    return _Console(stderr=True)


def describe_event(event: TailEvent) -> str:
    if event.name == "move":
        return f"move {event.old_path} -> {event.new_path}"  # type: ignore[attr-defined]
    if event.name == "truncate":
        return f"truncate {event.path} {event.old_size} -> {event.new_size} bytes"  # type: ignore[attr-defined]
    if event.name == "error":
        return f"error {event.error}"  # type: ignore[attr-defined]
    if event.name == "end":
        return f"end {event.path} ({event.reason})"  # type: ignore[attr-defined]
    return f"{event.name} {event.path}"


def session_options(args: argparse.Namespace) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "begin_at": args.begin_at,
        "detect_truncate": not args.no_detect_truncate,
        "on_move": args.on_move,
        "on_truncate": args.on_truncate,
        "end_on_error": args.end_on_error,
        "wait_for_create": args.wait_for_create,
    }
    if args.poll:
        options["use_watch"] = False
    if args.poll_interval is not None:
        options["poll_interval"] = args.poll_interval
    return options


def _open_session(args: argparse.Namespace) -> Optional[TailSession]:
    try:
        return create_tail_session(args.file, session_options(args))
    except ConfigError as exc:
        print(f"[tailstream] invalid option: {exc}", file=sys.stderr)
    except TailError as exc:
        print(f"[tailstream] {exc}", file=sys.stderr)
    return None


def cmd_tail(args: argparse.Namespace) -> int:
    sink: Optional[EventSink] = None
    if getattr(args, "events_jsonl", None):
        try:
            sink = JsonlEventSink(args.events_jsonl)
        except OSError as exc:
            print(f"[tailstream] could not open events file {args.events_jsonl}: {exc}", file=sys.stderr)
            return 2

    session = _open_session(args)
    if session is None:
        if sink is not None:
            sink.close()
        return 2
    if sink is not None:
        attach(session, sink)

    console = _maybe_console(args)

    def _notice(event: TailEvent) -> None:
        text = describe_event(event)
        if console is not None:
            line = _Text("[tailstream] ", style="dim")
            line.append(text, style=_EVENT_STYLES.get(event.name, "white"))
            console.print(line)
        else:
            print(f"[tailstream] {text}", file=sys.stderr, flush=True)

    if not args.quiet:
        for name in EVENT_NAMES:
            if name != "eof":
                session.on(name, _notice)
    if args.no_follow:
        session.on("eof", lambda _ev: session.close(reason="eof"))

    # Periodic stats line on stderr (optional)
    stop_event = threading.Event()
    stats_thread: Optional[threading.Thread] = None
    stats_interval = getattr(args, "stats_interval", None)
    if stats_interval and stats_interval > 0:
        def _stats_loop() -> None:
            while not stop_event.wait(stats_interval):
                m = session_metrics(session)
                print(
                    f"[tailstream] stats: state={m['state']} bytes_read={m['bytes_read']} "
                    f"chunks={m['chunks_delivered']} buffered={m['buffered_bytes']} "
                    f"moves={m['moves']} truncations={m['truncations']} replacements={m['replacements']}",
                    file=sys.stderr,
                    flush=True,
                )
        stats_thread = threading.Thread(target=_stats_loop, daemon=True)
        stats_thread.start()

    # Install SIGTERM handler so external terminate() triggers cleanup (Linux CI)
    _old_sigterm = None
    def _sigterm_handler(signum, frame):  # pragma: no cover - exercised indirectly
        raise KeyboardInterrupt
    try:
        _old_sigterm = signal.signal(signal.SIGTERM, _sigterm_handler)
    except (ValueError, OSError):  # pragma: no cover - not the main thread / no SIGTERM
        _old_sigterm = None

    out = sys.stdout.buffer
    try:
        for chunk in session:
            out.write(chunk)
            out.flush()
    except KeyboardInterrupt:
        print("[tailstream] stopping tail (Ctrl-C)", file=sys.stderr)
    except BrokenPipeError:
        pass  # downstream reader went away (`| head`)
    finally:
        if _old_sigterm is not None:
            signal.signal(signal.SIGTERM, _old_sigterm)
        session.close()
        stop_event.set()
        if stats_thread is not None:
            stats_thread.join(timeout=0.1)
        if sink is not None:
            sink.close()
    return 1 if session.end_reason == "error" else 0


def cmd_serve(args: argparse.Namespace) -> int:  # pragma: no cover - integration feature
    try:
        import uvicorn
        from .service import build_app
    except Exception:  # noqa: BLE001
        print("'serve' requires fastapi and uvicorn. Install with `pip install tailstream[server]`.", file=sys.stderr)
        return 2

    session = _open_session(args)
    if session is None:
        return 2

    # Drain the stream in the background so the cursor keeps moving
    def _consume() -> None:
        out = None if args.discard else sys.stdout.buffer
        for chunk in session:
            if out is not None:
                out.write(chunk)
                out.flush()

    consumer = threading.Thread(target=_consume, daemon=True)
    consumer.start()
    try:
        uvicorn.run(build_app(session), host=args.host, port=args.port, log_level="info")
    finally:
        session.close()
        consumer.join(timeout=1.0)
    return 0


def _begin_at(value: str) -> Any:
    if value.strip().lower() == BEGIN_AT_END:
        return BEGIN_AT_END
    try:
        offset = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a byte offset or 'end', got {value!r}") from None
    if offset < 0:
        raise argparse.ArgumentTypeError("offset must not be negative")
    return offset


def _add_session_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", help="File to follow")
    p.add_argument("--begin-at", type=_begin_at, default=0, help="Start offset in bytes, or 'end' to skip existing content")
    p.add_argument("--no-detect-truncate", action="store_true", help="Do not stat before each read to detect truncation")
    p.add_argument(
        "--on-move",
        choices=[m.value for m in MovePolicy] + ["error"],
        default=MovePolicy.FOLLOW.value,
        help="What to do when the file is renamed (default: follow)",
    )
    p.add_argument(
        "--on-truncate",
        choices=[t.value for t in TruncatePolicy],
        default=TruncatePolicy.END.value,
        help="Stop, or restart from offset 0, when the file shrinks (default: end)",
    )
    p.add_argument("--end-on-error", action="store_true", help="End the stream on read/stat errors")
    p.add_argument("--wait-for-create", action="store_true", help="Wait for the file to be created instead of failing")
    p.add_argument("--poll", action="store_true", help="Poll with stat instead of OS change notifications")
    p.add_argument("--poll-interval", type=float, help="Seconds between polls (default 0.25)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tailstream", description="Follow a file as it grows, across truncation, rotation and renames.")
    # Global --version (argparse will exit 0 before validating subcommands)
    parser.add_argument(
        "--version",
        action="version",
        version=f"tailstream {__version__}",
        help="Show version and exit",
    )
    sub = parser.add_subparsers(dest="cmd")

    tail_parser = sub.add_parser("tail", help="Stream appended bytes of a file to stdout")
    _add_session_arguments(tail_parser)
    tail_parser.add_argument("--no-follow", action="store_true", help="Stop at the first end of file")
    tail_parser.add_argument("--events-jsonl", help="Append lifecycle events to this JSONL file")
    tail_parser.add_argument("--quiet", action="store_true", help="Do not print lifecycle notices on stderr")
    tail_parser.add_argument("--no-color", action="store_true", help="Disable colorized notices")
    tail_parser.add_argument("--stats-interval", type=float, help="Seconds between session stats lines (stderr)")
    tail_parser.set_defaults(func=cmd_tail)

    serve_parser = sub.add_parser("serve", help="Tail a file and serve its session stats over HTTP (requires tailstream[server])")
    _add_session_arguments(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8080)
    serve_parser.add_argument("--discard", action="store_true", help="Do not copy tailed bytes to stdout")
    serve_parser.set_defaults(func=cmd_serve)

    # Simple 'version' subcommand for shells/users preferring explicit command
    version_parser = sub.add_parser("version", help="Show version and exit")
    version_parser.set_defaults(func=lambda _: (print(f"tailstream {__version__}"), 0)[1])

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    if not getattr(args, "cmd", None):  # No subcommand provided
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
