"""Optional FastAPI service exposing a running tail session over HTTP.

Install with `pip install tailstream[server]` to enable.
This keeps the core library dependency-light.
"""
from __future__ import annotations

from typing import Optional

try:  # pragma: no cover - optional dependency
    from fastapi import FastAPI
    from pydantic import BaseModel
except Exception as exc:  # noqa: BLE001
    raise RuntimeError(
        "FastAPI not installed. Install with `pip install tailstream[server]` to use the service."  # noqa: E501
    ) from exc

from . import __version__
from .metrics import session_metrics
from .session import TailSession


class StatsResponse(BaseModel):
    path: str
    state: str
    bytes_read: int
    last_size: Optional[int] = None
    chunks_delivered: int
    buffered_bytes: int
    moves: int
    truncations: int
    replacements: int
    end_reason: Optional[str] = None


def build_app(session: TailSession) -> FastAPI:
    app = FastAPI(title="tailstream", version=__version__)

    @app.get("/healthz")
    def health() -> dict[str, str]:
        return {"status": "closed" if session.closed else "ok"}

    @app.get("/stats", response_model=StatsResponse)
    def stats() -> StatsResponse:
        m = session_metrics(session)
        return StatsResponse(
            path=m["path"],
            state=m["state"],
            bytes_read=m["bytes_read"],
            last_size=m["last_size"],
            chunks_delivered=m["chunks_delivered"],
            buffered_bytes=m["buffered_bytes"],
            moves=m["moves"],
            truncations=m["truncations"],
            replacements=m["replacements"],
            end_reason=m["end_reason"],
        )

    @app.get("/metrics")
    def metrics() -> dict[str, object]:  # pragma: no cover - covered by dedicated test
        return session_metrics(session)

    return app


__all__ = ["build_app"]
