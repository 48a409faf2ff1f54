"""FastAPI health endpoints for liveness and readiness probes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import HealthStatus, SessionState, WatcherStatus

if TYPE_CHECKING:
    from .watcher import MailWatcher


def create_health_app(watcher: MailWatcher) -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes.

    ``/ready`` only reports ready while the IMAP session is waiting for
    mail; a reconnecting watcher is alive but not ready.
    """
    app = FastAPI(title=f"{watcher.config.name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        status = HealthStatus(
            service=watcher.config.name,
            status=watcher.status,
            session_state=watcher.session.state,
            uptime_seconds=time.monotonic() - watcher.start_time,
            details=watcher.health_details(),
        )
        alive = watcher.status in (WatcherStatus.STARTING, WatcherStatus.RUNNING)
        return JSONResponse(content=status.model_dump(mode="json"), status_code=200 if alive else 503)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = (
            watcher.status == WatcherStatus.RUNNING
            and watcher.session.state == SessionState.WAITING
        )
        return JSONResponse(
            content={"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
