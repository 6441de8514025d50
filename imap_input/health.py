"""FastAPI health endpoints for liveness and readiness probes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import HealthStatus, PollState

if TYPE_CHECKING:
    from .poller import MailPoller


def create_health_app(poller: MailPoller, *, mailbox: str) -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes.

    ``/health`` is 200 while the poll loop is alive; ``/ready`` is 200
    only while it holds an open IMAP session.
    """
    app = FastAPI(title=f"imap-input {mailbox} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        status = HealthStatus(
            mailbox=mailbox,
            state=poller.state,
            uptime_seconds=time.monotonic() - poller.start_time,
            details=await poller.health_check(),
        )
        code = 503 if poller.state is PollState.STOPPED else 200
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = poller.ready
        return JSONResponse(
            content={"ready": is_ready, "state": poller.state.value},
            status_code=200 if is_ready else 503,
        )

    return app
