from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..models import utc_now
from ..repositories import TaskStore
from .tasks import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


# PUBLIC_INTERFACE
@router.get("", summary="Health Check")
def health_check(request: Request, store: TaskStore = Depends(get_store)) -> JSONResponse:
    """
    Report API and storage health.

    Returns 200 with success=true when the store answers, 503 otherwise.
    info.tasksCount is the real number of stored tasks.
    """
    database_ok = store.ping()
    tasks_count = 0
    if database_ok:
        try:
            tasks_count = store.count()
        except Exception:
            logger.exception("Health check - failed to count tasks")

    healthy = database_ok
    started_at = getattr(request.app.state, "started_at", None)
    data = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utc_now().isoformat(),
        "services": {
            "database": "connected" if database_ok else "disconnected",
            "api": "operational",
        },
        "info": {
            "uptime": round(time.monotonic() - started_at, 3) if started_at is not None else 0.0,
            "tasksCount": tasks_count,
        },
    }
    return JSONResponse(status_code=200 if healthy else 503, content={"success": healthy, "data": data})


# PUBLIC_INTERFACE
@router.get("/simple", summary="Liveness Check")
def simple_health_check() -> dict:
    """Return OK whenever the API process is running."""
    return {
        "success": True,
        "data": {"status": "healthy", "message": "API is running", "timestamp": utc_now().isoformat()},
    }
