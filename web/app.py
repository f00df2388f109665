# web/app.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the daemon's host process. uvicorn serves this FastAPI app, and
# the app's lifespan owns the Scheduler:
#
#   startup  → build the Scheduler (vault + Gmail + summarizer) and start it
#   shutdown → stop the Scheduler, letting a running cycle finish
#
# uvicorn already turns SIGINT / SIGTERM into a clean lifespan shutdown,
# so there is no signal handling of our own.
#
# ENDPOINTS:
#   GET /health   → liveness: uptime and the last check / poll start times
#
# Everything else is a 404. The server binds to localhost only by default.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request

# Add project root to Python's path
sys.path.insert(0, str(Path(__file__).parent.parent))

from scheduler import build_scheduler
from utils.logger import logger


# ── SERVER STARTUP ─────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Everything before yield = startup, everything after = shutdown.

    A StartupError (missing configuration) propagates, so uvicorn refuses
    to start instead of serving a daemon that can't do anything.
    """
    scheduler = build_scheduler()
    scheduler.start()
    app.state.scheduler = scheduler
    app.state.started_at = datetime.now(timezone.utc)
    logger.info("Impact agent ready")

    yield

    logger.info("Shutting down")
    scheduler.stop()


# Interactive docs are switched off so /health is the only route.
app = FastAPI(
    title="Impact Agent",
    description="Accountability reminders by email, with AI summaries of the replies",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health")
async def health(request: Request):
    """
    Report that the process is alive and when each cycle last started.

    last_check / last_poll are null until the cycle has fired once.
    """
    now = datetime.now(timezone.utc)
    liveness = request.app.state.scheduler.liveness()

    return {
        "status": "ok",
        "uptime": (now - request.app.state.started_at).total_seconds(),
        "last_poll": liveness["last_poll"],
        "last_check": liveness["last_check"],
        "timestamp": now.isoformat(),
    }
