"""FastAPI application wiring for SupportDesk.

This module bootstraps the HTTP and WebSocket API:

- Configures logging, CORS (optional for the agent dashboard), Prometheus
  metrics and rate limiting of the public chat endpoint.
- Mounts the chat, escalation, live-chat queue, agent presence and real-time
  routers.
- Creates the process-wide :class:`~supportdesk.realtime.router.MessageRouter`
  shared by every request and socket of this worker.

Run with ``uvicorn supportdesk.main:app``.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .rate_limit import limiter
from .realtime.router import MessageRouter
from .routers import agents, ask, chat, escalations, realtime
from .settings import get_settings

app = FastAPI(title="SupportDesk", version=__version__)
init_logging(app)
app.state.limiter = limiter
app.state.message_router = MessageRouter()
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
# Optional CORS for the agent dashboard
admin_ui_origins = get_settings().admin_ui_origins
if admin_ui_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(admin_ui_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(ask.router)
app.include_router(escalations.router)
app.include_router(chat.router)
app.include_router(agents.router)
app.include_router(realtime.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Liveness and readiness check with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
