"""FastAPI server for heartwatch."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heartwatch import __version__
from heartwatch.api.routes import router
from heartwatch.config import settings
from heartwatch.monitoring.scheduler import MonitorScheduler
from heartwatch.orchestrator.server import ServerContext

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the server context and start scheduling on startup."""
    context = ServerContext.from_settings(settings)
    # Unknown monitor types raise here and abort startup
    context.init_after_store_ready()
    context.broadcaster.attach_loop(asyncio.get_running_loop())
    app.state.context = context
    logger.info(
        "Server context ready: timezone=%s types=%s",
        context.timezone, ",".join(context.monitor_types.types()),
    )

    context.start()

    scheduler = MonitorScheduler(context, max_workers=settings.check_workers)
    app.state.scheduler = scheduler
    try:
        await scheduler.start()
    except Exception:
        logger.exception("Monitor scheduler failed to start")

    yield

    # Shutdown
    await scheduler.stop()
    context.stop()
    context.close()


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    context = getattr(request.app.state, "context", None)
    if context is not None:
        context.error_log(exc)
    else:
        logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    app = FastAPI(
        title="heartwatch",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, unhandled_error)
    app.include_router(router, prefix="/api")

    return app


app = create_app()
