"""PairChat - FastAPI application entry point.

Serves the single application-lifetime chat session to a presentation
layer. Run with `pairchat` (console script) or `python -m pairchat.main`.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pairchat import __version__
from pairchat.api.routes import chat, health
from pairchat.config.settings import Settings, get_settings
from pairchat.observability.logging import init_logging
from pairchat.observability.metrics import set_build_info

logger = structlog.get_logger(__name__)


async def _startup(settings: Settings) -> None:
    """Open a fresh session and publish component health."""
    session = chat.create_chat_session()
    await session.open()

    health.set_component_health("chat_session", True)
    health.set_component_health("local_media", session.stream is not None)
    if settings.metrics_enabled:
        set_build_info(__version__)
    health.set_ready(True)

    logger.info(
        "pairchat_ready",
        session_id=session.session_id,
        components=health.get_component_health(),
    )


async def _shutdown() -> None:
    """End any pairing, settle timers and release the camera."""
    health.set_ready(False)
    await chat.get_chat_session().close(reason="shutdown")
    for component in health.COMPONENTS:
        health.set_component_health(component, False)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    init_logging(
        json_format=settings.environment == "production",
        level=settings.log_level,
    )
    logger.info(
        "pairchat_starting",
        version=__version__,
        environment=settings.environment,
        media_backend=settings.media_backend,
    )

    try:
        await _startup(settings)
    except Exception as e:
        logger.error("pairchat_startup_failed", error=str(e))
        raise

    yield

    logger.info("pairchat_shutting_down")
    await _shutdown()
    logger.info("pairchat_shutdown_complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with chat and probe routes."""
    settings = get_settings()
    interactive_docs = settings.environment != "production"

    app = FastAPI(
        title="PairChat",
        description="One-on-one ephemeral video/text chat session core",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if interactive_docs else None,
        redoc_url="/redoc" if interactive_docs else None,
    )

    # Local presentation layers during development only
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(chat.router)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using host/port from settings."""
    settings = get_settings()
    uvicorn.run(
        "pairchat.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level="warning" if settings.log_level == "WARN" else settings.log_level.lower(),
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    run()
