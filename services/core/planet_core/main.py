"""Planet Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from planet_core.api.routes import accounts as accounts_routes
from planet_core.api.routes import messages as messages_routes
from planet_core.api.routes import read_state as read_state_routes
from planet_core.api.routes import search as search_routes
from planet_core.config import get_settings
from planet_core.domain.errors import CoreError
from planet_core.domain.services.sentinel import SentinelIdentityResolver
from planet_core.infra.db import get_sync_session_factory
from planet_core.observability import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    app.state.settings = settings
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    session = get_sync_session_factory()()
    try:
        SentinelIdentityResolver(session).ensure_sentinels()
        session.commit()
    finally:
        session.close()

    yield
    # Shutdown


app = FastAPI(
    title="Planet Core API",
    description="Message retrieval and identity lifecycle for planet chat",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
    """Translate domain errors into HTTP responses."""
    if exc.http_status >= 500:
        logger.error("Unhandled domain error", path=request.url.path, code=exc.code)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "code": exc.code},
    )


# Include API routers
app.include_router(accounts_routes.router)
app.include_router(messages_routes.router)
app.include_router(read_state_routes.router)
app.include_router(search_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "planet-core"}
