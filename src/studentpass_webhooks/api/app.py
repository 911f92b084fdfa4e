"""FastAPI application for the webhook engine."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

from studentpass_webhooks import __version__
from studentpass_webhooks.config import WebhookSettings
from studentpass_webhooks.engine import WebhookEngine
from studentpass_webhooks.exceptions import (
    InvalidConfigurationError,
    InvalidEventError,
    NotFoundError,
    WebhookError,
)
from studentpass_webhooks.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from studentpass_webhooks.models import generate_id

from .router import router, set_engine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Starts the webhook engine's consumers and retry driver on startup,
    and stops them on shutdown.
    """
    settings: WebhookSettings = app.state.settings

    # Configure structured logging
    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting webhook API",
        log_level=settings.log_level,
        log_format=settings.log_format,
        max_concurrent_deliveries=settings.max_concurrent_deliveries,
    )

    engine = WebhookEngine(settings)
    await engine.start()
    set_engine(engine)

    yield

    # Cleanup
    await engine.stop()
    set_engine(None)
    logger.info("Webhook API stopped")


def create_app(settings: WebhookSettings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from studentpass_webhooks.api import create_app

        app = create_app()
        # Run with: uvicorn studentpass_webhooks.api:app --reload
        ```
    """
    if settings is None:
        settings = WebhookSettings()

    app = FastAPI(
        title="StudentPass Webhooks",
        description="Webhook registration and event delivery for the StudentPass system.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    @app.middleware("http")
    async def request_context_middleware(
        request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Bind a request id to every log line written while handling the request."""
        request_id = request.headers.get("X-Request-ID") or generate_id("req")
        clear_context()
        bind_context(request_id=request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-ID"] = request_id
        return response

    # Register exception handlers
    @app.exception_handler(InvalidConfigurationError)
    async def invalid_configuration_handler(
        request: Request, exc: InvalidConfigurationError
    ) -> JSONResponse:
        """Handle invalid webhook configuration with 400 status."""
        logger.warning(
            "Invalid configuration", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(InvalidEventError)
    async def invalid_event_handler(request: Request, exc: InvalidEventError) -> JSONResponse:
        """Handle malformed events with 400 status."""
        logger.warning("Invalid event", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(WebhookError)
    async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
        """Handle all other webhook errors with 500 status."""
        logger.error("Webhook error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
