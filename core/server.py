"""
FastAPI Application Factory.

Creates and configures the FastAPI application with CORS, security headers,
the generic error handler and the health endpoint. Domain routers are
included by main.py.
"""

from typing import Any, Callable, Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.app_context import AppContext

_logger = logging.getLogger(__name__)


def create_base_app(
    context: AppContext,
    title: str = "HR Forms Gateway API",
    description: str = "BPM form synchronization and batch ingestion API",
    version: str = "1.0.0",
    lifespan: Optional[Callable[[FastAPI], Any]] = None,
    health_details: Optional[Callable[[], dict[str, Any]]] = None,
) -> FastAPI:
    """
    Create and configure the base FastAPI application.

    Args:
        context: Application context for logging and configuration.
        title: API title for OpenAPI documentation.
        description: API description for OpenAPI documentation.
        version: API version string.
        lifespan: Optional lifespan context manager factory.
        health_details: Optional callable whose dict is merged into /health.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(title=title, description=description, version=version, lifespan=lifespan)

    app.state.context = context

    # CORS: BASE_URL only, plus localhost in debug mode
    config = context.config
    base_url = config.get("server.base_url", "")
    is_debug = config.get("app.debug", False)

    allowed_origins: list[str] = []

    if base_url:
        allowed_origins.append(base_url)

    if is_debug:
        allowed_origins.extend([
            "http://localhost:8000",
            "http://127.0.0.1:8000",
        ])

    if not allowed_origins:
        _logger.warning(
            "BASE_URL not configured and not in debug mode. "
            "CORS will reject all cross-origin requests."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # Never leak exception text to callers
        _logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        context.log_event(f"Unhandled error on {request.url.path}", "ERROR")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "INTERNAL_ERROR", "message": "Internal server error"},
        )

    _register_core_routes(app, health_details)

    return app


def _register_core_routes(
    app: FastAPI,
    health_details: Optional[Callable[[], dict[str, Any]]],
) -> None:
    """Register core API routes (health check)."""

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        context: AppContext = app.state.context
        config = context.config
        body: dict[str, Any] = {
            "status": "ok",
            "service": "HR Forms Gateway",
            "primary_store_configured": bool(config.get("database.url")),
            "secondary_store_configured": config.is_secondary_store_configured(),
        }
        if health_details is not None:
            body.update(health_details())
        return body
