"""
HR Forms Gateway - Entry Point.

Headless ASGI application for uvicorn execution.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000 --reload

Or run directly:
    python main.py
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import FastAPI

from core.app_context import AppContext
from core.database import close_db_connections, init_database
from core.http_client import create_http_client_context
from core.logging_config import setup_logging
from core.server import create_base_app
from modules.bpm_forms.core.config import get_bpm_settings
from modules.bpm_forms.dependencies import reset_bpm_repository
from modules.bpm_forms.routers import bpm_read_router, forms_router


# -----------------------------------------------------------------------------
# Application Factory
# -----------------------------------------------------------------------------


def create_app_context() -> AppContext:
    """Create and configure the AppContext."""
    return AppContext()


def bpm_health_details() -> dict[str, Any]:
    """BPM configuration flags reported by /health."""
    settings = get_bpm_settings()
    return {
        "bpm_engine_configured": settings.is_engine_configured,
        "bpm_middleware_configured": settings.is_middleware_configured,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Owns the shared HTTP client and both database stores.
    """
    logger = logging.getLogger(__name__)
    context: AppContext = app.state.context

    logger.info("Starting HR Forms Gateway...")

    timeout = get_bpm_settings().timeout_seconds
    async with create_http_client_context(app, timeout=timeout, max_connections=100):
        logger.info("HTTP client initialized (stored in app.state for DI)")

        try:
            await init_database()
            logger.info("Database initialized")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

        context.set_server_status(True, context.config.get("server.port", 8000))
        context.log_event("Application started successfully", "SUCCESS")

        yield

        logger.info("Shutting down HR Forms Gateway...")
        await close_db_connections()
        reset_bpm_repository()
        context.set_server_status(False)
        logger.info("Cleanup complete")


def create_fastapi_app(context: AppContext) -> FastAPI:
    """Create the FastAPI application with all routers configured."""
    app = create_base_app(context, lifespan=lifespan, health_details=bpm_health_details)

    app.include_router(bpm_read_router)
    app.include_router(forms_router)
    context.log_event("Registered BPM forms routers", "LOADER")

    return app


# -----------------------------------------------------------------------------
# Module-level Application Instance
# -----------------------------------------------------------------------------

# Setup logging first
setup_logging()

_context = create_app_context()

# Export for uvicorn
app = create_fastapi_app(_context)


# -----------------------------------------------------------------------------
# Direct Execution
# -----------------------------------------------------------------------------


def main() -> None:
    """Run the application directly with uvicorn."""
    host = _context.config.get("server.host", "127.0.0.1")
    port = _context.config.get("server.port", 8000)
    debug = _context.config.get("app.debug", False)

    uvicorn_config = {
        "host": host,
        "port": port,
        "reload": debug,
        "log_level": "warning",  # Suppress uvicorn info logs
        "access_log": False,     # Disable uvicorn access logs
    }

    # If reload is enabled, exclude logs and cache directories
    if debug:
        uvicorn_config["reload_excludes"] = [
            "logs/*",
            "**/__pycache__/*",
            "**/*.pyc",
            ".venv/*",
            "*.log",
        ]

    uvicorn.run("main:app", **uvicorn_config)


if __name__ == "__main__":
    main()
