"""
Database Engine Management Module.

Provides the two AsyncEngine singletons used by the gateway:
    - primary engine: the authoritative store (DATABASE_URL)
    - secondary engine: the best-effort mirror (SECONDARY_DATABASE_URL, optional)

SSL Configuration (asyncpg URLs only):
    DATABASE_SSL_MODE controls SSL behavior:
    - "verify-full": Full SSL verification with certificate check
    - "require": Require SSL but don't verify certificate (default)
    - "prefer": Same as require for asyncpg
    - "disable": No SSL (only for local development)

    DATABASE_SSL_CERT_PATH: Path to CA certificate file (required for verify-full mode)
"""

import logging
import ssl
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.app_context import ConfigLoader

_logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_secondary_engine: AsyncEngine | None = None


def _permissive_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _get_ssl_context(ssl_mode: str, cert_path: str = "") -> ssl.SSLContext | None:
    """
    Create SSL context for asyncpg based on the configured SSL mode.

    Returns:
        ssl.SSLContext for verify-full / require / prefer modes
        None for disable mode
    """
    if ssl_mode == "disable":
        _logger.warning(
            "DATABASE_SSL_MODE=disable: SSL is disabled. "
            "This is insecure and should only be used for local development."
        )
        return None

    if ssl_mode == "verify-full":
        if not cert_path:
            _logger.error(
                "DATABASE_SSL_MODE=verify-full requires DATABASE_SSL_CERT_PATH. "
                "Falling back to 'require' mode."
            )
            return _permissive_context()
        try:
            ctx = ssl.create_default_context(cafile=cert_path)
            ctx.check_hostname = True
            ctx.verify_mode = ssl.CERT_REQUIRED
            _logger.info(f"SSL mode: verify-full with cert: {cert_path}")
            return ctx
        except (OSError, ssl.SSLError) as e:
            _logger.error(
                f"Failed to load SSL certificate from {cert_path}: {e}. "
                "Falling back to 'require' mode."
            )
            return _permissive_context()

    if ssl_mode not in ("require", "prefer"):
        _logger.warning(f"Unknown DATABASE_SSL_MODE '{ssl_mode}'. Using 'require' mode.")

    return _permissive_context()


def _build_engine(database_url: str, config_loader: ConfigLoader, pool_size: int, max_overflow: int) -> AsyncEngine:
    """Create an AsyncEngine, adding asyncpg SSL and pool options where they apply."""
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}

    if database_url.startswith("postgresql+asyncpg"):
        kwargs["pool_size"] = pool_size
        kwargs["max_overflow"] = max_overflow
        kwargs["connect_args"] = {
            "ssl": _get_ssl_context(
                config_loader.get("database.ssl_mode", "require"),
                config_loader.get("database.ssl_cert_path", ""),
            ),
        }

    return create_async_engine(database_url, **kwargs)


def get_engine() -> AsyncEngine:
    """
    Get or create the primary async database engine (singleton).

    Returns:
        AsyncEngine: SQLAlchemy async engine for the authoritative store.
    """
    global _engine

    if _engine is None:
        config_loader = ConfigLoader()
        config_loader.load()
        database_url = str(config_loader.get("database.url", ""))
        _engine = _build_engine(database_url, config_loader, pool_size=20, max_overflow=40)

    return _engine


def get_secondary_engine() -> AsyncEngine | None:
    """
    Get or create the mirror store engine (singleton).

    Returns:
        AsyncEngine, or None when SECONDARY_DATABASE_URL is not set.
    """
    global _secondary_engine

    if _secondary_engine is None:
        config_loader = ConfigLoader()
        config_loader.load()
        if not config_loader.is_secondary_store_configured():
            return None
        database_url = str(config_loader.get("database.secondary_url"))
        # Mirror traffic is low volume; keep its pool small
        _secondary_engine = _build_engine(database_url, config_loader, pool_size=5, max_overflow=5)

    return _secondary_engine


async def close_engine() -> None:
    """
    Close both database engines and release all connections.

    Should be called during application shutdown.
    """
    global _engine, _secondary_engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None

    if _secondary_engine is not None:
        await _secondary_engine.dispose()
        _secondary_engine = None
