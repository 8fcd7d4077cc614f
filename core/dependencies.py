"""
FastAPI Dependencies - Dependency Injection for API Routers.

Provides `Annotated[Service, Depends(get_service)]` patterns for
clean dependency injection in FastAPI route handlers.

Usage:
    from core.dependencies import HttpClientDep

    def get_bpm_client(http_client: HttpClientDep) -> BpmClient:
        ...
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request

from core.http_client import get_http_client_from_app


# =============================================================================
# HTTP Client Dependencies
# =============================================================================

def get_http_client(request: Request) -> httpx.AsyncClient:
    """
    FastAPI dependency for shared HTTP client.

    Raises:
        RuntimeError: If HTTP client is not available.
    """
    return get_http_client_from_app(request.app)


HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]


# =============================================================================
# Request Helpers
# =============================================================================

def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for reverse proxy setups),
    then falls back to direct client IP.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs; take the first (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
