"""Core module - Application kernel components."""
from core.app_context import AppContext, ConfigLoader
from core.logging_config import setup_logging
from core.server import create_base_app
from core import database

# FastAPI Dependencies (for use with Annotated[..., Depends(...)])
from core.dependencies import (
    HttpClientDep,
    get_client_ip,
    get_http_client,
)

__all__ = [
    "AppContext", "ConfigLoader",
    "create_base_app", "setup_logging", "database",
    # FastAPI Dependencies
    "HttpClientDep",
    "get_http_client", "get_client_ip",
]
