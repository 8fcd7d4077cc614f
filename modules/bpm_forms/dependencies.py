"""
BPM Forms Module Dependencies.

Wires settings, HTTP clients and the dual-store repository into the
services used by the routers. Tests replace any of these through
``app.dependency_overrides``.

Usage:
    from modules.bpm_forms.dependencies import SyncServiceDep

    @router.post("/{form_id}/sync")
    async def sync_form(form_id: str, service: SyncServiceDep):
        ...
"""

from typing import Annotated

from fastapi import Depends

from core.database import get_secondary_session_factory, get_session_factory
from core.dependencies import HttpClientDep
from modules.bpm_forms.core.config import BpmSettings, get_bpm_settings
from modules.bpm_forms.services.bpm_client import BpmClient, BpmMiddlewareClient
from modules.bpm_forms.services.bpm_read import BpmReadService
from modules.bpm_forms.services.normalizer import PayloadNormalizer
from modules.bpm_forms.services.repository import BpmFormRepository
from modules.bpm_forms.services.sync import BpmFormSyncService


BpmSettingsDep = Annotated[BpmSettings, Depends(get_bpm_settings)]


# =============================================================================
# Storage
# =============================================================================

_repository: BpmFormRepository | None = None


def get_bpm_repository() -> BpmFormRepository:
    """Get singleton repository bound to the primary and mirror stores."""
    global _repository
    if _repository is None:
        _repository = BpmFormRepository(
            primary=get_session_factory(),
            secondary=get_secondary_session_factory(),
        )
    return _repository


def reset_bpm_repository() -> None:
    """Drop the cached repository (after the engines are disposed)."""
    global _repository
    _repository = None


RepositoryDep = Annotated[BpmFormRepository, Depends(get_bpm_repository)]


# =============================================================================
# Clients
# =============================================================================

def get_bpm_client(http_client: HttpClientDep, settings: BpmSettingsDep) -> BpmClient:
    return BpmClient(http_client, settings)


def get_middleware_client(http_client: HttpClientDep, settings: BpmSettingsDep) -> BpmMiddlewareClient:
    return BpmMiddlewareClient(http_client, settings)


BpmClientDep = Annotated[BpmClient, Depends(get_bpm_client)]
MiddlewareClientDep = Annotated[BpmMiddlewareClient, Depends(get_middleware_client)]


# =============================================================================
# Services
# =============================================================================

def get_sync_service(
    repository: RepositoryDep,
    bpm_client: BpmClientDep,
    settings: BpmSettingsDep,
) -> BpmFormSyncService:
    """Sync orchestrator for one request."""
    return BpmFormSyncService(
        repository=repository,
        bpm_client=bpm_client,
        normalizer=PayloadNormalizer(settings.form_codes()),
    )


SyncServiceDep = Annotated[BpmFormSyncService, Depends(get_sync_service)]


def get_bpm_read_service(
    sync_service: SyncServiceDep,
    middleware: MiddlewareClientDep,
    settings: BpmSettingsDep,
) -> BpmReadService:
    """Batch ingestion service for one request."""
    return BpmReadService(sync_service, middleware, settings)


BpmReadServiceDep = Annotated[BpmReadService, Depends(get_bpm_read_service)]
