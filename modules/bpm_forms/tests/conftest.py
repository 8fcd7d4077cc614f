"""
Conftest for BPM Forms Module Tests.

Provides SQLite-backed primary/secondary stores, a deliberately failing
mirror, mock engine clients and sample engine payloads.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import create_async_engine

from core.database.session import create_schema, create_session_factory
from modules.bpm_forms.core.config import BpmSettings
from modules.bpm_forms.services.bpm_client import BpmClient, BpmMiddlewareClient
from modules.bpm_forms.services.normalizer import PayloadNormalizer
from modules.bpm_forms.services.repository import BpmFormRepository
from modules.bpm_forms.services.sync import BpmFormSyncService


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def bpm_settings():
    """BpmSettings built explicitly, independent of the environment."""
    return BpmSettings(
        BPM_API_BASE_URL="https://bpm.example.com/api/",
        BPM_API_KEY=SecretStr("test-key"),
        BPM_API_SECRET=SecretStr("test-secret"),
        BPM_MIDDLEWARE_BASE_URL="https://middleware.example.com",
        BPM_READ_BSKEY=SecretStr("test-bskey"),
        BPM_ENVIRONMENT="TEST",
    )


# =============================================================================
# Stores
# =============================================================================

async def _sqlite_store(path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    await create_schema(engine)
    return engine


@pytest.fixture
async def primary_engine(tmp_path):
    engine = await _sqlite_store(tmp_path / "primary.db")
    yield engine
    await engine.dispose()


@pytest.fixture
async def secondary_engine(tmp_path):
    engine = await _sqlite_store(tmp_path / "secondary.db")
    yield engine
    await engine.dispose()


@pytest.fixture
def primary_factory(primary_engine):
    return create_session_factory(primary_engine)


@pytest.fixture
def secondary_factory(secondary_engine):
    return create_session_factory(secondary_engine)


@pytest.fixture
def failing_secondary_factory():
    """Mirror whose every session open fails."""
    return MagicMock(side_effect=ConnectionRefusedError("mirror unreachable"))


@pytest.fixture
def repository(primary_factory, secondary_factory):
    return BpmFormRepository(primary_factory, secondary_factory)


# =============================================================================
# Clients & Services
# =============================================================================

@pytest.fixture
def mock_bpm_client():
    """BpmClient with every engine call mocked."""
    client = MagicMock(spec=BpmClient)
    client.fetch_form_detail = AsyncMock()
    client.search_process_instances = AsyncMock()
    client.abort_process = AsyncMock(return_value=True)
    return client


@pytest.fixture
def mock_middleware_client():
    client = MagicMock(spec=BpmMiddlewareClient)
    client.fetch_process = AsyncMock(return_value=None)
    return client


@pytest.fixture
def normalizer(bpm_settings):
    return PayloadNormalizer(bpm_settings.form_codes())


@pytest.fixture
def sync_service(repository, mock_bpm_client, normalizer):
    return BpmFormSyncService(repository, mock_bpm_client, normalizer)


@pytest.fixture
def mock_httpx_response_factory():
    """Factory for mock httpx responses."""
    def _create_response(status_code=200, json_data=None, raise_for_status_error=None):
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.json.return_value = json_data if json_data is not None else {}
        mock_response.text = str(json_data)
        if raise_for_status_error:
            mock_response.raise_for_status.side_effect = raise_for_status_error
        else:
            mock_response.raise_for_status = MagicMock()
        return mock_response

    return _create_response


@pytest.fixture
def mock_http_client():
    client = MagicMock()
    client.get = AsyncMock()
    client.post = AsyncMock()
    return client


# =============================================================================
# Sample Payloads
# =============================================================================

@pytest.fixture
def sample_leave_detail():
    """Flat form-detail response for an approved leave request."""
    return {
        "status": "COMPLETED",
        "userId": "E100",
        "userName": "Lin Mei",
        "departmentName": "HR",
        "companyId": "C01",
        "formCode": "PI_LEAVE_001",
        "version": "1.2.0",
        "formData": {"leaveType": "ANNUAL", "days": 2},
        "applyDate": "2026-03-02 09:15:00",
        "currentApproverId": "M001",
        "currentApproverName": "Chen Hao",
        "approvalComment": "ok",
    }


@pytest.fixture
def sample_instance_search():
    """Process-instance search response containing two instances."""
    return {
        "processInstances": [
            {"processSerialNo": "OVERTIME-2026-0007", "status": "RUNNING", "userId": "E200"},
            {"processSerialNo": "OVERTIME-2026-0008", "status": "ACTIVE", "userId": "E201"},
        ]
    }


@pytest.fixture
def sample_middleware_detail():
    """Middleware ``data`` object with approval history."""
    return {
        "status": "RUNNING",
        "userName": "Wang Yu",
        "departmentName": "Finance",
        "formData": {"hours": 3},
        "createTime": "2026-04-01T08:00:00Z",
        "approvalHistory": [
            {"sequence": 1, "approverId": "M001", "approverName": "Chen Hao",
             "action": "APPROVE", "comment": "fine", "actionTime": "2026-04-01 10:00:00"},
            {"sequence": 2, "approverId": "M002", "action": "FORWARD"},
        ],
    }
