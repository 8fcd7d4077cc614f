"""
BPM Forms Module Schemas.

Pydantic models for the batch ingestion endpoint and the form API.
"""

from modules.bpm_forms.schemas.bpm_read import (
    BpmDataItem,
    BpmReadRequest,
    BpmReadResponse,
    BpmReadResponseData,
)
from modules.bpm_forms.schemas.forms import (
    ApprovalHistoryResponse,
    BatchSyncItem,
    BatchSyncRequest,
    BpmFormResponse,
    CancelFormRequest,
    FormCancelResponse,
    FormDetailsResponse,
    FormListResponse,
    FormSyncResponse,
    SyncFormRequest,
    SyncLogResponse,
    UpdateStatusRequest,
)

__all__ = [
    "BpmDataItem",
    "BpmReadRequest",
    "BpmReadResponse",
    "BpmReadResponseData",
    "ApprovalHistoryResponse",
    "BatchSyncItem",
    "BatchSyncRequest",
    "BpmFormResponse",
    "CancelFormRequest",
    "FormCancelResponse",
    "FormDetailsResponse",
    "FormListResponse",
    "FormSyncResponse",
    "SyncFormRequest",
    "SyncLogResponse",
    "UpdateStatusRequest",
]
