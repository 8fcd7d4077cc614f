"""
Form API Schemas.

Request/response models for the ``/api/bpm-forms`` endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from modules.bpm_forms.models.enums import FormStatus


class BaseSchema(BaseModel):
    """Base schema reading ORM attributes."""

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Requests
# =============================================================================


class SyncFormRequest(BaseModel):
    form_type: Optional[str] = Field(None, description="Form type hint (LEAVE, OVERTIME, ...)")
    operator_id: Optional[str] = Field(None, description="Who triggered the sync")


class BatchSyncItem(BaseModel):
    form_id: str = Field(..., min_length=1)
    form_type: Optional[str] = None
    operator_id: Optional[str] = None


class BatchSyncRequest(BaseModel):
    forms: list[BatchSyncItem] = Field(..., min_length=1, max_length=100)


class CancelFormRequest(BaseModel):
    form_id: str = Field(..., min_length=1)
    reason: str = Field("", description="Cancellation reason")
    operator_id: str = Field(..., min_length=1, description="Who cancels the form")
    sync_to_bpm: bool = Field(True, description="Also abort the process in the BPM engine")
    form_type: Optional[str] = Field(None, description="Form type hint used if the form must be fetched")


class UpdateStatusRequest(BaseModel):
    status: FormStatus
    comment: Optional[str] = None


# =============================================================================
# Responses
# =============================================================================


class BpmFormResponse(BaseSchema):
    form_id: str
    form_code: str
    form_type: str
    form_version: str
    applicant_id: str
    applicant_name: Optional[str] = None
    applicant_department: Optional[str] = None
    company_id: Optional[str] = None
    form_data: Optional[str] = None
    status: str
    bpm_status: Optional[str] = None
    apply_date: Optional[datetime] = None
    submit_time: Optional[datetime] = None
    current_approver_id: Optional[str] = None
    current_approver_name: Optional[str] = None
    approval_comment: Optional[str] = None
    is_cancelled: bool
    cancel_reason: Optional[str] = None
    cancel_time: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    is_synced_to_bpm: bool
    last_sync_time: Optional[datetime] = None
    sync_error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FormSyncResponse(BaseModel):
    success: bool
    message: str
    form_id: str
    error_code: Optional[str] = None
    is_new_form: bool = False
    is_updated: bool = False
    form: Optional[BpmFormResponse] = None


class FormCancelResponse(BaseModel):
    success: bool
    message: str
    form_id: str
    error_code: Optional[str] = None
    synced_to_bpm: bool = False
    cancel_time: Optional[datetime] = None
    form: Optional[BpmFormResponse] = None


class FormListResponse(BaseModel):
    total_count: int
    total_pages: int
    page: int
    page_size: int
    forms: list[BpmFormResponse]


class SyncLogResponse(BaseSchema):
    form_id: str
    sync_type: str
    sync_direction: str
    sync_status: str
    request_data: Optional[str] = None
    response_data: Optional[str] = None
    error_message: Optional[str] = None
    operator_id: Optional[str] = None
    sync_time: datetime


class ApprovalHistoryResponse(BaseSchema):
    sequence_no: int
    approver_id: str
    approver_name: Optional[str] = None
    approver_department: Optional[str] = None
    action: str
    comment: Optional[str] = None
    action_time: Optional[datetime] = None


class FormDetailsResponse(BaseModel):
    form: BpmFormResponse
    approval_history: list[ApprovalHistoryResponse]
