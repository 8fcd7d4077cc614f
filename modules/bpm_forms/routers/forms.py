"""
BPM Forms API Router.

Form lookup, sync, cancellation and audit endpoints used by the gateway's
other services.

Typed service failures map to HTTP status codes with a
``{"code": ..., "message": ...}`` detail body.
"""

import logging
from datetime import datetime
from typing import Annotated, Optional, Union

from fastapi import APIRouter, HTTPException, Query, status

from modules.bpm_forms.dependencies import RepositoryDep, SyncServiceDep
from modules.bpm_forms.schemas.forms import (
    ApprovalHistoryResponse,
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
from modules.bpm_forms.services.results import (
    ALREADY_CANCELLED,
    BPM_FETCH_FAILED,
    FORM_NOT_FOUND,
    FormCancelRequest,
    FormCancelResult,
    FormQueryRequest,
    FormSyncRequest,
    FormSyncResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bpm-forms", tags=["BPM Forms"])

ERROR_STATUS = {
    FORM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ALREADY_CANCELLED: status.HTTP_409_CONFLICT,
    BPM_FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
}


# =============================================================================
# Helper Functions
# =============================================================================

def _raise_for_failure(result: Union[FormSyncResult, FormCancelResult]) -> None:
    """Turn a failed service result into an HTTPException."""
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
        detail={"code": result.error_code, "message": result.message},
    )


def _sync_response(result: FormSyncResult) -> FormSyncResponse:
    return FormSyncResponse(
        success=result.success,
        message=result.message,
        form_id=result.form_id,
        error_code=result.error_code,
        is_new_form=result.is_new_form,
        is_updated=result.is_updated,
        form=BpmFormResponse.model_validate(result.form) if result.form else None,
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "",
    response_model=FormListResponse,
    summary="Query stored forms",
)
async def query_forms(
    repository: RepositoryDep,
    form_id: Optional[str] = None,
    form_type: Optional[str] = None,
    applicant_id: Optional[str] = None,
    company_id: Optional[str] = None,
    form_status: Annotated[Optional[str], Query(alias="status")] = None,
    is_cancelled: Optional[bool] = None,
    apply_date_from: Optional[datetime] = None,
    apply_date_to: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 20,
) -> FormListResponse:
    """Filtered, paged listing from the primary store. Never contacts the engine."""
    result = await repository.query(
        FormQueryRequest(
            form_id=form_id,
            form_type=form_type,
            applicant_id=applicant_id,
            company_id=company_id,
            status=form_status,
            is_cancelled=is_cancelled,
            apply_date_from=apply_date_from,
            apply_date_to=apply_date_to,
            page=page,
            page_size=page_size,
        )
    )
    return FormListResponse(
        total_count=result.total_count,
        total_pages=result.total_pages,
        page=result.page,
        page_size=result.page_size,
        forms=[BpmFormResponse.model_validate(form) for form in result.forms],
    )


@router.post(
    "/sync/batch",
    response_model=list[FormSyncResponse],
    summary="Sync several forms from BPM",
)
async def batch_sync_forms(
    request: BatchSyncRequest,
    sync_service: SyncServiceDep,
) -> list[FormSyncResponse]:
    """Each form is synced independently; failures are reported per item."""
    results = await sync_service.batch_sync([
        FormSyncRequest(form_id=item.form_id, form_type=item.form_type, operator_id=item.operator_id)
        for item in request.forms
    ])
    succeeded = sum(1 for result in results if result.success)
    logger.info(f"Batch sync: {succeeded}/{len(results)} forms synced")
    return [_sync_response(result) for result in results]


@router.post(
    "/cancel",
    response_model=FormCancelResponse,
    summary="Cancel a form",
    description="Cancels locally first, then aborts the BPM process when sync_to_bpm is set.",
)
async def cancel_form(
    request: CancelFormRequest,
    sync_service: SyncServiceDep,
) -> FormCancelResponse:
    result = await sync_service.cancel_form(
        FormCancelRequest(
            form_id=request.form_id,
            reason=request.reason,
            operator_id=request.operator_id,
            sync_to_bpm=request.sync_to_bpm,
            form_type=request.form_type,
        )
    )
    _raise_for_failure(result)

    return FormCancelResponse(
        success=True,
        message=result.message,
        form_id=result.form_id,
        synced_to_bpm=result.synced_to_bpm,
        cancel_time=result.cancel_time,
        form=BpmFormResponse.model_validate(result.form) if result.form else None,
    )


@router.get(
    "/cancellable-leave",
    response_model=list[BpmFormResponse],
    summary="Approved leave forms an applicant can still cancel",
)
async def get_cancellable_leave_forms(
    repository: RepositoryDep,
    applicant_id: Annotated[str, Query(min_length=1)],
) -> list[BpmFormResponse]:
    forms = await repository.get_cancellable_leave_forms(applicant_id)
    return [BpmFormResponse.model_validate(form) for form in forms]


@router.get(
    "/{form_id}",
    response_model=BpmFormResponse,
    summary="Get a form, pulling it from BPM if not stored",
)
async def get_form(
    form_id: str,
    sync_service: SyncServiceDep,
    form_type: Optional[str] = None,
) -> BpmFormResponse:
    form = await sync_service.ensure_form_exists(form_id, form_type)
    if form is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": FORM_NOT_FOUND, "message": "Form not found locally or in BPM"},
        )
    return BpmFormResponse.model_validate(form)


@router.post(
    "/{form_id}/sync",
    response_model=FormSyncResponse,
    summary="Sync one form from BPM",
)
async def sync_form(
    form_id: str,
    sync_service: SyncServiceDep,
    request: Optional[SyncFormRequest] = None,
) -> FormSyncResponse:
    request = request or SyncFormRequest()
    result = await sync_service.sync_form_from_bpm(form_id, request.form_type, request.operator_id)
    _raise_for_failure(result)
    return _sync_response(result)


@router.put(
    "/{form_id}/status",
    response_model=FormSyncResponse,
    summary="Update the internal status of a stored form",
)
async def update_form_status(
    form_id: str,
    request: UpdateStatusRequest,
    sync_service: SyncServiceDep,
) -> FormSyncResponse:
    result = await sync_service.update_form_status(form_id, request.status, request.comment)
    _raise_for_failure(result)
    return _sync_response(result)


@router.get(
    "/{form_id}/sync-logs",
    response_model=list[SyncLogResponse],
    summary="Recent sync log entries",
)
async def get_sync_logs(
    form_id: str,
    repository: RepositoryDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> list[SyncLogResponse]:
    logs = await repository.get_sync_logs(form_id, limit)
    return [SyncLogResponse.model_validate(entry) for entry in logs]


@router.get(
    "/{form_id}/approval-history",
    response_model=list[ApprovalHistoryResponse],
    summary="Approval history in sequence order",
)
async def get_approval_history(
    form_id: str,
    repository: RepositoryDep,
) -> list[ApprovalHistoryResponse]:
    history = await repository.get_approval_history(form_id)
    return [ApprovalHistoryResponse.model_validate(entry) for entry in history]


@router.get(
    "/{form_id}/details",
    response_model=FormDetailsResponse,
    summary="Stored form with its approval history",
)
async def get_form_details(
    form_id: str,
    repository: RepositoryDep,
) -> FormDetailsResponse:
    """Primary store only; a form that is not stored is not fetched from BPM."""
    details = await repository.get_form_with_details(form_id)
    if details is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": FORM_NOT_FOUND, "message": "Form not found"},
        )
    return FormDetailsResponse(
        form=BpmFormResponse.model_validate(details.form),
        approval_history=[ApprovalHistoryResponse.model_validate(entry) for entry in details.approval_history],
    )
