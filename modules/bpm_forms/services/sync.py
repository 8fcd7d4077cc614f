"""
BPM Form Sync Service.

Decides whether a form is served from the primary store or pulled from the
BPM engine, reconciles pulled state with locally-owned fields, and records
every attempt in the sync log.

Per form id: ABSENT -> FETCHING -> PERSISTED | FETCH_FAILED.

    - A stored row is authoritative for reads; only an explicit sync refreshes it.
    - Engine unavailability is reported as BPM_FETCH_FAILED, never raised.
    - Local cancellation is immediate and wins over anything the engine reports;
      upstream cancellation is eventual.
    - Primary-store errors propagate.
"""

import json
import logging
from typing import Any, Optional

from core.database.base import utc_now
from modules.bpm_forms.core.exceptions import BpmError
from modules.bpm_forms.models import (
    BpmForm,
    BpmFormSyncLog,
    FormStatus,
    SyncDirection,
    SyncStatus,
    SyncType,
)
from modules.bpm_forms.services.bpm_client import BpmClient
from modules.bpm_forms.services.normalizer import PayloadNormalizer
from modules.bpm_forms.services.repository import BpmFormRepository
from modules.bpm_forms.services.results import (
    BPM_FETCH_FAILED,
    FORM_NOT_FOUND,
    FormCancelRequest,
    FormCancelResult,
    FormSyncRequest,
    FormSyncResult,
)

logger = logging.getLogger(__name__)

UPSTREAM_CANCEL_FAILED = "BPM cancel sync failed"


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)


class BpmFormSyncService:
    """
    Sync orchestrator between the BPM engine and the dual-store repository.

    Args:
        repository: Dual-store repository.
        bpm_client: BPM engine client.
        normalizer: Payload normalizer configured with the form codes.
    """

    def __init__(
        self,
        repository: BpmFormRepository,
        bpm_client: BpmClient,
        normalizer: PayloadNormalizer,
    ) -> None:
        self._repository = repository
        self._client = bpm_client
        self._normalizer = normalizer

    @property
    def repository(self) -> BpmFormRepository:
        return self._repository

    # =========================================================================
    # Read Path
    # =========================================================================

    async def ensure_form_exists(self, form_id: str, form_type: Optional[str] = None) -> Optional[BpmForm]:
        """
        Get a form, pulling it from the engine on a local miss.

        Returns:
            The stored form, or None if it is neither stored nor fetchable.
        """
        form = await self._repository.get_by_id(form_id)
        if form is not None:
            return form

        result = await self.sync_form_from_bpm(form_id, form_type)
        return result.form if result.success else None

    async def get_form_with_sync(self, form_id: str, form_type: Optional[str] = None) -> Optional[BpmForm]:
        return await self.ensure_form_exists(form_id, form_type)

    async def sync_form_from_bpm(
        self,
        form_id: str,
        form_type: Optional[str] = None,
        operator_id: Optional[str] = None,
    ) -> FormSyncResult:
        """
        Pull a form from the engine and persist it.

        Args:
            form_id: External process serial number.
            form_type: Optional form type hint.
            operator_id: Who triggered the sync, for the audit trail.

        Returns:
            FormSyncResult; BPM_FETCH_FAILED when the engine had nothing usable.
        """
        logger.info(f"Syncing form {form_id} from BPM (type hint: {form_type})")
        request_data = _dump({"form_id": form_id, "form_type": form_type})

        fetched = await self._fetch_form_from_bpm(form_id, form_type)
        if fetched is None:
            await self._log(
                form_id, SyncType.FETCH, SyncDirection.IN, SyncStatus.FAILED,
                request_data=request_data,
                error_message="Unable to fetch form from BPM",
                operator_id=operator_id,
            )
            return FormSyncResult.failure(form_id, BPM_FETCH_FAILED, "Unable to fetch form from BPM")

        saved, is_new = await self.persist_external_form(fetched)

        await self._log(
            form_id, SyncType.FETCH, SyncDirection.IN, SyncStatus.SUCCESS,
            request_data=request_data,
            response_data=_dump(saved.to_dict()),
            operator_id=operator_id,
        )
        return FormSyncResult(
            success=True,
            message="Form created from BPM" if is_new else "Form updated from BPM",
            form_id=form_id,
            form=saved,
            is_new_form=is_new,
            is_updated=not is_new,
        )

    async def batch_sync(self, requests: list[FormSyncRequest]) -> list[FormSyncResult]:
        """Sync each request in turn; one failure never affects the others."""
        results: list[FormSyncResult] = []
        for request in requests:
            results.append(
                await self.sync_form_from_bpm(request.form_id, request.form_type, request.operator_id)
            )
        return results

    async def persist_external_form(self, form: BpmForm) -> tuple[BpmForm, bool]:
        """
        Write an engine-sourced record, preserving what the gateway owns.

        On an existing row the record's engine-owned fields overwrite it while
        ``id``, ``created_at`` and the four cancellation fields are kept. A
        locally cancelled row also keeps its upstream sync bookkeeping, since
        the engine has not necessarily seen the cancel. Both are decided by the
        repository against the row it writes, so a cancel committed mid-sync
        is never undone.

        Returns:
            (saved form, True if this call created the row)
        """
        form.last_sync_time = utc_now()
        form.is_synced_to_bpm = True
        form.sync_error_message = None
        return await self._repository.save_external(form)

    async def _fetch_form_from_bpm(self, form_id: str, form_type: Optional[str]) -> Optional[BpmForm]:
        """
        Direct form lookup first, process-instance search as the fallback.

        Returns:
            Normalized form, or None when neither shape yields a match.
        """
        try:
            payload = await self._client.fetch_form_detail(form_id)
            form = self._normalizer.normalize_detail(payload, form_id, form_type)
            if form is not None:
                return form
            logger.warning(f"BPM form detail for {form_id} had no usable shape; trying instance search")
        except BpmError as e:
            logger.warning(f"BPM form detail lookup failed for {form_id}: {e}; trying instance search")

        process_code = self._normalizer.process_code_for(form_id, form_type)
        try:
            payload = await self._client.search_process_instances(form_id, process_code)
        except BpmError as e:
            logger.warning(f"BPM process-instance search failed for {form_id}: {e}")
            return None

        form = self._normalizer.normalize_instance_search(payload, form_id, form_type)
        if form is None:
            logger.warning(f"BPM process-instance search found no match for {form_id} ({process_code})")
        return form

    # =========================================================================
    # Write Path
    # =========================================================================

    async def cancel_form(self, request: FormCancelRequest) -> FormCancelResult:
        """
        Cancel a form locally, then propagate to the engine if requested.

        The local cancellation is durable before the engine is contacted. An
        upstream failure is recorded on the form and in the sync log as
        PARTIAL, and the call still succeeds.
        """
        logger.info(f"Cancelling form {request.form_id} (operator: {request.operator_id})")

        form = await self.ensure_form_exists(request.form_id, request.form_type)
        if form is None:
            return FormCancelResult.failure(
                request.form_id, FORM_NOT_FOUND, "Form not found locally or in BPM"
            )

        result = await self._repository.cancel(request)
        if not result.success:
            return result

        request_data = _dump({
            "form_id": request.form_id,
            "reason": request.reason,
            "operator_id": request.operator_id,
            "sync_to_bpm": request.sync_to_bpm,
        })

        if not request.sync_to_bpm:
            await self._log(
                request.form_id, SyncType.CANCEL, SyncDirection.OUT, SyncStatus.SUCCESS,
                request_data=request_data,
                operator_id=request.operator_id,
            )
            result.message = "Form cancelled locally"
            return result

        cancelled = result.form
        error_message: Optional[str] = None
        try:
            synced = await self._client.abort_process(
                request.form_id, request.operator_id, request.reason
            )
            if not synced:
                error_message = UPSTREAM_CANCEL_FAILED
        except BpmError as e:
            logger.error(f"Upstream cancel failed for {request.form_id}: {e}")
            synced = False
            error_message = str(e)

        cancelled.is_synced_to_bpm = synced
        cancelled.sync_error_message = error_message
        cancelled = await self._repository.update(cancelled)

        await self._log(
            request.form_id, SyncType.CANCEL, SyncDirection.OUT,
            SyncStatus.SUCCESS if synced else SyncStatus.PARTIAL,
            request_data=request_data,
            error_message=error_message,
            operator_id=request.operator_id,
        )

        result.form = cancelled
        result.synced_to_bpm = synced
        result.message = "Form cancelled (synced to BPM)" if synced else "Form cancelled (BPM sync pending)"
        return result

    async def save_form_to_local(self, form: BpmForm) -> FormSyncResult:
        """Create or merge a gateway-submitted form and log the push."""
        saved = await self._repository.create_or_update(form)
        await self._log(
            form.form_id, SyncType.PUSH, SyncDirection.IN, SyncStatus.SUCCESS,
            request_data=_dump(saved.to_dict()),
            operator_id=form.applicant_id or None,
        )
        return FormSyncResult(success=True, message="Form saved", form_id=form.form_id, form=saved)

    async def update_form_status(
        self,
        form_id: str,
        status: FormStatus,
        comment: Optional[str] = None,
    ) -> FormSyncResult:
        """Set the internal status (and optional approval comment) of a stored form."""
        form = await self._repository.get_by_id(form_id)
        if form is None:
            return FormSyncResult.failure(form_id, FORM_NOT_FOUND, "Form not found")

        form.status = FormStatus(status).value
        if comment is not None:
            form.approval_comment = comment
        saved = await self._repository.update(form)

        return FormSyncResult(
            success=True,
            message="Form status updated",
            form_id=form_id,
            form=saved,
            is_updated=True,
        )

    # =========================================================================
    # Audit
    # =========================================================================

    async def _log(
        self,
        form_id: str,
        sync_type: SyncType,
        direction: SyncDirection,
        status: SyncStatus,
        request_data: Optional[str] = None,
        response_data: Optional[str] = None,
        error_message: Optional[str] = None,
        operator_id: Optional[str] = None,
    ) -> None:
        await self._repository.log_sync(
            BpmFormSyncLog(
                form_id=form_id,
                sync_type=sync_type.value,
                sync_direction=direction.value,
                sync_status=status.value,
                request_data=request_data,
                response_data=response_data,
                error_message=error_message,
                operator_id=operator_id or None,
            )
        )
