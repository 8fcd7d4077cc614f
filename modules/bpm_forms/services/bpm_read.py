"""
BPM Read (Batch Ingestion) Service.

Handles the BPM middleware's batch push of form events:

    1. Reject the whole batch (203) on a wrong/missing bskey, a blank company
       id or an empty batch, before any side effect.
    2. Per item: skip malformed items and items without a process serial
       number, look up richer detail from the middleware (optional), persist
       with create-if-absent / update-if-present, append reported approval
       history.
    3. Reply 200 if at least one item was persisted, else 203.

Item failures are isolated; a single bad item never fails the batch.
"""

import json
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from modules.bpm_forms.core.config import BpmSettings
from modules.bpm_forms.models import (
    BpmForm,
    BpmFormApprovalHistory,
    BpmFormSyncLog,
    SyncDirection,
    SyncStatus,
    SyncType,
)
from modules.bpm_forms.schemas.bpm_read import (
    BpmDataItem,
    BpmReadRequest,
    BpmReadResponse,
    BpmReadResponseData,
)
from modules.bpm_forms.services.bpm_client import BpmMiddlewareClient
from modules.bpm_forms.services.normalizer import (
    infer_form_type,
    parse_datetime,
    pick,
    pick_str,
    serialize_form_data,
)
from modules.bpm_forms.services.status_mapper import map_bpm_status
from modules.bpm_forms.services.sync import BpmFormSyncService

logger = logging.getLogger(__name__)

# Reply codes/messages expected by the middleware
CODE_SUCCESS = "200"
CODE_REJECTED = "203"
CODE_ERROR = "500"
MSG_SUCCESS = "成功"
MSG_REJECTED = "請求失敗，主要條件不符合"
MSG_ERROR = "伺服器錯誤"


def _rejected() -> BpmReadResponse:
    return BpmReadResponse(code=CODE_REJECTED, msg=MSG_REJECTED)


class BpmReadService:
    """
    Batch ingestion of middleware pushes.

    Args:
        sync_service: Orchestrator providing the shared persistence path.
        middleware: Client for richer per-item detail.
        settings: Module settings (bskey).
    """

    def __init__(
        self,
        sync_service: BpmFormSyncService,
        middleware: BpmMiddlewareClient,
        settings: BpmSettings,
    ) -> None:
        self._sync = sync_service
        self._repository = sync_service.repository
        self._middleware = middleware
        self._settings = settings

    def validate_bskey(self, bskey: Optional[str]) -> bool:
        """Constant-time comparison against the configured key. An unset key rejects everything."""
        expected = self._settings.read_bskey.get_secret_value()
        if not expected or not bskey:
            return False
        return secrets.compare_digest(bskey.encode("utf-8"), expected.encode("utf-8"))

    async def process(self, payload: Any) -> BpmReadResponse:
        """
        Process one batch push.

        Args:
            payload: Decoded JSON body as sent by the middleware.

        Returns:
            BpmReadResponse with code 200 / 203 / 500.
        """
        try:
            return await self._process(payload)
        except Exception as e:
            logger.error(f"BPM read batch failed: {e}", exc_info=True)
            return BpmReadResponse(code=CODE_ERROR, msg=MSG_ERROR)

    async def _process(self, payload: Any) -> BpmReadResponse:
        try:
            request = BpmReadRequest.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"BPM read request rejected: invalid body ({e.error_count()} errors)")
            return _rejected()

        if not self.validate_bskey(request.bskey):
            logger.warning("BPM read request rejected: bskey mismatch")
            return _rejected()

        company_id = (request.company_id or "").strip()
        if not company_id:
            logger.warning("BPM read request rejected: missing company id")
            return _rejected()

        if not request.bpm_data:
            logger.warning("BPM read request rejected: empty batch")
            return _rejected()

        logger.info(f"BPM read batch: company={company_id}, items={len(request.bpm_data)}")

        success_count = 0
        fail_count = 0
        for index, raw_item in enumerate(request.bpm_data):
            try:
                item = BpmDataItem.model_validate(raw_item)
            except ValidationError as e:
                logger.warning(f"BPM read item #{index} skipped: malformed ({e.error_count()} errors)")
                fail_count += 1
                continue

            serial_no = (item.process_serial_no or "").strip()
            if not serial_no:
                logger.warning("BPM read item skipped: missing processSerialNo")
                fail_count += 1
                continue

            try:
                await self._process_item(serial_no, item, company_id)
                success_count += 1
            except Exception as e:
                logger.error(f"BPM read item {serial_no} failed: {e}", exc_info=True)
                fail_count += 1

        logger.info(f"BPM read batch done: success={success_count}, failed={fail_count}")

        if success_count == 0:
            return _rejected()

        return BpmReadResponse(
            code=CODE_SUCCESS,
            msg=MSG_SUCCESS,
            data=BpmReadResponseData(status=f"請求成功，已處理 {success_count} 筆資料"),
        )

    async def _process_item(self, serial_no: str, item: BpmDataItem, company_id: str) -> None:
        detail = await self._middleware.fetch_process(serial_no)
        form = self.build_form(serial_no, item, company_id, detail)

        saved, is_new = await self._sync.persist_external_form(form)
        logger.info(f"BPM read item {serial_no} {'created' if is_new else 'updated'}")

        await self._repository.log_sync(
            BpmFormSyncLog(
                form_id=serial_no,
                sync_type=SyncType.PUSH.value,
                sync_direction=SyncDirection.IN.value,
                sync_status=SyncStatus.SUCCESS.value,
                request_data=item.model_dump_json(exclude_none=True),
                response_data=json.dumps(detail, ensure_ascii=False, default=str) if detail else None,
                operator_id=item.uid,
            )
        )

        if detail:
            for entry in self.build_history(serial_no, detail):
                await self._repository.add_approval_history(entry)

    @staticmethod
    def build_form(
        serial_no: str,
        item: BpmDataItem,
        company_id: str,
        detail: Optional[Mapping[str, Any]],
    ) -> BpmForm:
        """
        Build the form record for one pushed item.

        The item supplies identity, code, version and applicant; the optional
        middleware detail supplies status, names, dates and form data.
        """
        detail = detail or {}
        now = datetime.now(timezone.utc)
        form_code = item.form_code or pick_str(detail, "form_code") or ""
        raw_status = pick_str(detail, "status")
        created = parse_datetime(pick(detail, "apply_date")) or now

        return BpmForm(
            form_id=serial_no,
            form_code=form_code,
            form_type=infer_form_type(form_code).value,
            form_version=item.version or "1.0.0",
            applicant_id=item.uid or pick_str(detail, "applicant_id") or "",
            applicant_name=pick_str(detail, "applicant_name"),
            applicant_department=pick_str(detail, "applicant_department"),
            company_id=company_id,
            status=map_bpm_status(raw_status).value,
            bpm_status=raw_status,
            form_data=serialize_form_data(pick(detail, "form_data")),
            apply_date=created,
            submit_time=created,
            last_sync_time=now,
        )

    @staticmethod
    def build_history(form_id: str, detail: Mapping[str, Any]) -> list[BpmFormApprovalHistory]:
        """Approval history entries reported in the middleware detail."""
        records = pick(detail, "approval_history")
        if not isinstance(records, list):
            return []

        entries: list[BpmFormApprovalHistory] = []
        for record in records:
            if not isinstance(record, Mapping):
                continue
            try:
                sequence_no = int(pick(record, "sequence_no") or 0)
            except (TypeError, ValueError):
                sequence_no = 0
            entries.append(
                BpmFormApprovalHistory(
                    form_id=form_id,
                    sequence_no=sequence_no,
                    approver_id=pick_str(record, "approver_id") or "",
                    approver_name=pick_str(record, "approver_name"),
                    approver_department=pick_str(record, "approver_department"),
                    action=pick_str(record, "action") or "",
                    comment=pick_str(record, "comment"),
                    action_time=parse_datetime(pick(record, "action_time")),
                )
            )
        return entries
