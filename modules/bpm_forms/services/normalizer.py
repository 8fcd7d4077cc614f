"""
BPM Payload Normalizer.

Turns the engine's JSON into a canonical BpmForm. The engine answers in two
shapes:

    - form detail: a flat object carrying ``status``, ``userId``, ``formCode``,
      ``formData`` ... (optionally wrapped in ``{"data": {...}}``)
    - process-instance search: ``{"processInstances": [...]}`` or
      ``{"data": [...]}``, one entry per instance with its serial number

Property names differ between process templates, so every logical field is
read from an ordered list of candidate names (``FIELD_CANDIDATES``). New
engine quirks are added to that table, not to the parsing code.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from modules.bpm_forms.models.enums import FormType
from modules.bpm_forms.models.form import BpmForm
from modules.bpm_forms.services.status_mapper import map_bpm_status

logger = logging.getLogger(__name__)


# =============================================================================
# Candidate Tables
# =============================================================================

FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "status": ("status", "processStatus"),
    "bpm_status": ("bpmStatus", "originalStatus"),
    "applicant_id": ("userId", "applicantId", "employeeNo", "uid"),
    "applicant_name": ("userName", "applicantName", "employeeName"),
    "applicant_department": ("departmentName", "applicantDepartment"),
    "company_id": ("companyId", "companyCode"),
    "form_code": ("formCode", "processCode"),
    "form_version": ("version", "formVersion"),
    "form_data": ("formData", "data"),
    "apply_date": ("applyDate", "createDate", "submitDate", "createTime"),
    "current_approver_id": ("currentApproverId", "approverId"),
    "current_approver_name": ("currentApproverName", "approverName"),
    "approval_comment": ("approvalComment", "comment"),
    "serial_no": ("processSerialNo", "serialNumber"),
    "instances": ("processInstances", "data"),
    "approval_history": ("approvalHistory",),
    # Approval history entries
    "sequence_no": ("sequence", "sequenceNo"),
    "approver_id": ("approverId",),
    "approver_name": ("approverName",),
    "approver_department": ("approverDepartment", "departmentName"),
    "action": ("action",),
    "comment": ("comment",),
    "action_time": ("actionTime",),
}

# Presence of any of these marks a flat form-detail object
DETAIL_MARKERS: tuple[str, ...] = (
    "status",
    "processStatus",
    "userId",
    "applicantId",
    "employeeNo",
    "formCode",
    "processCode",
    "formData",
)

# Ordered (required substrings, form type); first match wins
FORM_TYPE_RULES: tuple[tuple[tuple[str, ...], FormType], ...] = (
    (("CANCEL", "LEAVE"), FormType.CANCEL_LEAVE),
    (("LEAVE",), FormType.LEAVE),
    (("OVERTIME",), FormType.OVERTIME),
    (("BUSINESS",), FormType.BUSINESS_TRIP),
    (("TRIP",), FormType.BUSINESS_TRIP),
    (("ATTENDANCE",), FormType.ATTENDANCE),
    (("EXCEPTION",), FormType.ATTENDANCE),
)

DATETIME_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
)


# =============================================================================
# Field Helpers
# =============================================================================


def pick(data: Mapping[str, Any], field: str) -> Any:
    """
    Return the first present, non-empty value among a field's candidate names.

    Args:
        data: One JSON object from the engine.
        field: Logical field name (a key of FIELD_CANDIDATES).
    """
    for name in FIELD_CANDIDATES[field]:
        value = data.get(name)
        if value is not None and value != "":
            return value
    return None


def pick_str(data: Mapping[str, Any], field: str) -> Optional[str]:
    """Like pick(), but only scalar values, returned as text."""
    for name in FIELD_CANDIDATES[field]:
        value = data.get(name)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def infer_form_type(text: Optional[str]) -> FormType:
    """
    Infer the form type from a form code or form id.

    Case-insensitive substring tests in FORM_TYPE_RULES order.
    """
    if not text:
        return FormType.OTHER
    upper = text.upper()
    for needles, form_type in FORM_TYPE_RULES:
        if all(needle in upper for needle in needles):
            return form_type
    return FormType.OTHER


def resolve_form_type(hint: Optional[str], form_code: Optional[str]) -> FormType:
    """A valid hint wins; otherwise infer from the form code."""
    return FormType.parse(hint) or infer_form_type(form_code)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Best-effort timestamp parsing.

    Accepts ISO 8601 (with or without ``Z``) and the engine's slash/dash
    formats. Naive values are taken as UTC.

    Returns:
        Aware datetime, or None when the value is missing or unparsable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in DATETIME_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def serialize_form_data(value: Any) -> Optional[str]:
    """Store form data as text; objects and arrays become JSON."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


# =============================================================================
# Normalizer
# =============================================================================


class PayloadNormalizer:
    """
    Converts engine payloads into BpmForm records.

    Pure: no I/O. The sync orchestrator feeds it whatever the engine
    returned.
    """

    def __init__(self, form_codes: Mapping[str, str]) -> None:
        """
        Args:
            form_codes: Form code per form type value (LEAVE, OVERTIME, ...).
        """
        self._form_codes = dict(form_codes)

    def default_form_code(self, form_type: Optional[str]) -> str:
        """Configured form code for a type; the leave code when unknown."""
        key = str(form_type).upper() if form_type else ""
        return self._form_codes.get(key, self._form_codes.get(FormType.LEAVE.value, ""))

    def process_code_for(self, form_id: str, hint: Optional[str] = None) -> str:
        """
        Process code used for the process-instance search.

        Resolved from the hint, else inferred from the form id text.
        """
        form_type = resolve_form_type(hint, form_id)
        return f"{self.default_form_code(form_type.value)}_PROCESS"

    @staticmethod
    def unwrap_detail(payload: Any) -> Optional[Mapping[str, Any]]:
        """
        Locate a form-detail object in a response.

        Returns:
            The flat detail object, or None when the payload isn't that shape.
        """
        if not isinstance(payload, Mapping):
            return None
        # {"status": "SUCCESS", "data": {...detail...}} envelopes
        inner = payload.get("data")
        if isinstance(inner, Mapping) and any(marker in inner for marker in DETAIL_MARKERS):
            return inner
        if any(marker in payload for marker in DETAIL_MARKERS):
            return payload
        return None

    @staticmethod
    def find_process_instance(payload: Any, form_id: str) -> Optional[Mapping[str, Any]]:
        """
        Linear scan of a process-instance search result for ``form_id``.

        Returns:
            The matching instance object, or None.
        """
        if not isinstance(payload, Mapping):
            return None
        for name in FIELD_CANDIDATES["instances"]:
            instances = payload.get(name)
            if not isinstance(instances, list):
                continue
            for instance in instances:
                if isinstance(instance, Mapping) and pick_str(instance, "serial_no") == form_id:
                    return instance
            # The first array present is the instance list
            return None
        return None

    def build_form(
        self,
        detail: Mapping[str, Any],
        form_id: str,
        form_type_hint: Optional[str] = None,
    ) -> BpmForm:
        """
        Build a canonical BpmForm from one detail object.

        Args:
            detail: Flat detail object (direct response or matched instance).
            form_id: Requested form id; always wins over any id in the payload.
            form_type_hint: Optional caller-supplied form type.

        Returns:
            Unsaved BpmForm.
        """
        raw_status = pick_str(detail, "status")
        form_code = pick_str(detail, "form_code")
        if not form_code:
            form_code = self.default_form_code(resolve_form_type(form_type_hint, form_id).value)
        form_type = resolve_form_type(form_type_hint, form_code)
        now = datetime.now(timezone.utc)
        apply_date = parse_datetime(pick(detail, "apply_date")) or now

        return BpmForm(
            form_id=form_id,
            form_code=form_code,
            form_type=form_type.value,
            form_version=pick_str(detail, "form_version") or "1.0.0",
            applicant_id=pick_str(detail, "applicant_id") or "",
            applicant_name=pick_str(detail, "applicant_name"),
            applicant_department=pick_str(detail, "applicant_department"),
            company_id=pick_str(detail, "company_id"),
            status=map_bpm_status(raw_status).value,
            bpm_status=pick_str(detail, "bpm_status") or raw_status,
            form_data=serialize_form_data(pick(detail, "form_data")),
            apply_date=apply_date,
            submit_time=apply_date,
            current_approver_id=pick_str(detail, "current_approver_id"),
            current_approver_name=pick_str(detail, "current_approver_name"),
            approval_comment=pick_str(detail, "approval_comment"),
            last_sync_time=now,
        )

    def normalize_detail(
        self,
        payload: Any,
        form_id: str,
        form_type_hint: Optional[str] = None,
    ) -> Optional[BpmForm]:
        """Normalize a form-detail response; None when it isn't that shape."""
        detail = self.unwrap_detail(payload)
        if detail is None:
            logger.debug(f"No form-detail shape in response for {form_id}")
            return None
        return self.build_form(detail, form_id, form_type_hint)

    def normalize_instance_search(
        self,
        payload: Any,
        form_id: str,
        form_type_hint: Optional[str] = None,
    ) -> Optional[BpmForm]:
        """Normalize a process-instance search; None when no instance matches."""
        instance = self.find_process_instance(payload, form_id)
        if instance is None:
            logger.debug(f"No process instance matched {form_id}")
            return None
        return self.build_form(instance, form_id, form_type_hint)
