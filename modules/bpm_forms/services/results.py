"""
BPM Form Service Requests and Results.

Plain dataclasses passed between the repository, the sync orchestrator and
the routers. Failures that callers are expected to handle are reported
through ``error_code``, never raised.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from modules.bpm_forms.models.approval_history import BpmFormApprovalHistory
from modules.bpm_forms.models.form import BpmForm

# Stable error codes
FORM_NOT_FOUND = "FORM_NOT_FOUND"
ALREADY_CANCELLED = "ALREADY_CANCELLED"
BPM_FETCH_FAILED = "BPM_FETCH_FAILED"


@dataclass
class FormCancelRequest:
    form_id: str
    reason: str = ""
    operator_id: str = ""
    sync_to_bpm: bool = True
    form_type: Optional[str] = None


@dataclass
class FormSyncRequest:
    form_id: str
    form_type: Optional[str] = None
    operator_id: Optional[str] = None


@dataclass
class FormQueryRequest:
    """Filters and paging for Query. Paging is clamped by normalized()."""

    form_id: Optional[str] = None
    form_type: Optional[str] = None
    applicant_id: Optional[str] = None
    company_id: Optional[str] = None
    status: Optional[str] = None
    is_cancelled: Optional[bool] = None
    apply_date_from: Optional[datetime] = None
    apply_date_to: Optional[datetime] = None
    page: int = 1
    page_size: int = 20

    def normalized(self) -> "FormQueryRequest":
        self.page = max(1, self.page)
        self.page_size = min(100, max(1, self.page_size))
        return self


@dataclass
class FormSyncResult:
    """Outcome of a sync, save or status update."""

    success: bool
    message: str
    form_id: str
    form: Optional[BpmForm] = None
    error_code: Optional[str] = None
    is_new_form: bool = False
    is_updated: bool = False

    @classmethod
    def failure(cls, form_id: str, error_code: str, message: str) -> "FormSyncResult":
        return cls(success=False, message=message, form_id=form_id, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "form_id": self.form_id,
            "error_code": self.error_code,
            "is_new_form": self.is_new_form,
            "is_updated": self.is_updated,
        }


@dataclass
class FormCancelResult:
    """Outcome of a cancellation."""

    success: bool
    message: str
    form_id: str
    form: Optional[BpmForm] = None
    error_code: Optional[str] = None
    synced_to_bpm: bool = False
    cancel_time: Optional[datetime] = None

    @classmethod
    def failure(cls, form_id: str, error_code: str, message: str) -> "FormCancelResult":
        return cls(success=False, message=message, form_id=form_id, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "form_id": self.form_id,
            "error_code": self.error_code,
            "synced_to_bpm": self.synced_to_bpm,
            "cancel_time": self.cancel_time.isoformat() if self.cancel_time else None,
        }


@dataclass
class FormQueryResult:
    forms: list[BpmForm] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0


@dataclass
class FormDetails:
    """A stored form with its approval history in sequence order."""

    form: BpmForm
    approval_history: list[BpmFormApprovalHistory] = field(default_factory=list)
