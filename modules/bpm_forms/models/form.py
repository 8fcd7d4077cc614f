"""
BpmForm Model.

Canonical local record of one BPM process instance. The same table exists in
the primary store (system of record) and the secondary store (mirror).
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.database.base import Base, IntPrimaryKey, TimestampMixin
from modules.bpm_forms.models.enums import FormStatus

# Fields the engine owns; a sync overwrites exactly these on an existing row
EXTERNAL_FIELDS: tuple[str, ...] = (
    "status",
    "bpm_status",
    "form_data",
    "current_approver_id",
    "current_approver_name",
    "approval_comment",
)

# Set only by the gateway; must survive every sync from the engine
LOCAL_CANCEL_FIELDS: tuple[str, ...] = (
    "is_cancelled",
    "cancel_reason",
    "cancel_time",
    "cancelled_by",
)

# Upstream sync bookkeeping; kept as-is on a cancelled row when the engine reports in
SYNC_STATE_FIELDS: tuple[str, ...] = ("is_synced_to_bpm", "sync_error_message")

# Never rewritten once the row exists
IMMUTABLE_FIELDS: tuple[str, ...] = ("id", "created_at")

_DEFAULTS: dict[str, Any] = {
    "form_version": "1.0.0",
    "status": FormStatus.PENDING.value,
    "is_cancelled": False,
    "is_synced_to_bpm": False,
}


class BpmForm(Base, TimestampMixin):
    """
    BPM form table.

    Primary Key: id (surrogate, differs between stores)
    Unique: form_id (the engine's process serial number, the identity used everywhere)
    """

    __tablename__ = "bpm_forms"

    id: Mapped[IntPrimaryKey]

    # === Identity & Classification ===
    form_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True,
        comment="External process serial number",
    )
    form_code: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    form_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    form_version: Mapped[str] = mapped_column(String(10), nullable=False, default="1.0.0")

    # === Ownership ===
    applicant_id: Mapped[str] = mapped_column(String(50), nullable=False, default="", index=True)
    applicant_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    applicant_department: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    company_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    # === Payload ===
    form_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Serialized form-field map")

    # === Process State ===
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=FormStatus.PENDING.value, index=True)
    bpm_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, comment="Raw engine status")
    apply_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    submit_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    current_approver_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    current_approver_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    approval_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # === Local-only Cancellation ===
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancel_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # === Sync Bookkeeping ===
    is_synced_to_bpm: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_sync_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __init__(self, **kwargs: Any) -> None:
        # Column defaults only apply at flush; detached records need them too
        for key, value in _DEFAULTS.items():
            kwargs.setdefault(key, value)
        super().__init__(**kwargs)

    def to_column_dict(self, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
        """Mapped column values keyed by attribute name."""
        return {
            attr.key: getattr(self, attr.key)
            for attr in self.__mapper__.column_attrs
            if attr.key not in exclude
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe snapshot used for sync log payloads."""
        return {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in self.to_column_dict().items()
        }

    def __repr__(self) -> str:
        return f"<BpmForm(form_id={self.form_id}, type={self.form_type}, status={self.status})>"
