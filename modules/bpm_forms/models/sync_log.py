"""
BpmFormSyncLog Model.

Append-only audit trail of every synchronization attempt between the gateway
and the BPM engine.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.database.base import Base, IntPrimaryKey, utc_now


class BpmFormSyncLog(Base):
    """Sync audit table. Rows are never updated or deleted."""

    __tablename__ = "bpm_form_sync_logs"

    id: Mapped[IntPrimaryKey]
    form_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="FETCH / PUSH / CANCEL")
    sync_direction: Mapped[str] = mapped_column(String(10), nullable=False, comment="IN / OUT")
    sync_status: Mapped[str] = mapped_column(String(20), nullable=False, comment="SUCCESS / FAILED / PARTIAL")
    request_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    operator_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sync_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    def __repr__(self) -> str:
        return (
            f"<BpmFormSyncLog(form_id={self.form_id}, {self.sync_type}/{self.sync_direction}, "
            f"status={self.sync_status})>"
        )
