"""
BpmFormApprovalHistory Model.

Ordered approval actions reported by the engine for one form.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.database.base import Base, CreatedAt, IntPrimaryKey


class BpmFormApprovalHistory(Base):
    """
    Approval history table.

    Unique: (form_id, sequence_no), so re-pushed history is never duplicated.
    """

    __tablename__ = "bpm_form_approval_history"
    __table_args__ = (
        UniqueConstraint("form_id", "sequence_no", name="uq_bpm_approval_history_form_seq"),
    )

    id: Mapped[IntPrimaryKey]
    form_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    approver_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    approver_department: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[CreatedAt]

    def __repr__(self) -> str:
        return f"<BpmFormApprovalHistory(form_id={self.form_id}, seq={self.sequence_no}, action={self.action})>"
