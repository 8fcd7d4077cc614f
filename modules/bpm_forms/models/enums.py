"""
BPM Form Enums.

Vocabulary shared by the models, the normalizer and the API schemas.
Columns store the plain string values.
"""

from enum import Enum


class FormType(str, Enum):
    """Business process a form belongs to."""

    LEAVE = "LEAVE"
    OVERTIME = "OVERTIME"
    BUSINESS_TRIP = "BUSINESS_TRIP"
    CANCEL_LEAVE = "CANCEL_LEAVE"
    ATTENDANCE = "ATTENDANCE"
    OTHER = "OTHER"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | None) -> "FormType | None":
        """Case-insensitive lookup; None for blank or unknown values."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class FormStatus(str, Enum):
    """
    Gateway-internal form status.

    The engine's raw status is kept separately in ``bpm_status``.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    WITHDRAWN = "WITHDRAWN"

    def __str__(self) -> str:
        return self.value


class SyncType(str, Enum):
    FETCH = "FETCH"
    PUSH = "PUSH"
    CANCEL = "CANCEL"

    def __str__(self) -> str:
        return self.value


class SyncDirection(str, Enum):
    IN = "IN"
    OUT = "OUT"

    def __str__(self) -> str:
        return self.value


class SyncStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"

    def __str__(self) -> str:
        return self.value
