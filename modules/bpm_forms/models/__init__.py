"""
BPM Forms Module Database Models.

Importing this package registers every table with Base.metadata.
"""

from modules.bpm_forms.models.enums import FormStatus, FormType, SyncDirection, SyncStatus, SyncType
from modules.bpm_forms.models.form import (
    BpmForm,
    EXTERNAL_FIELDS,
    IMMUTABLE_FIELDS,
    LOCAL_CANCEL_FIELDS,
    SYNC_STATE_FIELDS,
)
from modules.bpm_forms.models.sync_log import BpmFormSyncLog
from modules.bpm_forms.models.approval_history import BpmFormApprovalHistory

__all__ = [
    "BpmForm",
    "BpmFormSyncLog",
    "BpmFormApprovalHistory",
    "EXTERNAL_FIELDS",
    "IMMUTABLE_FIELDS",
    "LOCAL_CANCEL_FIELDS",
    "SYNC_STATE_FIELDS",
    "FormStatus",
    "FormType",
    "SyncDirection",
    "SyncStatus",
    "SyncType",
]
