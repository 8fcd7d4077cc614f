"""
BPM Status Mapper.

Maps the engine's status vocabulary onto the gateway's FormStatus.
"""

from typing import Optional

from modules.bpm_forms.models.enums import FormStatus

BPM_STATUS_MAP: dict[str, FormStatus] = {
    "ACTIVE": FormStatus.PENDING,
    "RUNNING": FormStatus.PROCESSING,
    "PROCESSING": FormStatus.PROCESSING,
    "COMPLETED": FormStatus.APPROVED,
    "APPROVED": FormStatus.APPROVED,
    "REJECTED": FormStatus.REJECTED,
    "TERMINATED": FormStatus.CANCELLED,
    "CANCELLED": FormStatus.CANCELLED,
    "ABORTED": FormStatus.WITHDRAWN,
    "WITHDRAWN": FormStatus.WITHDRAWN,
}


def map_bpm_status(bpm_status: Optional[str]) -> FormStatus:
    """
    Map a raw engine status to the internal status.

    Unknown or missing values map to PENDING, never to a terminal state.

    Args:
        bpm_status: Status string as reported by the engine (any case).

    Returns:
        FormStatus: Internal status.
    """
    if not bpm_status:
        return FormStatus.PENDING
    return BPM_STATUS_MAP.get(bpm_status.strip().upper(), FormStatus.PENDING)
