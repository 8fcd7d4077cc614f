"""
BPM Forms Module Services.
"""

from modules.bpm_forms.services.bpm_client import BpmClient, BpmMiddlewareClient
from modules.bpm_forms.services.bpm_read import BpmReadService
from modules.bpm_forms.services.normalizer import PayloadNormalizer
from modules.bpm_forms.services.repository import BpmFormRepository
from modules.bpm_forms.services.status_mapper import map_bpm_status
from modules.bpm_forms.services.sync import BpmFormSyncService

__all__ = [
    "BpmClient",
    "BpmMiddlewareClient",
    "BpmReadService",
    "PayloadNormalizer",
    "BpmFormRepository",
    "map_bpm_status",
    "BpmFormSyncService",
]
