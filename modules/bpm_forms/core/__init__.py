"""
BPM Forms Module Core Package.

Contains configuration and the module's exception hierarchy.
"""

from modules.bpm_forms.core.config import BpmSettings, get_bpm_settings
from modules.bpm_forms.core.exceptions import (
    BpmConnectionError,
    BpmError,
    BpmResponseError,
    FormNotFoundError,
)

__all__ = [
    "BpmSettings",
    "get_bpm_settings",
    "BpmError",
    "BpmConnectionError",
    "BpmResponseError",
    "FormNotFoundError",
]
