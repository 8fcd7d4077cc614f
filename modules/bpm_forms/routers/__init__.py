"""
BPM Forms Module Routers.
"""

from modules.bpm_forms.routers.bpm_read import router as bpm_read_router
from modules.bpm_forms.routers.forms import router as forms_router

__all__ = ["bpm_read_router", "forms_router"]
