"""
BPM Read Router.

Endpoint the BPM middleware pushes batches of form events to. It always
answers HTTP 200; the outcome is carried in the body's ``code``.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Request

from core.dependencies import get_client_ip
from modules.bpm_forms.dependencies import BpmReadServiceDep
from modules.bpm_forms.services.bpm_read import CODE_REJECTED, MSG_REJECTED

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/app", tags=["BPM Read"])


@router.post("/bpmread", summary="Batch ingestion from the BPM middleware")
async def bpm_read(request: Request, service: BpmReadServiceDep) -> dict[str, Any]:
    """
    Receive a batch push.

    The body is read raw so that malformed input still gets the
    middleware's 203 reply instead of a 422.
    """
    client_ip = get_client_ip(request)
    logger.info(f"BPM read push received from {client_ip}")

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"BPM read request from {client_ip} rejected: body is not JSON ({e})")
        return {"code": CODE_REJECTED, "msg": MSG_REJECTED}

    response = await service.process(payload)
    return response.model_dump(exclude_none=True)
