"""
Conversational webhook router.

The voice/chat platform posts every turn here and speaks the returned
``content``. Configuration problems surface as a structured 500; any
other unexpected failure still returns a speakable body that carries
the incoming variables back unchanged.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ..dependencies import SettingsDep, StorageDep
from ...core.errors import ConfigurationError
from ...core.schemas import TurnRequest, TurnResponse
from ...core.services import turns as turns_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/turn", response_model=TurnResponse)
async def process_turn(req: TurnRequest, storage: StorageDep, settings: SettingsDep):
    """Process one conversational turn and return the reply and updated variables."""
    try:
        return await turns_service.process_turn(req, storage, settings)
    except ConfigurationError:
        raise
    except Exception:  # noqa: BLE001
        logger.exception("Turn processing failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"content": turns_service.TECHNICAL_DIFFICULTY_REPLY, "variables": dict(req.variables)},
        )
