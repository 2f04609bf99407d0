"""
Admin API router.

Provides endpoints for recording and reviewing external-call failures.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..dependencies import SettingsDep, StorageDep
from ...core.schemas import FailureRecord, FailureStats
from ...core.services.failures import FailureLog


router = APIRouter(prefix="/admin", tags=["admin"])


class FailureReport(BaseModel):
    """A failure observed by a client, e.g. a speech service that timed out."""

    failure_type: str = Field(..., min_length=1)
    therapist_id: Optional[str] = None
    current_topic: Optional[str] = None
    error_message: Optional[str] = None


@router.post("/failures", response_model=FailureRecord)
async def log_failure(req: FailureReport, storage: StorageDep, settings: SettingsDep) -> FailureRecord:
    """Append a client-reported failure to the failure log."""
    record = FailureRecord(
        type=req.failure_type,
        therapist_id=req.therapist_id,
        topic=req.current_topic,
        error=req.error_message or "",
    )
    if not await FailureLog(storage, limit=settings.failure_log_limit).append(record):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failure log could not be written")
    return record


@router.get("/failures", response_model=FailureStats)
async def failure_stats(storage: StorageDep, settings: SettingsDep) -> FailureStats:
    """Return aggregate failure statistics and the ten most recent failures."""
    return await FailureLog(storage, limit=settings.failure_log_limit).stats()
