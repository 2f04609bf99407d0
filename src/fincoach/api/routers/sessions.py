"""
Session API router.

Registration of conversations before the voice platform starts sending
turns, registry lookups, and the server-sent event stream a front end
watches during a session.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path, Query, status
from fastapi.responses import StreamingResponse

from ..dependencies import StorageDep
from ...core.schemas import RegisterSessionRequest, RegisterSessionResponse, SessionRecord
from ...core.services.events import DEFAULT_MAX_DURATION, DEFAULT_POLL_INTERVAL, stream_session_events
from ...core.services.registry import SessionRegistry


router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/register", response_model=RegisterSessionResponse, response_model_by_alias=False)
async def register_session(req: RegisterSessionRequest, storage: StorageDep) -> RegisterSessionResponse:
    """Register a conversation handle for a therapist and make it the latest session."""
    registry = SessionRegistry(storage)
    try:
        record = await registry.register(req.conversation_id, req.therapist_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return RegisterSessionResponse(success=True, session=record)


@router.get("/latest", response_model=SessionRecord, response_model_by_alias=False)
async def latest_session(storage: StorageDep) -> SessionRecord:
    """Return the most recently registered session."""
    record = await SessionRegistry(storage).latest()
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No session registered")
    return record


@router.get("/{handle}", response_model=SessionRecord, response_model_by_alias=False)
async def get_session(
    storage: StorageDep,
    handle: str = Path(..., description="Conversation handle used at registration."),
) -> SessionRecord:
    record = await SessionRegistry(storage).lookup(handle)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return record


@router.get("/{session_id}/events")
async def session_events(
    storage: StorageDep,
    session_id: str = Path(..., description="Session whose notebook is watched."),
    poll_interval: float = Query(DEFAULT_POLL_INTERVAL, gt=0, le=30),
    max_duration: float = Query(DEFAULT_MAX_DURATION, gt=0, le=DEFAULT_MAX_DURATION),
) -> StreamingResponse:
    """Stream new user messages and the finished report via SSE."""
    return StreamingResponse(
        stream_session_events(storage, session_id, poll_interval=poll_interval, max_duration=max_duration),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
