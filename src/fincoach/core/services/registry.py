"""
Session registry.

The front end registers each conversation before the voice platform
starts sending turns. The turn handler never receives that handle
itself, so it reads the most recently registered record instead,
retrying with backoff to ride out a registration that is still in
flight.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

from ..schemas import SessionRecord, utc_now
from ..storage.base import StorageBackend

logger = logging.getLogger(__name__)

REGISTRY_PREFIX = "sessions/registry_"
RESERVED_HANDLE = "latest"
REGISTRY_LATEST_KEY = f"{REGISTRY_PREFIX}{RESERVED_HANDLE}"

Sleep = Callable[[float], Awaitable[None]]


def registry_key(handle: str) -> str:
    return f"{REGISTRY_PREFIX}{handle}"


class SessionRegistry:
    def __init__(self, storage: StorageBackend, sleep: Sleep = asyncio.sleep) -> None:
        self.storage = storage
        self._sleep = sleep

    async def register(self, handle: str, therapist_id: str) -> SessionRecord:
        """Record ``handle`` and make it the latest session.

        Raises ``ValueError`` for an empty handle or therapist id, or for
        the handle ``latest``, whose key holds the latest pointer. Raises
        ``RuntimeError`` when either write is rejected by storage.
        """
        if not handle or not handle.strip():
            raise ValueError("conversation handle is required")
        if handle.strip() == RESERVED_HANDLE:
            raise ValueError(f"conversation handle {RESERVED_HANDLE!r} is reserved")
        if not therapist_id or not therapist_id.strip():
            raise ValueError("therapist id is required")
        record = SessionRecord(session_id=handle, therapist_id=therapist_id, registered_at=utc_now())
        payload = record.model_dump(mode="json", by_alias=True)
        saved_handle = await self.storage.save(registry_key(handle), payload)
        saved_latest = await self.storage.save(REGISTRY_LATEST_KEY, payload)
        if not (saved_handle and saved_latest):
            raise RuntimeError(f"Failed to persist registration for session {handle}")
        logger.info("Registered session %s for therapist %s", handle, therapist_id)
        return record

    async def _read(self, key: str) -> Optional[SessionRecord]:
        raw = await self.storage.load(key)
        if raw is None:
            return None
        try:
            return SessionRecord.model_validate(raw)
        except ValidationError:
            logger.warning("Ignoring corrupt registry record at %s", key)
            return None

    async def lookup(self, handle: str) -> Optional[SessionRecord]:
        return await self._read(registry_key(handle))

    async def latest(self) -> Optional[SessionRecord]:
        return await self._read(REGISTRY_LATEST_KEY)

    async def resolve(self, max_retries: int = 3, initial_delay: float = 0.1) -> Optional[SessionRecord]:
        """Return the latest record, polling up to ``max_retries`` times.

        Waits ``initial_delay``, then twice that, and so on between
        attempts; there is no wait after the last one. Returns ``None``
        when every attempt comes back empty.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, max_retries)),
            wait=wait_exponential(multiplier=initial_delay, min=0, max=60),
            retry=retry_if_result(lambda record: record is None),
            retry_error_callback=lambda state: None,
            sleep=self._sleep,
            before_sleep=lambda state: logger.debug(
                "No registered session yet (attempt %d)", state.attempt_number
            ),
        )
        record = await retrying(self.latest)
        if record is None:
            logger.warning("Could not resolve a session after %d attempts", max_retries)
        return record
