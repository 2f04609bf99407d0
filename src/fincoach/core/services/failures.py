"""
Persistent log of failed external calls.

Entries are kept as a single capped list in storage. Appends are
read-modify-write, so two concurrent appends can lose one entry; the log
is for trend analysis, not auditing.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import List, Optional

from pydantic import ValidationError

from ..errors import classify_error
from ..schemas import FailureRecord, FailureStats, utc_now
from ..storage.base import StorageBackend

logger = logging.getLogger(__name__)

FAILURE_LOG_KEY = "failures/log"
RECENT_FAILURES = 10


class FailureLog:
    def __init__(self, storage: StorageBackend, limit: int = 1000) -> None:
        self.storage = storage
        self.limit = limit

    async def entries(self) -> List[FailureRecord]:
        raw = await self.storage.load(FAILURE_LOG_KEY)
        if not isinstance(raw, list):
            return []
        records: List[FailureRecord] = []
        for item in raw:
            try:
                records.append(FailureRecord.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed failure log entry")
        return records

    async def append(self, record: FailureRecord) -> bool:
        records = await self.entries()
        records.append(record)
        records = records[-self.limit :]
        saved = await self.storage.save(FAILURE_LOG_KEY, [r.model_dump(mode="json") for r in records])
        if not saved:
            logger.warning("Could not persist failure log entry of type %s", record.type)
        return saved

    async def record_exception(
        self,
        failure_type: str,
        exc: BaseException,
        *,
        therapist_id: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> FailureRecord:
        category = classify_error(exc)
        record = FailureRecord(
            type=failure_type,
            therapist_id=therapist_id,
            topic=topic,
            error=str(exc) or exc.__class__.__name__,
            category=category.value,
        )
        logger.error("%s failure (%s) for therapist %s at %s: %s", failure_type, category.value, therapist_id, topic, exc)
        await self.append(record)
        return record

    async def stats(self) -> FailureStats:
        records = await self.entries()
        cutoff = utc_now() - timedelta(hours=24)
        return FailureStats(
            total=len(records),
            last_24_hours=sum(1 for r in records if r.timestamp > cutoff),
            by_type=dict(Counter(r.type for r in records)),
            by_therapist=dict(Counter(r.therapist_id for r in records if r.therapist_id)),
            by_topic=dict(Counter(r.topic for r in records if r.topic)),
            recent=list(reversed(records[-RECENT_FAILURES:])),
        )
