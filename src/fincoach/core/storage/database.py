"""
Relational storage backend built on the async SQLAlchemy engine.

Rows are keyed by ``(key, partition)``; ``partition`` is an ISO date or
``latest``. Lookups follow the same order as the filesystem backend.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Optional, Set

from sqlalchemy import delete, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..db import get_async_session_factory, session_scope
from ..models import LATEST_PARTITION, StorageRecord
from .base import StorageBackend, utc_today

logger = logging.getLogger(__name__)


class DatabaseStorage(StorageBackend):
    name = "database"

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self._session_factory = session_factory
        self._today = today

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = get_async_session_factory()
        return self._session_factory

    async def save(self, key: str, value: Any) -> bool:
        try:
            async with session_scope(self.session_factory) as db:
                for partition in (self._today().isoformat(), LATEST_PARTITION):
                    record = await db.get(StorageRecord, (key, partition))
                    if record is None:
                        db.add(StorageRecord(key=key, partition=partition, value=value))
                    else:
                        record.value = value
        except SQLAlchemyError:
            logger.exception("Failed to save key %s", key)
            return False
        return True

    async def load(self, key: str) -> Optional[Any]:
        try:
            async with session_scope(self.session_factory) as db:
                for partition in (LATEST_PARTITION, self._today().isoformat()):
                    record = await db.get(StorageRecord, (key, partition))
                    if record is not None:
                        return record.value
                result = await db.execute(
                    select(StorageRecord)
                    .where(StorageRecord.key == key, StorageRecord.partition != LATEST_PARTITION)
                    .order_by(desc(StorageRecord.partition))
                    .limit(1)
                )
                record = result.scalar_one_or_none()
                return record.value if record is not None else None
        except SQLAlchemyError:
            logger.exception("Error loading key %s", key)
            return None

    async def delete(self, key: str) -> bool:
        try:
            async with session_scope(self.session_factory) as db:
                result = await db.execute(delete(StorageRecord).where(StorageRecord.key == key))
                return (result.rowcount or 0) > 0
        except SQLAlchemyError:
            logger.exception("Error deleting key %s", key)
            return False

    async def list(self, prefix: str = "") -> Set[str]:
        try:
            async with session_scope(self.session_factory) as db:
                query = select(StorageRecord.key).distinct()
                if prefix:
                    query = query.where(StorageRecord.key.startswith(prefix, autoescape=True))
                result = await db.execute(query)
                return set(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Error listing keys with prefix %s", prefix)
            return set()
