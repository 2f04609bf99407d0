"""
Database models for the relational storage backend.

A single table holds every stored value. Each write lands twice: once
under the day's partition and once under the ``latest`` partition, which
mirrors the directory layout of the filesystem backend.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base

LATEST_PARTITION = "latest"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageRecord(Base):
    """One stored value for a key within a partition."""

    __tablename__ = "storage_records"
    key: Mapped[str] = mapped_column(String(length=512), primary_key=True)
    partition: Mapped[str] = mapped_column(String(length=16), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
