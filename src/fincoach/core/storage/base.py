"""
Storage backend interface.

Every persistence tier (volatile cache, filesystem, remote API, database)
implements this one contract. Backends swallow their own I/O errors and
log them: ``load`` returns ``None`` and ``save``/``delete`` return
``False``, so callers check return values instead of catching exceptions.
"""
from __future__ import annotations

import abc
from datetime import date, datetime, timezone
from typing import Any, Optional, Set


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class StorageBackend(abc.ABC):
    """Async key/value store with a per-key "latest" slot."""

    name = "abstract"

    @abc.abstractmethod
    async def save(self, key: str, value: Any) -> bool:
        """Persist ``value`` under ``key``; return whether the write succeeded."""

    @abc.abstractmethod
    async def load(self, key: str) -> Optional[Any]:
        """Return the most recent value for ``key`` or ``None``."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove every stored copy of ``key``."""

    @abc.abstractmethod
    async def list(self, prefix: str = "") -> Set[str]:
        """Return the keys starting with ``prefix``."""

    async def exists(self, key: str) -> bool:
        return await self.load(key) is not None

    async def aclose(self) -> None:
        """Release any client resources held by the backend."""
        return None
