"""
In-process storage, used as the volatile cache tier and in tests.

Values are deep-copied on the way in and out so a caller mutating a
loaded snapshot never changes what the cache holds.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, Optional, Set

from .base import StorageBackend


class MemoryStorage(StorageBackend):
    name = "memory"

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    async def save(self, key: str, value: Any) -> bool:
        self._values[key] = copy.deepcopy(value)
        return True

    async def load(self, key: str) -> Optional[Any]:
        if key not in self._values:
            return None
        return copy.deepcopy(self._values[key])

    async def delete(self, key: str) -> bool:
        return self._values.pop(key, None) is not None

    async def list(self, prefix: str = "") -> Set[str]:
        return {key for key in self._values if key.startswith(prefix)}

    def clear(self) -> None:
        self._values.clear()
