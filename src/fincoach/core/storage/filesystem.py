"""
Filesystem storage backend.

Layout under the storage root::

    <root>/2025-01-31/<encoded key>.json   one copy per day written
    <root>/latest/<encoded key>.json       most recent copy of each key

Keys are percent-encoded into file names, so any key (including ones
containing ``/``) maps to a single file and decodes back unchanged.

Every file is written to a temporary sibling and renamed into place, so
a reader never sees a half-written copy.

``load`` reads the latest slot first, then today's partition, then every
partition newest first, skipping any copy that cannot be parsed. The
scan is linear in the number of partitions but always finds a value
that was written under any date.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Callable, List, Optional, Set
from urllib.parse import quote, unquote

from ..utils.serialization import json_dumps, json_loads
from .base import StorageBackend, utc_today

logger = logging.getLogger(__name__)

LATEST_DIR = "latest"
PARTITION_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def encode_key(key: str) -> str:
    return quote(key, safe="") + ".json"


def decode_key(filename: str) -> str:
    return unquote(filename[: -len(".json")])


def _write_atomic(path: Path, content: str) -> None:
    """Write to a temporary sibling, then rename it over ``path``.

    The temporary name does not end in ``.json`` so listings never see it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=".", suffix=".tmp", delete=False
    ) as handle:
        handle.write(content)
        tmp_name = handle.name
    try:
        os.replace(tmp_name, path)
    except OSError:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


class FileSystemStorage(StorageBackend):
    name = "filesystem"

    def __init__(self, root: str | Path, today: Callable[[], date] = utc_today) -> None:
        self.root = Path(root)
        self._today = today

    def _partition_dir(self, day: date) -> Path:
        return self.root / day.isoformat()

    def _latest_path(self, key: str) -> Path:
        return self.root / LATEST_DIR / encode_key(key)

    def _partitions(self) -> List[Path]:
        """Date partitions, newest first."""
        if not self.root.is_dir():
            return []
        dirs = [p for p in self.root.iterdir() if p.is_dir() and PARTITION_PATTERN.match(p.name)]
        return sorted(dirs, key=lambda p: p.name, reverse=True)

    # Blocking implementations, run in a worker thread.

    def _save_sync(self, key: str, value: Any) -> None:
        content = json_dumps(value, pretty=True)
        partition = self._partition_dir(self._today())
        _write_atomic(partition / encode_key(key), content)
        _write_atomic(self._latest_path(key), content)

    def _load_sync(self, key: str) -> Optional[Any]:
        candidates = [self._latest_path(key), self._partition_dir(self._today()) / encode_key(key)]
        candidates.extend(partition / encode_key(key) for partition in self._partitions())
        for path in candidates:
            if not path.is_file():
                continue
            try:
                return json_loads(path.read_bytes())
            except (ValueError, OSError) as exc:
                logger.warning("Skipping unreadable copy %s of key %s: %s", path, key, exc)
        return None

    def _delete_sync(self, key: str) -> bool:
        removed = False
        for path in [self._latest_path(key), *(p / encode_key(key) for p in self._partitions())]:
            if path.is_file():
                path.unlink()
                removed = True
        return removed

    def _list_sync(self, prefix: str) -> Set[str]:
        keys: Set[str] = set()
        directories = [*self._partitions(), self.root / LATEST_DIR]
        for directory in directories:
            if not directory.is_dir():
                continue
            for path in directory.glob("*.json"):
                key = decode_key(path.name)
                if key.startswith(prefix):
                    keys.add(key)
        return keys

    async def save(self, key: str, value: Any) -> bool:
        try:
            await asyncio.to_thread(self._save_sync, key, value)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to save key %s", key)
            return False
        return True

    async def load(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self._load_sync, key)
        except Exception:  # noqa: BLE001
            logger.exception("Error loading key %s", key)
            return None

    async def delete(self, key: str) -> bool:
        try:
            return await asyncio.to_thread(self._delete_sync, key)
        except Exception:  # noqa: BLE001
            logger.exception("Error deleting key %s", key)
            return False

    async def list(self, prefix: str = "") -> Set[str]:
        try:
            return await asyncio.to_thread(self._list_sync, prefix)
        except Exception:  # noqa: BLE001
            logger.exception("Error listing keys with prefix %s", prefix)
            return set()
