"""
Storage backends behind one interface.

``build_storage()`` picks the variant named by
``FINCOACH_STORAGE_BACKEND``. Call sites only ever see
``StorageBackend``.
"""
from __future__ import annotations

from typing import Callable, Dict

from ..config import Settings
from ..errors import ConfigurationError
from .base import StorageBackend
from .database import DatabaseStorage
from .filesystem import FileSystemStorage
from .memory import MemoryStorage
from .remote import RemoteStorage


def _build_memory(settings: Settings) -> StorageBackend:
    return MemoryStorage()


def _build_filesystem(settings: Settings) -> StorageBackend:
    return FileSystemStorage(settings.storage_dir)


def _build_remote(settings: Settings) -> StorageBackend:
    base_url = settings.remote_storage_url or settings.app_url
    if not base_url:
        raise ConfigurationError(["FINCOACH_REMOTE_STORAGE_URL"])
    return RemoteStorage(base_url)


def _build_database(settings: Settings) -> StorageBackend:
    if not settings.database_url:
        raise ConfigurationError(["DATABASE_URL"])
    return DatabaseStorage()


STORAGE_BUILDERS: Dict[str, Callable[[Settings], StorageBackend]] = {
    "memory": _build_memory,
    "filesystem": _build_filesystem,
    "remote": _build_remote,
    "database": _build_database,
}


def build_storage(settings: Settings) -> StorageBackend:
    """Construct the durable storage backend selected in ``settings``."""
    return STORAGE_BUILDERS[settings.storage_backend](settings)


__all__ = [
    "DatabaseStorage",
    "FileSystemStorage",
    "MemoryStorage",
    "RemoteStorage",
    "StorageBackend",
    "build_storage",
]
