"""
Shared FastAPI dependencies.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from ..core.config import Settings, get_settings
from ..core.services.notebook_manager import NotebookManager
from ..core.storage import StorageBackend, build_storage


@lru_cache(maxsize=1)
def get_storage_backend() -> StorageBackend:
    """Return the process-wide durable storage backend."""
    return build_storage(get_settings())


def get_notebook_manager(
    storage: Annotated[StorageBackend, Depends(get_storage_backend)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> NotebookManager:
    """A request-scoped manager; requests never share a current notebook."""
    return NotebookManager(
        storage=storage,
        autosave_interval=None,
        optimistic_locking=settings.notebook_optimistic_locking,
    )


SettingsDep = Annotated[Settings, Depends(get_settings)]
StorageDep = Annotated[StorageBackend, Depends(get_storage_backend)]
NotebookManagerDep = Annotated[NotebookManager, Depends(get_notebook_manager)]
