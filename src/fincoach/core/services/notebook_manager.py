"""
Notebook persistence across storage tiers.

Tiers, in priority order:

1. a volatile cache (normally ``MemoryStorage``),
2. a durable ``StorageBackend`` supplied by the caller,
3. the notebook HTTP API of another fincoach node, used for saving
   only when no durable backend is configured and as the final load
   fallback.

Each tier is independent: one failing never stops the others from being
tried. Concurrent saves of the same notebook are last-write-wins unless
optimistic locking is enabled, in which case a save is refused when the
stored revision is newer than the one the notebook was loaded at.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..errors import NotebookConflictError, NotebookStateError
from ..schemas import NotebookStatus
from ..storage.base import StorageBackend
from ..storage.memory import MemoryStorage
from .notebook import Notebook

logger = logging.getLogger(__name__)

NOTEBOOK_PREFIX = "notebooks/"
CURRENT_KEY = "notebook_current"
LATEST_KEY = "notebook_latest"
FINISHED_STATUSES = frozenset({NotebookStatus.completed.value, NotebookStatus.abandoned.value})
WRITE_ONCE_FIELDS = ("qualitative_report", "quantitative_report", "report_id", "extracted_data")


def notebook_key(notebook_id: str) -> str:
    return f"{NOTEBOOK_PREFIX}{notebook_id}"


def _check_immutable_fields(stored: Dict[str, Any], notebook: Notebook) -> None:
    """Refuse an overwrite that reopens a finished notebook or rewrites a write-once field."""
    incoming = notebook.to_dict()
    status = stored.get("status")
    if status in FINISHED_STATUSES and incoming["status"] != status:
        raise NotebookStateError(f"Notebook {notebook.id} is {status} and cannot become {incoming['status']}")
    for field in WRITE_ONCE_FIELDS:
        if stored.get(field) is not None and incoming[field] != stored[field]:
            raise NotebookStateError(f"Notebook {notebook.id} already has {field}; it cannot be changed")


class NotebookApiClient:
    """Minimal client for the ``/notebooks`` endpoints of a remote node."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/notebooks"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def save(self, payload: Dict[str, Any]) -> bool:
        try:
            response = await self._client.put(f"{self._endpoint}/{payload['id']}", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Remote notebook save failed for %s: %s", payload.get("id"), exc)
            return False
        return True

    async def load(self, notebook_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self._client.get(f"{self._endpoint}/{notebook_id}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Remote notebook load failed for %s: %s", notebook_id, exc)
            return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _parse(raw: Any, source: str) -> Optional[Notebook]:
    if raw is None:
        return None
    try:
        return Notebook.from_dict(raw)
    except (ValidationError, TypeError) as exc:
        logger.warning("Ignoring unreadable notebook from %s: %s", source, exc)
        return None


class NotebookManager:
    def __init__(
        self,
        cache: Optional[StorageBackend] = None,
        storage: Optional[StorageBackend] = None,
        remote: Optional[NotebookApiClient] = None,
        autosave_interval: Optional[float] = 30.0,
        optimistic_locking: bool = False,
    ) -> None:
        self.cache = cache if cache is not None else MemoryStorage()
        self.storage = storage
        self.remote = remote
        self.autosave_interval = autosave_interval
        self.optimistic_locking = optimistic_locking
        self.current: Optional[Notebook] = None
        self._autosave_task: Optional[asyncio.Task] = None

    # Restoring and creating

    async def create_or_restore(
        self,
        therapist_id: str,
        client_name: Optional[str] = None,
        notebook_id: Optional[str] = None,
    ) -> Notebook:
        """Make an active notebook current, restoring one when possible.

        With ``notebook_id`` the cache and durable tiers are searched for
        that notebook; a finished one raises ``NotebookStateError``.
        Without it the current/latest pointers are used, skipping a
        notebook that is finished or belongs to another therapist. When
        nothing qualifies a new notebook is created and saved.
        """
        if notebook_id:
            restored = await self._load_local(notebook_id)
            if restored is not None:
                if not restored.is_active:
                    raise NotebookStateError(f"Notebook {notebook_id} is {restored.status.value}")
                logger.info("Restored notebook %s", notebook_id)
                return self._adopt(restored)
        else:
            candidate = await self._restore_pointer(therapist_id)
            if candidate is not None:
                return self._adopt(candidate)
        return await self._create(therapist_id, client_name, notebook_id)

    async def _restore_pointer(self, therapist_id: str) -> Optional[Notebook]:
        for tier, key in ((self.cache, CURRENT_KEY), (self.storage, LATEST_KEY)):
            if tier is None:
                continue
            candidate = _parse(await tier.load(key), tier.name)
            if candidate is None or not candidate.is_active:
                continue
            if candidate.therapist_id != therapist_id:
                logger.info(
                    "Not restoring notebook %s: it belongs to therapist %s",
                    candidate.id,
                    candidate.therapist_id,
                )
                continue
            logger.info("Restored notebook %s from %s", candidate.id, key)
            return candidate
        return None

    async def create_new(
        self,
        therapist_id: str,
        client_name: Optional[str] = None,
        notebook_id: Optional[str] = None,
    ) -> Notebook:
        """Complete the therapist's active notebook, if any, then start a fresh one."""
        if self.current is None:
            previous = await self._restore_pointer(therapist_id)
            if previous is not None:
                self._adopt(previous)
        if self.current is not None and self.current.is_active:
            await self.complete_session()
        return await self._create(therapist_id, client_name, notebook_id)

    async def resume(self, notebook: Notebook) -> Notebook:
        """Make an already loaded notebook the current one."""
        if self.current is not None and self.current is not notebook:
            await self.close()
        return self._adopt(notebook)

    async def _create(self, therapist_id: str, client_name: Optional[str], notebook_id: Optional[str]) -> Notebook:
        notebook = Notebook.create(therapist_id, client_name=client_name, notebook_id=notebook_id)
        self._adopt(notebook)
        if not await self.save():
            logger.warning("New notebook %s could not be saved yet", notebook.id)
        logger.info("Created notebook %s for therapist %s", notebook.id, therapist_id)
        return notebook

    def _adopt(self, notebook: Notebook) -> Notebook:
        self.current = notebook
        self.start_autosave()
        return notebook

    # Saving

    async def save(self, notebook: Optional[Notebook] = None) -> bool:
        """Write ``notebook`` (default: the current one) to every tier.

        Returns ``True`` and clears the notebook's pending-changes flag
        when a durable tier accepted the write, or when the cache did and
        no durable tier is configured.
        """
        notebook = notebook or self.current
        if notebook is None:
            return False
        key = notebook_key(notebook.id)
        if self.optimistic_locking and self.storage is not None:
            await self._check_revision(notebook)

        revision = notebook.revision + 1
        payload = notebook.to_dict()
        payload["revision"] = revision

        cached = await self.cache.save(key, payload)
        if notebook is self.current:
            cached = await self.cache.save(CURRENT_KEY, payload) and cached

        durable: Optional[bool] = None
        if self.storage is not None:
            durable = await self.storage.save(key, payload)
            if durable:
                await self.storage.save(LATEST_KEY, payload)
        elif self.remote is not None:
            durable = await self.remote.save(payload)

        if durable or (durable is None and cached):
            notebook.mark_saved(revision)
            logger.debug("Saved notebook %s at revision %d", notebook.id, revision)
            return True
        logger.warning("Notebook %s was not saved to durable storage", notebook.id)
        return False

    async def upsert(self, notebook: Notebook) -> bool:
        """Store ``notebook`` exactly as given, keeping its revision.

        Used when another node pushes a notebook it already saved; writing
        the same payload twice leaves storage unchanged. The push may not
        reopen a finished notebook or change anything attached once
        (reports, report id, extracted data); either raises
        ``NotebookStateError``.
        """
        key = notebook_key(notebook.id)
        tier = self.storage if self.storage is not None else self.cache
        stored = await tier.load(key)
        if isinstance(stored, dict):
            if self.optimistic_locking and self.storage is not None:
                stored_revision = int(stored.get("revision") or 0)
                if stored_revision > notebook.revision:
                    raise NotebookConflictError(notebook.id, stored_revision, notebook.revision)
            _check_immutable_fields(stored, notebook)
        payload = notebook.to_dict()
        cached = await self.cache.save(key, payload)
        if self.storage is None:
            return cached
        saved = await self.storage.save(key, payload)
        if saved:
            await self.storage.save(LATEST_KEY, payload)
        return saved

    async def _check_revision(self, notebook: Notebook) -> None:
        stored = await self.storage.load(notebook_key(notebook.id))
        if not isinstance(stored, dict):
            return
        stored_revision = int(stored.get("revision") or 0)
        if stored_revision > notebook.revision:
            raise NotebookConflictError(notebook.id, stored_revision, notebook.revision)

    # Loading

    async def _load_local(self, notebook_id: str) -> Optional[Notebook]:
        key = notebook_key(notebook_id)
        for tier in (self.cache, self.storage):
            if tier is None:
                continue
            notebook = _parse(await tier.load(key), tier.name)
            if notebook is not None:
                return notebook
        return None

    async def load(self, notebook_id: str) -> Optional[Notebook]:
        notebook = await self._load_local(notebook_id)
        if notebook is None and self.remote is not None:
            notebook = _parse(await self.remote.load(notebook_id), "remote")
        return notebook

    async def load_latest(self) -> Optional[Notebook]:
        """Return the notebook behind the latest pointer, current one first."""
        if self.current is not None:
            return self.current
        for tier, key in ((self.cache, CURRENT_KEY), (self.storage, LATEST_KEY)):
            if tier is None:
                continue
            notebook = _parse(await tier.load(key), tier.name)
            if notebook is not None:
                return notebook
        return None

    async def list_notebooks(self) -> List[Notebook]:
        """Every known notebook, deduplicated by id, newest session first."""
        found: Dict[str, Notebook] = {}
        for tier in (self.cache, self.storage):
            if tier is None:
                continue
            for key in sorted(await tier.list(NOTEBOOK_PREFIX)):
                notebook = _parse(await tier.load(key), tier.name)
                if notebook is None:
                    continue
                known = found.get(notebook.id)
                if known is None or notebook.revision > known.revision:
                    found[notebook.id] = notebook
        return sorted(found.values(), key=lambda nb: nb.session_date, reverse=True)

    # Autosave

    def start_autosave(self) -> None:
        if self.autosave_interval is None:
            return
        if self._autosave_task is not None and not self._autosave_task.done():
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop())

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self.autosave_interval)
            notebook = self.current
            if notebook is None or not notebook.has_changes():
                continue
            try:
                await self.save()
            except NotebookConflictError as exc:
                logger.warning("Autosave skipped: %s", exc)

    async def stop_autosave(self) -> None:
        task, self._autosave_task = self._autosave_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # Lifecycle

    async def complete_session(self) -> Optional[Notebook]:
        """Mark the current notebook completed, save it and release it."""
        return await self._finish("completed")

    async def abandon_session(self) -> Optional[Notebook]:
        return await self._finish("abandoned")

    async def _finish(self, outcome: str) -> Optional[Notebook]:
        notebook = self.current
        if notebook is None:
            return None
        if outcome == "completed":
            notebook.mark_completed()
        else:
            notebook.mark_abandoned()
        await self.stop_autosave()
        saved = await self.save()
        if not saved:
            logger.error("Final save of %s notebook %s failed", outcome, notebook.id)
        await self.cache.delete(CURRENT_KEY)
        self.current = None
        logger.info("Notebook %s %s", notebook.id, outcome)
        return notebook

    async def close(self) -> None:
        """Save pending changes and release the current notebook."""
        await self.stop_autosave()
        notebook, self.current = self.current, None
        if notebook is not None and notebook.has_changes():
            await self.save(notebook)
