"""
Remote storage backend.

Talks to the ``/storage`` endpoints of a running fincoach API (see
``fincoach.api.routers.storage``) over httpx, so several stateless
workers can share one storage node. Transport and HTTP errors are
logged and reported as absence, like every other backend.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Set

import httpx

from .base import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RemoteStorage(StorageBackend):
    name = "remote"

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/storage"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def save(self, key: str, value: Any) -> bool:
        try:
            response = await self._client.post(self._endpoint, json={"key": key, "value": value})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Remote save failed for key %s: %s", key, exc)
            return False
        return True

    async def load(self, key: str) -> Optional[Any]:
        try:
            response = await self._client.get(self._endpoint, params={"key": key})
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json().get("value")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Remote load failed for key %s: %s", key, exc)
            return None

    async def delete(self, key: str) -> bool:
        try:
            response = await self._client.delete(self._endpoint, params={"key": key})
            if response.status_code == 404:
                return False
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Remote delete failed for key %s: %s", key, exc)
            return False
        return True

    async def list(self, prefix: str = "") -> Set[str]:
        try:
            response = await self._client.get(f"{self._endpoint}/list", params={"prefix": prefix})
            response.raise_for_status()
            return set(response.json().get("keys", []))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Remote list failed for prefix %s: %s", prefix, exc)
            return set()

    async def exists(self, key: str) -> bool:
        try:
            response = await self._client.get(f"{self._endpoint}/exists", params={"key": key})
            response.raise_for_status()
            return bool(response.json().get("exists"))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Remote exists check failed for key %s: %s", key, exc)
            return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
