"""
Raw key/value storage router.

Exposes the configured storage backend over HTTP so that stateless
workers using ``RemoteStorage`` can share one storage node. The node
serving these endpoints must not itself use the remote backend.
"""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query, status

from ..dependencies import StorageDep
from ...core.schemas import StorageWriteRequest


router = APIRouter(prefix="/storage", tags=["storage"])


@router.post("")
async def save_value(req: StorageWriteRequest, storage: StorageDep) -> Dict[str, Any]:
    if not await storage.save(req.key, req.value):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage write failed")
    return {"success": True}


@router.get("")
async def load_value(storage: StorageDep, key: str = Query(..., min_length=1)) -> Dict[str, Any]:
    value = await storage.load(key)
    if value is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Key not found")
    return {"key": key, "value": value}


@router.delete("")
async def delete_value(storage: StorageDep, key: str = Query(..., min_length=1)) -> Dict[str, Any]:
    if not await storage.delete(key):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Key not found")
    return {"success": True}


@router.get("/list")
async def list_keys(storage: StorageDep, prefix: str = Query("")) -> Dict[str, Any]:
    return {"keys": sorted(await storage.list(prefix))}


@router.get("/exists")
async def key_exists(storage: StorageDep, key: str = Query(..., min_length=1)) -> Dict[str, bool]:
    return {"exists": await storage.exists(key)}
