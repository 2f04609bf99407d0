"""
Notebook API router.

Create-or-restore, idempotent upsert, lookup, listing, lifecycle
transitions and export of session notebooks. The ``PUT`` endpoint is
also what ``NotebookApiClient`` talks to when a node has no durable
storage of its own.
"""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Path, Query, status
from fastapi.responses import Response
from pydantic import ValidationError

from ..dependencies import NotebookManagerDep
from ...core.schemas import CreateNotebookRequest, NotebookSummary
from ...core.services import export as export_service
from ...core.services.notebook import Notebook
from ...core.services.notebook_manager import NotebookManager


router = APIRouter(prefix="/notebooks", tags=["notebooks"])


async def _require(manager: NotebookManager, notebook_id: str) -> Notebook:
    if notebook_id == "latest":
        notebook = await manager.load_latest()
    else:
        notebook = await manager.load(notebook_id)
    if notebook is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notebook not found")
    return notebook


@router.post("")
async def create_notebook(req: CreateNotebookRequest, manager: NotebookManagerDep) -> Dict[str, Any]:
    """Restore the therapist's active notebook or start a new one."""
    if req.new_session:
        notebook = await manager.create_new(req.therapist_id, req.client_name, req.notebook_id)
    else:
        notebook = await manager.create_or_restore(req.therapist_id, req.client_name, req.notebook_id)
    await manager.close()
    return notebook.to_dict()


@router.get("", response_model=list[NotebookSummary])
async def list_notebooks(manager: NotebookManagerDep) -> list[NotebookSummary]:
    """List notebooks, newest session first."""
    return [notebook.summary() for notebook in await manager.list_notebooks()]


@router.get("/{notebook_id}")
async def get_notebook(
    manager: NotebookManagerDep,
    notebook_id: str = Path(..., description="Notebook id, or 'latest'."),
) -> Dict[str, Any]:
    notebook = await _require(manager, notebook_id)
    return notebook.to_dict()


@router.put("/{notebook_id}")
async def put_notebook(
    payload: Dict[str, Any],
    manager: NotebookManagerDep,
    notebook_id: str = Path(..., description="Identifier of the notebook."),
) -> Dict[str, Any]:
    """Store a full notebook as given. Repeating the request is harmless."""
    try:
        notebook = Notebook.from_dict(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors()) from exc
    if notebook.id != notebook_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Notebook id does not match the path")
    if not await manager.upsert(notebook):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Notebook could not be stored")
    return notebook.to_dict()


@router.post("/{notebook_id}/complete")
async def complete_notebook(manager: NotebookManagerDep, notebook_id: str) -> Dict[str, Any]:
    notebook = await _require(manager, notebook_id)
    await manager.resume(notebook)
    await manager.complete_session()
    return notebook.to_dict()


@router.post("/{notebook_id}/abandon")
async def abandon_notebook(manager: NotebookManagerDep, notebook_id: str) -> Dict[str, Any]:
    notebook = await _require(manager, notebook_id)
    await manager.resume(notebook)
    await manager.abandon_session()
    return notebook.to_dict()


@router.get("/{notebook_id}/export")
async def export_notebook(
    manager: NotebookManagerDep,
    notebook_id: str,
    format: str = Query("json", description="json, csv or txt"),
) -> Response:
    """Download a notebook in the requested format."""
    notebook = await _require(manager, notebook_id)
    try:
        body, media_type = export_service.export_notebook(notebook, format)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    filename = f"session_{notebook.id}.{format.lower()}"
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
