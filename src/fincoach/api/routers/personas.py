"""
Persona listing router.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ...core.errors import UnknownPersonaError
from ...core.schemas import PersonaOut
from ...core.services import personas as personas_service


router = APIRouter(prefix="/personas", tags=["personas"])


@router.get("", response_model=list[PersonaOut])
async def list_personas() -> list[PersonaOut]:
    return [
        PersonaOut(id=persona.id, name=persona.name, tagline=persona.tagline)
        for persona in personas_service.list_personas()
    ]


@router.get("/{persona_id}", response_model=PersonaOut)
async def get_persona(persona_id: str) -> PersonaOut:
    try:
        persona = personas_service.get_persona(persona_id)
    except UnknownPersonaError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown persona {persona_id}") from exc
    return PersonaOut(id=persona.id, name=persona.name, tagline=persona.tagline)
