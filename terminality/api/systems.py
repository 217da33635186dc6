from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from terminality.errors import SystemResolutionCycleError
from terminality.game import authoring
from terminality.game.system_resolver import resolve_system_instance, resolve_systems_for_context
from terminality.models.system import ResolutionContext

router = APIRouter(prefix="/api/systems", tags=["systems"])


class ResolveRequest(BaseModel):
    systems: list[dict[str, Any]]
    context: ResolutionContext = Field(default_factory=ResolutionContext)


class WarningResponse(BaseModel):
    code: str
    message: str
    subject: str | None = None


class ResolveResponse(BaseModel):
    systems: list[dict[str, Any]]
    warnings: list[WarningResponse]


@router.post("/resolve", response_model=ResolveResponse)
async def resolve(req: ResolveRequest):
    definitions, warnings = authoring.load_system_definitions(req.systems)
    try:
        resolved = resolve_systems_for_context(definitions, req.context)
    except SystemResolutionCycleError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    systems = []
    for definition in resolved:
        instance = resolve_system_instance(definition)
        warnings.extend(instance.warnings)
        systems.append(instance.model_dump(mode="json", by_alias=True, exclude={"warnings"}))
    return ResolveResponse(
        systems=systems,
        warnings=[WarningResponse(code=w.code, message=w.message, subject=w.subject) for w in warnings],
    )
