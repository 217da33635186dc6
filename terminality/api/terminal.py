"""Stateless terminal endpoint: the client sends its save envelope with every
command and gets the updated envelope back."""
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from terminality.commands import dispatch
from terminality.errors import SystemResolutionCycleError
from terminality.game import authoring, starter_content
from terminality.game.system_resolver import resolve_systems_for_context
from terminality.models.effects import CommandResult
from terminality.models.system import ResolutionContext
from terminality.terminal.session import TerminalSession

router = APIRouter(prefix="/api/terminal", tags=["terminal"])


class ContentPayload(BaseModel):
    """Authored content to play against; omitted parts use the starter content."""

    systems: list[dict[str, Any]] | None = None
    quests: list[dict[str, Any]] | None = None
    mail: list[dict[str, Any]] | None = None
    context: ResolutionContext = Field(default_factory=ResolutionContext)


class CommandRequest(BaseModel):
    command: str
    envelope: dict[str, Any] | None = None
    content: ContentPayload = Field(default_factory=ContentPayload)


class OpenRequest(BaseModel):
    envelope: dict[str, Any] | None = None
    content: ContentPayload = Field(default_factory=ContentPayload)


class CommandResponse(BaseModel):
    result: CommandResult
    envelope: dict[str, Any]
    prompt: str


def _build_session(envelope, content: ContentPayload) -> TerminalSession:
    if content.systems is None:
        systems = starter_content.default_systems()
    else:
        systems, _ = authoring.load_system_definitions(content.systems)
    try:
        systems = resolve_systems_for_context(systems, content.context)
    except SystemResolutionCycleError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if content.quests is None:
        quests = starter_content.default_quests()
    else:
        quests, _ = authoring.load_quests(content.quests)
    if content.mail is None:
        mail = starter_content.default_mail()
    else:
        mail, _ = authoring.load_mail(content.mail)
    return TerminalSession.from_envelope(envelope, systems, quests, mail)


def _respond(session: TerminalSession, result: CommandResult | None, envelope) -> CommandResponse:
    # Other desktop and story entries in the envelope travel back untouched.
    desktop = story = None
    if isinstance(envelope, dict):
        desktop = envelope.get("desktop") if isinstance(envelope.get("desktop"), dict) else None
        story = envelope.get("story") if isinstance(envelope.get("story"), dict) else None
    return CommandResponse(
        result=result or CommandResult(),
        envelope=session.to_envelope(desktop=desktop, story=story),
        prompt=session.prompt,
    )


@router.post("/open", response_model=CommandResponse)
async def open_terminal(req: OpenRequest):
    session = _build_session(req.envelope, req.content)
    result = session.open_terminal()
    return _respond(session, result, req.envelope)


@router.post("/command", response_model=CommandResponse)
async def run_command(req: CommandRequest):
    session = _build_session(req.envelope, req.content)
    result = dispatch(req.command, session)
    return _respond(session, result, req.envelope)
