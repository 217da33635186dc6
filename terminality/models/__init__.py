"""Pydantic shapes for authoring payloads and session state."""
from .effects import CommandResult, Effect
from .filesystem import FilesystemMap, FilesystemNode
from .mail import MailMessage
from .quest import Quest
from .security import Door, SecurityRules
from .session import QuestSessionState, SessionState, TraceSession
from .system import ResolutionContext, ResolvedSystemInstance, SystemDefinition

__all__ = [
    "CommandResult",
    "Door",
    "Effect",
    "FilesystemMap",
    "FilesystemNode",
    "MailMessage",
    "Quest",
    "QuestSessionState",
    "ResolutionContext",
    "ResolvedSystemInstance",
    "SecurityRules",
    "SessionState",
    "SystemDefinition",
    "TraceSession",
]
