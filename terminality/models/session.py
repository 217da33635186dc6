from typing import Literal

from pydantic import BaseModel, Field

from .filesystem import FilesystemMap
from .mail import MailMessage
from .quest import QuestOutcome
from .security import DoorStatus

TraceBand = Literal["calm", "nervous", "panic"]
ScanDepth = Literal["basic", "deep"]


class TraceSession(BaseModel):
    """Per-system trace and history signals for one player."""

    system_id: str
    trace_score: float = Field(default=0.0, ge=0)
    unlocked_doors: set[str] = Field(default_factory=set)
    command_history: list[str] = Field(default_factory=list)
    files_read_history: set[str] = Field(default_factory=set)
    highest_band: TraceBand = "calm"
    max_trace_seen: float = 0.0


class QuestSessionState(BaseModel):
    # quest id -> index of the step the player is working on
    active: dict[str, int] = Field(default_factory=dict)
    completed_ids: list[str] = Field(default_factory=list)
    flags: dict[str, str] = Field(default_factory=dict)
    offered_ids: set[str] = Field(default_factory=set)
    first_open_fired: bool = False
    credits: int = 0
    outcomes: dict[str, QuestOutcome] = Field(default_factory=dict)


class MailState(BaseModel):
    delivered: list[MailMessage] = Field(default_factory=list)
    read_ids: set[str] = Field(default_factory=set)


class SessionState(BaseModel):
    """Everything a terminal session needs to survive a save/hydrate cycle."""

    connected_system_id: str | None = None
    # The address the player dialled, which quest steps match against.
    connected_address: str | None = None
    connected_door_id: str | None = None
    current_path: str = "/"
    filesystems: dict[str, FilesystemMap] = Field(default_factory=dict)
    traces: dict[str, TraceSession] = Field(default_factory=dict)
    door_statuses: dict[str, dict[str, DoorStatus]] = Field(default_factory=dict)
    forced_doors: dict[str, set[str]] = Field(default_factory=dict)
    locked_out: set[str] = Field(default_factory=set)
    known_hosts: dict[str, ScanDepth] = Field(default_factory=dict)
    traps_triggered: list[str] = Field(default_factory=list)
    deleted_paths: list[str] = Field(default_factory=list)
    read_paths: list[str] = Field(default_factory=list)
    logs_cleaned: list[str] = Field(default_factory=list)
    max_trace_seen: float = 0.0
    quests: QuestSessionState = Field(default_factory=QuestSessionState)
    mail: MailState = Field(default_factory=MailState)
