from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .quest import QuestStatus
from .security import DoorStatus
from .session import TraceBand


class DoorStatusChange(BaseModel):
    kind: Literal["door_status"] = "door_status"
    system_id: str
    door_id: str
    old_status: DoorStatus
    new_status: DoorStatus


class TraceChanged(BaseModel):
    kind: Literal["trace"] = "trace"
    system_id: str
    action: str
    delta: float
    trace: float
    band: TraceBand


class TraceEffectFired(BaseModel):
    kind: Literal["trace_effect"] = "trace_effect"
    system_id: str
    band: Literal["nervous", "panic"]
    effect: Literal["tighten_doors", "kick_user", "lockout", "log_only"]
    door_changes: list[DoorStatusChange] = Field(default_factory=list)


class DoorUnlocked(BaseModel):
    kind: Literal["door_unlocked"] = "door_unlocked"
    system_id: str
    door_id: str


class QuestTransition(BaseModel):
    kind: Literal["quest"] = "quest"
    quest_id: str
    from_status: QuestStatus
    to_status: QuestStatus
    step_index: int | None = None


class MailDelivered(BaseModel):
    kind: Literal["mail"] = "mail"
    mail_id: str
    subject: str


class FlagSet(BaseModel):
    kind: Literal["flag"] = "flag"
    key: str
    value: str = "true"


class SessionKicked(BaseModel):
    kind: Literal["session_kicked"] = "session_kicked"
    system_id: str


class SystemLockedOut(BaseModel):
    kind: Literal["lockout"] = "lockout"
    system_id: str


Effect = Annotated[
    Union[
        TraceChanged,
        TraceEffectFired,
        DoorStatusChange,
        DoorUnlocked,
        QuestTransition,
        MailDelivered,
        FlagSet,
        SessionKicked,
        SystemLockedOut,
    ],
    Field(discriminator="kind"),
]


class CommandResult(BaseModel):
    ok: bool = True
    output: list[str] = Field(default_factory=list)
    effects: list[Effect] = Field(default_factory=list)

    @classmethod
    def fail(cls, message: str, effects=None) -> "CommandResult":
        return cls(ok=False, output=[message], effects=effects or [])

    @property
    def text(self) -> str:
        return "\n".join(self.output)
