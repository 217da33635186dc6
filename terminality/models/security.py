from typing import Annotated, Literal, Union

from pydantic import Field, field_validator, model_validator

from .base import CamelModel

DoorStatus = Literal["locked", "guarded", "weak_spot", "backdoor"]
NervousEffect = Literal["tighten_doors", "kick_user", "log_only"]
PanicEffect = Literal["kick_user", "lockout", "log_only"]


# ---------------------------------------------------------------------------
# Door unlock conditions
# ---------------------------------------------------------------------------


class AlwaysOpen(CamelModel):
    type: Literal["always_open"] = "always_open"


class AfterFileRead(CamelModel):
    type: Literal["after_file_read"] = "after_file_read"
    file_path: str


class AfterDoorUsed(CamelModel):
    type: Literal["after_door_used"] = "after_door_used"
    door_id: str


class AfterCommandUsed(CamelModel):
    type: Literal["after_command_used"] = "after_command_used"
    command: str


class TraceBelow(CamelModel):
    type: Literal["trace_below"] = "trace_below"
    max_trace: float


DoorUnlockCondition = Annotated[
    Union[AlwaysOpen, AfterFileRead, AfterDoorUsed, AfterCommandUsed, TraceBelow],
    Field(discriminator="type"),
]


def _flatten_condition(value):
    """Accept the designer's ``{type, data: {...}}`` shape as well as flat dicts."""
    if not isinstance(value, dict):
        return value
    flat = {k: v for k, v in value.items() if k != "data"}
    data = value.get("data")
    if isinstance(data, dict):
        for key, item in data.items():
            flat.setdefault(key, item)
    if isinstance(flat.get("type"), str):
        flat["type"] = flat["type"].strip().lower()
    return flat


class Door(CamelModel):
    id: str
    name: str = ""
    port: int = Field(ge=1, le=65535)
    status: DoorStatus = "locked"
    description: str | None = None
    unlock_condition: DoorUnlockCondition | None = None

    @field_validator("unlock_condition", mode="before")
    @classmethod
    def _normalize_condition(cls, value):
        return _flatten_condition(value)

    @property
    def label(self) -> str:
        return self.name or f"{self.port}/tcp"


# ---------------------------------------------------------------------------
# Security rules
# ---------------------------------------------------------------------------


class ActionTraceCosts(CamelModel):
    scan: float | None = None
    deep_scan: float | None = None
    bruteforce: float | None = None
    delete_sensitive_file: float | None = None
    open_trap_file: float | None = None


class SecurityRules(CamelModel):
    max_trace: float = Field(default=100, gt=0)
    nervous_threshold: float = Field(default=60, ge=0)
    panic_threshold: float = Field(default=85, ge=0)
    nervous_effect: NervousEffect = "log_only"
    panic_effect: PanicEffect = "log_only"
    action_trace_costs: ActionTraceCosts = Field(default_factory=ActionTraceCosts)

    @model_validator(mode="after")
    def _ordered_thresholds(self):
        if not (0 <= self.nervous_threshold <= self.panic_threshold <= self.max_trace):
            raise ValueError(
                "thresholds must satisfy 0 <= nervousThreshold <= panicThreshold <= maxTrace"
            )
        return self
