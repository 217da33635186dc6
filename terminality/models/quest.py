from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

TriggerType = Literal["on_first_terminal_open", "on_flag_set", "on_quest_completion"]
StepType = Literal["SCAN_HOST", "CONNECT_HOST", "DELETE_FILE", "DISCONNECT_HOST", "READ_FILE"]
QuestStatus = Literal["not_triggered", "in_progress", "completed"]
QuestOutcome = Literal["success", "stealth", "failure"]
ConditionType = Literal[
    "trace_below",
    "trace_between",
    "bonus_objective_completed",
    "trap_triggered",
    "quest_outcome",
    "world_flag",
]
BonusObjectiveType = Literal[
    "keep_trace_below",
    "avoid_trace_spike",
    "dont_delete_file",
    "exfiltrate_file",
    "retrieve_files",
    "dont_trigger_trap",
    "clean_logs",
    "sanitize_logs",
    "delete_logs",
]


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


class QuestTrigger(BaseModel):
    type: TriggerType
    flag_key: str | None = None
    flag_value: str | None = None
    quest_ids: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value):
        return _lower(value)


class QuestStepHints(BaseModel):
    prompt: str | None = None
    command_example: str | None = None


class QuestStep(BaseModel):
    id: str
    type: StepType
    target_system_id: str | None = None
    params: dict[str, str] = Field(default_factory=dict)
    hints: QuestStepHints | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _upper(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def target_ip(self) -> str | None:
        return self.params.get("target_ip") or None

    @property
    def file_path(self) -> str | None:
        return self.params.get("file_path") or None


class RewardFlag(BaseModel):
    key: str
    value: str = "true"


class QuestRewards(BaseModel):
    credits: int = 0
    flags: list[RewardFlag] = Field(default_factory=list)
    # Catalog mail ids delivered on completion, besides the completion mail.
    mail: list[str] = Field(default_factory=list)

    @field_validator("flags", mode="before")
    @classmethod
    def _plain_flags(cls, value):
        if not isinstance(value, list):
            return value
        return [{"key": item} if isinstance(item, str) else item for item in value]


class QuestRequirements(BaseModel):
    required_flags: list[str] = Field(default_factory=list)
    required_quests: list[str] = Field(default_factory=list)


class MailTemplate(BaseModel):
    model_config = {"populate_by_name": True}

    sender: str | None = Field(default=None, alias="from")
    subject: str
    body: str = ""


class CompletionCondition(BaseModel):
    type: ConditionType
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value):
        return _lower(value)


class CompletionEmailVariant(MailTemplate):
    id: str = ""
    conditions: list[CompletionCondition] = Field(default_factory=list)


class CompletionEmailConfig(BaseModel):
    default: MailTemplate | None = None
    variants: list[CompletionEmailVariant] = Field(default_factory=list)


class RiskProfile(BaseModel):
    max_recommended_trace: float | None = None
    fail_above_trace: float | None = None
    required_trace_spike: float | None = None
    cleanup_before_disconnect: bool = False


class BonusObjective(BaseModel):
    id: str
    description: str = ""
    category: Literal["stealth", "optional", "cleanup"] | None = None
    type: BonusObjectiveType
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value):
        return _lower(value)


class Quest(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    trigger: QuestTrigger
    steps: list[QuestStep] = Field(default_factory=list)
    rewards: QuestRewards = Field(default_factory=QuestRewards)
    requirements: QuestRequirements = Field(default_factory=QuestRequirements)
    completion_flag: str | None = None
    default_system_id: str | None = None
    follow_up_quest_id: str | None = None
    completion_email: CompletionEmailConfig | None = None
    risk_profile: RiskProfile | None = None
    bonus_objectives: list[BonusObjective] = Field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.title or self.id
