from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from terminality.errors import ValidationWarning

from .base import CamelModel
from .filesystem import FilesystemMap
from .security import Door, SecurityRules

SystemScope = Literal["global", "quest_template", "quest_instance"]
SystemType = Literal["terminal_host", "filesystem", "tool", "composite", "one_off"]
LegacyKind = Literal["profile", "template"]
Difficulty = Literal["tutorial", "easy", "medium", "hard", "boss"]

SCOPE_PRIORITY: dict[str, int] = {
    "global": 0,
    "quest_template": 1,
    "quest_instance": 2,
}


class NetworkBindings(CamelModel):
    primary_ip: str | None = None
    ips: list[str] = Field(default_factory=list)
    hostnames: list[str] = Field(default_factory=list)

    @field_validator("ips", "hostnames")
    @classmethod
    def _ordered_set(cls, value):
        return list(dict.fromkeys(item.strip() for item in value if item and item.strip()))

    def addresses(self) -> list[str]:
        """Every address the system answers on, primary first."""
        seen = [self.primary_ip] if self.primary_ip else []
        return list(dict.fromkeys(seen + self.ips + self.hostnames))


class Credentials(CamelModel):
    username: str | None = None
    starting_path: str | None = None
    password: str | None = None


def _overlay(value):
    # Maps are kept as authored (canonical keys, no root injection); the
    # resolver clones them, which repairs the root.
    from terminality.game.filesystem import normalize_overlay_map

    return normalize_overlay_map(value)


class FilesystemConfig(CamelModel):
    root_path: str | None = None
    template_key: str | None = None
    read_only: bool | None = None
    snapshot: FilesystemMap = Field(default_factory=dict)
    overrides: FilesystemMap | None = None

    @field_validator("snapshot", mode="before")
    @classmethod
    def _snapshot(cls, value):
        return _overlay(value)

    @field_validator("overrides", mode="before")
    @classmethod
    def _overrides(cls, value):
        return None if value is None else _overlay(value)


class ToolBinding(CamelModel):
    id: str
    name: str = ""
    command: str
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    options: dict[str, Any] | None = None


class ToolBindingConfig(CamelModel):
    tools: list[ToolBinding] = Field(default_factory=list)


class TerminalHostConfig(CamelModel):
    host_id: str
    address: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    protocol: Literal["ssh", "ws", "local"] | None = None
    open_ports: list[str] | None = None
    flags: dict[str, bool] | None = None


class SystemDefinition(CamelModel):
    id: str
    key: str = ""
    name: str = ""
    label: str = ""
    description: str | None = None
    type: SystemType = "filesystem"
    scope: SystemScope = "global"
    kind: LegacyKind | None = None
    extends_system_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    network: NetworkBindings = Field(default_factory=NetworkBindings)
    credentials: Credentials = Field(default_factory=Credentials)
    metadata: dict[str, Any] = Field(default_factory=dict)
    filesystem: FilesystemConfig | None = None
    tools: ToolBindingConfig | None = None
    host: TerminalHostConfig | None = None
    applies_to: dict[str, str] | None = None
    difficulty: Difficulty | None = None
    personality_blurb: str | None = None
    doors: list[Door] | None = None
    security_rules: SecurityRules | None = None

    @model_validator(mode="before")
    @classmethod
    def _sync_identity(cls, data):
        # key/name/label mirror each other; the first one present wins.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        present = next(
            (data[k] for k in ("label", "name", "key") if isinstance(data.get(k), str) and data[k]),
            None,
        )
        for field in ("key", "name", "label"):
            if data.get(field):
                continue
            if present:
                data[field] = present
            else:
                data.pop(field, None)
        return data

    @model_validator(mode="after")
    def _default_identity_to_id(self):
        # Written past __setattr__ so unnamed systems keep the names out of
        # model_fields_set.
        for field in ("key", "name", "label"):
            if not getattr(self, field):
                self.__dict__[field] = self.id
        return self

    @field_validator("applies_to")
    @classmethod
    def _drop_empty_predicates(cls, value):
        # Empty values act as wildcards.
        if value is None:
            return None
        return {k: v for k, v in value.items() if v}

    @property
    def primary_address(self) -> str | None:
        addresses = self.network.addresses()
        return addresses[0] if addresses else None

    def answers_to(self, address: str) -> bool:
        return address in self.network.addresses()

    def door_by_port(self, port: int) -> Door | None:
        for door in self.doors or []:
            if door.port == port:
                return door
        return None


class ResolutionContext(CamelModel):
    """Which quest/template/instance the resolver is resolving for.

    Extra keys are kept so designers can bind systems to their own context
    values.
    """

    model_config = {"extra": "allow"}

    quest_id: str | None = None
    quest_template_id: str | None = None
    quest_instance_id: str | None = None

    def as_dict(self) -> dict[str, str]:
        return {k: v for k, v in self.model_dump(by_alias=True).items() if isinstance(v, str) and v}


class ResolvedSystemInstance(CamelModel):
    definition: SystemDefinition
    filesystem: FilesystemMap
    source: Literal["definition", "override"] = "definition"
    warnings: list[ValidationWarning] = Field(default_factory=list)
