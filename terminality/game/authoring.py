"""Authoring boundary -- turn designer JSON into validated models.

Payloads come from an external store and may be loosely typed.  Each loader
validates item by item: a bad item is skipped and reported as a
``ValidationWarning``, the rest still load.  Unknown trigger, step, door
condition and variant condition tags are rejected here, so nothing
downstream ever sees them.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from terminality.errors import AuthoringPayloadError, ValidationWarning
from terminality.game import filesystem as vfs
from terminality.game import security_engine
from terminality.models.mail import MailMessage
from terminality.models.quest import Quest
from terminality.models.system import SystemDefinition

log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_system(payload: Any) -> SystemDefinition:
    """Validate one system payload; raises :class:`AuthoringPayloadError`."""
    if isinstance(payload, Mapping) and isinstance(payload.get("filesystemTree"), Mapping):
        payload = dict(payload)
        tree = payload.pop("filesystemTree")
        filesystem = dict(payload.get("filesystem") or {})
        filesystem["snapshot"] = vfs.build_filesystem_from_tree(tree)
        payload["filesystem"] = filesystem
    return _parse(SystemDefinition, "system", payload)


def parse_quest(payload: Any) -> Quest:
    return _parse(Quest, "quest", payload)


def parse_mail(payload: Any) -> MailMessage:
    return _parse(MailMessage, "mail", payload)


def load_system_definitions(payloads: Iterable[Any]) -> tuple[list[SystemDefinition], list[ValidationWarning]]:
    """Load systems, with soft warnings for each one that loaded."""
    systems, warnings = _load_all(parse_system, payloads)
    for system in systems:
        warnings.extend(validate_system(system))
    return systems, warnings


def load_quests(payloads: Iterable[Any]) -> tuple[list[Quest], list[ValidationWarning]]:
    return _load_all(parse_quest, payloads)


def load_mail(payloads: Iterable[Any]) -> tuple[list[MailMessage], list[ValidationWarning]]:
    return _load_all(parse_mail, payloads)


def validate_system(system: SystemDefinition) -> list[ValidationWarning]:
    """Soft checks on a loaded system: duplicate door ports, orphan override paths."""
    warnings = security_engine.validate_doors(system.doors)
    if system.filesystem is not None and system.filesystem.overrides:
        for path in vfs.find_orphan_paths(system.filesystem.snapshot, system.filesystem.overrides):
            warnings.append(ValidationWarning(
                "orphan_override_path",
                "parent directory is missing from the base snapshot and the override",
                subject=f"{system.id}:{path}",
            ))
    if system.scope != "global" and system.extends_system_id == system.id:
        warnings.append(ValidationWarning(
            "self_extending_system", "extendsSystemId points at itself", subject=system.id,
        ))
    return warnings


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse(model: type[M], kind: str, payload: Any) -> M:
    payload_id = payload.get("id") if isinstance(payload, Mapping) else None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
        raise AuthoringPayloadError(kind, detail, payload_id) from exc


def _load_all(parse, payloads: Iterable[Any]) -> tuple[list, list[ValidationWarning]]:
    items, warnings = [], []
    seen: set[str] = set()
    for payload in payloads or []:
        try:
            item = parse(payload)
        except AuthoringPayloadError as exc:
            log.warning("Skipping %s", exc)
            warnings.append(ValidationWarning(f"invalid_{exc.kind}", exc.detail, subject=exc.payload_id))
            continue
        if item.id in seen:
            warnings.append(ValidationWarning("duplicate_id", "a later item replaces it", subject=item.id))
            items = [existing for existing in items if existing.id != item.id]
        seen.add(item.id)
        items.append(item)
    return items, warnings
