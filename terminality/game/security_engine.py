"""Security engine -- door gating for remote systems.

A door is a system's network entry point.  Its authored ``status`` is a
narrative/difficulty label; whether the door actually lets the player in is
decided by its unlock condition, evaluated against the player's history on
that system (files read, doors already used, commands run, current trace).

Door conditions can chain (``after_door_used``), so every successful use
re-evaluates the whole door list and reports the doors it newly opened.
"""
import logging
from collections.abc import Iterable, Mapping

from terminality.errors import ValidationWarning
from terminality.game.constants import DOOR_TIGHTEN
from terminality.game.filesystem import normalize_path
from terminality.models.effects import DoorStatusChange
from terminality.models.security import (
    AfterCommandUsed,
    AfterDoorUsed,
    AfterFileRead,
    AlwaysOpen,
    Door,
    DoorStatus,
    DoorUnlockCondition,
    TraceBelow,
)
from terminality.models.session import TraceSession

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_unlocked(condition: DoorUnlockCondition | None, session: TraceSession) -> bool:
    """Is *condition* satisfied by *session*'s history?  ``None`` means open."""
    if condition is None or isinstance(condition, AlwaysOpen):
        return True
    if isinstance(condition, AfterFileRead):
        return normalize_path(condition.file_path) in session.files_read_history
    if isinstance(condition, AfterDoorUsed):
        return condition.door_id in session.unlocked_doors
    if isinstance(condition, AfterCommandUsed):
        return condition.command.strip().lower() in session.command_history
    if isinstance(condition, TraceBelow):
        return session.trace_score <= condition.max_trace
    return False


def is_door_open(door: Door, session: TraceSession, forced: Iterable[str] = ()) -> bool:
    """Forced (bruteforced) doors are open whatever their condition says."""
    return door.id in set(forced) or is_unlocked(door.unlock_condition, session)


def door_status_for_connection(
    door: Door,
    session: TraceSession,
    status: DoorStatus | None = None,
    forced: Iterable[str] = (),
) -> DoorStatus:
    """The status a connection attempt sees: ``locked`` unless the door is open."""
    if not is_door_open(door, session, forced):
        return "locked"
    return status or door.status


def evaluate_doors(
    doors: Iterable[Door] | None, session: TraceSession, forced: Iterable[str] = ()
) -> list[str]:
    """Ids of every door currently open, in authored order."""
    forced = set(forced)
    return [door.id for door in doors or [] if is_door_open(door, session, forced)]


def use_door(
    doors: Iterable[Door] | None,
    door_id: str,
    session: TraceSession,
    forced: Iterable[str] = (),
) -> tuple[TraceSession, list[str]]:
    """Record a successful pass through *door_id*.

    Returns the updated session and the ids of doors that were closed before
    this use and are open now.  The door itself must already be open.
    """
    doors = list(doors or [])
    before = set(evaluate_doors(doors, session, forced))
    if door_id not in before:
        return session, []
    updated = session.model_copy(deep=True)
    updated.unlocked_doors.add(door_id)
    after = evaluate_doors(doors, updated, forced)
    opened = [d for d in after if d not in before]
    if opened:
        log.info("Door %s on %s opened %s", door_id, session.system_id, ", ".join(opened))
    return updated, opened


def tighten_doors(
    system_id: str,
    doors: Iterable[Door] | None,
    statuses: Mapping[str, DoorStatus] | None = None,
) -> list[DoorStatusChange]:
    """Status downgrades for a ``tighten_doors`` effect, one step each.

    *statuses* holds the session's current overrides of authored statuses.
    """
    statuses = statuses or {}
    changes = []
    for door in doors or []:
        current = statuses.get(door.id, door.status)
        downgraded = DOOR_TIGHTEN.get(current)
        if downgraded is None:
            continue
        changes.append(DoorStatusChange(
            system_id=system_id,
            door_id=door.id,
            old_status=current,
            new_status=downgraded,
        ))
    return changes


def validate_doors(doors: Iterable[Door] | None) -> list[ValidationWarning]:
    """Soft checks: a port should be used by one door only."""
    warnings = []
    seen: dict[int, str] = {}
    for door in doors or []:
        if door.port in seen:
            warnings.append(ValidationWarning(
                "duplicate_door_port",
                f"port {door.port} is already used by door {seen[door.port]}",
                subject=door.id,
            ))
        else:
            seen[door.port] = door.id
    return warnings


def find_door(doors: Iterable[Door] | None, ref: str) -> Door | None:
    """Look a door up by id, port number or (case-insensitive) name."""
    ref = (ref or "").strip()
    for door in doors or []:
        if door.id == ref or str(door.port) == ref or door.name.lower() == ref.lower():
            return door
    return None
