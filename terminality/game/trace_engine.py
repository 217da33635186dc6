"""Trace engine -- per-system detection risk and threshold effects.

Every action the player takes against a system costs trace.  The score is
clamped to ``[0, maxTrace]`` and compared against the system's nervous and
panic thresholds after each change.

Crossing is edge-triggered: the highest band already fired is stored on the
session, so an effect fires once per band and never again while the score
stays put or bounces around inside that band.  When one change crosses both
thresholds only the panic effect fires.

The engine only *describes* effects (``tighten_doors``, ``kick_user``,
``lockout``, ``log_only``); the terminal session applies them.
"""
import logging
from dataclasses import dataclass, field

from terminality.config import settings
from terminality.game import security_engine
from terminality.game.constants import (
    BAND_ORDER,
    BASE_TRACE_COSTS,
    RULE_COSTED_ACTIONS,
    TRACE_NERVOUS_NOTICE,
    TRACE_PANIC_NOTICE,
)
from terminality.models.effects import TraceEffectFired
from terminality.models.security import Door, DoorStatus, SecurityRules
from terminality.models.session import TraceBand, TraceSession

log = logging.getLogger(__name__)


@dataclass
class TraceUpdate:
    """Outcome of one trace change."""

    session: TraceSession
    action: str
    delta: float
    band: TraceBand
    effects: list[TraceEffectFired] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def new_trace_session(system_id: str) -> TraceSession:
    return TraceSession(system_id=system_id)


def effective_rules(rules: SecurityRules | None) -> SecurityRules | None:
    """Rules to track against, or ``None`` when tracking is disabled."""
    if rules is not None:
        return rules
    if not settings.TRACE_WITHOUT_SECURITY_RULES:
        return None
    return SecurityRules(
        max_trace=settings.DEFAULT_MAX_TRACE,
        nervous_threshold=settings.DEFAULT_NERVOUS_THRESHOLD,
        panic_threshold=settings.DEFAULT_PANIC_THRESHOLD,
    )


def resolve_trace_cost(action: str, rules: SecurityRules | None = None) -> float:
    """Cost of *action*: the system's own figure if it sets one, else the default."""
    if rules is not None and action in RULE_COSTED_ACTIONS:
        cost = getattr(rules.action_trace_costs, action)
        if cost is not None:
            return float(cost)
    return float(BASE_TRACE_COSTS.get(action, 0))


def band_for(trace: float, rules: SecurityRules) -> TraceBand:
    if trace >= rules.panic_threshold:
        return "panic"
    if trace >= rules.nervous_threshold:
        return "nervous"
    return "calm"


def apply_trace_action(
    session: TraceSession,
    action: str,
    rules: SecurityRules | None,
    doors: list[Door] | None = None,
    door_statuses: dict[str, DoorStatus] | None = None,
) -> TraceUpdate:
    """Charge *action*'s cost to *session*."""
    rules = effective_rules(rules)
    if rules is None:
        return TraceUpdate(session=session, action=action, delta=0.0, band="calm")
    return apply_trace_delta(
        session, resolve_trace_cost(action, rules), rules,
        action=action, doors=doors, door_statuses=door_statuses,
    )


def apply_trace_delta(
    session: TraceSession,
    delta: float,
    rules: SecurityRules | None,
    action: str = "adjust",
    doors: list[Door] | None = None,
    door_statuses: dict[str, DoorStatus] | None = None,
) -> TraceUpdate:
    """Move the trace score by *delta* and fire any newly crossed band.

    The input session is left untouched; the update carries a copy.
    """
    rules = effective_rules(rules)
    if rules is None:
        return TraceUpdate(session=session, action=action, delta=0.0, band="calm")

    updated = session.model_copy(deep=True)
    before = updated.trace_score
    updated.trace_score = min(max(before + delta, 0.0), rules.max_trace)
    updated.max_trace_seen = max(updated.max_trace_seen, updated.trace_score)
    band = band_for(updated.trace_score, rules)
    result = TraceUpdate(
        session=updated,
        action=action,
        delta=updated.trace_score - before,
        band=band,
    )

    if BAND_ORDER[band] > BAND_ORDER[updated.highest_band]:
        updated.highest_band = band
        effect = rules.panic_effect if band == "panic" else rules.nervous_effect
        changes = []
        if effect == "tighten_doors":
            changes = security_engine.tighten_doors(updated.system_id, doors, door_statuses)
        result.effects.append(TraceEffectFired(
            system_id=updated.system_id,
            band=band,
            effect=effect,
            door_changes=changes,
        ))
        result.notices.append(TRACE_PANIC_NOTICE if band == "panic" else TRACE_NERVOUS_NOTICE)
        log.info(
            "Trace on %s entered %s band at %.1f/%.1f (%s)",
            updated.system_id, band, updated.trace_score, rules.max_trace, effect,
        )
    return result


def trace_meter(session: TraceSession, rules: SecurityRules | None) -> str:
    """One-line readout for the terminal, e.g. ``TRACE 42/100 [nervous]``."""
    rules = effective_rules(rules)
    if rules is None:
        return "TRACE n/a"
    band = band_for(session.trace_score, rules)
    return f"TRACE {session.trace_score:g}/{rules.max_trace:g} [{band}]"
