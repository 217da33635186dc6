"""Tests for the trace engine: costs, clamping and edge-triggered bands."""
import pytest

from terminality.config import settings
from terminality.game import trace_engine
from terminality.models.security import Door, SecurityRules


# ── Helpers ──────────────────────────────────────────────────────────────────

def _rules(**overrides):
    data = {
        "max_trace": 100,
        "nervous_threshold": 50,
        "panic_threshold": 80,
        "nervous_effect": "tighten_doors",
        "panic_effect": "lockout",
    }
    data.update(overrides)
    return SecurityRules(**data)


def _feed(session, deltas, rules, doors=None):
    """Apply each delta in turn; return the final session and every fired effect."""
    fired = []
    for delta in deltas:
        update = trace_engine.apply_trace_delta(session, delta, rules, doors=doors)
        session = update.session
        fired.extend(update.effects)
    return session, fired


# ── Costs ────────────────────────────────────────────────────────────────────

def test_default_costs():
    """Actions without a system-specific cost use the defaults."""
    assert trace_engine.resolve_trace_cost("scan") == 3
    assert trace_engine.resolve_trace_cost("deep_scan") == 10
    assert trace_engine.resolve_trace_cost("disconnect") == -12
    assert trace_engine.resolve_trace_cost("unknown_action") == 0


def test_rule_costs_override_defaults():
    """A system's actionTraceCosts win for the actions they cover."""
    rules = SecurityRules.model_validate({"actionTraceCosts": {"scan": 7, "bruteforce": 40}})
    assert trace_engine.resolve_trace_cost("scan", rules) == 7
    assert trace_engine.resolve_trace_cost("bruteforce", rules) == 40
    assert trace_engine.resolve_trace_cost("deep_scan", rules) == 10
    # connect is not a rule-costed action
    assert trace_engine.resolve_trace_cost("connect", rules) == 6


def test_rules_reject_unordered_thresholds():
    """nervous <= panic <= max is enforced."""
    with pytest.raises(ValueError):
        SecurityRules(max_trace=100, nervous_threshold=90, panic_threshold=80)
    with pytest.raises(ValueError):
        SecurityRules(max_trace=50, nervous_threshold=10, panic_threshold=80)


# ── Bands ────────────────────────────────────────────────────────────────────

def test_nervous_then_panic_fire_once_each():
    """50 fires nervous once, 79 nothing, 80 panic once, more trace nothing."""
    rules = _rules()
    session = trace_engine.new_trace_session("relay")

    session, fired = _feed(session, [20, 20, 10], rules)
    assert session.trace_score == 50
    assert [(e.band, e.effect) for e in fired] == [("nervous", "tighten_doors")]

    session, fired = _feed(session, [29], rules)
    assert session.trace_score == 79
    assert fired == []

    session, fired = _feed(session, [1], rules)
    assert session.trace_score == 80
    assert [(e.band, e.effect) for e in fired] == [("panic", "lockout")]

    session, fired = _feed(session, [5, 0, 3], rules)
    assert fired == []


def test_no_refire_after_dropping_back():
    """Bands already fired this session do not fire again after trace falls."""
    rules = _rules()
    session, fired = _feed(trace_engine.new_trace_session("relay"), [55], rules)
    assert len(fired) == 1
    session, fired = _feed(session, [-20, 20], rules)
    assert fired == []
    assert session.highest_band == "nervous"


def test_crossing_both_thresholds_fires_panic_only():
    """A single jump past both thresholds fires just the panic effect."""
    session, fired = _feed(trace_engine.new_trace_session("relay"), [90], _rules())
    assert [e.band for e in fired] == ["panic"]
    assert session.highest_band == "panic"


def test_trace_is_clamped():
    """Trace never exceeds maxTrace or drops below zero."""
    rules = _rules()
    session, _ = _feed(trace_engine.new_trace_session("relay"), [500], rules)
    assert session.trace_score == 100
    session, _ = _feed(session, [-1000], rules)
    assert session.trace_score == 0
    assert session.max_trace_seen == 100


def test_update_reports_clamped_delta():
    """The reported delta is what was actually applied."""
    rules = _rules()
    session = trace_engine.new_trace_session("relay")
    update = trace_engine.apply_trace_delta(session, -5, rules)
    assert update.delta == 0
    assert update.band == "calm"


def test_input_session_is_not_mutated():
    """apply_trace_action returns a new session."""
    session = trace_engine.new_trace_session("relay")
    update = trace_engine.apply_trace_action(session, "deep_scan", _rules())
    assert session.trace_score == 0
    assert update.session.trace_score == 10


def test_tighten_effect_lists_door_downgrades():
    """tighten_doors describes one downgrade per eligible door."""
    doors = [
        Door(id="bd", port=31337, status="backdoor"),
        Door(id="ws", port=8080, status="weak_spot"),
        Door(id="gd", port=22, status="guarded"),
        Door(id="lk", port=23, status="locked"),
    ]
    _, fired = _feed(trace_engine.new_trace_session("relay"), [50], _rules(), doors=doors)
    changes = [(c.door_id, c.old_status, c.new_status) for c in fired[0].door_changes]
    assert changes == [
        ("bd", "backdoor", "guarded"),
        ("ws", "weak_spot", "guarded"),
        ("gd", "guarded", "locked"),
    ]


def test_missing_rules_disable_tracking(monkeypatch):
    """Without securityRules trace does not accumulate."""
    monkeypatch.setattr(settings, "TRACE_WITHOUT_SECURITY_RULES", False)
    session = trace_engine.new_trace_session("relay")
    update = trace_engine.apply_trace_action(session, "bruteforce", None)
    assert update.session.trace_score == 0
    assert update.effects == []
    assert trace_engine.trace_meter(session, None) == "TRACE n/a"


def test_missing_rules_use_defaults_when_enabled(monkeypatch):
    """With the setting on, default thresholds and log_only effects apply."""
    monkeypatch.setattr(settings, "TRACE_WITHOUT_SECURITY_RULES", True)
    session = trace_engine.new_trace_session("relay")
    update = trace_engine.apply_trace_delta(session, 90, None)
    assert update.session.trace_score == 90
    assert [(e.band, e.effect) for e in update.effects] == [("panic", "log_only")]


def test_trace_meter():
    """The meter shows score, cap and band."""
    session = trace_engine.new_trace_session("relay").model_copy(update={"trace_score": 62})
    assert trace_engine.trace_meter(session, _rules()) == "TRACE 62/100 [nervous]"
