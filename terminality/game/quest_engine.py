"""Quest engine -- trigger, step and completion handling for terminal quests.

Each quest moves ``not_triggered -> in_progress -> completed``.  Quests
start when their trigger holds (first terminal open, a flag entering the
flag set, other quests completing) and their requirements are met, or when
a linked mail offers them.  Terminal events advance the step cursor of every
in-progress quest whose *current* step they match; passing the last step
completes the quest.

Completion side effects run exactly once per quest: completion and reward
flags, credits, the completion mail, the follow-up unlock.  Because a
completion can satisfy other triggers, every change is followed by a
worklist pass that runs until nothing else starts or completes.

All entry points take a ``QuestSessionState`` and return a
:class:`QuestUpdate` holding a changed copy; the input is never mutated.
"""
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from terminality.game import mail_engine
from terminality.game.constants import AVOID_TRACE_SPIKE_DEFAULT, KEEP_TRACE_BELOW_DEFAULT
from terminality.game.filesystem import normalize_path
from terminality.models.effects import Effect, FlagSet, QuestTransition
from terminality.models.mail import MailMessage
from terminality.models.quest import BonusObjective, Quest, QuestOutcome, QuestStatus, QuestStep
from terminality.models.session import QuestSessionState

log = logging.getLogger(__name__)

# Terminal events and the step type each one can satisfy.
SCAN_COMPLETED = "SCAN_COMPLETED"
SESSION_CONNECTED = "SESSION_CONNECTED"
FILE_DELETED = "FILE_DELETED"
SESSION_DISCONNECTED = "SESSION_DISCONNECTED"
FILE_READ = "FILE_READ"

STEP_EVENTS = {
    "SCAN_HOST": SCAN_COMPLETED,
    "CONNECT_HOST": SESSION_CONNECTED,
    "DELETE_FILE": FILE_DELETED,
    "DISCONNECT_HOST": SESSION_DISCONNECTED,
    "READ_FILE": FILE_READ,
}


@dataclass(frozen=True)
class QuestEvent:
    type: str
    target_ip: str | None = None
    file_path: str | None = None
    system_id: str | None = None


@dataclass
class SessionSignals:
    """What the terminal knows about the player's run, for completion scoring."""

    trace: float = 0.0
    max_trace_seen: float = 0.0
    traps_triggered: list[str] = field(default_factory=list)
    deleted_paths: list[str] = field(default_factory=list)
    read_paths: list[str] = field(default_factory=list)
    logs_cleaned: list[str] = field(default_factory=list)


@dataclass
class CompletionContext:
    max_trace_seen: float
    trace: float
    flags: dict[str, str]
    traps_triggered: list[str]
    bonus_completed_ids: list[str]
    bonus_failed_ids: list[str]
    outcome: QuestOutcome


@dataclass
class QuestUpdate:
    state: QuestSessionState
    effects: list[Effect] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    # Mail generated by completions, ready to deliver.
    mail: list[MailMessage] = field(default_factory=list)
    # Catalog mail ids that completions asked to deliver.
    mail_refs: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.effects)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def quest_status(state: QuestSessionState, quest_id: str) -> QuestStatus:
    if quest_id in state.completed_ids:
        return "completed"
    if quest_id in state.active:
        return "in_progress"
    return "not_triggered"


def requirements_met(quest: Quest, state: QuestSessionState) -> bool:
    reqs = quest.requirements
    return (
        all(flag in state.flags for flag in reqs.required_flags)
        and all(qid in state.completed_ids for qid in reqs.required_quests)
    )


def current_step(quest: Quest, state: QuestSessionState) -> QuestStep | None:
    index = state.active.get(quest.id)
    if index is None or index >= len(quest.steps):
        return None
    return quest.steps[index]


def step_matches(step: QuestStep, event: QuestEvent) -> bool:
    """Does *event* satisfy *step*?

    Host targets must match when the step names one; a disconnect step with
    no ``target_ip`` accepts any disconnect.
    """
    if STEP_EVENTS.get(step.type) != event.type:
        return False
    if step.target_ip and step.target_ip != event.target_ip:
        return False
    if step.target_system_id and event.system_id and step.target_system_id != event.system_id:
        return False
    if step.type in ("DELETE_FILE", "READ_FILE"):
        if not step.file_path or not event.file_path:
            return False
        return normalize_path(step.file_path) == normalize_path(event.file_path)
    return True


def open_terminal(
    quests: Mapping[str, Quest], state: QuestSessionState, signals: SessionSignals | None = None
) -> QuestUpdate:
    """The player opened the terminal.  Fires first-open triggers once."""
    run = _QuestRun(quests, state, signals)
    if not run.state.first_open_fired:
        run.state.first_open_fired = True
        run.settle()
    return run.result()


def set_flag(
    quests: Mapping[str, Quest],
    state: QuestSessionState,
    key: str,
    value: str = "true",
    signals: SessionSignals | None = None,
) -> QuestUpdate:
    run = _QuestRun(quests, state, signals)
    run.set_flag(key, value)
    run.settle()
    return run.result()


def process_event(
    quests: Mapping[str, Quest],
    state: QuestSessionState,
    event: QuestEvent,
    signals: SessionSignals | None = None,
) -> QuestUpdate:
    """Advance every in-progress quest whose current step *event* matches."""
    run = _QuestRun(quests, state, signals)
    for quest_id in list(run.state.active):
        quest = quests.get(quest_id)
        if quest is None:
            continue
        step = current_step(quest, run.state)
        if step is None or not step_matches(step, event):
            continue
        index = run.state.active[quest_id] + 1
        run.state.active[quest_id] = index
        if index < len(quest.steps):
            run.effects.append(QuestTransition(
                quest_id=quest_id, from_status="in_progress", to_status="in_progress", step_index=index,
            ))
            run.notices.append(f"Progress: {quest.display_title} -> {quest.steps[index].id}")
    run.settle()
    return run.result()


def offer_quest(
    quests: Mapping[str, Quest],
    state: QuestSessionState,
    quest_id: str,
    signals: SessionSignals | None = None,
) -> QuestUpdate:
    """Start *quest_id* on behalf of a linked mail; only ever offered once."""
    run = _QuestRun(quests, state, signals)
    quest = quests.get(quest_id)
    if (
        quest is not None
        and quest_id not in run.state.offered_ids
        and quest_status(run.state, quest_id) == "not_triggered"
        and requirements_met(quest, run.state)
    ):
        run.state.offered_ids.add(quest_id)
        run.activate(quest)
        run.settle()
    return run.result()


def evaluate_bonus_objectives(quest: Quest, signals: SessionSignals) -> tuple[list[str], list[str]]:
    """Split *quest*'s bonus objectives into (completed ids, failed ids)."""
    done, failed = [], []
    for objective in quest.bonus_objectives:
        (done if _bonus_met(objective, quest, signals) else failed).append(objective.id)
    return done, failed


def determine_outcome(quest: Quest, signals: SessionSignals, bonus_done: Iterable[str]) -> QuestOutcome:
    """``failure`` on a forced trace condition, ``stealth`` on a clean run, else ``success``."""
    risk = quest.risk_profile
    peak = signals.max_trace_seen
    if risk is not None:
        if risk.fail_above_trace is not None and peak >= risk.fail_above_trace:
            return "failure"
        if risk.required_trace_spike is not None and peak < risk.required_trace_spike:
            return "failure"
    bonus_done = set(bonus_done)
    stealth_ok = all(o.id in bonus_done for o in quest.bonus_objectives if o.category == "stealth")
    within = risk is None or risk.max_recommended_trace is None or peak <= risk.max_recommended_trace
    cleanup_ok = risk is None or not risk.cleanup_before_disconnect or bool(signals.logs_cleaned)
    if within and stealth_ok and not signals.traps_triggered and cleanup_ok:
        return "stealth"
    return "success"


def completion_context(quest: Quest, state: QuestSessionState, signals: SessionSignals) -> CompletionContext:
    done, failed = evaluate_bonus_objectives(quest, signals)
    return CompletionContext(
        max_trace_seen=signals.max_trace_seen,
        trace=signals.trace,
        flags=dict(state.flags),
        traps_triggered=list(signals.traps_triggered),
        bonus_completed_ids=done,
        bonus_failed_ids=failed,
        outcome=determine_outcome(quest, signals, done),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


class _QuestRun:
    """Working copy of the quest state for one entry-point call."""

    def __init__(self, quests: Mapping[str, Quest], state: QuestSessionState, signals: SessionSignals | None):
        self.quests = quests
        self.state = state.model_copy(deep=True)
        self.signals = signals or SessionSignals()
        self.effects: list[Effect] = []
        self.notices: list[str] = []
        self.mail: list[MailMessage] = []
        self.mail_refs: list[str] = []
        self.completed: list[str] = []

    def result(self) -> QuestUpdate:
        return QuestUpdate(
            state=self.state,
            effects=self.effects,
            notices=self.notices,
            mail=self.mail,
            mail_refs=self.mail_refs,
            completed=self.completed,
        )

    def set_flag(self, key: str, value: str = "true") -> None:
        if not key or self.state.flags.get(key) == value:
            return
        self.state.flags[key] = value
        self.effects.append(FlagSet(key=key, value=value))

    def activate(self, quest: Quest) -> None:
        self.state.active[quest.id] = 0
        self.effects.append(QuestTransition(
            quest_id=quest.id, from_status="not_triggered", to_status="in_progress", step_index=0,
        ))
        self.notices.append(f"New quest: {quest.display_title}")
        log.info("Quest %s started", quest.id)

    def settle(self) -> None:
        """Start and complete quests until nothing changes."""
        changed = True
        while changed:
            changed = False
            for quest in self.quests.values():
                if quest_status(self.state, quest.id) != "not_triggered":
                    continue
                if self._triggered(quest) and requirements_met(quest, self.state):
                    self.activate(quest)
                    changed = True
            for quest_id, index in list(self.state.active.items()):
                quest = self.quests.get(quest_id)
                if quest is not None and index >= len(quest.steps):
                    self.complete(quest)
                    changed = True

    def complete(self, quest: Quest) -> None:
        if quest.id in self.state.completed_ids:
            self.state.active.pop(quest.id, None)
            return
        context = completion_context(quest, self.state, self.signals)
        self.state.active.pop(quest.id, None)
        self.state.completed_ids.append(quest.id)
        self.state.outcomes[quest.id] = context.outcome
        self.completed.append(quest.id)
        self.effects.append(QuestTransition(
            quest_id=quest.id, from_status="in_progress", to_status="completed",
        ))
        self.notices.append(f"Quest complete: {quest.display_title}")
        log.info("Quest %s completed (%s)", quest.id, context.outcome)

        if quest.completion_flag:
            self.set_flag(quest.completion_flag)
        for flag in quest.rewards.flags:
            self.set_flag(flag.key, flag.value)
        self.state.credits += quest.rewards.credits
        self.mail.append(mail_engine.build_completion_mail(quest, context))
        self.mail_refs.extend(quest.rewards.mail)

        follow_up = self.quests.get(quest.follow_up_quest_id or "")
        if (
            follow_up is not None
            and quest_status(self.state, follow_up.id) == "not_triggered"
            and requirements_met(follow_up, self.state)
        ):
            self.activate(follow_up)

    def _triggered(self, quest: Quest) -> bool:
        trigger = quest.trigger
        if trigger.type == "on_first_terminal_open":
            return self.state.first_open_fired
        if trigger.type == "on_flag_set":
            if not trigger.flag_key or trigger.flag_key not in self.state.flags:
                return False
            return trigger.flag_value is None or self.state.flags[trigger.flag_key] == trigger.flag_value
        if trigger.type == "on_quest_completion":
            return bool(trigger.quest_ids) and all(q in self.state.completed_ids for q in trigger.quest_ids)
        return False


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _objective_path(params: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        raw = params.get(key)
        if isinstance(raw, str) and raw.strip():
            return normalize_path(raw)
    return None


def _bonus_met(objective: BonusObjective, quest: Quest, signals: SessionSignals) -> bool:
    params = objective.params
    risk = quest.risk_profile
    peak = signals.max_trace_seen
    kind = objective.type
    if kind == "keep_trace_below":
        threshold = _number(params.get("threshold"))
        if threshold is None and risk is not None:
            threshold = risk.max_recommended_trace
        return peak <= (threshold if threshold is not None else KEEP_TRACE_BELOW_DEFAULT)
    if kind == "avoid_trace_spike":
        threshold = _number(params.get("threshold"))
        if threshold is None and risk is not None:
            threshold = risk.fail_above_trace
        if threshold is None:
            return peak <= AVOID_TRACE_SPIKE_DEFAULT
        return peak < threshold
    if kind == "dont_delete_file":
        path = _objective_path(params, "path", "file_path")
        return not signals.deleted_paths if path is None else path not in signals.deleted_paths
    if kind in ("exfiltrate_file", "retrieve_files"):
        path = _objective_path(params, "path", "file_path")
        return path is not None and path in signals.read_paths
    if kind == "dont_trigger_trap":
        return not signals.traps_triggered
    if kind in ("clean_logs", "sanitize_logs"):
        path = _objective_path(params, "path")
        return bool(signals.logs_cleaned) if path is None else path in signals.logs_cleaned
    if kind == "delete_logs":
        path = _objective_path(params, "path")
        return path is not None and path in signals.deleted_paths
    return False
