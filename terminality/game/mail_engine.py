"""Mail engine -- the player's inbox and quest completion mail.

Mail is delivered at most once per id and listed oldest first.  Terminal
commands address messages by their 1-based position in a folder listing.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from terminality.config import settings
from terminality.game.filesystem import normalize_path
from terminality.models.effects import MailDelivered
from terminality.models.mail import MailMessage
from terminality.models.quest import CompletionCondition, MailTemplate, Quest
from terminality.models.session import MailState

log = logging.getLogger(__name__)

COMPLETION_SENDER_NAME = "Atlas Ops"


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


def deliver(state: MailState, messages: Iterable[MailMessage]) -> tuple[MailState, list[MailDelivered]]:
    """Append *messages* not delivered before.  Returns the new state and effects."""
    delivered_ids = {m.id for m in state.delivered}
    fresh = []
    for message in messages:
        if message.id in delivered_ids:
            continue
        delivered_ids.add(message.id)
        fresh.append(message.model_copy(deep=True))
    if not fresh:
        return state, []
    updated = state.model_copy(deep=True)
    updated.delivered.extend(fresh)
    for message in fresh:
        log.info("Delivered mail %s: %s", message.id, message.subject)
    return updated, [MailDelivered(mail_id=m.id, subject=m.subject) for m in fresh]


def folder_listing(state: MailState, folder: str = "inbox") -> list[MailMessage]:
    return [m for m in state.delivered if m.folder == folder]


def open_mail(state: MailState, index: int, folder: str = "inbox") -> tuple[MailState, MailMessage | None, bool]:
    """Open the *index*-th (1-based) message of *folder* and mark it read.

    Returns ``(state, message, first_open)``; *message* is ``None`` when the
    index is out of range.
    """
    listing = folder_listing(state, folder)
    if index < 1 or index > len(listing):
        return state, None, False
    message = listing[index - 1]
    if message.id in state.read_ids:
        return state, message, False
    updated = state.model_copy(deep=True)
    updated.read_ids.add(message.id)
    return updated, message, True


def archive_mail(state: MailState, index: int, folder: str = "inbox") -> tuple[MailState, MailMessage | None]:
    listing = folder_listing(state, folder)
    if index < 1 or index > len(listing):
        return state, None
    target = listing[index - 1].id
    updated = state.model_copy(deep=True)
    for message in updated.delivered:
        if message.id == target:
            message.folder = "archive"
            return updated, message
    return state, None


def format_listing(state: MailState, folder: str = "inbox") -> list[str]:
    listing = folder_listing(state, folder)
    plural = "" if len(listing) == 1 else "s"
    lines = [f"{folder.capitalize()} - {len(listing)} message{plural}"]
    if not listing:
        lines.append("Folder is empty.")
    for i, message in enumerate(listing, 1):
        marker = " " if message.id in state.read_ids else "*"
        lines.append(f"{marker}{i:>3}. {message.from_name:<20} {message.subject}")
    return lines


def format_message(message: MailMessage, index: int, folder: str = "inbox") -> list[str]:
    lines = [
        f"Mail {index} - {folder.capitalize()}",
        f"From: {message.sender}",
        f"Subject: {message.subject}",
    ]
    if message.in_universe_date:
        lines.append(f"Received: {message.in_universe_date}")
    lines.append("-----")
    lines.extend(message.body.splitlines())
    lines.append("----- end message -----")
    return lines


# ---------------------------------------------------------------------------
# Completion mail
# ---------------------------------------------------------------------------


def condition_matches(condition: CompletionCondition, context) -> bool:
    data = condition.data
    kind = condition.type
    if kind == "trace_below":
        limit = _number(_pick(data, "maxTrace", "max_trace"))
        return limit is not None and context.max_trace_seen <= limit
    if kind == "trace_between":
        low = _number(_pick(data, "minTrace", "min_trace"))
        high = _number(_pick(data, "maxTrace", "max_trace"))
        if low is None and high is None:
            return False
        peak = context.max_trace_seen
        return (low is None or peak >= low) and (high is None or peak <= high)
    if kind == "bonus_objective_completed":
        objective = _pick(data, "objectiveId", "objective_id")
        return isinstance(objective, str) and objective in context.bonus_completed_ids
    if kind == "trap_triggered":
        path = _pick(data, "filePath", "file_path")
        if not isinstance(path, str) or not path.strip():
            return bool(context.traps_triggered)
        return normalize_path(path) in context.traps_triggered
    if kind == "quest_outcome":
        return _pick(data, "outcome") == context.outcome
    if kind == "world_flag":
        key = _pick(data, "flag", "key", "flagKey", "flag_key")
        if not isinstance(key, str) or key not in context.flags:
            return False
        expected = _pick(data, "value", "flagValue", "flag_value")
        return expected is None or context.flags[key] == str(expected)
    return False


def pick_completion_template(quest: Quest, context) -> MailTemplate:
    """First variant whose (non-empty) conditions all hold, else the default."""
    config = quest.completion_email
    if config is not None:
        for variant in config.variants:
            if variant.conditions and all(condition_matches(c, context) for c in variant.conditions):
                return variant
        if config.default is not None:
            return config.default
    title = quest.display_title
    return MailTemplate(subject=f"Quest complete: {title}", body=f'You completed "{title}".')


def build_completion_mail(quest: Quest, context) -> MailMessage:
    template = pick_completion_template(quest, context)
    return MailMessage(
        id=f"{quest.id}__completion",
        from_name=COMPLETION_SENDER_NAME,
        from_address=template.sender or settings.MAIL_SENDER,
        subject=template.subject,
        body=template.body,
        quest_id=quest.id,
        tags=["quest", "reward"],
        kind="completion",
    )


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None
