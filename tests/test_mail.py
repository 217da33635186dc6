"""Tests for the inbox and completion mail."""
from terminality.game import mail_engine
from terminality.game.quest_engine import CompletionContext
from terminality.game.starter_content import INTRO_QUEST_ID
from terminality.models.mail import MailMessage
from terminality.models.quest import Quest
from terminality.models.session import MailState


# ── Helpers ──────────────────────────────────────────────────────────────────

def _message(mail_id, subject="Hello", **extra):
    return MailMessage(id=mail_id, from_name="Atlas Ops", subject=subject, **extra)


def _context(**overrides):
    data = {
        "max_trace_seen": 0.0,
        "trace": 0.0,
        "flags": {},
        "traps_triggered": [],
        "bonus_completed_ids": [],
        "bonus_failed_ids": [],
        "outcome": "success",
    }
    data.update(overrides)
    return CompletionContext(**data)


def _quest_with_variants():
    return Quest.model_validate({
        "id": "heist",
        "title": "Heist",
        "trigger": {"type": "on_first_terminal_open"},
        "completion_email": {
            "default": {"from": "boss@atlasnet", "subject": "Done", "body": "Paid."},
            "variants": [
                {"id": "empty", "subject": "Never", "conditions": []},
                {"id": "trap", "subject": "Trap", "conditions": [
                    {"type": "trap_triggered", "data": {"filePath": "/vault/bait.txt"}},
                ]},
                {"id": "quiet", "subject": "Quiet", "conditions": [
                    {"type": "TRACE_BELOW", "data": {"maxTrace": 20}},
                    {"type": "world_flag", "data": {"flag": "alignment", "value": "arc"}},
                ]},
                {"id": "mid", "subject": "Middle", "conditions": [
                    {"type": "trace_between", "data": {"minTrace": 20, "maxTrace": 60}},
                ]},
            ],
        },
    })


# ── Inbox ────────────────────────────────────────────────────────────────────

def test_deliver_is_idempotent():
    """Delivering the same id twice keeps one copy."""
    state, effects = mail_engine.deliver(MailState(), [_message("m1"), _message("m1")])
    assert [m.id for m in state.delivered] == ["m1"]
    assert [e.mail_id for e in effects] == ["m1"]
    again, effects = mail_engine.deliver(state, [_message("m1")])
    assert again is state
    assert effects == []


def test_open_marks_read_once():
    """Only the first open of a message reports first_open."""
    state, _ = mail_engine.deliver(MailState(), [_message("m1"), _message("m2", "Second")])
    state, message, first = mail_engine.open_mail(state, 2)
    assert message.id == "m2"
    assert first
    assert "m2" in state.read_ids
    _, _, first = mail_engine.open_mail(state, 2)
    assert not first


def test_open_out_of_range():
    """Indices outside the folder return no message."""
    state, _ = mail_engine.deliver(MailState(), [_message("m1")])
    for index in (0, 2, -1):
        _, message, first = mail_engine.open_mail(state, index)
        assert message is None and not first


def test_archive_moves_between_folders():
    """Archived mail leaves the inbox listing."""
    state, _ = mail_engine.deliver(MailState(), [_message("m1"), _message("m2")])
    state, message = mail_engine.archive_mail(state, 1)
    assert message.id == "m1"
    assert [m.id for m in mail_engine.folder_listing(state)] == ["m2"]
    assert [m.id for m in mail_engine.folder_listing(state, "archive")] == ["m1"]


def test_format_listing_marks_unread():
    """Unread messages carry a star."""
    state, _ = mail_engine.deliver(MailState(), [_message("m1", "First"), _message("m2", "Second")])
    state, _, _ = mail_engine.open_mail(state, 1)
    lines = mail_engine.format_listing(state)
    assert lines[0] == "Inbox - 2 messages"
    assert lines[1].startswith("   1.")
    assert lines[2].startswith("*  2.")
    assert mail_engine.format_listing(MailState(), "spam") == ["Spam - 0 messages", "Folder is empty."]


# ── Completion mail ──────────────────────────────────────────────────────────

def test_default_template_when_no_variant_matches():
    """With no matching variant the default template is used."""
    template = mail_engine.pick_completion_template(_quest_with_variants(), _context(max_trace_seen=90))
    assert template.subject == "Done"
    assert template.sender == "boss@atlasnet"


def test_first_matching_variant_wins():
    """Variants are tried in order and need every condition to hold."""
    quest = _quest_with_variants()
    quiet = _context(max_trace_seen=10, flags={"alignment": "arc"})
    assert mail_engine.pick_completion_template(quest, quiet).subject == "Quiet"
    # The flag is missing, so the next variant is tried.
    assert mail_engine.pick_completion_template(quest, _context(max_trace_seen=20)).subject == "Middle"
    trapped = _context(max_trace_seen=10, traps_triggered=["/vault/bait.txt"], flags={"alignment": "arc"})
    assert mail_engine.pick_completion_template(quest, trapped).subject == "Trap"


def test_conditions_without_data_never_match():
    """A trace condition missing its bounds does not match."""
    quest = Quest.model_validate({
        "id": "q",
        "trigger": {"type": "on_first_terminal_open"},
        "completion_email": {"variants": [
            {"subject": "Broken", "conditions": [{"type": "trace_below"}]},
        ]},
    })
    assert mail_engine.pick_completion_template(quest, _context()).subject == "Quest complete: q"


def test_outcome_and_bonus_conditions():
    """quest_outcome and bonus_objective_completed read the context."""
    quest = Quest.model_validate({
        "id": "q",
        "trigger": {"type": "on_first_terminal_open"},
        "completion_email": {"variants": [
            {"subject": "Ghost", "conditions": [{"type": "quest_outcome", "data": {"outcome": "stealth"}}]},
            {"subject": "Bonus", "conditions": [
                {"type": "bonus_objective_completed", "data": {"objectiveId": "grab"}},
            ]},
        ]},
    })
    assert mail_engine.pick_completion_template(quest, _context(outcome="stealth")).subject == "Ghost"
    assert mail_engine.pick_completion_template(quest, _context(bonus_completed_ids=["grab"])).subject == "Bonus"


def test_build_completion_mail():
    """Completion mail has a fixed id and points back at its quest."""
    message = mail_engine.build_completion_mail(_quest_with_variants(), _context(max_trace_seen=90))
    assert message.id == "heist__completion"
    assert message.kind == "completion"
    assert message.quest_id == "heist"
    assert message.from_address == "boss@atlasnet"


# ── In a terminal session ────────────────────────────────────────────────────

def test_opening_the_directive_offers_nothing_new(terminal):
    """The intro quest already started on open, so reading its mail changes no quest."""
    terminal.open_terminal()
    listing = terminal.inbox()
    assert listing.output[0] == "Inbox - 2 messages"
    result = terminal.open_mail(1)
    assert "Subject: Directive: Wipe the Evidence" in result.output
    assert not [e for e in result.effects if e.kind == "quest"]
    assert terminal.state.quests.active == {INTRO_QUEST_ID: 0}


def test_linked_mail_offers_its_quest(terminal):
    """A quest without a firing trigger starts when its mail is first opened."""
    terminal.quests[INTRO_QUEST_ID].trigger.type = "on_flag_set"
    terminal.quests[INTRO_QUEST_ID].trigger.flag_key = "never"
    terminal.open_terminal()
    assert terminal.state.quests.active == {}
    result = terminal.open_mail(1)
    assert "New quest: Wipe the Evidence" in result.output
    assert terminal.open_mail(1).effects == []


def test_archive_and_missing_index(terminal):
    """Archiving reports the subject; bad indices fail."""
    terminal.open_terminal()
    assert terminal.archive_mail(2).output == ["Archived: Scheduled Maintenance Window"]
    assert not terminal.open_mail(9).ok
    assert terminal.inbox("archive").output[0] == "Archive - 1 message"
