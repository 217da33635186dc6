"""Tests for loading authored systems, quests and mail."""
import logging

import pytest

from terminality.errors import AuthoringPayloadError
from terminality.game import authoring


def _system(system_id="relay", **extra):
    data = {"id": system_id, "label": system_id.title(), "network": {"ips": ["10.0.0.1"]}}
    data.update(extra)
    return data


def test_parse_error_names_the_payload():
    """Parse failures carry the kind, id and first error location."""
    with pytest.raises(AuthoringPayloadError) as err:
        authoring.parse_quest({"id": "q1", "trigger": {"type": "on_eclipse"}})
    assert err.value.kind == "quest"
    assert err.value.payload_id == "q1"
    assert err.value.detail.startswith("trigger.type:")


def test_invalid_items_are_skipped_with_warnings(caplog):
    """One bad quest does not stop the others from loading."""
    payloads = [
        {"id": "good", "trigger": {"type": "on_first_terminal_open"}},
        {"id": "bad_step", "trigger": {"type": "on_first_terminal_open"},
         "steps": [{"id": "s", "type": "PHONE_HOME"}]},
        "not a quest",
    ]
    with caplog.at_level(logging.WARNING):
        quests, warnings = authoring.load_quests(payloads)
    assert [q.id for q in quests] == ["good"]
    assert [(w.code, w.subject) for w in warnings] == [("invalid_quest", "bad_step"), ("invalid_quest", None)]
    assert "Skipping Invalid quest bad_step" in caplog.text


def test_duplicate_ids_keep_the_later_item():
    """A repeated id replaces the earlier item and is warned about."""
    mail, warnings = authoring.load_mail([
        {"id": "m1", "subject": "First"},
        {"id": "m2", "subject": "Other"},
        {"id": "m1", "subject": "Second"},
    ])
    assert [(m.id, m.subject) for m in mail] == [("m2", "Other"), ("m1", "Second")]
    assert [(w.code, w.subject) for w in warnings] == [("duplicate_id", "m1")]


def test_mail_accepts_camel_case():
    """Mail payloads use the designer's camelCase keys."""
    message = authoring.parse_mail({
        "id": "m1",
        "fromName": "Atlas Ops",
        "linkedQuestId": "q1",
        "inUniverseDate": "2089-06-01",
    })
    assert message.from_name == "Atlas Ops"
    assert message.linked_quest_id == "q1"


def test_unknown_door_condition_rejects_the_system():
    """Systems with an unknown door condition tag do not load."""
    systems, warnings = authoring.load_system_definitions([
        _system(doors=[{"id": "d", "port": 22, "unlockCondition": {"type": "after_sunset"}}]),
    ])
    assert systems == []
    assert warnings[0].code == "invalid_system"


def test_filesystem_tree_is_flattened():
    """A nested filesystemTree becomes the system's snapshot."""
    system = authoring.parse_system(_system(filesystemTree={
        "name": "/",
        "type": "folder",
        "children": [{"name": "etc", "type": "folder", "children": [
            {"name": "motd", "type": "file", "content": "hi"},
        ]}],
    }))
    snapshot = system.filesystem.snapshot
    assert snapshot["/etc/motd"].content == "hi"
    assert snapshot["/"].children == ["/etc"]


def test_validate_system_warnings():
    """Soft problems load but are reported."""
    systems, warnings = authoring.load_system_definitions([
        _system(
            doors=[{"id": "a", "port": 22}, {"id": "b", "port": 22}],
            filesystem={"overrides": {"/ghost/file.txt": {"type": "file"}}},
        ),
        _system("loop", scope="quest_template", extendsSystemId="loop", appliesTo={"questId": "q"}),
    ])
    assert [s.id for s in systems] == ["relay", "loop"]
    assert [(w.code, w.subject) for w in warnings] == [
        ("duplicate_door_port", "b"),
        ("orphan_override_path", "relay:/ghost/file.txt"),
        ("self_extending_system", "loop"),
    ]
