"""Starter content -- the relay, contract and mail a new player begins with.

Used when no authored content is supplied, and by the tests as a known
world.
"""
from terminality.game.system_resolver import profile_to_definition
from terminality.models.mail import MailMessage
from terminality.models.quest import Quest
from terminality.models.security import Door, SecurityRules
from terminality.models.system import SystemDefinition

INTRO_SYSTEM_ID = "atlas_relay"
INTRO_SYSTEM_IP = "10.23.4.8"
INTRO_QUEST_ID = "intro_001_wipe_evidence"
INTRO_MAIL_ID = "ops_wipe_evidence"
EVIDENCE_PATH = "/var/logs/evidence.log"


def _dir(path: str, children: list[str]) -> dict:
    base = "" if path == "/" else path
    return {"type": "dir", "path": path, "children": [f"{base}/{c}" for c in children]}


def _file(path: str, content: str, tags: list[str] | None = None) -> dict:
    node = {"type": "file", "path": path, "content": content}
    if tags:
        node["tags"] = tags
    return node


def atlas_relay_profile() -> dict:
    nodes = [
        _dir("/", ["home", "var", "etc"]),
        _dir("/home", ["guest"]),
        _dir("/home/guest", ["readme.txt"]),
        _file("/home/guest/readme.txt", "Guest shell. Check /var/logs for rotating captures.", ["clue"]),
        _dir("/var", ["logs"]),
        _dir("/var/logs", ["system.log", "evidence.log"]),
        _file("/var/logs/system.log", "[2025-11-10] Relay heartbeat OK.", ["log"]),
        _file(EVIDENCE_PATH, "Traceroute stack: playerid=*** :: flagged for purge.", ["objective", "sensitive"]),
        _dir("/etc", ["motd"]),
        _file("/etc/motd", "Atlas Relay MOTD: unauthorized access prohibited.", ["lore"]),
    ]
    return {
        "id": INTRO_SYSTEM_ID,
        "label": "Atlas Relay",
        "identifiers": {"ips": [INTRO_SYSTEM_IP], "hostnames": []},
        "metadata": {
            "username": "guest",
            "startingPath": "/home/guest",
            "footprint": "Legacy relay maintained by an unknown broker.",
        },
        "filesystem": {node["path"]: node for node in nodes},
    }


def default_systems() -> list[SystemDefinition]:
    relay = profile_to_definition(atlas_relay_profile())
    relay.difficulty = "tutorial"
    relay.doors = [
        Door(
            id="door_ssh",
            name="Maintenance SSH",
            port=22,
            status="locked",
            description="Legacy SSH endpoint maintained by Atlas custodians.",
            unlock_condition={"type": "after_command_used", "data": {"command": "deep_scan"}},
        ),
        Door(
            id="door_telemetry",
            name="Telemetry Relay",
            port=8080,
            status="weak_spot",
            description="Unpatched relay streaming anonymized metrics out of the cluster.",
            unlock_condition={"type": "always_open", "data": {}},
        ),
        Door(
            id="door_ops",
            name="Ops Backdoor",
            port=31337,
            status="backdoor",
            description="Quiet admin tunnel left behind by the ops crew.",
            unlock_condition={"type": "trace_below", "data": {"maxTrace": 40}},
        ),
    ]
    relay.security_rules = SecurityRules(
        max_trace=100,
        nervous_threshold=60,
        panic_threshold=85,
        nervous_effect="tighten_doors",
        panic_effect="kick_user",
    )
    return [relay]


def default_quests() -> list[Quest]:
    return [Quest.model_validate({
        "id": INTRO_QUEST_ID,
        "title": "Wipe the Evidence",
        "description": "Your handler wants a trace log erased from a remote machine.",
        "trigger": {"type": "ON_FIRST_TERMINAL_OPEN"},
        "default_system_id": INTRO_SYSTEM_ID,
        "completion_flag": "quest_intro_001_completed",
        "steps": [
            {
                "id": "step1_scan_host",
                "type": "SCAN_HOST",
                "params": {"target_ip": INTRO_SYSTEM_IP},
                "hints": {"prompt": "Use the scan tool on the IP from your inbox.",
                          "command_example": f"scan {INTRO_SYSTEM_IP}"},
            },
            {
                "id": "step2_connect_host",
                "type": "CONNECT_HOST",
                "params": {"target_ip": INTRO_SYSTEM_IP},
                "hints": {"prompt": "Now connect to that host.",
                          "command_example": f"connect {INTRO_SYSTEM_IP}"},
            },
            {
                "id": "step3_delete_file",
                "type": "DELETE_FILE",
                "params": {"target_ip": INTRO_SYSTEM_IP, "file_path": EVIDENCE_PATH},
                "hints": {"prompt": "Navigate to /var/logs and delete evidence.log.",
                          "command_example": "rm /var/logs/evidence.log"},
            },
            {
                "id": "step4_disconnect",
                "type": "DISCONNECT_HOST",
                "params": {"target_ip": INTRO_SYSTEM_IP},
                "hints": {"prompt": "Disconnect to finish the job.", "command_example": "disconnect"},
            },
        ],
        "rewards": {"credits": 250, "flags": ["quest_intro_001_completed"]},
        "completion_email": {
            "default": {
                "subject": "Re: Directive: Wipe the Evidence",
                "body": "Relay is clean. Payment is on its way.\n\n-- Atlas Ops",
            },
            "variants": [
                {
                    "id": "ghost",
                    "subject": "Re: Directive: Wipe the Evidence (clean run)",
                    "body": "Nobody on site even noticed you. Bonus wired.\n\n-- Atlas Ops",
                    "conditions": [{"type": "trace_below", "data": {"maxTrace": 30}}],
                },
            ],
        },
        "risk_profile": {"max_recommended_trace": 30, "fail_above_trace": 100},
    })]


def default_mail() -> list[MailMessage]:
    return [
        MailMessage(
            id=INTRO_MAIL_ID,
            from_name="Atlas Ops",
            from_address="ops@atlasnet",
            subject="Directive: Wipe the Evidence",
            body="\n".join([
                "Operator,",
                "",
                "Telemetry shows a relay in the Atlas outskirts captured your alias on a trace log. "
                "Corporate audit will hit the rack in under an hour.",
                "",
                f"1) Scan {INTRO_SYSTEM_IP} to make sure the relay is still awake.",
                f"2) Connect and locate {EVIDENCE_PATH}.",
                "3) Delete the artifact and clear any shell history you touch.",
                "",
                "No chatter with on-site staff.",
                "",
                "-- Atlas Ops",
            ]),
            in_universe_date="2089-06-01 14:22",
            linked_quest_id=INTRO_QUEST_ID,
            tags=["quest"],
        ),
        MailMessage(
            id="sysadmin_maintenance",
            from_name="Atlas SysAdmin",
            from_address="sysadmin@atlasnet",
            subject="Scheduled Maintenance Window",
            body="\n".join([
                "Heads up Operators,",
                "",
                "We are cycling firmware on the relay clusters between 02:00 and 04:00 local. "
                "Auth tokens may require reissue and remote shells could drop once or twice.",
                "",
                "-- Atlas SysAdmin",
            ]),
            in_universe_date="2089-06-01 03:45",
            tags=["lore"],
        ),
    ]
