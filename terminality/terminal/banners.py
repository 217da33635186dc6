"""Text banners the terminal prints."""

RULE = "=" * 52

WELCOME = [
    RULE,
    "  ATLASNET OPERATOR TERMINAL v2.4",
    "  All remote sessions are monitored and logged",
    RULE,
    "",
    "  Type 'inbox' to read your mail",
    "  Type 'help' for available commands",
]


def connected_banner(address: str, label: str, door_label: str | None) -> list[str]:
    via = f" via {door_label}" if door_label else ""
    return [RULE, f"  {label} ({address}){via}", RULE]
