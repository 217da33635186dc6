"""Meta commands: help, status, trace, quests."""

from ..models.effects import CommandResult
from .parser import mode_of, registry


_COMMAND_CATEGORIES = {
    "Network": ["scan", "deep_scan", "connect", "disconnect", "dc", "bruteforce"],
    "Files": ["ls", "cd", "pwd", "cat", "read", "rm", "delete", "clean_logs"],
    "Mail": ["inbox", "open", "mail"],
    "Meta": ["help", "status", "trace", "quests"],
}


def cmd_help(args, session):
    """Show available commands grouped by category."""
    commands = {c.name: c for c in registry.commands_for_mode(mode_of(session))}
    lines = ["AVAILABLE COMMANDS", ""]
    for category, names in _COMMAND_CATEGORIES.items():
        cmds_in_cat = [commands[n] for n in names if n in commands]
        if not cmds_in_cat:
            continue
        lines.append(f"  {category}")
        for cmd in cmds_in_cat:
            lines.append(f"    {cmd.usage or cmd.name:<30} {cmd.description}")
        lines.append("")
    return CommandResult(output=lines)


def cmd_status(args, session):
    """Show connection, trace and credits."""
    return session.status()


def cmd_quests(args, session):
    return session.quest_log()


# Register commands
registry.register(
    "help", cmd_help,
    usage="help",
    description="Show available commands",
)
for _name in ("status", "trace"):
    registry.register(
        _name, cmd_status,
        usage=_name,
        description="Show connection and trace status",
    )
registry.register(
    "quests", cmd_quests,
    usage="quests",
    description="Show active and completed quests",
)
