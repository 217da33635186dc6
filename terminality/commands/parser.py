"""Command tokenizer, registry, and dispatch."""

import shlex
from enum import Enum

from ..models.effects import CommandResult


class TerminalMode(Enum):
    LOCAL = "local"
    REMOTE = "remote"


def mode_of(terminal_session):
    return TerminalMode.REMOTE if terminal_session.is_connected else TerminalMode.LOCAL


class Command:
    def __init__(self, name, handler, modes, usage, description):
        self.name = name
        self.handler = handler
        self.modes = modes
        self.usage = usage
        self.description = description


class CommandRegistry:
    def __init__(self):
        self._commands = {}

    def register(self, name, handler, modes=None, usage="", description=""):
        if modes is None:
            modes = list(TerminalMode)
        self._commands[name] = Command(name, handler, modes, usage, description)

    def get(self, name):
        return self._commands.get(name)

    def commands_for_mode(self, mode):
        return [
            cmd for cmd in self._commands.values() if mode in cmd.modes
        ]


registry = CommandRegistry()


def tokenize(text):
    """Split input into tokens, respecting quoted strings."""
    try:
        return shlex.split(text)
    except ValueError:
        # Unmatched quotes, fall back to simple split
        return text.split()


def dispatch(text, terminal_session):
    """Parse and execute a command. Returns a CommandResult, or None for blank input."""
    text = text.strip()
    if not text:
        return None

    tokens = tokenize(text)
    if not tokens:
        return None
    cmd_name = tokens[0].lower()
    args = tokens[1:]

    cmd = registry.get(cmd_name)
    if cmd is not None and mode_of(terminal_session) in cmd.modes:
        return cmd.handler(args, terminal_session)

    # Command exists but wrong mode
    if cmd is not None:
        if mode_of(terminal_session) == TerminalMode.LOCAL:
            return CommandResult.fail("Not connected. Use 'connect <ip>' first.")
        return CommandResult.fail(f"Command '{cmd_name}' not available while connected.")

    return CommandResult.fail(
        f"Unknown command: '{cmd_name}'. "
        f"Type 'help' for available commands."
    )
