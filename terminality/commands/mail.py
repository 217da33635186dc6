"""Mail commands: inbox, open, mail."""

from ..models.effects import CommandResult
from .parser import registry

_FOLDERS = ("inbox", "news", "spam", "archive")


def _index(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def cmd_inbox(args, session):
    """List a mail folder, the inbox by default."""
    folder = args[0].lower() if args else "inbox"
    if folder not in _FOLDERS:
        return CommandResult.fail(f"Unknown folder: {folder}")
    return session.inbox(folder)


def cmd_open(args, session):
    index = _index(args[0]) if args else None
    if index is None:
        return CommandResult.fail("Usage: open <index>")
    return session.open_mail(index)


def cmd_mail(args, session):
    """'mail', 'mail <index>', 'mail open <index>' or 'mail archive <index>'."""
    if not args:
        return session.inbox()
    sub = args[0].lower()
    if sub == "open":
        index = _index(args[1]) if len(args) > 1 else None
        if index is None:
            return CommandResult.fail("Usage: mail open <index>")
        return session.open_mail(index)
    if sub == "archive":
        index = _index(args[1]) if len(args) > 1 else None
        if index is None:
            return CommandResult.fail("Usage: mail archive <index>")
        return session.archive_mail(index)
    index = _index(sub)
    if index is None:
        return CommandResult.fail("Usage: mail <index>")
    return session.open_mail(index)


# Register commands
registry.register(
    "inbox", cmd_inbox,
    usage="inbox [folder]",
    description="List your mail",
)
registry.register(
    "open", cmd_open,
    usage="open <index>",
    description="Read a mail",
)
registry.register(
    "mail", cmd_mail,
    usage="mail [open|archive] <index>",
    description="Read or archive mail",
)
