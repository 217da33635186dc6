"""Network and filesystem commands: scan, deep_scan, connect, disconnect, bruteforce,
ls, cd, pwd, cat, rm, clean_logs."""

from ..models.effects import CommandResult
from .parser import TerminalMode, registry


def cmd_scan(args, session):
    """Probe a host for basic information."""
    if not args:
        return CommandResult.fail("Usage: scan <ip> [--deep]")
    deep = "--deep" in args
    positional = [a for a in args if not a.startswith("--")]
    if not positional:
        return CommandResult.fail("Usage: scan <ip> [--deep]")
    return session.scan(positional[0], deep=deep)


def cmd_deep_scan(args, session):
    """Probe a host, its doors and its security rules."""
    if not args:
        return CommandResult.fail("Usage: deep_scan <ip>")
    return session.scan(args[0], deep=True)


def cmd_connect(args, session):
    """Connect to a host, optionally through a given port."""
    if not args:
        return CommandResult.fail("Usage: connect <ip> [port]")
    port = None
    if len(args) > 1:
        try:
            port = int(args[1])
        except ValueError:
            return CommandResult.fail(f"Invalid port: {args[1]}")
    return session.connect(args[0], port)


def cmd_disconnect(args, session):
    return session.disconnect()


def cmd_bruteforce(args, session):
    """Force a door; 'bruteforce <door|port> [ip]'."""
    if not args:
        return CommandResult.fail("Usage: bruteforce <door|port> [ip]")
    ip = args[1] if len(args) > 1 else None
    return session.bruteforce(args[0], ip)


def cmd_ls(args, session):
    return session.list_dir(args[0] if args else None)


def cmd_cd(args, session):
    if not args:
        return CommandResult.fail("Usage: cd <path>")
    return session.change_dir(args[0])


def cmd_pwd(args, session):
    return CommandResult(output=[session.state.current_path])


def cmd_cat(args, session):
    if not args:
        return CommandResult.fail("Usage: cat <file>")
    return session.read_file(args[0])


def cmd_rm(args, session):
    if not args:
        return CommandResult.fail("Usage: rm <file>")
    return session.delete_file(args[0])


def cmd_clean_logs(args, session):
    if not args:
        return CommandResult.fail("Usage: clean_logs <path>")
    return session.clean_logs(args[0])


# Register commands
_REMOTE = [TerminalMode.REMOTE]

registry.register(
    "scan", cmd_scan,
    usage="scan <ip> [--deep]",
    description="Probe a host",
)
registry.register(
    "deep_scan", cmd_deep_scan,
    usage="deep_scan <ip>",
    description="Probe a host's doors and security",
)
registry.register(
    "connect", cmd_connect,
    usage="connect <ip> [port]",
    description="Connect to a host",
)
for _name in ("disconnect", "dc"):
    registry.register(
        _name, cmd_disconnect,
        modes=_REMOTE,
        usage=_name,
        description="Close the current connection",
    )
registry.register(
    "bruteforce", cmd_bruteforce,
    usage="bruteforce <door|port> [ip]",
    description="Force a door and plant a backdoor",
)
registry.register(
    "ls", cmd_ls,
    modes=_REMOTE,
    usage="ls [path]",
    description="List a directory",
)
registry.register(
    "cd", cmd_cd,
    modes=_REMOTE,
    usage="cd <path>",
    description="Change directory",
)
registry.register(
    "pwd", cmd_pwd,
    modes=_REMOTE,
    usage="pwd",
    description="Show the current directory",
)
for _name in ("cat", "read"):
    registry.register(
        _name, cmd_cat,
        modes=_REMOTE,
        usage=f"{_name} <file>",
        description="Print a file",
    )
for _name in ("rm", "delete"):
    registry.register(
        _name, cmd_rm,
        modes=_REMOTE,
        usage=f"{_name} <file>",
        description="Delete a file",
    )
registry.register(
    "clean_logs", cmd_clean_logs,
    modes=_REMOTE,
    usage="clean_logs <path>",
    description="Scrub a log file",
)
