"""Terminal session -- one player's terminal against the resolved systems.

Commands run one at a time and are fully resolved before they return:
filesystem edit, then trace, then doors and quests, then mail.  Each entry
point returns a :class:`CommandResult` carrying the lines to print and the
effect descriptors the desktop should render.  Everything that has to
survive a reload lives in :attr:`TerminalSession.state`.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from terminality.game import filesystem as vfs
from terminality.game import mail_engine, quest_engine, save_state, security_engine, trace_engine
from terminality.game.constants import SECURITY_GRADES
from terminality.game.quest_engine import QuestEvent, QuestUpdate, SessionSignals
from terminality.game.system_resolver import resolve_system_instance
from terminality.models.effects import (
    CommandResult,
    DoorUnlocked,
    SessionKicked,
    SystemLockedOut,
    TraceChanged,
    TraceEffectFired,
)
from terminality.models.mail import MailMessage
from terminality.models.quest import Quest
from terminality.models.session import SessionState, TraceSession
from terminality.models.system import ResolvedSystemInstance, SystemDefinition
from terminality.terminal import banners

log = logging.getLogger(__name__)

SCRUBBED_LOG = "[scrubbed] Log sanitized by operator."


class TerminalSession:
    """Per-player terminal state plus the content it plays against."""

    def __init__(
        self,
        systems: Iterable[SystemDefinition | ResolvedSystemInstance],
        quests: Iterable[Quest] = (),
        mail_catalog: Iterable[MailMessage] = (),
        state: SessionState | None = None,
    ):
        self.systems: dict[str, ResolvedSystemInstance] = {}
        for item in systems:
            instance = item if isinstance(item, ResolvedSystemInstance) else resolve_system_instance(item)
            self.systems[instance.definition.id] = instance
        self.quests: dict[str, Quest] = {quest.id: quest for quest in quests}
        self.mail_catalog: dict[str, MailMessage] = {message.id: message for message in mail_catalog}
        self.state = state.model_copy(deep=True) if state is not None else SessionState()

    @classmethod
    def from_envelope(cls, envelope: Any, systems, quests=(), mail_catalog=(), story_key=None):
        return cls(systems, quests, mail_catalog, state=save_state.hydrate_envelope(envelope, story_key))

    def to_envelope(
        self,
        desktop: Mapping[str, Any] | None = None,
        story_key: str | None = None,
        story: Mapping[str, Any] | None = None,
    ) -> dict:
        return save_state.build_envelope(self.state, desktop=desktop, story_key=story_key, story=story)

    @property
    def is_connected(self) -> bool:
        return self.state.connected_system_id is not None

    @property
    def prompt(self) -> str:
        if self.is_connected:
            return f"{self.state.connected_address}:{self.state.current_path}> "
        return "atlas> "

    @property
    def connected_system(self) -> SystemDefinition | None:
        instance = self.systems.get(self.state.connected_system_id or "")
        return instance.definition if instance else None

    def find_system(self, address: str) -> SystemDefinition | None:
        """The system answering to *address* (an IP, hostname or system id)."""
        address = (address or "").strip()
        for instance in self.systems.values():
            definition = instance.definition
            if definition.answers_to(address) or definition.id == address:
                return definition
        return None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_terminal(self) -> CommandResult:
        """The player opened the terminal window.

        Delivers the standing mail (catalog mail no quest hands out as a
        reward) and fires first-open quest triggers once.
        """
        result = CommandResult(output=list(banners.WELCOME))
        reward_refs = {ref for quest in self.quests.values() for ref in quest.rewards.mail}
        standing = [m for m in self.mail_catalog.values() if m.id not in reward_refs]
        self._deliver(standing, result)
        update = quest_engine.open_terminal(self.quests, self.state.quests, self._signals())
        self._apply_quest_update(update, result)
        return result

    def clear_lockout(self, system_id: str) -> bool:
        """Lift a lockout once the external cooldown has run out."""
        if system_id not in self.state.locked_out:
            return False
        self.state.locked_out.discard(system_id)
        log.info("Lockout on %s cleared", system_id)
        return True

    # ------------------------------------------------------------------
    # Network commands
    # ------------------------------------------------------------------

    def scan(self, ip: str, deep: bool = False) -> CommandResult:
        if not ip:
            return CommandResult.fail("Usage: deep_scan <ip>" if deep else "Usage: scan <ip>")
        verb = "Deep scanning" if deep else "Scanning"
        system = self.find_system(ip)
        if system is None:
            return CommandResult(ok=False, output=[f"{verb} {ip}...", "No live hosts detected."])

        result = CommandResult(output=[f"{verb} {ip}..."])
        action = "deep_scan" if deep else "scan"
        opened_before = self._open_doors(system)
        self._record_command(system.id, action)
        self._charge(system, action, result)

        grade = SECURITY_GRADES.get(system.difficulty or "", "unknown")
        result.output.append(f"Host {ip} ({system.label}) security: {grade}")
        if deep:
            result.output.extend(self._door_lines(system))
            rules = system.security_rules
            if rules is not None:
                result.output.append(
                    f"Trace cap {rules.max_trace:g}. Nervous @ {rules.nervous_threshold:g}, "
                    f"Panic @ {rules.panic_threshold:g}."
                )
            else:
                result.output.append("Security: standard perimeter.")
            if system.personality_blurb:
                result.output.append(system.personality_blurb)
        previous = self.state.known_hosts.get(ip)
        self.state.known_hosts[ip] = "deep" if deep or previous == "deep" else "basic"

        self._report_opened_doors(system, opened_before, result)
        self._quest_event(QuestEvent(quest_engine.SCAN_COMPLETED, target_ip=ip, system_id=system.id), result)
        return result

    def connect(self, ip: str, port: int | None = None) -> CommandResult:
        if not ip:
            return CommandResult.fail("Usage: connect <ip> [port]")
        system = self.find_system(ip)
        if self.is_connected:
            if system is not None and system.id == self.state.connected_system_id:
                return CommandResult.fail(f"Already connected to {self.state.connected_address}.")
            return CommandResult.fail("Already connected. Disconnect first.")
        if system is None:
            return CommandResult.fail(f"Connection refused by {ip}.")
        if system.id in self.state.locked_out:
            return CommandResult.fail(f"{ip} has locked you out. Try again later.")

        trace = self._trace(system.id)
        forced = self.state.forced_doors.get(system.id, set())
        door = None
        if system.doors:
            if port is not None:
                door = system.door_by_port(port)
                if door is None:
                    return CommandResult.fail(f"No service on {ip}:{port}.")
                if not security_engine.is_door_open(door, trace, forced):
                    return CommandResult.fail(f"{door.label} on {ip} is locked.")
            else:
                open_ids = security_engine.evaluate_doors(system.doors, trace, forced)
                if not open_ids:
                    return CommandResult.fail(f"Every door on {ip} is locked.")
                door = security_engine.find_door(system.doors, open_ids[0])

        result = CommandResult()
        opened_before = self._open_doors(system)
        if door is not None:
            self.state.traces[system.id], _ = security_engine.use_door(system.doors, door.id, trace, forced)
        self._record_command(system.id, "connect")

        filesystem = self._filesystem(system.id)
        start = vfs.normalize_path(system.credentials.starting_path or vfs.ROOT)
        node = filesystem.get(start)
        self.state.connected_system_id = system.id
        self.state.connected_address = ip
        self.state.connected_door_id = door.id if door else None
        self.state.current_path = start if node is not None and node.is_dir else vfs.ROOT
        result.output.extend(banners.connected_banner(ip, system.label, door.label if door else None))
        result.output.append(f"Connected to {ip}. Starting in {self.state.current_path}.")
        log.info("Connected to %s (%s) via %s", system.id, ip, door.id if door else "-")

        self._charge(system, "connect", result)
        self._report_opened_doors(system, opened_before, result)
        self._quest_event(QuestEvent(quest_engine.SESSION_CONNECTED, target_ip=ip, system_id=system.id), result)
        return result

    def disconnect(self) -> CommandResult:
        system = self.connected_system
        if system is None:
            return CommandResult.fail("Not currently connected.")
        address = self.state.connected_address
        result = CommandResult()
        self._record_command(system.id, "disconnect")
        self._charge(system, "disconnect", result)
        self._drop_connection()
        result.output.append(f"Disconnected from {address}.")
        self._quest_event(
            QuestEvent(quest_engine.SESSION_DISCONNECTED, target_ip=address, system_id=system.id), result
        )
        return result

    def bruteforce(self, door_ref: str, ip: str | None = None) -> CommandResult:
        """Force a door open and plant a backdoor on it."""
        if not door_ref:
            return CommandResult.fail("Usage: bruteforce <door|port> [ip]")
        system = self.find_system(ip) if ip else self.connected_system
        if system is None:
            return CommandResult.fail(f"No response from {ip}." if ip else "Usage: bruteforce <door|port> [ip]")
        if not system.doors:
            return CommandResult.fail("No targetable doors on this system.")
        door = security_engine.find_door(system.doors, door_ref)
        if door is None:
            return CommandResult.fail(f"No door matches {door_ref}.")

        forced = self.state.forced_doors.setdefault(system.id, set())
        if door.id in forced:
            return CommandResult.fail("Door already compromised.")
        result = CommandResult()
        opened_before = self._open_doors(system)
        self._record_command(system.id, "bruteforce")
        forced.add(door.id)
        self.state.door_statuses.setdefault(system.id, {})[door.id] = "backdoor"
        result.output.append(f"Backdoor planted on {door.label}.")
        self._charge(system, "bruteforce", result)
        self._report_opened_doors(system, opened_before, result)
        return result

    # ------------------------------------------------------------------
    # Filesystem commands
    # ------------------------------------------------------------------

    def list_dir(self, path: str | None = None) -> CommandResult:
        system = self.connected_system
        if system is None:
            return _not_connected()
        target = vfs.resolve_path(self.state.current_path, path)
        self._record_command(system.id, "ls")
        nodes = vfs.list_directory(self._filesystem(system.id), target)
        if nodes is None:
            return CommandResult.fail(f"No such directory: {target}")
        if not nodes:
            return CommandResult(output=["(empty)"])
        return CommandResult(output=[f"{node.name}/" if node.is_dir else node.name for node in nodes])

    def change_dir(self, path: str) -> CommandResult:
        system = self.connected_system
        if system is None:
            return _not_connected()
        if not path:
            return CommandResult.fail("Usage: cd <path>")
        target = vfs.resolve_path(self.state.current_path, path)
        self._record_command(system.id, "cd")
        node = vfs.get_node(self._filesystem(system.id), target)
        if node is None or not node.is_dir:
            return CommandResult.fail(f"No such directory: {target}")
        self.state.current_path = target
        return CommandResult(output=[f"Changed directory to {target}"])

    def read_file(self, path: str) -> CommandResult:
        system = self.connected_system
        if system is None:
            return _not_connected()
        if not path:
            return CommandResult.fail("Usage: cat <file>")
        target = vfs.resolve_path(self.state.current_path, path)
        node = vfs.get_node(self._filesystem(system.id), target)
        if node is None:
            return CommandResult.fail("File not found.")
        if node.is_dir:
            return CommandResult.fail(f"cat: {target} is a directory")

        address = self.state.connected_address
        result = CommandResult()
        opened_before = self._open_doors(system)
        self._record_command(system.id, "cat")
        self._trace(system.id).files_read_history.add(target)
        _append_once(self.state.read_paths, target)
        trapped = node.has_tag("trap") and target not in self.state.traps_triggered
        if trapped:
            self.state.traps_triggered.append(target)
            result.output.append("Security trap tripped while reading that file.")
        result.output.extend((node.content or "[empty file]").splitlines() or ["[empty file]"])
        self._charge(system, "open_trap_file" if trapped else "read_file", result)
        self._report_opened_doors(system, opened_before, result)
        self._quest_event(QuestEvent(
            quest_engine.FILE_READ, target_ip=address, file_path=target, system_id=system.id,
        ), result)
        return result

    def delete_file(self, path: str) -> CommandResult:
        system = self.connected_system
        if system is None:
            return _not_connected()
        if not path:
            return CommandResult.fail("Usage: rm <file>")
        target = vfs.resolve_path(self.state.current_path, path)
        filesystem = self._filesystem(system.id)
        node = filesystem.get(target)
        if node is None:
            return CommandResult.fail(f"No such file: {target}")
        if node.is_dir:
            return CommandResult.fail(f"rm: {target} is a directory")

        address = self.state.connected_address
        result = CommandResult()
        self._record_command(system.id, "rm")
        self.state.filesystems[system.id] = vfs.delete_node(filesystem, target)
        _append_once(self.state.deleted_paths, target)
        if node.has_tag("trap") and target not in self.state.traps_triggered:
            self.state.traps_triggered.append(target)
            result.output.append("Security trap tripped while deleting that file.")
        self._charge(system, "delete_sensitive_file" if node.has_tag("sensitive") else "delete_file", result)
        result.output.append(f"Deleted {target}")
        self._quest_event(QuestEvent(
            quest_engine.FILE_DELETED, target_ip=address, file_path=target, system_id=system.id,
        ), result)
        return result

    def clean_logs(self, path: str) -> CommandResult:
        """Overwrite a log file so it no longer shows the player's activity."""
        system = self.connected_system
        if system is None:
            return _not_connected()
        if not path:
            return CommandResult.fail("Usage: clean_logs <path>")
        target = vfs.resolve_path(self.state.current_path, path)
        filesystem = self._filesystem(system.id)
        node = filesystem.get(target)
        if node is None or node.is_dir:
            return CommandResult.fail("Log file not found.")

        result = CommandResult()
        self._record_command(system.id, "clean_logs")
        updated = dict(filesystem)
        updated[target] = node.model_copy(update={"content": SCRUBBED_LOG}, deep=True)
        self.state.filesystems[system.id] = updated
        _append_once(self.state.logs_cleaned, target)
        self._charge(system, "clean_logs", result)
        result.output.append(f"Sanitized logs at {target}.")
        return result

    # ------------------------------------------------------------------
    # Mail and status
    # ------------------------------------------------------------------

    def inbox(self, folder: str = "inbox") -> CommandResult:
        return CommandResult(output=mail_engine.format_listing(self.state.mail, folder))

    def open_mail(self, index: int, folder: str = "inbox") -> CommandResult:
        """Show a message; a first open of a quest mail offers its quest."""
        mail, message, first_open = mail_engine.open_mail(self.state.mail, index, folder)
        if message is None:
            return CommandResult.fail(f"No message at index {index}.")
        self.state.mail = mail
        result = CommandResult(output=mail_engine.format_message(message, index, folder))
        if first_open and message.linked_quest_id:
            update = quest_engine.offer_quest(
                self.quests, self.state.quests, message.linked_quest_id, self._signals()
            )
            self._apply_quest_update(update, result)
        return result

    def archive_mail(self, index: int, folder: str = "inbox") -> CommandResult:
        mail, message = mail_engine.archive_mail(self.state.mail, index, folder)
        if message is None:
            return CommandResult.fail(f"No message at index {index}.")
        self.state.mail = mail
        return CommandResult(output=[f"Archived: {message.subject}"])

    def status(self) -> CommandResult:
        system = self.connected_system
        lines = []
        if system is None:
            lines.append("Connected: no")
        else:
            lines.append(f"Connected: {self.state.connected_address} ({system.label})")
            lines.append(f"Path: {self.state.current_path}")
            lines.append(trace_engine.trace_meter(self._trace(system.id), system.security_rules))
        lines.append(f"Credits: {self.state.quests.credits}")
        return CommandResult(output=lines)

    def quest_log(self) -> CommandResult:
        lines = []
        for quest_id in self.state.quests.active:
            quest = self.quests.get(quest_id)
            if quest is None:
                continue
            step = quest_engine.current_step(quest, self.state.quests)
            lines.append(f"[active] {quest.display_title}")
            if step is not None and step.hints and step.hints.prompt:
                lines.append(f"    {step.hints.prompt}")
        for quest_id in self.state.quests.completed_ids:
            quest = self.quests.get(quest_id)
            title = quest.display_title if quest else quest_id
            lines.append(f"[done]   {title} ({self.state.quests.outcomes.get(quest_id, 'success')})")
        return CommandResult(output=lines or ["No quests yet."])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _filesystem(self, system_id: str):
        filesystem = self.state.filesystems.get(system_id)
        if filesystem is None:
            filesystem = vfs.clone(self.systems[system_id].filesystem)
            self.state.filesystems[system_id] = filesystem
        return filesystem

    def _trace(self, system_id: str) -> TraceSession:
        trace = self.state.traces.get(system_id)
        if trace is None:
            trace = trace_engine.new_trace_session(system_id)
            self.state.traces[system_id] = trace
        return trace

    def _record_command(self, system_id: str, name: str) -> None:
        self._trace(system_id).command_history.append(name.lower())

    def _open_doors(self, system: SystemDefinition) -> set[str]:
        forced = self.state.forced_doors.get(system.id, set())
        return set(security_engine.evaluate_doors(system.doors, self._trace(system.id), forced))

    def _report_opened_doors(self, system: SystemDefinition, before: set[str], result: CommandResult) -> None:
        for door_id in sorted(self._open_doors(system) - before):
            door = security_engine.find_door(system.doors, door_id)
            result.effects.append(DoorUnlocked(system_id=system.id, door_id=door_id))
            result.output.append(f"Door open: {door.label} ({door.port}/tcp)")

    def _door_lines(self, system: SystemDefinition) -> list[str]:
        if not system.doors:
            return ["No doors exposed."]
        trace = self._trace(system.id)
        statuses = self.state.door_statuses.get(system.id, {})
        forced = self.state.forced_doors.get(system.id, set())
        lines = []
        for door in system.doors:
            status = security_engine.door_status_for_connection(door, trace, statuses.get(door.id), forced)
            lines.append(f"  {door.port:>5}/tcp  {door.label:<20} {status}")
        return lines

    def _charge(self, system: SystemDefinition, action: str, result: CommandResult) -> None:
        statuses = self.state.door_statuses.setdefault(system.id, {})
        update = trace_engine.apply_trace_action(
            self._trace(system.id), action, system.security_rules, system.doors, statuses
        )
        self.state.traces[system.id] = update.session
        self.state.max_trace_seen = max(self.state.max_trace_seen, update.session.max_trace_seen)
        if update.delta:
            result.effects.append(TraceChanged(
                system_id=system.id,
                action=action,
                delta=update.delta,
                trace=update.session.trace_score,
                band=update.band,
            ))
            result.output.append(
                f"TRACE {update.delta:+g} ({action}) {trace_engine.trace_meter(update.session, system.security_rules)}"
            )
        result.output.extend(update.notices)
        for fired in update.effects:
            result.effects.append(fired)
            self._apply_trace_effect(system, fired, result)

    def _apply_trace_effect(self, system: SystemDefinition, fired: TraceEffectFired, result: CommandResult) -> None:
        if fired.effect == "tighten_doors":
            statuses = self.state.door_statuses.setdefault(system.id, {})
            forced = self.state.forced_doors.get(system.id, set())
            for change in fired.door_changes:
                statuses[change.door_id] = change.new_status
                forced.discard(change.door_id)
                result.output.append(f"{change.door_id}: {change.old_status} -> {change.new_status}")
        elif fired.effect == "kick_user":
            if self.state.connected_system_id == system.id:
                self._drop_connection()
                result.effects.append(SessionKicked(system_id=system.id))
                result.output.append("Connection terminated by remote host.")
        elif fired.effect == "lockout":
            self.state.locked_out.add(system.id)
            if self.state.connected_system_id == system.id:
                self._drop_connection()
                result.effects.append(SessionKicked(system_id=system.id))
            result.effects.append(SystemLockedOut(system_id=system.id))
            result.output.append(f"{system.label} has locked you out.")
        else:
            log.info("Trace audit on %s: %s band reached", system.id, fired.band)

    def _drop_connection(self) -> None:
        self.state.connected_system_id = None
        self.state.connected_address = None
        self.state.connected_door_id = None
        self.state.current_path = vfs.ROOT

    def _signals(self, system_id: str | None = None) -> SessionSignals:
        system_id = system_id or self.state.connected_system_id
        trace = self.state.traces.get(system_id or "")
        return SessionSignals(
            trace=trace.trace_score if trace else 0.0,
            max_trace_seen=self.state.max_trace_seen,
            traps_triggered=list(self.state.traps_triggered),
            deleted_paths=list(self.state.deleted_paths),
            read_paths=list(self.state.read_paths),
            logs_cleaned=list(self.state.logs_cleaned),
        )

    def _quest_event(self, event: QuestEvent, result: CommandResult) -> None:
        update = quest_engine.process_event(self.quests, self.state.quests, event, self._signals(event.system_id))
        self._apply_quest_update(update, result)

    def _apply_quest_update(self, update: QuestUpdate, result: CommandResult) -> None:
        self.state.quests = update.state
        result.effects.extend(update.effects)
        result.output.extend(update.notices)
        messages = list(update.mail)
        for ref in update.mail_refs:
            if ref in self.mail_catalog:
                messages.append(self.mail_catalog[ref])
            else:
                log.warning("Reward mail %s is not in the catalog", ref)
        self._deliver(messages, result)

    def _deliver(self, messages: list[MailMessage], result: CommandResult) -> None:
        self.state.mail, delivered = mail_engine.deliver(self.state.mail, messages)
        result.effects.extend(delivered)
        result.output.extend(f"New mail: {effect.subject}" for effect in delivered)


def _not_connected() -> CommandResult:
    return CommandResult.fail("Not connected. Use 'connect <ip>' first.")


def _append_once(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)
