"""Save state -- the versioned envelope terminal progress travels in.

The core never talks to storage itself.  It hands the caller an envelope
``{version, desktop, story}`` with the terminal session nested under a
story key, and rebuilds a session from whatever envelope it is given.
Saving goes through a :class:`DesktopStateStore` supplied by the caller;
failures are logged and never touch in-memory state.
"""
import copy
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from terminality.config import settings
from terminality.models.session import SessionState

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def build_envelope(
    state: SessionState,
    desktop: Mapping[str, Any] | None = None,
    story_key: str | None = None,
    story: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Wrap *state* for persistence, keeping other story entries intact."""
    key = story_key or settings.SNAPSHOT_STORY_KEY
    nested = dict(story or {})
    nested[key] = state.model_dump(mode="json")
    return {
        "version": settings.SNAPSHOT_VERSION,
        "desktop": dict(desktop or {}),
        "story": nested,
    }


def hydrate_envelope(envelope: Any, story_key: str | None = None) -> SessionState:
    """Rebuild a session from *envelope*.

    Missing keys, unknown versions and unreadable state all yield a fresh
    session; only the last two are worth a warning.
    """
    key = story_key or settings.SNAPSHOT_STORY_KEY
    if not isinstance(envelope, Mapping):
        return SessionState()
    version = envelope.get("version")
    if version is not None and version != settings.SNAPSHOT_VERSION:
        log.warning("Ignoring save envelope with unknown version %r", version)
        return SessionState()
    story = envelope.get("story")
    if not isinstance(story, Mapping) or not isinstance(story.get(key), Mapping):
        return SessionState()
    try:
        return SessionState.model_validate(story[key])
    except ValidationError as exc:
        log.warning("Discarding unreadable terminal state: %d error(s)", exc.error_count())
        return SessionState()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class DesktopStateStore(Protocol):
    """Key/value store for envelopes, implemented outside the core."""

    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, envelope: dict[str, Any], revision: int) -> bool:
        """Persist *envelope*; ``False`` when a newer revision is already stored."""
        ...


@dataclass
class _Record:
    revision: int
    envelope: dict[str, Any]


class InMemoryDesktopStateStore:
    """Process-local store: one writer per key, most recent revision wins."""

    def __init__(self):
        self._records: dict[str, _Record] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(key)
            return None if record is None else _copy(record.envelope)

    def revision(self, key: str) -> int:
        with self._lock:
            record = self._records.get(key)
            return 0 if record is None else record.revision

    def save(self, key: str, envelope: dict[str, Any], revision: int) -> bool:
        with self._lock:
            current = self._records.get(key)
            if current is not None and revision <= current.revision:
                return False
            self._records[key] = _Record(revision=revision, envelope=_copy(envelope))
            return True


def save_best_effort(store: DesktopStateStore, key: str, envelope: dict[str, Any], revision: int) -> bool:
    """Save without letting a store failure reach the caller."""
    try:
        saved = store.save(key, envelope, revision)
    except Exception:
        log.warning("Saving desktop state %s failed", key, exc_info=True)
        return False
    if not saved:
        log.info("Desktop state %s revision %d superseded", key, revision)
    return bool(saved)


def _copy(envelope: dict[str, Any]) -> dict[str, Any]:
    return copy.deepcopy(envelope)
