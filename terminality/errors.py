"""Error taxonomy for the game core.

Recoverable problems are reported as :class:`ValidationWarning` values that
travel alongside the result.  Only an ``extendsSystemId`` cycle is fatal.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationWarning:
    """A non-fatal authoring problem surfaced to the caller."""

    code: str
    message: str
    subject: str | None = None

    def __str__(self) -> str:
        if self.subject:
            return f"[{self.code}] {self.subject}: {self.message}"
        return f"[{self.code}] {self.message}"


class TerminalityError(Exception):
    """Base class for errors raised by the game core."""


class SystemResolutionCycleError(TerminalityError):
    """An ``extendsSystemId`` chain loops back on itself."""

    def __init__(self, chain: list[str]):
        self.chain = chain
        super().__init__("extendsSystemId cycle: " + " -> ".join(chain))


class AuthoringPayloadError(TerminalityError):
    """An authoring payload could not be converted into a model."""

    def __init__(self, kind: str, detail: str, payload_id: str | None = None):
        self.kind = kind
        self.detail = detail
        self.payload_id = payload_id
        label = f"{kind} {payload_id}" if payload_id else kind
        super().__init__(f"Invalid {label}: {detail}")
