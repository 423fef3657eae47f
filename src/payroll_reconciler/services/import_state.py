"""Import history status machine with transition validation."""

from __future__ import annotations

from enum import Enum


class ImportStatus(str, Enum):
    """Import history status values."""

    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class ImportType(str, Enum):
    """Kind of file an import history row describes."""

    TIMESHEET = "TIMESHEET"
    MONTHLY_SUMMARY = "MONTHLY_SUMMARY"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ImportStatusMachine:
    """State machine for import history status.

    Allowed transitions:
    - PROCESSING → COMPLETED
    - PROCESSING → PARTIAL
    - PROCESSING → FAILED

    The history row is an audit record: once closed it never changes again.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ImportStatus.PROCESSING: [
            ImportStatus.COMPLETED,
            ImportStatus.PARTIAL,
            ImportStatus.FAILED,
        ],
        ImportStatus.COMPLETED: [],
        ImportStatus.PARTIAL: [],
        ImportStatus.FAILED: [],
    }

    TERMINAL = {ImportStatus.COMPLETED, ImportStatus.PARTIAL, ImportStatus.FAILED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "import already closed" if from_status in cls.TERMINAL else None
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @staticmethod
    def final_status(error_count: int, committed_chunks: int) -> ImportStatus:
        """Closing status of a chunked import.

        COMPLETED without errors; PARTIAL with errors when at least one chunk
        committed; FAILED when nothing was committed.
        """
        if error_count == 0:
            return ImportStatus.COMPLETED
        if committed_chunks > 0:
            return ImportStatus.PARTIAL
        return ImportStatus.FAILED
