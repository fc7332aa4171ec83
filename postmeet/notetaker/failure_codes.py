from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class BotStatus(str, Enum):
    # Values are the bot API's own status codes.
    UNKNOWN = "unknown"
    READY = "ready"
    JOINING_CALL = "joining_call"
    IN_WAITING_ROOM = "in_waiting_room"
    IN_CALL_NOT_RECORDING = "in_call_not_recording"
    IN_CALL_RECORDING = "in_call_recording"

    # Meeting over, transcript may be fetched.
    DONE = "done"
    CALL_ENDED = "call_ended"

    # Bot gave up on the remote side.
    FAILED = "failed"

    # Written by the reconciler / scheduling service only.
    COMPLETED = "completed"
    NO_TRANSCRIPT = "no_transcript"
    PROCESSING_FAILED = "processing_failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset(
    {
        BotStatus.READY,
        BotStatus.JOINING_CALL,
        BotStatus.IN_WAITING_ROOM,
        BotStatus.IN_CALL_NOT_RECORDING,
        BotStatus.IN_CALL_RECORDING,
    }
)

# `None` and `unknown` are pollable as well; they are handled by the selector.
POLLABLE_STATUSES = ACTIVE_STATUSES | {BotStatus.UNKNOWN}

TRANSCRIPT_READY_STATUSES = frozenset({BotStatus.DONE, BotStatus.CALL_ENDED})

TERMINAL_STATUSES = frozenset(
    {
        BotStatus.COMPLETED,
        BotStatus.NO_TRANSCRIPT,
        BotStatus.PROCESSING_FAILED,
        BotStatus.CANCELLED,
        BotStatus.FAILED,
    }
)

FAILED_STATUSES = frozenset({BotStatus.FAILED, BotStatus.PROCESSING_FAILED, BotStatus.NO_TRANSCRIPT})

# Never accepted from the bot API; a remote code with one of these values reads as `unknown`.
LOCAL_ONLY_STATUSES = frozenset(
    {
        BotStatus.COMPLETED,
        BotStatus.NO_TRANSCRIPT,
        BotStatus.PROCESSING_FAILED,
        BotStatus.CANCELLED,
    }
)


def is_terminal(status: str | None) -> bool:
    return status is not None and status in {s.value for s in TERMINAL_STATUSES}


class BotApiError(RuntimeError):
    """Any failure talking to the bot API."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class TransientBotApiError(BotApiError):
    """Timeouts, connection errors, 429 and 5xx. Safe to retry next cycle."""


class TerminalBotApiError(BotApiError):
    """The remote side says the resource is gone or the request is invalid."""


@dataclass(frozen=True)
class PollOutcome:
    """Result of reconciling one meeting in one cycle.

    Small and JSON-serializable so it can go straight into logs and the
    polling status endpoint.
    """

    meeting_id: str
    bot_id: str | None
    observed_status: str | None
    persisted_status: str | None
    transcript_stored: bool = False
    error: str | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "meeting_id": self.meeting_id,
            "bot_id": self.bot_id,
            "observed_status": self.observed_status,
            "persisted_status": self.persisted_status,
            "transcript_stored": self.transcript_stored,
            "error": self.error,
            "skipped": self.skipped,
        }
