from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Protocol

from postmeet.logutil import log, utc_now
from postmeet.notetaker.failure_codes import (
    TRANSCRIPT_READY_STATUSES,
    BotStatus,
    PollOutcome,
    is_terminal,
)
from postmeet.notetaker.recall_client import BotSnapshot, BotTranscript
from postmeet.notetaker.transcript_format import format_transcript


class BotApi(Protocol):
    def get_bot(self, bot_id: str) -> BotSnapshot: ...

    def get_transcript(self, bot_id: str) -> BotTranscript: ...


class RecordStore(Protocol):
    def record_poll(
        self,
        meeting_id: str,
        *,
        status: str | None,
        error: str | None,
        polled_at: dt.datetime,
        max_attempts: int,
    ) -> bool: ...

    def store_transcript(
        self,
        meeting_id: str,
        *,
        raw: Any,
        text: str,
        video_url: str | None,
        completed_at: dt.datetime,
    ) -> bool: ...

    def update_meeting(self, meeting_id: str, **fields: Any) -> bool: ...


def error_message(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


def reconcile_meeting(
    meeting: Any,
    *,
    client: BotApi,
    store: RecordStore,
    max_attempts: int,
    now: Callable[[], dt.datetime] = utc_now,
) -> PollOutcome:
    """Poll one meeting's bot once and move its record forward.

    1. Fetch the live status. On failure the attempt still counts and the
       error is kept in `last_error`, but `bot_status` is left alone.
    2. Persist the observed status (even if unchanged), bump
       `poll_attempts` and `last_polled_at`.
    3. On `done` / `call_ended`, fetch the transcript:
       - non-empty: store raw + formatted text, status `completed`;
       - empty: status `no_transcript`;
       - fetch failed: status `processing_failed`, `completed_at` left unset
         so the meeting can be followed up by hand.

    Store errors are not caught here; the caller isolates them per meeting.
    """

    meeting_id = str(meeting.id)
    bot_id = meeting.external_bot_id
    current = meeting.bot_status

    if not bot_id or is_terminal(current):
        return PollOutcome(
            meeting_id=meeting_id,
            bot_id=bot_id,
            observed_status=None,
            persisted_status=current,
            skipped=True,
        )

    try:
        snapshot = client.get_bot(bot_id)
    except Exception as e:
        message = error_message(e)
        log(f"Status fetch failed for meeting {meeting_id} bot {bot_id}: {message}")
        store.record_poll(meeting_id, status=None, error=message, polled_at=now(), max_attempts=max_attempts)
        return PollOutcome(
            meeting_id=meeting_id,
            bot_id=bot_id,
            observed_status=None,
            persisted_status=current,
            error=message,
        )

    observed = snapshot.status.value
    counted = store.record_poll(meeting_id, status=observed, error=None, polled_at=now(), max_attempts=max_attempts)
    if not counted:
        # Another writer used up the last attempt first.
        log(f"Meeting {meeting_id} has no poll attempts left; skipping")
        return PollOutcome(
            meeting_id=meeting_id,
            bot_id=bot_id,
            observed_status=observed,
            persisted_status=current,
            skipped=True,
        )

    if snapshot.status not in TRANSCRIPT_READY_STATUSES:
        if snapshot.raw_status and snapshot.raw_status != observed:
            log(f"Bot {bot_id} status: {observed} (reported as {snapshot.raw_status})")
        else:
            log(f"Bot {bot_id} status: {observed}")
        return PollOutcome(meeting_id=meeting_id, bot_id=bot_id, observed_status=observed, persisted_status=observed)

    log(f"Bot {bot_id} finished with status {observed}; fetching transcript")
    return _ingest_transcript(
        meeting_id=meeting_id,
        bot_id=bot_id,
        snapshot=snapshot,
        client=client,
        store=store,
        now=now,
    )


def _ingest_transcript(
    *,
    meeting_id: str,
    bot_id: str,
    snapshot: BotSnapshot,
    client: BotApi,
    store: RecordStore,
    now: Callable[[], dt.datetime],
) -> PollOutcome:
    observed = snapshot.status.value

    try:
        transcript = client.get_transcript(bot_id)
    except Exception as e:
        message = error_message(e)
        log(f"Transcript fetch failed for meeting {meeting_id} bot {bot_id}: {message}")
        store.update_meeting(meeting_id, bot_status=BotStatus.PROCESSING_FAILED.value, last_error=message)
        return PollOutcome(
            meeting_id=meeting_id,
            bot_id=bot_id,
            observed_status=observed,
            persisted_status=BotStatus.PROCESSING_FAILED.value,
            error=message,
        )

    if transcript.is_empty:
        log(f"No transcript available for bot {bot_id}")
        store.update_meeting(meeting_id, bot_status=BotStatus.NO_TRANSCRIPT.value, completed_at=now())
        return PollOutcome(
            meeting_id=meeting_id,
            bot_id=bot_id,
            observed_status=observed,
            persisted_status=BotStatus.NO_TRANSCRIPT.value,
        )

    text = format_transcript(transcript.segments)
    stored = store.store_transcript(
        meeting_id,
        raw=transcript.raw,
        text=text,
        video_url=snapshot.video_url,
        completed_at=now(),
    )
    if stored:
        log(f"Transcript saved for meeting {meeting_id} ({len(transcript.segments)} segments)")
    else:
        # Transcript columns are write-once; the first copy stays.
        log(f"Meeting {meeting_id} already has a transcript; keeping the stored copy")
        store.update_meeting(meeting_id, bot_status=BotStatus.COMPLETED.value)

    return PollOutcome(
        meeting_id=meeting_id,
        bot_id=bot_id,
        observed_status=observed,
        persisted_status=BotStatus.COMPLETED.value,
        transcript_stored=stored,
    )
