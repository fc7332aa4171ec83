from __future__ import annotations

import datetime as dt
from typing import Any

from database.adapters import MeetingStore
from database.models import Meeting
from postmeet.logutil import log, utc_now
from postmeet.notetaker.failure_codes import BotStatus, TerminalBotApiError, is_terminal
from postmeet.notetaker.recall_client import RecallClient


def enable_note_taker(
    store: MeetingStore,
    client: RecallClient,
    *,
    user_id: str,
    calendar_event_id: str,
    title: str | None,
    meeting_url: str | None,
    start_time: dt.datetime,
    end_time: dt.datetime | None = None,
    platform: str | None = None,
    bot_options: dict[str, Any] | None = None,
) -> Meeting:
    """Turn note-taking on for a calendar event and dispatch its bot.

    Creates the meeting record on first use. Calling it again for a meeting
    that already has a bot only refreshes the event details.
    """

    if not meeting_url:
        raise ValueError("Cannot enable note taker: no meeting URL found in calendar event")

    details = {
        "title": title,
        "meeting_url": meeting_url,
        "platform": platform,
        "start_time": start_time,
        "end_time": end_time,
    }

    meeting = store.find_by_calendar_event(user_id, calendar_event_id)
    if meeting is None:
        meeting = store.create_meeting(
            user_id=user_id,
            calendar_event_id=calendar_event_id,
            note_taker_enabled=False,
            **details,
        )
    else:
        store.update_meeting(meeting.id, **details)

    if meeting.external_bot_id:
        log(f"Meeting {meeting.id} already has bot {meeting.external_bot_id}", component="service")
        return store.get_meeting(meeting.id)

    bot_id = client.create_bot(meeting_url, join_at=start_time, options=bot_options)
    store.update_meeting(
        meeting.id,
        external_bot_id=bot_id,
        bot_status=None,
        poll_attempts=0,
        last_polled_at=None,
        last_error=None,
        completed_at=None,
        note_taker_enabled=True,
    )
    log(f"Scheduled bot {bot_id} for meeting {meeting.id} ({title or 'Untitled'})", component="service")
    return store.get_meeting(meeting.id)


def disable_note_taker(
    store: MeetingStore,
    client: RecallClient,
    *,
    user_id: str,
    calendar_event_id: str,
) -> Meeting | None:
    """Turn note-taking off and cancel the bot if it is still in flight."""

    meeting = store.find_by_calendar_event(user_id, calendar_event_id)
    if meeting is None:
        return None

    if not meeting.external_bot_id or is_terminal(meeting.bot_status):
        store.update_meeting(meeting.id, note_taker_enabled=False)
        return store.get_meeting(meeting.id)

    bot_id = meeting.external_bot_id
    try:
        client.delete_bot(bot_id)
    except TerminalBotApiError as e:
        # Already gone on the remote side; nothing left to cancel.
        log(f"Bot {bot_id} could not be deleted ({e}); marking cancelled anyway", component="service")

    store.update_meeting(
        meeting.id,
        external_bot_id=None,
        bot_status=BotStatus.CANCELLED.value,
        completed_at=utc_now(),
        note_taker_enabled=False,
    )
    log(f"Cancelled bot {bot_id} for meeting {meeting.id}", component="service")
    return store.get_meeting(meeting.id)
