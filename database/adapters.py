from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, sessionmaker

from database.models import Meeting
from postmeet.notetaker.failure_codes import (
    FAILED_STATUSES,
    POLLABLE_STATUSES,
    BotStatus,
)

_POLLABLE_VALUES = sorted(s.value for s in POLLABLE_STATUSES)
_FAILED_VALUES = {s.value for s in FAILED_STATUSES}

# Columns the poller may write through update_meeting().
_UPDATABLE = {
    "external_bot_id",
    "bot_status",
    "poll_attempts",
    "last_polled_at",
    "last_error",
    "completed_at",
    "video_url",
    "note_taker_enabled",
    "title",
    "meeting_url",
    "platform",
    "start_time",
    "end_time",
}


class MeetingStore:
    """Narrow record-store interface over the `meetings` table.

    Every method opens its own session, so one instance can be shared by
    the polling loop and request handlers. Writes are per-meeting and
    per-field; failures roll back and propagate to the caller.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def find_eligible_meetings(self, *, max_attempts: int, limit: int) -> List[Meeting]:
        db = self._session()
        try:
            return (
                db.query(Meeting)
                .filter(Meeting.external_bot_id.isnot(None))
                .filter(or_(Meeting.bot_status.is_(None), Meeting.bot_status.in_(_POLLABLE_VALUES)))
                .filter(Meeting.poll_attempts < max_attempts)
                .order_by(Meeting.last_polled_at.asc().nulls_first(), Meeting.created_at.asc(), Meeting.id.asc())
                .limit(limit)
                .all()
            )
        finally:
            db.close()

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        db = self._session()
        try:
            return db.get(Meeting, meeting_id)
        finally:
            db.close()

    def find_by_calendar_event(self, user_id: str, calendar_event_id: str) -> Optional[Meeting]:
        db = self._session()
        try:
            return (
                db.query(Meeting)
                .filter(Meeting.user_id == user_id)
                .filter(Meeting.calendar_event_id == calendar_event_id)
                .first()
            )
        finally:
            db.close()

    def create_meeting(self, **fields: Any) -> Meeting:
        db = self._session()
        try:
            meeting = Meeting(**fields)
            db.add(meeting)
            db.commit()
            db.refresh(meeting)
            return meeting
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def update_meeting(self, meeting_id: str, **fields: Any) -> bool:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update meeting fields: {sorted(unknown)}")
        if not fields:
            return False

        db = self._session()
        try:
            count = (
                db.query(Meeting)
                .filter(Meeting.id == meeting_id)
                .update({getattr(Meeting, k): v for k, v in fields.items()}, synchronize_session=False)
            )
            db.commit()
            return count > 0
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def record_poll(
        self,
        meeting_id: str,
        *,
        status: Optional[str],
        error: Optional[str],
        polled_at: datetime,
        max_attempts: int,
    ) -> bool:
        """Count one poll attempt against the meeting.

        The increment is guarded by `poll_attempts < max_attempts` in the same
        statement, so the counter can never pass the maximum. `status=None`
        leaves `bot_status` untouched; `error=None` clears `last_error`.
        """

        values: Dict[Any, Any] = {
            Meeting.poll_attempts: Meeting.poll_attempts + 1,
            Meeting.last_polled_at: polled_at,
            Meeting.last_error: error,
        }
        if status is not None:
            values[Meeting.bot_status] = status

        db = self._session()
        try:
            count = (
                db.query(Meeting)
                .filter(Meeting.id == meeting_id)
                .filter(Meeting.poll_attempts < max_attempts)
                .update(values, synchronize_session=False)
            )
            db.commit()
            return count > 0
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def store_transcript(
        self,
        meeting_id: str,
        *,
        raw: Any,
        text: str,
        video_url: Optional[str],
        completed_at: datetime,
    ) -> bool:
        """Write the transcript pair once. Returns False if one is already stored."""

        db = self._session()
        try:
            count = (
                db.query(Meeting)
                .filter(Meeting.id == meeting_id)
                .filter(Meeting.transcript_raw.is_(None))
                .update(
                    {
                        Meeting.transcript_raw: raw,
                        Meeting.transcript_text: text,
                        Meeting.video_url: video_url,
                        Meeting.bot_status: BotStatus.COMPLETED.value,
                        Meeting.completed_at: completed_at,
                        Meeting.last_error: None,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            return count > 0
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def status_counts(self, *, max_attempts: int) -> Dict[str, int]:
        """Aggregate bot meetings into the buckets shown on the dashboard.

        `exhausted` is reported on its own: those meetings never completed
        and will not be polled again.
        """

        db = self._session()
        try:
            rows = (
                db.query(Meeting.bot_status, Meeting.poll_attempts, func.count(Meeting.id))
                .filter(or_(Meeting.external_bot_id.isnot(None), Meeting.bot_status == BotStatus.CANCELLED.value))
                .group_by(Meeting.bot_status, Meeting.poll_attempts)
                .all()
            )
        finally:
            db.close()

        counts = {"active": 0, "completed": 0, "failed": 0, "cancelled": 0, "exhausted": 0, "other": 0, "total": 0}
        for status, attempts, n in rows:
            counts["total"] += n
            pollable = status is None or status in _POLLABLE_VALUES
            if pollable and attempts >= max_attempts:
                counts["exhausted"] += n
            elif pollable:
                counts["active"] += n
            elif status == BotStatus.COMPLETED.value:
                counts["completed"] += n
            elif status in _FAILED_VALUES:
                counts["failed"] += n
            elif status == BotStatus.CANCELLED.value:
                counts["cancelled"] += n
            else:
                # done/call_ended left behind by an interrupted transcript fetch
                counts["other"] += n
        return counts

    def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        db = self._session()
        try:
            meetings = (
                db.query(Meeting)
                .filter(Meeting.external_bot_id.isnot(None))
                .filter(Meeting.last_polled_at.isnot(None))
                .order_by(Meeting.last_polled_at.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": m.id,
                    "title": m.title,
                    "bot_id": m.external_bot_id,
                    "bot_status": m.bot_status,
                    "poll_attempts": m.poll_attempts,
                    "last_polled_at": m.last_polled_at.isoformat() if m.last_polled_at else None,
                    "completed_at": m.completed_at.isoformat() if m.completed_at else None,
                    "last_error": m.last_error,
                }
                for m in meetings
            ]
        finally:
            db.close()
