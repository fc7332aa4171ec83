import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from .connection import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Meeting(Base):
    __tablename__ = 'meetings'
    __table_args__ = (UniqueConstraint('user_id', 'calendar_event_id', name='uq_meetings_user_event'),)

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), index=True)
    calendar_event_id = Column(String(255))
    title = Column(String(500))
    meeting_url = Column(Text)
    platform = Column(String(50))
    start_time = Column(DateTime(timezone=True))
    end_time = Column(DateTime(timezone=True))
    note_taker_enabled = Column(Boolean, default=False, nullable=False)

    # Bot lifecycle, owned by the poller.
    external_bot_id = Column(String(255), index=True)
    bot_status = Column(String(50), index=True)
    poll_attempts = Column(Integer, default=0, nullable=False)
    last_polled_at = Column(DateTime(timezone=True))
    last_error = Column(Text)
    completed_at = Column(DateTime(timezone=True))

    # Written once, together, when the transcript arrives.
    transcript_raw = Column(JSON(none_as_null=True))
    transcript_text = Column(Text)
    video_url = Column(Text)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Meeting id={self.id} bot={self.external_bot_id} status={self.bot_status} attempts={self.poll_attempts}>"
