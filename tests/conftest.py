import datetime as dt
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from database.adapters import MeetingStore
from database.connection import Base
from database import models  # noqa: F401
from postmeet.notetaker.failure_codes import TransientBotApiError
from postmeet.notetaker.recall_client import BotTranscript, snapshot_from_payload
from postmeet.notetaker.transcript_format import parse_transcript


class FakeClock:
    def __init__(self, start=None):
        self.current = start or dt.datetime(2026, 3, 2, 15, 0, tzinfo=dt.timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current = self.current + dt.timedelta(seconds=seconds)


class FakeBotApi:
    """Scripted stand-in for RecallClient.

    Each bot has a queue of status codes (or exceptions); the last entry
    repeats once the queue is drained.
    """

    def __init__(self):
        self.statuses = {}
        self.transcripts = {}
        self.video_urls = {}
        self.calls = []
        self.created = []
        self.deleted = []
        self.delete_error = None

    def queue_status(self, bot_id, *items):
        self.statuses.setdefault(bot_id, []).extend(items)

    def set_transcript(self, bot_id, payload):
        self.transcripts[bot_id] = payload

    def get_bot(self, bot_id):
        self.calls.append(("get_bot", bot_id))
        queue = self.statuses.get(bot_id)
        if not queue:
            raise TransientBotApiError(f"no status scripted for {bot_id}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        payload = {"id": bot_id, "status_changes": [{"code": item, "created_at": "2026-03-02T15:00:00Z"}]}
        if bot_id in self.video_urls:
            payload["video_url"] = self.video_urls[bot_id]
        return snapshot_from_payload(payload, bot_id=bot_id)

    def get_transcript(self, bot_id):
        self.calls.append(("get_transcript", bot_id))
        payload = self.transcripts.get(bot_id)
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            return BotTranscript()
        return BotTranscript(raw=payload, segments=parse_transcript(payload))

    def create_bot(self, meeting_url, join_at=None, options=None):
        bot_id = f"bot-{len(self.created) + 1}"
        self.created.append((meeting_url, join_at, options))
        return bot_id

    def delete_bot(self, bot_id):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(bot_id)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return MeetingStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeBotApi()


@pytest.fixture
def make_meeting(store):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        defaults = {
            "user_id": "user-1",
            "calendar_event_id": f"event-{n}",
            "title": f"Meeting {n}",
            "meeting_url": f"https://meet.google.com/abc-defg-{n:03d}",
            "external_bot_id": f"bot-{n}",
            "created_at": dt.datetime(2026, 3, 1, 9, 0, tzinfo=dt.timezone.utc) + dt.timedelta(minutes=n),
        }
        defaults.update(fields)
        return store.create_meeting(**defaults)

    return _make
