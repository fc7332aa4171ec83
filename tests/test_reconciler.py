from postmeet.notetaker.failure_codes import TerminalBotApiError, TransientBotApiError
from postmeet.notetaker.recall_client import BotTranscript
from postmeet.notetaker.reconciler import reconcile_meeting
from postmeet.notetaker.transcript_format import format_transcript, parse_transcript

TRANSCRIPT = [
    {"speaker": "Ana", "start_time": 4, "text": "Shall we start?"},
    {"speaker": "Raj", "start_time": 9, "words": [{"text": "Yes,"}, {"text": "go"}, {"text": "ahead."}]},
]


def reconcile(meeting, fake_client, store, clock, max_attempts=10):
    return reconcile_meeting(meeting, client=fake_client, store=store, max_attempts=max_attempts, now=clock)


def test_status_fetch_failure_keeps_status_but_counts_attempt(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_waiting_room", poll_attempts=2)
    fake_client.queue_status(meeting.external_bot_id, TransientBotApiError("read timed out"))

    outcome = reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "in_waiting_room"
    assert reloaded.poll_attempts == 3
    assert reloaded.last_error == "read timed out"
    assert reloaded.last_polled_at is not None
    assert outcome.error == "read timed out"
    assert outcome.persisted_status == "in_waiting_room"


def test_repeated_status_is_still_persisted_and_clears_error(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_call_recording", poll_attempts=4, last_error="old")
    fake_client.queue_status(meeting.external_bot_id, "in_call_recording")

    outcome = reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "in_call_recording"
    assert reloaded.poll_attempts == 5
    assert reloaded.last_error is None
    assert outcome.ok
    assert ("get_transcript", meeting.external_bot_id) not in fake_client.calls


def test_done_with_transcript_completes_meeting(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_call_recording")
    bot_id = meeting.external_bot_id
    fake_client.queue_status(bot_id, "done")
    fake_client.set_transcript(bot_id, TRANSCRIPT)
    fake_client.video_urls[bot_id] = "https://video.test/rec.mp4"

    outcome = reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "completed"
    assert reloaded.completed_at is not None
    assert reloaded.transcript_raw == TRANSCRIPT
    assert reloaded.transcript_text == "[00:00:04] Ana: Shall we start?\n[00:00:09] Raj: Yes, go ahead."
    assert reloaded.transcript_text == format_transcript(parse_transcript(TRANSCRIPT))
    assert reloaded.video_url == "https://video.test/rec.mp4"
    assert reloaded.poll_attempts == 1
    assert outcome.transcript_stored


def test_call_ended_also_triggers_transcript(store, make_meeting, fake_client, clock):
    meeting = make_meeting()
    fake_client.queue_status(meeting.external_bot_id, "call_ended")
    fake_client.set_transcript(meeting.external_bot_id, TRANSCRIPT)

    reconcile(meeting, fake_client, store, clock)

    assert store.get_meeting(meeting.id).bot_status == "completed"


def test_done_with_empty_transcript_is_no_transcript(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_call_recording")
    fake_client.queue_status(meeting.external_bot_id, "done")
    fake_client.set_transcript(meeting.external_bot_id, [])

    outcome = reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "no_transcript"
    assert reloaded.completed_at is not None
    assert reloaded.transcript_text is None
    assert reloaded.transcript_raw is None
    assert outcome.persisted_status == "no_transcript"


def test_transcript_fetch_failure_is_processing_failed_without_completed_at(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_call_recording")
    fake_client.queue_status(meeting.external_bot_id, "done")
    fake_client.set_transcript(meeting.external_bot_id, TransientBotApiError("502 bad gateway"))

    outcome = reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "processing_failed"
    assert reloaded.last_error == "502 bad gateway"
    assert reloaded.completed_at is None
    assert reloaded.transcript_text is None
    assert outcome.error == "502 bad gateway"


def test_terminal_bot_error_on_status_fetch_is_treated_like_any_failure(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="ready")
    fake_client.queue_status(meeting.external_bot_id, TerminalBotApiError("Not found.", status_code=404))

    reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "ready"
    assert reloaded.poll_attempts == 1


def test_fatal_bot_becomes_failed_and_leaves_the_pool(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="joining_call")
    fake_client.queue_status(meeting.external_bot_id, "fatal")

    reconcile(meeting, fake_client, store, clock)

    assert store.get_meeting(meeting.id).bot_status == "failed"
    assert store.find_eligible_meetings(max_attempts=10, limit=9) == []


def test_terminal_meeting_is_never_touched(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="completed", poll_attempts=3)
    fake_client.queue_status(meeting.external_bot_id, "in_call_recording")

    outcome = reconcile(meeting, fake_client, store, clock)

    assert outcome.skipped
    assert fake_client.calls == []
    reloaded = store.get_meeting(meeting.id)
    assert reloaded.bot_status == "completed"
    assert reloaded.poll_attempts == 3


def test_last_attempt_taken_elsewhere_stops_processing(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_call_recording", poll_attempts=2)
    fake_client.queue_status(meeting.external_bot_id, "done")
    fake_client.set_transcript(meeting.external_bot_id, TRANSCRIPT)

    outcome = reconcile(meeting, fake_client, store, clock, max_attempts=2)

    assert outcome.skipped
    assert ("get_transcript", meeting.external_bot_id) not in fake_client.calls
    reloaded = store.get_meeting(meeting.id)
    assert reloaded.poll_attempts == 2
    assert reloaded.transcript_text is None


def test_remote_cannot_report_locally_owned_statuses(store, make_meeting, fake_client, clock):
    meeting = make_meeting(bot_status="in_call_recording")
    fake_client.queue_status(meeting.external_bot_id, "completed")

    outcome = reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert outcome.persisted_status == "unknown"
    assert reloaded.bot_status == "unknown"
    assert reloaded.completed_at is None
    assert ("get_transcript", meeting.external_bot_id) not in fake_client.calls
    assert [m.id for m in store.find_eligible_meetings(max_attempts=10, limit=9)] == [meeting.id]


def test_wrapped_transcript_is_stored_as_returned(store, make_meeting, fake_client, clock):
    wrapped = {"results": TRANSCRIPT, "next": None}
    fake_client.get_transcript = lambda bot_id: BotTranscript(raw=wrapped, segments=parse_transcript(wrapped))
    meeting = make_meeting()
    fake_client.queue_status(meeting.external_bot_id, "done")

    reconcile(meeting, fake_client, store, clock)

    reloaded = store.get_meeting(meeting.id)
    assert reloaded.transcript_raw == wrapped
    assert reloaded.transcript_text == format_transcript(parse_transcript(TRANSCRIPT))
