from __future__ import annotations

import datetime as dt
import time
from typing import Any, Callable, Iterable, Protocol

from postmeet.config import PollingConfig
from postmeet.logutil import log
from postmeet.notetaker.failure_codes import POLLABLE_STATUSES, PollOutcome
from postmeet.notetaker.reconciler import error_message

_POLLABLE_VALUES = frozenset(s.value for s in POLLABLE_STATUSES)

_NEVER_POLLED = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


class EligibleSource(Protocol):
    def find_eligible_meetings(self, *, max_attempts: int, limit: int) -> list[Any]: ...


def is_eligible(meeting: Any, *, max_attempts: int) -> bool:
    if not meeting.external_bot_id:
        return False
    status = meeting.bot_status
    if status is not None and status not in _POLLABLE_VALUES:
        return False
    return (meeting.poll_attempts or 0) < max_attempts


def _as_utc(value: dt.datetime) -> dt.datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def poll_order_key(meeting: Any) -> tuple[int, dt.datetime]:
    last = meeting.last_polled_at
    if last is None:
        return (0, _NEVER_POLLED)
    return (1, _as_utc(last))


def select_batch(store: EligibleSource, config: PollingConfig) -> list[Any]:
    """Meetings to poll this cycle, oldest poll first, at most `batch_size`.

    The store does the filtering and ordering; the predicate and sort are
    re-applied here so a loose store can never hand us an undispatched or
    exhausted meeting.
    """

    candidates = store.find_eligible_meetings(max_attempts=config.max_attempts, limit=config.batch_size)
    eligible = [m for m in candidates if is_eligible(m, max_attempts=config.max_attempts)]
    eligible.sort(key=poll_order_key)
    return eligible[: config.batch_size]


def process_batch(
    meetings: Iterable[Any],
    handle: Callable[[Any], PollOutcome],
    *,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> list[PollOutcome]:
    """Run `handle` on each meeting in order, pausing between items.

    One meeting failing never stops the rest: the exception is logged and
    turned into an error outcome.
    """

    outcomes: list[PollOutcome] = []
    for index, meeting in enumerate(meetings):
        if index > 0 and delay_seconds > 0:
            sleep(delay_seconds)
        try:
            outcomes.append(handle(meeting))
        except Exception as e:
            message = error_message(e)
            log(f"Error polling meeting {meeting.id} (bot {meeting.external_bot_id}): {message}")
            outcomes.append(
                PollOutcome(
                    meeting_id=str(meeting.id),
                    bot_id=meeting.external_bot_id,
                    observed_status=None,
                    persisted_status=meeting.bot_status,
                    error=message,
                )
            )
    return outcomes
