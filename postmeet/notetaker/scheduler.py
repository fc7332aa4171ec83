from __future__ import annotations

import datetime as dt
import threading
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable

from postmeet.config import PollingConfig
from postmeet.logutil import log, utc_now
from postmeet.notetaker.batch import process_batch, select_batch
from postmeet.notetaker.failure_codes import PollOutcome
from postmeet.notetaker.reconciler import BotApi, error_message, reconcile_meeting


@dataclass(frozen=True)
class CycleReport:
    started_at_utc: str
    finished_at_utc: str
    selected: int
    outcomes: list[PollOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def failures(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    def to_json(self) -> dict[str, Any]:
        return {
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "selected": self.selected,
            "failures": self.failures,
            "error": self.error,
            "outcomes": [o.to_json() for o in self.outcomes],
        }


class PollingScheduler:
    """Runs one polling cycle every `config.interval_seconds`.

    At most one cycle runs at any instant. A firing that finds a cycle still
    in progress is dropped (not queued). `stop()` only prevents future
    cycles; use `wait_idle()` to wait for one already running.
    """

    def __init__(
        self,
        *,
        store: Any,
        client: BotApi,
        config: PollingConfig,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        self.store = store
        self.client = client
        self.config = config
        self._sleep = sleep
        self._now = now

        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

        self.skipped_cycles = 0
        self.last_report: CycleReport | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def start(self) -> None:
        with self._state_lock:
            if self._running:
                return
            self._running = True
            self._stop_event = threading.Event()
            stop_event = self._stop_event

        log(f"Starting bot polling (interval={self.config.interval_seconds}s batch={self.config.batch_size})")

        # Cold start: don't make the first meetings wait a whole interval.
        self.run_cycle()

        with self._state_lock:
            if not self._running or stop_event.is_set():
                return
            self._thread = threading.Thread(
                target=self._loop,
                args=(stop_event,),
                name="bot-poller",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Stop future firings. A cycle already running keeps the guard until it returns."""

        with self._state_lock:
            was_running = self._running
            self._running = False
            self._stop_event.set()
            self._thread = None
        if was_running:
            log("Bot polling stopped")

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no cycle is running. Returns False on timeout."""

        acquired = self._cycle_lock.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._cycle_lock.release()
        return acquired

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.config.interval_seconds):
            self.run_cycle()

    def run_cycle(self) -> CycleReport | None:
        """Run one select -> poll -> reconcile pass. None if one is already running."""

        if not self._cycle_lock.acquire(blocking=False):
            with self._state_lock:
                self.skipped_cycles += 1
            log("Previous polling cycle still running; skipping this one")
            return None

        started = self._now()
        selected = 0
        outcomes: list[PollOutcome] = []
        error: str | None = None
        try:
            meetings = select_batch(self.store, self.config)
            selected = len(meetings)
            log(f"Polling {selected} active bots")
            outcomes = process_batch(
                meetings,
                self._poll_one,
                delay_seconds=self.config.item_delay_seconds,
                sleep=self._sleep,
            )
        except Exception as e:
            error = error_message(e)
            log(f"Error in polling cycle: {error}")
            traceback.print_exc()
        finally:
            self._cycle_lock.release()

        report = CycleReport(
            started_at_utc=started.isoformat(),
            finished_at_utc=self._now().isoformat(),
            selected=selected,
            outcomes=outcomes,
            error=error,
        )
        if selected:
            completed = sum(1 for o in outcomes if o.transcript_stored)
            log(f"Cycle done: {selected} polled, {completed} transcripts stored, {report.failures} errors")
        self.last_report = report
        return report

    def _poll_one(self, meeting: Any) -> PollOutcome:
        return reconcile_meeting(
            meeting,
            client=self.client,
            store=self.store,
            max_attempts=self.config.max_attempts,
            now=self._now,
        )
