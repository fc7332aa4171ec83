#!/usr/bin/env python3
"""
Bot polling worker.

This script:
1. Builds the record store and the Recall.ai client from the environment.
2. Runs the bot poller: every interval it picks the meetings whose bots are
   still in flight, asks Recall.ai for their status and, once a bot is done,
   stores the formatted transcript on the meeting.

Run as a long-lived process:
    python worker.py

Or as a cron job (one cycle per invocation):
    python worker.py --once

Environment variables required:
    - DATABASE_URL
    - RECALL_API_KEY
Optional:
    - RECALL_API_URL, POLL_INTERVAL_SECONDS, POLL_MAX_ATTEMPTS,
      POLL_BATCH_SIZE, POLL_ITEM_DELAY_MS
"""
from __future__ import annotations

import argparse
import json
import sys
import threading
from pathlib import Path

# Add project root to path
_ROOT = Path(__file__).resolve().parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from dotenv import load_dotenv
load_dotenv()

from database.adapters import MeetingStore
from database.connection import SessionLocal
from postmeet.config import PollingConfig, RecallConfig
from postmeet.logutil import log as _log
from postmeet.notetaker.recall_client import RecallClient
from postmeet.notetaker.scheduler import PollingScheduler


def log(message: str) -> None:
    _log(message, component="worker")


def build_scheduler() -> PollingScheduler:
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL not configured")
    return PollingScheduler(
        store=MeetingStore(SessionLocal),
        client=RecallClient(RecallConfig.from_env()),
        config=PollingConfig.from_env(),
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Poll Recall.ai bots and ingest finished transcripts.")
    p.add_argument("--once", action="store_true", help="Run a single polling cycle and exit")
    return p


def run_worker(once: bool = False) -> int:
    log("=" * 60)
    log("Bot polling worker starting")
    log("=" * 60)

    try:
        scheduler = build_scheduler()
    except (RuntimeError, ValueError) as e:
        log(f"ERROR: {e}")
        return 1

    if once:
        report = scheduler.run_cycle()
        if report is not None:
            log(json.dumps(report.to_json()))
        return 0 if report is not None and report.error is None else 1

    done = threading.Event()
    scheduler.start()
    try:
        done.wait()
    except KeyboardInterrupt:
        log("Interrupted")
    finally:
        scheduler.stop()
        scheduler.wait_idle(timeout=scheduler.config.interval_seconds)

    return 0


def main() -> int:
    args = build_parser().parse_args()
    return run_worker(once=args.once)


if __name__ == "__main__":
    raise SystemExit(main())
