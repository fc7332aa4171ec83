from __future__ import annotations

import datetime as dt


def utc_now() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


def log(message: str, *, component: str = "poller") -> None:
    """Simple logging with timestamp."""
    timestamp = utc_now().isoformat()
    print(f"[{component}] [{timestamp}] {message}", flush=True)
