from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_RECALL_API_BASE = "https://us-east-1.recall.ai/api/v1"


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_from_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class PollingConfig:
    """Knobs for the bot polling loop."""

    interval_seconds: int = 30

    # 120 attempts at 30s is one hour of polling per meeting.
    max_attempts: int = 120

    # Kept single-digit so one cycle stays short relative to the interval.
    batch_size: int = 5

    # Pause between consecutive meetings inside one cycle.
    item_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if not 1 <= self.batch_size <= 9:
            raise ValueError("batch_size must be between 1 and 9")
        if self.item_delay_ms < 0:
            raise ValueError("item_delay_ms must not be negative")

    @property
    def item_delay_seconds(self) -> float:
        return self.item_delay_ms / 1000.0

    @classmethod
    def from_env(cls) -> PollingConfig:
        return cls(
            interval_seconds=_int_from_env("POLL_INTERVAL_SECONDS", cls.interval_seconds),
            max_attempts=_int_from_env("POLL_MAX_ATTEMPTS", cls.max_attempts),
            batch_size=_int_from_env("POLL_BATCH_SIZE", cls.batch_size),
            item_delay_ms=_int_from_env("POLL_ITEM_DELAY_MS", cls.item_delay_ms),
        )


@dataclass(frozen=True)
class RecallConfig:
    """Connection settings for the Recall.ai bot API."""

    api_key: str | None = None
    api_base: str = DEFAULT_RECALL_API_BASE
    auth_scheme: str = "Token"
    timeout_seconds: float = 30.0
    bot_name: str = "Meeting Notetaker"

    @classmethod
    def from_env(cls) -> RecallConfig:
        return cls(
            api_key=os.environ.get("RECALL_API_KEY") or None,
            api_base=os.environ.get("RECALL_API_URL", DEFAULT_RECALL_API_BASE).rstrip("/"),
            auth_scheme=os.environ.get("RECALL_AUTH_SCHEME", "Token"),
            timeout_seconds=_float_from_env("RECALL_TIMEOUT_SECONDS", 30.0),
            bot_name=os.environ.get("RECALL_BOT_NAME", "Meeting Notetaker"),
        )
