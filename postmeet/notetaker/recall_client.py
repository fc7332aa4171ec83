from __future__ import annotations

import datetime as dt
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import requests

from postmeet.config import RecallConfig
from postmeet.logutil import log
from postmeet.notetaker.failure_codes import (
    LOCAL_ONLY_STATUSES,
    BotApiError,
    BotStatus,
    TerminalBotApiError,
    TransientBotApiError,
)
from postmeet.notetaker.transcript_format import TranscriptSegment, parse_transcript


# Codes from the bot API's wider vocabulary, folded onto the ones we track.
STATUS_ALIASES: dict[str, BotStatus] = {
    "fatal": BotStatus.FAILED,
    "media_expired": BotStatus.FAILED,
    "recording_done": BotStatus.CALL_ENDED,
    "analysis_done": BotStatus.DONE,
    "recording_permission_allowed": BotStatus.IN_CALL_NOT_RECORDING,
    "recording_permission_denied": BotStatus.IN_CALL_NOT_RECORDING,
}

_KNOWN_CODES = {s.value: s for s in BotStatus if s not in LOCAL_ONLY_STATUSES}


def normalize_status(code: Any) -> BotStatus:
    if not isinstance(code, str) or not code.strip():
        return BotStatus.UNKNOWN
    key = code.strip().lower()
    if key in _KNOWN_CODES:
        return _KNOWN_CODES[key]
    return STATUS_ALIASES.get(key, BotStatus.UNKNOWN)


@dataclass(frozen=True)
class BotSnapshot:
    bot_id: str
    status: BotStatus
    raw_status: str | None
    video_url: str | None
    raw: dict[str, Any]


@dataclass(frozen=True)
class BotTranscript:
    # The payload exactly as the API returned it, wrappers included.
    raw: Any = field(default_factory=list)
    segments: list[TranscriptSegment] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.segments


def _parse_created_at(value: Any) -> dt.datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def latest_status_change(status_changes: Any) -> dict[str, Any] | None:
    """Pick the newest entry of a bot's `status_changes` log.

    Entries are usually appended oldest-first, but we do not rely on it:
    when every entry carries a parseable `created_at` the greatest one wins,
    otherwise the last entry does.
    """

    if not isinstance(status_changes, list):
        return None
    entries = [e for e in status_changes if isinstance(e, dict)]
    if not entries:
        return None

    stamps = [_parse_created_at(e.get("created_at")) for e in entries]
    if all(s is not None for s in stamps):
        # max() keeps the first of equal keys; iterate reversed so ties go to the later entry.
        indexed = list(enumerate(stamps))
        best_index, _ = max(reversed(indexed), key=lambda pair: pair[1])
        return entries[best_index]
    return entries[-1]


def snapshot_from_payload(payload: dict[str, Any], *, bot_id: str) -> BotSnapshot:
    latest = latest_status_change(payload.get("status_changes"))
    raw_code = latest.get("code") if isinstance(latest, dict) else None
    video_url = payload.get("video_url")
    return BotSnapshot(
        bot_id=payload.get("id") if isinstance(payload.get("id"), str) else bot_id,
        status=normalize_status(raw_code),
        raw_status=raw_code if isinstance(raw_code, str) else None,
        video_url=video_url if isinstance(video_url, str) and video_url else None,
        raw=payload,
    )


def _backoff_delay(attempt: int, retry_after: str | None = None) -> float:
    if retry_after and retry_after.isdigit():
        return float(retry_after)
    return min(30.0, 1.0 * (2 ** (attempt - 1))) + random.uniform(0.0, 0.25)


def _request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    json_body: dict[str, Any] | None = None,
    timeout_seconds: float,
    max_attempts: int = 2,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    # Retries: timeouts, connection errors, 408, 429, 5xx.
    # Anything else is returned to the caller as-is.
    last_exc: Exception | None = None
    resp: requests.Response | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            resp = session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                timeout=timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            last_exc = e
            resp = None

        if resp is not None:
            if not _is_retriable_status(resp.status_code):
                return resp
            delay = _backoff_delay(attempt, resp.headers.get("Retry-After"))
        else:
            delay = _backoff_delay(attempt)

        if attempt < max_attempts:
            sleep(delay)

    if resp is not None:
        return resp
    raise TransientBotApiError(f"{method} {url} failed: {last_exc}") from last_exc


def _is_retriable_status(status_code: int) -> bool:
    return status_code in (408, 429) or 500 <= status_code <= 599


def _decode(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return {"status_code": resp.status_code, "text": resp.text}


def _error_detail(data: Any) -> str:
    if isinstance(data, dict):
        for key in ("detail", "message", "error", "text"):
            val = data.get(key)
            if isinstance(val, str) and val:
                return val
    return str(data)


def _raise_for_status(resp: requests.Response, data: Any, *, action: str) -> None:
    if resp.status_code < 400:
        return
    message = f"{action} failed ({resp.status_code}): {_error_detail(data)}"
    if _is_retriable_status(resp.status_code):
        raise TransientBotApiError(message, status_code=resp.status_code, payload=data)
    raise TerminalBotApiError(message, status_code=resp.status_code, payload=data)


class RecallClient:
    """Thin wrapper over the Recall.ai bot resource.

    Every remote call has its own request timeout. Failures surface as
    `TransientBotApiError` (worth retrying next cycle) or
    `TerminalBotApiError` (bot gone / request invalid).
    """

    def __init__(
        self,
        config: RecallConfig,
        *,
        session: requests.Session | None = None,
        max_attempts: int = 2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not config.api_key:
            raise ValueError("Missing Recall API key. Set RECALL_API_KEY.")
        self.config = config
        self.session = session or requests.Session()
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _url(self, path: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"{self.config.auth_scheme} {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _call(self, method: str, path: str, *, action: str, json_body: dict[str, Any] | None = None) -> tuple[requests.Response, Any]:
        resp = _request_with_retry(
            self.session,
            method,
            self._url(path),
            headers=self._headers(),
            json_body=json_body,
            timeout_seconds=self.config.timeout_seconds,
            max_attempts=self.max_attempts,
            sleep=self._sleep,
        )
        return resp, _decode(resp)

    def create_bot(
        self,
        meeting_url: str,
        join_at: dt.datetime | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        """Schedule a bot to join `meeting_url` and return its id.

        `join_at` makes it a scheduled bot; without it the bot joins right
        away. `options` is merged into the request body (e.g.
        `recording_mode`, `transcription_options`).
        """

        payload: dict[str, Any] = {"meeting_url": meeting_url, "bot_name": self.config.bot_name}
        if join_at is not None:
            if join_at.tzinfo is None:
                join_at = join_at.replace(tzinfo=dt.timezone.utc)
            payload["join_at"] = join_at.astimezone(dt.timezone.utc).isoformat()
        if options:
            payload.update(options)

        resp, data = self._call("POST", "/bot", action="Recall bot create", json_body=payload)
        _raise_for_status(resp, data, action="Recall bot create")

        bot_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(bot_id, str) or not bot_id:
            raise BotApiError(f"Recall bot create response missing id: {data}", status_code=resp.status_code, payload=data)
        log(f"Created bot {bot_id} for {meeting_url}", component="recall")
        return bot_id

    def get_bot(self, bot_id: str) -> BotSnapshot:
        resp, data = self._call("GET", f"/bot/{bot_id}", action="Recall bot fetch")
        _raise_for_status(resp, data, action="Recall bot fetch")
        if not isinstance(data, dict):
            raise BotApiError(f"Recall bot fetch returned unexpected payload: {data!r}", status_code=resp.status_code, payload=data)
        return snapshot_from_payload(data, bot_id=bot_id)

    def get_status(self, bot_id: str) -> BotStatus:
        return self.get_bot(bot_id).status

    def get_transcript(self, bot_id: str) -> BotTranscript:
        """Fetch the bot's transcript.

        An empty transcript (including 404/410 from the transcript route,
        which the API uses while nothing has been produced) is returned as
        an empty `BotTranscript`, never raised.
        """

        resp, data = self._call("GET", f"/bot/{bot_id}/transcript", action="Recall transcript fetch")
        if resp.status_code in (404, 410):
            return BotTranscript()
        _raise_for_status(resp, data, action="Recall transcript fetch")

        return BotTranscript(raw=data, segments=parse_transcript(data))

    def delete_bot(self, bot_id: str) -> None:
        resp, data = self._call("DELETE", f"/bot/{bot_id}", action="Recall bot delete")
        _raise_for_status(resp, data, action="Recall bot delete")
        log(f"Deleted bot {bot_id}", component="recall")

