from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable


# Pure helpers: nothing in this module performs I/O. The text produced by
# `format_transcript` is persisted once and never recomputed, so the output
# must be a deterministic function of the segment list.


UNKNOWN_SPEAKER = "Unknown"

_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class TranscriptWord:
    text: str
    start_time: float | None = None
    end_time: float | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class TranscriptSegment:
    speaker: str | None = None
    text: str | None = None
    words: tuple[TranscriptWord, ...] = field(default_factory=tuple)
    start_time: float | None = None
    end_time: float | None = None


def _coerce_offset(value: Any) -> float | None:
    # bool is an int subclass; a stray True must not become 00:00:01.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def _coerce_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _parse_word(item: Any) -> TranscriptWord | None:
    if isinstance(item, str):
        return TranscriptWord(text=item)
    if not isinstance(item, dict):
        return None
    text = item.get("text")
    if not isinstance(text, str):
        return None
    confidence = item.get("confidence")
    return TranscriptWord(
        text=text,
        start_time=_coerce_offset(item.get("start_time", item.get("start_timestamp"))),
        end_time=_coerce_offset(item.get("end_time", item.get("end_timestamp"))),
        confidence=float(confidence) if isinstance(confidence, (int, float)) and not isinstance(confidence, bool) else None,
    )


def _parse_segment(item: dict[str, Any]) -> TranscriptSegment:
    raw_words = item.get("words")
    words: list[TranscriptWord] = []
    if isinstance(raw_words, list):
        for w in raw_words:
            parsed = _parse_word(w)
            if parsed is not None:
                words.append(parsed)

    start = item.get("start_time")
    if start is None:
        start = item.get("start")
    end = item.get("end_time")
    if end is None:
        end = item.get("end")

    return TranscriptSegment(
        speaker=_coerce_str(item.get("speaker")),
        text=_coerce_str(item.get("text")),
        words=tuple(words),
        start_time=_coerce_offset(start),
        end_time=_coerce_offset(end),
    )


def segment_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        # Some endpoints wrap the list; accept the shapes we have seen.
        for key in ("results", "transcript", "data"):
            inner = payload.get(key)
            if isinstance(inner, list):
                return inner
    return []


def parse_transcript(payload: Any) -> list[TranscriptSegment]:
    """Validate a raw transcript payload into typed segments.

    Accepts a list of segment dicts or a dict wrapping one under `results`,
    `transcript` or `data`. Items that are not dicts are dropped. `None`
    and unrecognised shapes produce an empty list.
    """

    return [_parse_segment(item) for item in segment_items(payload) if isinstance(item, dict)]


def resolve_text(segment: TranscriptSegment) -> str:
    # Text is emitted as given; whitespace only matters for the drop check.
    if segment.text is not None:
        return segment.text
    if segment.words:
        return " ".join(w.text for w in segment.words)
    return ""


def resolve_speaker(segment: TranscriptSegment) -> str:
    if segment.speaker:
        return segment.speaker
    return UNKNOWN_SPEAKER


def format_offset(offset: float | None) -> str:
    """`HH:MM:SS` of `offset` seconds after the epoch; empty when absent.

    The clock wraps at 24h, the same way a time-of-day would.
    """

    if offset is None:
        return ""
    total = int(math.floor(offset)) % _SECONDS_PER_DAY
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_segment_line(segment: TranscriptSegment) -> str | None:
    text = resolve_text(segment)
    if not text.strip():
        return None
    return f"[{format_offset(segment.start_time)}] {resolve_speaker(segment)}: {text}"


def format_transcript(segments: Iterable[TranscriptSegment]) -> str:
    """Reduce segments to one line per speaker turn, in input order."""

    lines: list[str] = []
    for seg in segments:
        line = format_segment_line(seg)
        if line is not None:
            lines.append(line)
    return "\n".join(lines)
