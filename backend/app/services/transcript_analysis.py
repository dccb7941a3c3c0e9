"""
Statistics over a finished transcript.

A transcript is a list of segments ``{speaker, start_time, end_time, text}``
as returned by the Workstation.
"""

import csv
import io
import re
from collections import Counter
from typing import Any

STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "do", "for", "from",
    "have", "he", "i", "if", "in", "is", "it", "its", "me", "my", "of", "on",
    "or", "our", "she", "so", "that", "the", "their", "them", "there", "they",
    "this", "to", "uh", "um", "was", "we", "were", "what", "with", "you", "your",
})

_WORD_PATTERN = re.compile(r"[a-z0-9']+")

CSV_COLUMNS = ("speaker", "start_time", "end_time", "text")


def _duration(segment: dict[str, Any]) -> float:
    try:
        return max(float(segment.get("end_time", 0)) - float(segment.get("start_time", 0)), 0.0)
    except (TypeError, ValueError):
        return 0.0


def talking_distribution(segments: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Talking time per speaker, most talkative first."""
    seconds: dict[str, float] = {}
    for segment in segments:
        speaker = str(segment.get("speaker", "UNKNOWN"))
        seconds[speaker] = seconds.get(speaker, 0.0) + _duration(segment)

    total = sum(seconds.values())
    distribution = [
        {
            "speaker": speaker,
            "seconds": round(time_spoken, 2),
            "share": round(time_spoken / total, 4) if total else 0.0,
        }
        for speaker, time_spoken in seconds.items()
    ]
    distribution.sort(key=lambda entry: entry["seconds"], reverse=True)
    return distribution


def identify_teacher(segments: list[dict[str, Any]]) -> str | None:
    """The speaker with the most talking time is taken to be the teacher."""
    distribution = talking_distribution(segments)
    if not distribution or distribution[0]["seconds"] <= 0:
        return None
    return distribution[0]["speaker"]


def full_text(segments: list[dict[str, Any]]) -> str:
    return " ".join(str(s.get("text", "")).strip() for s in segments if s.get("text")).strip()


def word_frequencies(segments: list[dict[str, Any]], limit: int = 100) -> dict[str, int]:
    """Most frequent words across the transcript, stop words removed."""
    words = _WORD_PATTERN.findall(full_text(segments).lower())
    counts = Counter(w for w in words if w not in STOP_WORDS and len(w) > 1)
    return dict(counts.most_common(limit))


def transcript_csv(segments: list[dict[str, Any]]) -> str:
    """Render the transcript as CSV."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for segment in segments:
        writer.writerow({column: segment.get(column, "") for column in CSV_COLUMNS})
    return buffer.getvalue()


def analyze(segments: list[dict[str, Any]], limit: int = 100) -> dict[str, Any]:
    distribution = talking_distribution(segments)
    return {
        "teacher": identify_teacher(segments),
        "speakers": [entry["speaker"] for entry in distribution],
        "talking_distribution": distribution,
        "word_frequencies": word_frequencies(segments, limit),
        "segment_count": len(segments),
    }
