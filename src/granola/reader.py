"""Tolerant reader for Granola's local cache file.

The cache format is undocumented and has changed between Granola releases, so
meetings are located through an ordered list of probes and every field is read
through an ordered list of ``(predicate, extractor)`` rules. A probe or rule
that finds nothing falls through to the next one instead of failing.
"""

from __future__ import annotations

import json
import logging
import random
import string
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.granola.models import MeetingRecord

logger = logging.getLogger(__name__)

MEETING_TYPES = frozenset({"document", "meeting", "note"})
DEFAULT_TITLE = "Untitled Meeting"
DEFAULT_SPEAKER = "Speaker"

# Epoch values above this are treated as milliseconds.
_EPOCH_MS_THRESHOLD = 1e12
_ID_ALPHABET = string.digits + string.ascii_lowercase


@dataclass
class Candidate:
    """A possible meeting found by a probe, before normalization."""

    doc: Any
    key: str | None = None
    external_transcript: Any = None


Rule = tuple[Callable[[Candidate], bool], Callable[[Candidate], Any]]


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def _has(name: str, kind: type | tuple[type, ...]) -> Callable[[Candidate], bool]:
    def predicate(candidate: Candidate) -> bool:
        value = candidate.doc.get(name)
        return isinstance(value, kind) and _present(value)

    return predicate


def _text(name: str) -> Callable[[Candidate], str]:
    return lambda candidate: str(candidate.doc[name]).strip()


def _dumped(name: str) -> Callable[[Candidate], str]:
    return lambda candidate: json.dumps(candidate.doc[name], ensure_ascii=False)


def _first_text(mapping: dict[str, Any], names: tuple[str, ...]) -> str:
    for name in names:
        value = mapping.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch number into an aware UTC datetime."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
        except (OverflowError, ValueError):
            return None
    return None


def generate_meeting_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"meeting_{int(time.time() * 1000)}_{suffix}"


def _join_panels(panels: list[Any] | dict[str, Any]) -> str:
    items = panels.values() if isinstance(panels, dict) else panels
    parts: list[str] = []
    for panel in items:
        if isinstance(panel, str):
            text = panel.strip()
        elif isinstance(panel, dict):
            text = _first_text(panel, ("content", "text", "notes"))
        else:
            continue
        if text:
            parts.append(text)
    return "\n\n".join(parts)


def render_transcript(value: Any) -> str:
    """Flatten a transcript string or list of segments into ``speaker: text`` lines."""
    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, list):
        return ""

    lines: list[str] = []
    for segment in value:
        if isinstance(segment, str):
            if segment.strip():
                lines.append(segment.strip())
            continue
        if not isinstance(segment, dict):
            continue
        text = _first_text(segment, ("text", "content"))
        if not text:
            continue
        speaker = _first_text(segment, ("speaker", "source")) or DEFAULT_SPEAKER
        lines.append(f"{speaker}: {text}")
    return "\n".join(lines)


def _names(people: Any) -> list[str]:
    if not isinstance(people, list):
        return []
    names: list[str] = []
    for person in people:
        if isinstance(person, str):
            name = person.strip()
        elif isinstance(person, dict):
            name = _first_text(person, ("name", "email"))
        else:
            continue
        if name:
            names.append(name)
    return names


def _date_from(name: str) -> Callable[[Candidate], datetime | None]:
    return lambda candidate: parse_date(candidate.doc[name])


# ---------------------------------------------------------------------------
# Field rules, evaluated in order; the first non-empty result wins
# ---------------------------------------------------------------------------

_ID_RULES: list[Rule] = [
    *[(_has(name, (str, int)), _text(name)) for name in ("id", "documentId", "uuid")],
    (lambda c: bool(c.key), lambda c: c.key),
]

_TITLE_RULES: list[Rule] = [(_has(name, str), _text(name)) for name in ("title", "name", "subject")]

_DATE_RULES: list[Rule] = [
    (_has(name, (str, int, float)), _date_from(name))
    for name in ("created_at", "createdAt", "date", "startTime", "start_time")
]

_NOTES_RULES: list[Rule] = [
    (_has("notes_markdown", str), _text("notes_markdown")),
    (_has("notes_plain", str), _text("notes_plain")),
    (_has("panels", (list, dict)), lambda c: _join_panels(c.doc["panels"])),
    (_has("notes", str), _text("notes")),
    (_has("notes", (list, dict)), _dumped("notes")),
    (_has("content", str), _text("content")),
    (_has("content", (list, dict)), _dumped("content")),
    (_has("enhancedNotes", str), _text("enhancedNotes")),
    (_has("enhanced_notes", str), _text("enhanced_notes")),
]

# The externally indexed transcript is more complete than the inline copy.
_TRANSCRIPT_RULES: list[Rule] = [
    (lambda c: _present(c.external_transcript), lambda c: render_transcript(c.external_transcript)),
    (_has("transcript", (str, list)), lambda c: render_transcript(c.doc["transcript"])),
    (_has("transcripts", list), lambda c: render_transcript(c.doc["transcripts"])),
]

_PARTICIPANT_RULES: list[Rule] = [
    *[(_has(name, list), lambda c, name=name: _names(c.doc[name]))
      for name in ("participants", "attendees", "people")],
    (_has("people", dict), lambda c: _names(c.doc["people"].get("attendees"))),
]


def _first(rules: list[Rule], candidate: Candidate, default: Any = None) -> Any:
    for matches, extract in rules:
        if matches(candidate):
            value = extract(candidate)
            if _present(value):
                return value
    return default


def normalize_meeting(candidate: Candidate) -> MeetingRecord | None:
    """Normalize one candidate, or return None if it is not a usable meeting."""
    doc = candidate.doc
    if not isinstance(doc, dict):
        return None
    tag = doc.get("type")
    if isinstance(tag, str):
        if tag and tag not in MEETING_TYPES:
            return None
    elif tag is not None:
        return None
    if doc.get("deleted_at"):
        return None

    notes = _first(_NOTES_RULES, candidate, "")
    transcript = _first(_TRANSCRIPT_RULES, candidate, "")
    if not notes and not transcript:
        return None

    return MeetingRecord(
        id=_first(_ID_RULES, candidate) or generate_meeting_id(),
        title=_first(_TITLE_RULES, candidate, DEFAULT_TITLE),
        date=_first(_DATE_RULES, candidate) or datetime.now(UTC),
        participants=_first(_PARTICIPANT_RULES, candidate, []),
        notes=notes,
        transcript=transcript,
        raw=doc,
    )


# ---------------------------------------------------------------------------
# Location probes, most specific first
# ---------------------------------------------------------------------------


def _probe_nested_cache(document: Any) -> list[Candidate]:
    """``{"cache": "<json>"}`` holding ``state.documents`` and ``state.transcripts``."""
    if not isinstance(document, dict):
        return []
    payload = document.get("cache")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.debug("Nested cache payload is not valid JSON")
            return []
    state = payload.get("state") if isinstance(payload, dict) else None
    if not isinstance(state, dict) or not isinstance(state.get("documents"), dict):
        return []

    transcripts = state.get("transcripts")
    if not isinstance(transcripts, dict):
        transcripts = {}

    candidates: list[Candidate] = []
    for key, doc in state["documents"].items():
        doc_id = doc.get("id") if isinstance(doc, dict) else None
        external = transcripts.get(str(doc_id)) if doc_id is not None else None
        if external is None:
            external = transcripts.get(key)
        candidates.append(Candidate(doc, key=str(key), external_transcript=external))
    return candidates


def _probe_direct_keys(document: Any) -> list[Candidate]:
    if not isinstance(document, dict):
        return []
    for name in ("documents", "docs", "meetings"):
        container = document.get(name)
        if isinstance(container, dict) and container:
            return [Candidate(doc, key=str(key)) for key, doc in container.items()]
        if isinstance(container, list) and container:
            return [Candidate(doc) for doc in container]
    return []


def _probe_top_level_list(document: Any) -> list[Candidate]:
    if not isinstance(document, list):
        return []
    return [Candidate(doc) for doc in document]


def _probe_data_container(document: Any) -> list[Candidate]:
    if not isinstance(document, dict) or not isinstance(document.get("data"), dict):
        return []
    return [Candidate(doc, key=str(key)) for key, doc in document["data"].items()]


PROBES: list[Callable[[Any], list[Candidate]]] = [
    _probe_nested_cache,
    _probe_direct_keys,
    _probe_top_level_list,
    _probe_data_container,
]


def extract_meetings(document: Any) -> list[MeetingRecord]:
    """Run the probes in order and return the first non-empty result, newest first.

    ``sorted`` is stable, so meetings with equal dates keep their source order.
    """
    for probe in PROBES:
        meetings = [m for m in map(normalize_meeting, probe(document)) if m is not None]
        if meetings:
            logger.debug("Probe %s found %d meeting(s)", probe.__name__, len(meetings))
            return sorted(meetings, key=lambda m: m.date, reverse=True)
    return []


class CacheReader:
    """Loads meetings from the Granola cache file at *path*."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> list[MeetingRecord]:
        """Return all meetings, newest first. Never raises for a missing or corrupt file."""
        if not self.path.exists():
            logger.warning("Granola cache not found at %s", self.path)
            return []
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error reading Granola cache %s: %s", self.path, exc)
            return []
        return extract_meetings(document)

    def get_meeting(self, meeting_id: str) -> MeetingRecord | None:
        return next((m for m in self.load() if m.id == meeting_id), None)
