"""Tests for the Granola cache reader: probes, field fallbacks and ordering."""

from __future__ import annotations

import json
import pathlib
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from src.granola.reader import (
    DEFAULT_TITLE,
    Candidate,
    CacheReader,
    extract_meetings,
    normalize_meeting,
    parse_date,
    render_transcript,
)


def nested_cache(documents: dict[str, Any], transcripts: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the current Granola shape: a JSON string under ``cache``."""
    state: dict[str, Any] = {"documents": documents}
    if transcripts is not None:
        state["transcripts"] = transcripts
    return {"cache": json.dumps({"state": state, "version": 3})}


class TestNestedCacheShape:
    def test_documents_and_external_transcripts(self) -> None:
        document = nested_cache(
            {
                "doc-1": {
                    "id": "doc-1",
                    "type": "meeting",
                    "title": "Weekly sync",
                    "created_at": "2026-10-01T09:00:00.000Z",
                    "notes_markdown": "## Notes\n- ship it",
                    "transcript": "inline copy",
                    "people": {"attendees": [{"name": "Ada"}, {"email": "bob@example.com"}]},
                }
            },
            transcripts={
                "doc-1": [
                    {"source": "microphone", "text": "I'll ship it Friday."},
                    {"source": "system", "text": "Great."},
                ]
            },
        )

        meetings = extract_meetings(document)

        assert len(meetings) == 1
        meeting = meetings[0]
        assert meeting.id == "doc-1"
        assert meeting.title == "Weekly sync"
        assert meeting.date == datetime(2026, 10, 1, 9, 0, tzinfo=UTC)
        assert meeting.notes == "## Notes\n- ship it"
        # Externally indexed transcript wins over the inline field.
        assert meeting.transcript == "microphone: I'll ship it Friday.\nsystem: Great."
        assert meeting.participants == ["Ada", "bob@example.com"]

    def test_transcript_only_meeting_is_kept(self) -> None:
        document = nested_cache(
            {"doc-2": {"title": "Call"}},
            transcripts={"doc-2": [{"speaker": "Ada", "text": "Hello"}]},
        )
        meetings = extract_meetings(document)
        assert [m.id for m in meetings] == ["doc-2"]
        assert meetings[0].notes == ""
        assert meetings[0].transcript == "Ada: Hello"

    def test_already_decoded_cache_payload(self) -> None:
        document = {"cache": {"state": {"documents": {"d": {"notes_plain": "plain notes"}}}}}
        meetings = extract_meetings(document)
        assert meetings[0].notes == "plain notes"

    def test_deleted_documents_are_skipped(self) -> None:
        document = nested_cache(
            {
                "gone": {"notes_plain": "old", "deleted_at": "2026-09-01T00:00:00Z"},
                "kept": {"notes_plain": "new"},
            }
        )
        assert [m.id for m in extract_meetings(document)] == ["kept"]

    def test_invalid_nested_json_falls_through(self) -> None:
        document = {"cache": "{not json", "documents": [{"id": "a", "notes": "fallback"}]}
        assert [m.id for m in extract_meetings(document)] == ["a"]


class TestOtherShapes:
    def test_documents_list(self) -> None:
        document = {"documents": [{"id": "a", "notes": "n"}]}
        assert [m.id for m in extract_meetings(document)] == ["a"]

    def test_docs_mapping_uses_key_as_fallback_id(self) -> None:
        document = {"docs": {"key-1": {"title": "No id", "content": "text"}}}
        meetings = extract_meetings(document)
        assert meetings[0].id == "key-1"
        assert meetings[0].notes == "text"

    def test_meetings_key(self) -> None:
        document = {"meetings": [{"uuid": "u-1", "enhancedNotes": "enhanced"}]}
        meetings = extract_meetings(document)
        assert meetings[0].id == "u-1"
        assert meetings[0].notes == "enhanced"

    def test_top_level_list(self) -> None:
        document = [{"documentId": "d-1", "notes": "a"}, "junk", 3, None]
        assert [m.id for m in extract_meetings(document)] == ["d-1"]

    def test_data_container(self) -> None:
        document = {"data": {"x": {"notes": "n"}, "y": "not a candidate"}}
        assert [m.id for m in extract_meetings(document)] == ["x"]

    def test_probe_with_no_usable_meetings_falls_through(self) -> None:
        document = {
            "documents": [{"id": "empty"}],
            "data": {"b": {"id": "b", "notes": "content"}},
        }
        assert [m.id for m in extract_meetings(document)] == ["b"]

    @pytest.mark.parametrize(
        "document",
        [
            {},
            {"unrelated": {"a": 1}},
            [],
            "just a string",
            42,
            None,
            {"documents": "nope", "data": []},
            {"cache": json.dumps({"state": {"documents": []}})},
            [{"type": "panel", "notes": "not a meeting"}],
        ],
    )
    def test_unrecognized_shapes_yield_nothing(self, document: Any) -> None:
        assert extract_meetings(document) == []


class TestFieldFallbacks:
    def test_title_fallback_chain(self) -> None:
        assert normalize_meeting(Candidate({"name": "By name", "notes": "n"})).title == "By name"  # type: ignore[union-attr]
        assert normalize_meeting(Candidate({"subject": "By subject", "notes": "n"})).title == "By subject"  # type: ignore[union-attr]
        assert normalize_meeting(Candidate({"title": "  ", "notes": "n"})).title == DEFAULT_TITLE  # type: ignore[union-attr]

    def test_notes_prefer_markdown_over_plain(self) -> None:
        meeting = normalize_meeting(
            Candidate({"notes_markdown": "md", "notes_plain": "plain", "notes": "raw"})
        )
        assert meeting is not None
        assert meeting.notes == "md"

    def test_panels_are_joined(self) -> None:
        meeting = normalize_meeting(
            Candidate({"panels": [{"content": "first"}, {"text": "second"}, {"other": 1}, "third"]})
        )
        assert meeting is not None
        assert meeting.notes == "first\n\nsecond\n\nthird"

    def test_structured_notes_are_stringified(self) -> None:
        notes = {"type": "doc", "content": [{"type": "text", "text": "hi"}]}
        meeting = normalize_meeting(Candidate({"notes": notes}))
        assert meeting is not None
        assert json.loads(meeting.notes) == notes

    def test_empty_notes_and_transcript_is_dropped(self) -> None:
        assert normalize_meeting(Candidate({"id": "a", "title": "Nothing"})) is None
        assert normalize_meeting(Candidate({"id": "a", "notes": "", "transcript": []})) is None

    def test_unknown_type_tag_is_dropped(self) -> None:
        assert normalize_meeting(Candidate({"type": "calendar_event", "notes": "n"})) is None
        assert normalize_meeting(Candidate({"type": "note", "notes": "n"})) is not None

    @pytest.mark.parametrize("tag", [["meeting"], {"kind": "meeting"}, {}, 3])
    def test_non_string_type_tag_is_dropped(self, tag: Any) -> None:
        assert normalize_meeting(Candidate({"type": tag, "notes": "n"})) is None

    def test_non_mapping_candidate_is_dropped(self) -> None:
        assert normalize_meeting(Candidate(["not", "a", "dict"])) is None

    def test_generated_id_when_none_available(self) -> None:
        meeting = normalize_meeting(Candidate({"notes": "n"}))
        assert meeting is not None
        assert re.fullmatch(r"meeting_\d+_[0-9a-z]{9}", meeting.id)

    def test_participants_from_attendees(self) -> None:
        meeting = normalize_meeting(
            Candidate({"notes": "n", "attendees": [{"name": "Ada"}, "Bob", {"email": "c@x.io"}, 7]})
        )
        assert meeting is not None
        assert meeting.participants == ["Ada", "Bob", "c@x.io"]

    def test_inline_transcript_segments(self) -> None:
        meeting = normalize_meeting(
            Candidate({"transcripts": [{"speaker": "Ada", "content": "Hi"}, {"text": "Anyone?"}]})
        )
        assert meeting is not None
        assert meeting.transcript == "Ada: Hi\nSpeaker: Anyone?"

    def test_missing_date_defaults_to_now(self) -> None:
        before = datetime.now(UTC)
        meeting = normalize_meeting(Candidate({"notes": "n", "date": "not a date"}))
        assert meeting is not None
        assert before - timedelta(seconds=1) <= meeting.date <= datetime.now(UTC)

    def test_raw_is_kept_but_ignored_by_equality(self) -> None:
        a = normalize_meeting(Candidate({"id": "a", "notes": "n", "date": 1_700_000_000, "x": 1}))
        b = normalize_meeting(Candidate({"id": "a", "notes": "n", "date": 1_700_000_000, "x": 2}))
        assert a is not None and b is not None
        assert a.raw["x"] == 1
        assert a == b


class TestParsing:
    def test_parse_date_variants(self) -> None:
        expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert parse_date(1_700_000_000) == expected
        assert parse_date(1_700_000_000_000) == expected
        assert parse_date("2023-11-14T22:13:20Z") == expected
        assert parse_date("2023-11-14T22:13:20") == expected
        assert parse_date("2023-11-15T00:13:20+02:00") == expected
        assert parse_date("garbage") is None
        assert parse_date(True) is None
        assert parse_date({"when": "now"}) is None

    def test_render_transcript(self) -> None:
        assert render_transcript("  plain text  ") == "plain text"
        assert render_transcript([{"text": ""}, {"speaker": "A", "text": "x"}]) == "A: x"
        assert render_transcript({"not": "a list"}) == ""


class TestOrdering:
    def test_sorted_newest_first(self) -> None:
        document = {
            "documents": [
                {"id": "old", "notes": "n", "date": "2026-01-01T00:00:00Z"},
                {"id": "new", "notes": "n", "date": "2026-03-01T00:00:00Z"},
                {"id": "mid", "notes": "n", "date": "2026-02-01T00:00:00Z"},
            ]
        }
        assert [m.id for m in extract_meetings(document)] == ["new", "mid", "old"]

    def test_equal_dates_keep_source_order(self) -> None:
        same = "2026-05-05T10:00:00Z"
        document = [
            {"id": "first", "notes": "n", "date": same},
            {"id": "second", "notes": "n", "date": same},
            {"id": "newest", "notes": "n", "date": "2026-06-01T00:00:00Z"},
            {"id": "third", "notes": "n", "date": same},
        ]
        assert [m.id for m in extract_meetings(document)] == ["newest", "first", "second", "third"]


class TestCacheReader:
    def test_missing_file_returns_empty(self, reader: CacheReader) -> None:
        assert reader.load() == []

    def test_corrupt_file_returns_empty(
        self, reader: CacheReader, cache_path: pathlib.Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text("{ definitely not json", encoding="utf-8")
        assert reader.load() == []
        assert "Error reading Granola cache" in caplog.text

    def test_load_and_get_meeting(
        self, reader: CacheReader, write_cache: Callable[[Any], pathlib.Path]
    ) -> None:
        write_cache(nested_cache({"m1": {"title": "One", "notes_plain": "n"}}))
        assert [m.id for m in reader.load()] == ["m1"]
        assert reader.get_meeting("m1") is not None
        assert reader.get_meeting("missing") is None

    def test_odd_type_tag_does_not_break_load(
        self, reader: CacheReader, write_cache: Callable[[Any], pathlib.Path]
    ) -> None:
        write_cache(
            {
                "documents": [
                    {"id": "a", "type": ["meeting"], "notes": "x"},
                    {"id": "c", "type": {}, "notes": "y"},
                    {"id": "b", "notes": "keep me"},
                ]
            }
        )
        assert [m.id for m in reader.load()] == ["b"]

    def test_never_yields_empty_content(
        self, reader: CacheReader, write_cache: Callable[[Any], pathlib.Path]
    ) -> None:
        write_cache(
            [
                {"id": "a", "notes": ""},
                {"id": "b", "transcript": "t"},
                {"id": "c", "notes": "n"},
                {"id": "d"},
            ]
        )
        meetings = reader.load()
        assert {m.id for m in meetings} == {"b", "c"}
        assert all(m.notes or m.transcript for m in meetings)
