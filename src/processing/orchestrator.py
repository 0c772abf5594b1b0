"""Processing pass: extract action items from every meeting not yet processed.

All trigger sources call :meth:`Orchestrator.run`. The in-flight flag is
checked and set with no ``await`` in between, so on a single event loop at
most one pass runs at a time; overlapping calls return a skipped result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from src.extraction.models import ExtractedActionItem
from src.granola.models import MeetingRecord
from src.granola.reader import CacheReader
from src.store.json_store import JsonStore
from src.store.models import ActionItem, ActionItemStatus, utcnow

logger = logging.getLogger(__name__)


class ProcessingInProgress(Exception):
    """A processing pass is already running."""


class Extractor(Protocol):
    async def extract(
        self, meeting: MeetingRecord, prompt_override: str | None = None
    ) -> list[ExtractedActionItem]: ...


@dataclass
class MeetingResult:
    """Outcome of extracting one meeting."""

    meeting_id: str
    title: str
    success: bool
    action_item_ids: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def action_item_count(self) -> int:
        return len(self.action_item_ids)


@dataclass
class RunResult:
    """Aggregate outcome of one pass.

    ``processed_count`` counts meetings that were extracted and marked;
    failed meetings only appear in ``results``.
    """

    skipped: bool = False
    processed_count: int = 0
    action_item_count: int = 0
    results: list[MeetingResult] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)


def build_action_items(
    meeting: MeetingRecord, extracted: list[ExtractedActionItem]
) -> list[ActionItem]:
    """Attach meeting context and positional ids (``{meeting_id}_action_{i}``)."""
    extracted_at = utcnow()
    return [
        ActionItem(
            id=f"{meeting.id}_action_{index}",
            title=item.title,
            description=item.description,
            assignee=item.assignee,
            priority=item.priority,
            deadline=item.deadline,
            meeting_id=meeting.id,
            meeting_title=meeting.title,
            meeting_date=meeting.date,
            extracted_at=extracted_at,
        )
        for index, item in enumerate(extracted)
    ]


class Orchestrator:
    """Owns the in-flight guard and drives reader -> extractor -> store."""

    def __init__(self, reader: CacheReader, store: JsonStore, extractor: Extractor) -> None:
        self._reader = reader
        self._store = store
        self._extractor = extractor
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def run(self) -> RunResult:
        """Process every meeting without a marker, in reader order, one at a time."""
        if self._in_flight:
            logger.info("Processing pass already running, skipping")
            return RunResult(skipped=True)

        self._in_flight = True
        try:
            return await self._run_pass()
        finally:
            self._in_flight = False

    async def process_meeting(self, meeting_id: str) -> MeetingResult | None:
        """Extract a single meeting on explicit request, even if already processed.

        Returns None when the meeting is not in the cache.

        Raises:
            ProcessingInProgress: If a pass is running.
        """
        if self._in_flight:
            raise ProcessingInProgress("A processing pass is already running")

        self._in_flight = True
        try:
            meeting = self._reader.get_meeting(meeting_id)
            if meeting is None:
                return None
            return await self._process(meeting, self._store.get_settings().custom_prompt)
        finally:
            self._in_flight = False

    async def _run_pass(self) -> RunResult:
        meetings = self._reader.load()
        custom_prompt = self._store.get_settings().custom_prompt

        unprocessed = [m for m in meetings if not self._store.is_processed(m.id)]
        if not unprocessed:
            logger.info("No new meetings to process")
            return RunResult()

        logger.info("Found %d new meeting(s) to process", len(unprocessed))
        result = RunResult()
        for meeting in unprocessed:
            outcome = await self._process(meeting, custom_prompt)
            result.results.append(outcome)
            if outcome.success:
                result.processed_count += 1
                result.action_item_count += outcome.action_item_count

        if result.action_item_count:
            logger.info("%d new action item(s) ready for review", result.action_item_count)
        if result.failed_count:
            logger.warning("%d meeting(s) failed and will be retried", result.failed_count)
        return result

    async def _process(self, meeting: MeetingRecord, custom_prompt: str | None) -> MeetingResult:
        logger.info("Processing meeting %s (%s)", meeting.id, meeting.title)
        try:
            extracted = await self._extractor.extract(meeting, custom_prompt)
        except Exception as exc:
            logger.exception("Extraction failed for meeting %s", meeting.id)
            return MeetingResult(meeting.id, meeting.title, success=False, error=str(exc))

        items = build_action_items(meeting, extracted)
        # Items already reviewed keep their state when a meeting is re-processed.
        fresh = [
            item
            for item in items
            if (existing := self._store.get_action_item(item.id)) is None
            or existing.status is ActionItemStatus.PENDING_REVIEW
        ]
        self._store.save_action_items(fresh)
        self._store.mark_processed(meeting.id, [item.id for item in items])

        logger.info("Extracted %d action item(s) from %s", len(items), meeting.id)
        return MeetingResult(
            meeting.id, meeting.title, success=True, action_item_ids=[i.id for i in items]
        )
