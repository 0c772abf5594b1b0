"""Data models for structured extraction results."""

from __future__ import annotations

from dataclasses import dataclass

from src.store.models import UNASSIGNED, Priority


class ExtractionError(Exception):
    """The LLM call failed or returned something that is not a valid extraction."""


@dataclass
class ExtractedActionItem:
    """A single action item as returned by the extractor, before persistence."""

    title: str
    description: str = ""
    assignee: str = UNASSIGNED
    priority: Priority = Priority.MEDIUM
    deadline: str | None = None
