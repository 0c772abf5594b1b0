"""Data models for meetings read from the Granola cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class MeetingRecord:
    """Normalized representation of one recorded meeting.

    ``raw`` keeps the source candidate for debugging and takes no part in
    equality or repr.
    """

    id: str
    title: str
    date: datetime
    participants: list[str] = field(default_factory=list)
    notes: str = ""
    transcript: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
