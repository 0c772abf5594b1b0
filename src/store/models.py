"""Persisted entities: action items, processed markers, created issues, settings."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

UNASSIGNED = "Unassigned"


def utcnow() -> datetime:
    return datetime.now(UTC)


class ActionItemStatus(StrEnum):
    """Review lifecycle of an action item."""

    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CREATED = "created"


class Priority(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# rejected and created are terminal
ALLOWED_TRANSITIONS: dict[ActionItemStatus, frozenset[ActionItemStatus]] = {
    ActionItemStatus.PENDING_REVIEW: frozenset(
        {ActionItemStatus.APPROVED, ActionItemStatus.REJECTED}
    ),
    ActionItemStatus.APPROVED: frozenset({ActionItemStatus.CREATED}),
    ActionItemStatus.REJECTED: frozenset(),
    ActionItemStatus.CREATED: frozenset(),
}

EDITABLE_STATUSES = frozenset({ActionItemStatus.PENDING_REVIEW, ActionItemStatus.APPROVED})


class LinearIssue(BaseModel):
    """Issue record returned by the Linear client."""

    id: str
    identifier: str
    title: str
    url: str
    team_key: str | None = None


class ActionItem(BaseModel):
    """A task extracted from a meeting, tracked through review to issue creation."""

    id: str
    title: str
    description: str = ""
    assignee: str = UNASSIGNED
    priority: Priority = Priority.MEDIUM
    deadline: str | None = None
    status: ActionItemStatus = ActionItemStatus.PENDING_REVIEW

    meeting_id: str
    meeting_title: str
    meeting_date: datetime
    extracted_at: datetime = Field(default_factory=utcnow)

    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None
    linear_issue: LinearIssue | None = None


class ProcessedMarker(BaseModel):
    processed_at: datetime = Field(default_factory=utcnow)
    action_item_ids: list[str] = Field(default_factory=list)


class StoreSettings(BaseModel):
    """User-editable settings; survive ``reset_all``."""

    custom_prompt: str | None = None
    default_team_id: str | None = None


class StoreState(BaseModel):
    """Everything persisted in the store file."""

    processed_meetings: dict[str, ProcessedMarker] = Field(default_factory=dict)
    action_items: dict[str, ActionItem] = Field(default_factory=dict)
    created_issues: dict[str, LinearIssue] = Field(default_factory=dict)
    settings: StoreSettings = Field(default_factory=StoreSettings)
    last_processed_at: datetime | None = None


class StoreStats(BaseModel):
    total_meetings_processed: int
    total_action_items: int
    pending_review: int
    approved: int
    rejected: int
    created: int
    last_processed_at: datetime | None = None
