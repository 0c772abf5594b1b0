"""Pydantic request/response schemas for the Granola → Linear API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.linear.client import IssueResult, LinearTeam
from src.processing.orchestrator import MeetingResult, RunResult
from src.store.models import UNASSIGNED, ActionItem, LinearIssue, Priority, StoreSettings, StoreStats


class HealthResponse(BaseModel):
    status: str
    linear: dict[str, Any]
    granola_cache_path: str
    watching: bool
    stats: StoreStats


class MeetingSummary(BaseModel):
    """Summary representation of a meeting for list views."""

    id: str
    title: str
    date: datetime
    participants: list[str] = []
    has_notes: bool
    has_transcript: bool
    processed: bool


class MeetingListResponse(BaseModel):
    meetings: list[MeetingSummary]
    total: int
    processed: int


class MeetingDetail(BaseModel):
    """Full meeting content as read from the Granola cache."""

    id: str
    title: str
    date: datetime
    participants: list[str] = []
    notes: str = ""
    transcript: str = ""
    processed: bool


class MeetingResultResponse(BaseModel):
    meeting_id: str
    title: str
    success: bool
    action_item_count: int = 0
    action_item_ids: list[str] = []
    error: str | None = None

    @classmethod
    def from_result(cls, result: MeetingResult) -> MeetingResultResponse:
        return cls(
            meeting_id=result.meeting_id,
            title=result.title,
            success=result.success,
            action_item_count=result.action_item_count,
            action_item_ids=result.action_item_ids,
            error=result.error,
        )


class RunResponse(BaseModel):
    """Response body for the /api/process endpoint."""

    skipped: bool
    processed_count: int
    action_item_count: int
    results: list[MeetingResultResponse] = []

    @classmethod
    def from_result(cls, result: RunResult) -> RunResponse:
        return cls(
            skipped=result.skipped,
            processed_count=result.processed_count,
            action_item_count=result.action_item_count,
            results=[MeetingResultResponse.from_result(r) for r in result.results],
        )


class ProcessMeetingResponse(BaseModel):
    meeting_id: str
    count: int
    action_items: list[ActionItem]


class ActionItemListResponse(BaseModel):
    action_items: list[ActionItem]
    total: int


class ActionItemUpdate(BaseModel):
    """Editable fields of an action item; omitted fields are left unchanged.

    Only ``deadline`` may be cleared with ``null``. Defaults are never
    applied since updates are dumped with ``exclude_unset``.
    """

    title: str = Field(default="", min_length=1)
    description: str = ""
    assignee: str = UNASSIGNED
    priority: Priority = Priority.MEDIUM
    deadline: str | None = None


class BulkRequest(BaseModel):
    ids: list[str]


class BulkResult(BaseModel):
    id: str
    success: bool


class BulkResponse(BaseModel):
    results: list[BulkResult]


class CreateIssueRequest(BaseModel):
    team_id: str | None = None


class CreateIssueResponse(BaseModel):
    success: bool
    issue: LinearIssue


class CreateAllResponse(BaseModel):
    message: str | None = None
    results: list[IssueResult] = []


class TeamsResponse(BaseModel):
    teams: list[LinearTeam]


class SettingsResponse(StoreSettings):
    default_prompt: str


class SettingsUpdate(BaseModel):
    custom_prompt: str | None = None
    default_team_id: str | None = None


class ResetResponse(BaseModel):
    success: bool
