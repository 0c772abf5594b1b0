"""Meeting endpoints: list, detail, and single-meeting extraction."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from src.api.deps import ServicesDep
from src.api.models import (
    MeetingDetail,
    MeetingListResponse,
    MeetingSummary,
    ProcessMeetingResponse,
)
from src.processing.orchestrator import ProcessingInProgress

router = APIRouter()


@router.get("/api/meetings", response_model=MeetingListResponse)
async def list_meetings(services: ServicesDep) -> MeetingListResponse:
    """List all meetings in the Granola cache, newest first."""
    meetings = services.reader.load()
    store = services.store
    return MeetingListResponse(
        meetings=[
            MeetingSummary(
                id=m.id,
                title=m.title,
                date=m.date,
                participants=m.participants,
                has_notes=bool(m.notes),
                has_transcript=bool(m.transcript),
                processed=store.is_processed(m.id),
            )
            for m in meetings
        ],
        total=len(meetings),
        processed=store.stats().total_meetings_processed,
    )


@router.get("/api/meetings/{meeting_id}", response_model=MeetingDetail)
async def get_meeting(meeting_id: str, services: ServicesDep) -> MeetingDetail:
    meeting = services.reader.get_meeting(meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    return MeetingDetail(
        id=meeting.id,
        title=meeting.title,
        date=meeting.date,
        participants=meeting.participants,
        notes=meeting.notes,
        transcript=meeting.transcript,
        processed=services.store.is_processed(meeting.id),
    )


@router.post("/api/meetings/{meeting_id}/process", response_model=ProcessMeetingResponse)
async def process_meeting(meeting_id: str, services: ServicesDep) -> ProcessMeetingResponse:
    """Extract action items from one meeting, even if it was processed before."""
    try:
        result = await services.orchestrator.process_meeting(meeting_id)
    except ProcessingInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if result is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    if not result.success:
        raise HTTPException(status_code=502, detail=f"Extraction failed: {result.error}")

    items = [services.store.get_action_item(item_id) for item_id in result.action_item_ids]
    action_items = [item for item in items if item is not None]
    return ProcessMeetingResponse(
        meeting_id=meeting_id,
        count=len(action_items),
        action_items=action_items,
    )
