"""Action item endpoints: listing, editing, review transitions and issue creation."""

from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, HTTPException

from src.api.deps import ServicesDep
from src.api.models import (
    ActionItemListResponse,
    ActionItemUpdate,
    BulkRequest,
    BulkResponse,
    BulkResult,
    CreateAllResponse,
    CreateIssueRequest,
    CreateIssueResponse,
)
from src.linear.client import LinearError
from src.services import Services
from src.store.models import ActionItem, ActionItemStatus

router = APIRouter()


def _transition(
    services: Services, item_id: str, apply: Callable[[str], ActionItem | None]
) -> ActionItem:
    """Apply a store transition, mapping unknown ids to 404 and illegal moves to 409."""
    updated = apply(item_id)
    if updated is not None:
        return updated
    item = services.store.get_action_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Action item not found")
    raise HTTPException(
        status_code=409,
        detail=f"Action item is {item.status.value}; transition not allowed",
    )


def _team_id(services: Services, body: CreateIssueRequest | None) -> str | None:
    requested = body.team_id if body else None
    return requested or services.store.get_settings().default_team_id


@router.get("/api/action-items", response_model=ActionItemListResponse)
async def list_action_items(
    services: ServicesDep, status: ActionItemStatus | None = None
) -> ActionItemListResponse:
    """List action items, newest extraction first, optionally filtered by status."""
    items = services.store.list_by_status(status)
    items.sort(key=lambda i: i.extracted_at, reverse=True)
    return ActionItemListResponse(action_items=items, total=len(items))


@router.get("/api/action-items/pending", response_model=ActionItemListResponse)
async def list_pending(services: ServicesDep) -> ActionItemListResponse:
    items = services.store.list_by_status(ActionItemStatus.PENDING_REVIEW)
    return ActionItemListResponse(action_items=items, total=len(items))


@router.patch("/api/action-items/{item_id}", response_model=ActionItem)
async def update_action_item(
    item_id: str, body: ActionItemUpdate, services: ServicesDep
) -> ActionItem:
    """Edit an item's text fields; status changes go through approve/reject."""
    updates = body.model_dump(exclude_unset=True)
    return _transition(services, item_id, lambda i: services.store.update_fields(i, updates))


@router.post("/api/action-items/bulk-approve", response_model=BulkResponse)
async def bulk_approve(body: BulkRequest, services: ServicesDep) -> BulkResponse:
    return BulkResponse(
        results=[BulkResult(id=i, success=services.store.approve(i) is not None) for i in body.ids]
    )


@router.post("/api/action-items/bulk-reject", response_model=BulkResponse)
async def bulk_reject(body: BulkRequest, services: ServicesDep) -> BulkResponse:
    return BulkResponse(
        results=[BulkResult(id=i, success=services.store.reject(i) is not None) for i in body.ids]
    )


@router.post("/api/action-items/create-all", response_model=CreateAllResponse)
async def create_all_issues(
    services: ServicesDep, body: CreateIssueRequest | None = None
) -> CreateAllResponse:
    """Create a Linear issue for every approved item; failures are reported per item."""
    in_flight = services.issues_in_flight
    items = [
        item
        for item in services.store.list_by_status(ActionItemStatus.APPROVED)
        if item.id not in in_flight
    ]
    if not items:
        return CreateAllResponse(message="No approved items to create", results=[])

    ids = {item.id for item in items}
    in_flight.update(ids)
    try:
        results = await services.linear.create_issues(
            items, _team_id(services, body), on_created=services.store.mark_created
        )
    finally:
        in_flight.difference_update(ids)
    return CreateAllResponse(results=results)


@router.post("/api/action-items/{item_id}/approve", response_model=ActionItem)
async def approve_action_item(item_id: str, services: ServicesDep) -> ActionItem:
    return _transition(services, item_id, services.store.approve)


@router.post("/api/action-items/{item_id}/reject", response_model=ActionItem)
async def reject_action_item(item_id: str, services: ServicesDep) -> ActionItem:
    return _transition(services, item_id, services.store.reject)


@router.post("/api/action-items/{item_id}/create-issue", response_model=CreateIssueResponse)
async def create_issue(
    item_id: str, services: ServicesDep, body: CreateIssueRequest | None = None
) -> CreateIssueResponse:
    """Create a Linear issue from an approved action item."""
    item = services.store.get_action_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Action item not found")
    if item.status is not ActionItemStatus.APPROVED:
        raise HTTPException(
            status_code=409,
            detail="Only approved action items can be turned into issues",
        )
    if item_id in services.issues_in_flight:
        raise HTTPException(status_code=409, detail="Issue creation already in progress")

    services.issues_in_flight.add(item_id)
    try:
        issue = await services.linear.create_issue(item, _team_id(services, body))
        services.store.mark_created(item_id, issue)
    except LinearError as exc:
        # Upstream failure; return 502 so the caller can retry.
        raise HTTPException(status_code=502, detail=f"Linear unavailable: {exc}") from exc
    finally:
        services.issues_in_flight.discard(item_id)
    return CreateIssueResponse(success=True, issue=issue)
