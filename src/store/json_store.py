"""Single-file JSON store for processing state.

The whole state lives in memory and the file is rewritten in full after every
mutation. One owning process is assumed; within it, callers serialize their
own mutations (everything runs on the event loop thread).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from src.store.models import (
    ALLOWED_TRANSITIONS,
    EDITABLE_STATUSES,
    ActionItem,
    ActionItemStatus,
    LinearIssue,
    ProcessedMarker,
    StoreSettings,
    StoreState,
    StoreStats,
    utcnow,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"title", "description", "assignee", "priority", "deadline"})

_TRANSITION_TIMESTAMPS = {
    ActionItemStatus.APPROVED: "approved_at",
    ActionItemStatus.REJECTED: "rejected_at",
    ActionItemStatus.CREATED: "created_at",
}


class JsonStore:
    """Durable state: processed markers, action items, created issues and settings."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._state = self._load()

    # -- persistence -------------------------------------------------------

    def _load(self) -> StoreState:
        if not self.path.exists():
            return StoreState()
        try:
            return StoreState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading store %s: %s", self.path, exc)
            return StoreState()

    def _save(self) -> None:
        """Rewrite the store file; on failure memory stays ahead of disk."""
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(self._state.model_dump_json(indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            logger.error("Error saving store %s: %s", self.path, exc)

    # -- processed markers -------------------------------------------------

    def is_processed(self, meeting_id: str) -> bool:
        return meeting_id in self._state.processed_meetings

    def get_marker(self, meeting_id: str) -> ProcessedMarker | None:
        marker = self._state.processed_meetings.get(meeting_id)
        return marker.model_copy(deep=True) if marker else None

    def mark_processed(self, meeting_id: str, action_item_ids: Iterable[str]) -> None:
        """Record *meeting_id* as processed, overwriting any existing marker."""
        now = utcnow()
        self._state.processed_meetings[meeting_id] = ProcessedMarker(
            processed_at=now, action_item_ids=list(action_item_ids)
        )
        self._state.last_processed_at = now
        self._save()

    # -- action items ------------------------------------------------------

    def save_action_items(self, items: Iterable[ActionItem]) -> None:
        """Insert or replace items by id."""
        for item in items:
            self._state.action_items[item.id] = item.model_copy(deep=True)
        self._save()

    def get_action_item(self, item_id: str) -> ActionItem | None:
        item = self._state.action_items.get(item_id)
        return item.model_copy(deep=True) if item else None

    def list_by_status(self, status: ActionItemStatus | str | None = None) -> list[ActionItem]:
        items = self._state.action_items.values()
        if status is not None:
            wanted = ActionItemStatus(status)
            items = [i for i in items if i.status is wanted]
        return [i.model_copy(deep=True) for i in items]

    def update_status(
        self,
        item_id: str,
        target: ActionItemStatus | str,
        linear_issue: LinearIssue | None = None,
    ) -> ActionItem | None:
        """Move an item to *target*.

        Returns the updated item, or None when the id is unknown or the
        transition is not allowed from the item's current status.
        """
        item = self._state.action_items.get(item_id)
        if item is None:
            return None

        target = ActionItemStatus(target)
        if target not in ALLOWED_TRANSITIONS[item.status]:
            logger.info("Ignoring transition %s -> %s for %s", item.status, target, item_id)
            return None
        if target is ActionItemStatus.CREATED and linear_issue is None:
            msg = "A created action item requires its Linear issue record"
            raise ValueError(msg)

        changes: dict[str, Any] = {"status": target, _TRANSITION_TIMESTAMPS[target]: utcnow()}
        if linear_issue is not None:
            changes["linear_issue"] = linear_issue
            self._state.created_issues[item_id] = linear_issue

        updated = item.model_copy(update=changes)
        self._state.action_items[item_id] = updated
        self._save()
        return updated.model_copy(deep=True)

    def approve(self, item_id: str) -> ActionItem | None:
        return self.update_status(item_id, ActionItemStatus.APPROVED)

    def reject(self, item_id: str) -> ActionItem | None:
        return self.update_status(item_id, ActionItemStatus.REJECTED)

    def mark_created(self, item_id: str, issue: LinearIssue) -> ActionItem | None:
        return self.update_status(item_id, ActionItemStatus.CREATED, linear_issue=issue)

    def update_fields(self, item_id: str, updates: dict[str, Any]) -> ActionItem | None:
        """Edit the text fields of an item still under review or approved."""
        item = self._state.action_items.get(item_id)
        if item is None or item.status not in EDITABLE_STATUSES:
            return None

        changes = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}
        updated = ActionItem.model_validate({**item.model_dump(), **changes})
        self._state.action_items[item_id] = updated
        self._save()
        return updated.model_copy(deep=True)

    def created_issues(self) -> dict[str, LinearIssue]:
        return {k: v.model_copy() for k, v in self._state.created_issues.items()}

    # -- settings / stats --------------------------------------------------

    def get_settings(self) -> StoreSettings:
        return self._state.settings.model_copy()

    def update_settings(self, **changes: Any) -> StoreSettings:
        self._state.settings = StoreSettings.model_validate(
            {**self._state.settings.model_dump(), **changes}
        )
        self._save()
        return self.get_settings()

    def stats(self) -> StoreStats:
        counts = {status: 0 for status in ActionItemStatus}
        for item in self._state.action_items.values():
            counts[item.status] += 1
        return StoreStats(
            total_meetings_processed=len(self._state.processed_meetings),
            total_action_items=len(self._state.action_items),
            pending_review=counts[ActionItemStatus.PENDING_REVIEW],
            approved=counts[ActionItemStatus.APPROVED],
            rejected=counts[ActionItemStatus.REJECTED],
            created=counts[ActionItemStatus.CREATED],
            last_processed_at=self._state.last_processed_at,
        )

    def reset_all(self) -> None:
        """Clear items, markers and issue records; settings are preserved."""
        self._state = StoreState(settings=self._state.settings)
        self._save()
