"""Linear GraphQL client: teams lookup and issue creation from action items."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from src.store.models import UNASSIGNED, ActionItem, LinearIssue, Priority

logger = logging.getLogger(__name__)

LINEAR_API_URL = "https://api.linear.app/graphql"

# Linear priorities: 1 = Urgent, 2 = High, 3 = Medium
PRIORITY_MAP: dict[Priority, int] = {
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}
DEFAULT_LINEAR_PRIORITY = 3

TEAMS_QUERY = "query Teams { teams { nodes { id name key } } }"
VIEWER_QUERY = "query Viewer { viewer { id name email } }"
ISSUE_CREATE_MUTATION = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { id identifier title url }
  }
}
"""


class LinearError(Exception):
    """A Linear request failed or returned GraphQL errors."""


class LinearTeam(BaseModel):
    id: str
    name: str
    key: str


class IssueResult(BaseModel):
    """Outcome of creating one issue in a batch."""

    action_item_id: str
    success: bool
    issue: LinearIssue | None = None
    error: str | None = None


def map_priority(priority: Priority | str | None) -> int:
    try:
        return PRIORITY_MAP[Priority(priority)]
    except ValueError:
        return DEFAULT_LINEAR_PRIORITY


def build_description(item: ActionItem) -> str:
    """Issue body: the item's description followed by its meeting context."""
    lines = [
        item.description,
        "",
        "---",
        f"From meeting: **{item.meeting_title}**",
        f"Meeting date: {item.meeting_date:%Y-%m-%d}",
    ]
    if item.assignee and item.assignee != UNASSIGNED:
        lines.append(f"Mentioned assignee: {item.assignee}")
    if item.deadline:
        lines.append(f"Deadline: {item.deadline}")
    lines += ["", "*Created automatically from Granola meeting notes*"]
    return "\n".join(lines)


class LinearClient:
    """Async client for the subset of Linear's API this app needs."""

    def __init__(
        self,
        api_key: str,
        default_team_id: str | None = None,
        api_url: str = LINEAR_API_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._default_team_id = default_team_id
        self._api_url = api_url
        self._http = http_client or httpx.AsyncClient(timeout=30.0)
        self._teams: list[LinearTeam] | None = None

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._http.post(
                self._api_url,
                json={"query": query, "variables": variables or {}},
                headers={"Authorization": self._api_key},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise LinearError(f"Linear request failed: {exc}") from exc
        except ValueError as exc:
            raise LinearError("Linear returned a non-JSON response") from exc

        if not isinstance(payload, dict):
            raise LinearError("Linear returned an unexpected response")
        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            message = first.get("message") if isinstance(first, dict) else None
            raise LinearError(message or "Unknown Linear error")
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    async def get_teams(self) -> list[LinearTeam]:
        """Return the workspace's teams (cached after the first call)."""
        if self._teams is None:
            data = await self._graphql(TEAMS_QUERY)
            try:
                nodes = data.get("teams", {}).get("nodes", [])
                self._teams = [LinearTeam.model_validate(node) for node in nodes]
            except (AttributeError, TypeError, ValidationError) as exc:
                raise LinearError(f"Unexpected teams response from Linear: {exc}") from exc
        return self._teams

    async def get_team(self, team_id: str | None = None) -> LinearTeam | None:
        """Resolve *team_id*, then the configured default, then the first team."""
        teams = await self.get_teams()
        by_id = {team.id: team for team in teams}
        for wanted in (team_id, self._default_team_id):
            if wanted and wanted in by_id:
                return by_id[wanted]
        return teams[0] if teams else None

    async def create_issue(self, item: ActionItem, team_id: str | None = None) -> LinearIssue:
        team = await self.get_team(team_id)
        if team is None:
            raise LinearError("No Linear team found. Configure LINEAR_TEAM_ID.")

        data = await self._graphql(
            ISSUE_CREATE_MUTATION,
            {
                "input": {
                    "teamId": team.id,
                    "title": item.title,
                    "description": build_description(item),
                    "priority": map_priority(item.priority),
                }
            },
        )
        result = data.get("issueCreate")
        if not isinstance(result, dict) or not result.get("success") or not result.get("issue"):
            raise LinearError(f"Linear did not create an issue for {item.id}")

        raw = result["issue"]
        try:
            issue = LinearIssue(
                id=raw["id"],
                identifier=raw["identifier"],
                title=raw["title"],
                url=raw["url"],
                team_key=team.key,
            )
        except (KeyError, TypeError, ValidationError) as exc:
            raise LinearError(f"Malformed issue returned by Linear for {item.id}: {exc!r}") from exc

        logger.info("Created Linear issue %s for %s", issue.identifier, item.id)
        return issue

    async def create_issues(
        self,
        items: list[ActionItem],
        team_id: str | None = None,
        on_created: Callable[[str, LinearIssue], Any] | None = None,
    ) -> list[IssueResult]:
        """Create issues one by one; a failure only affects its own item.

        *on_created* is called with the item id and issue as soon as each
        issue exists, so earlier successes are recorded even if a later
        item fails.
        """
        results: list[IssueResult] = []
        for item in items:
            try:
                issue = await self.create_issue(item, team_id)
            except LinearError as exc:
                logger.warning("Issue creation failed for %s: %s", item.id, exc)
                results.append(IssueResult(action_item_id=item.id, success=False, error=str(exc)))
                continue
            if on_created is not None:
                on_created(item.id, issue)
            results.append(IssueResult(action_item_id=item.id, success=True, issue=issue))
        return results

    async def test_connection(self) -> dict[str, Any]:
        try:
            data = await self._graphql(VIEWER_QUERY)
        except LinearError as exc:
            return {"connected": False, "error": str(exc)}
        return {"connected": True, "user": data.get("viewer")}
