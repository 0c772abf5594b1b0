"""Shared fixtures: temp cache/store files, a stub extractor, and a mocked Linear API."""

from __future__ import annotations

import asyncio
import json
import pathlib
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from src.config import Settings
from src.extraction.models import ExtractedActionItem
from src.granola.models import MeetingRecord
from src.granola.reader import CacheReader
from src.linear.client import LinearClient
from src.services import Services, build_services
from src.store.json_store import JsonStore


class StubExtractor:
    """Stands in for the Claude extractor.

    ``responses`` maps meeting id -> list of items, or an exception to raise.
    When ``gate`` is set, every call waits on it after flagging ``entered``.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = responses or {}
        self.calls: list[tuple[str, str | None]] = []
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None

    async def extract(
        self, meeting: MeetingRecord, prompt_override: str | None = None
    ) -> list[ExtractedActionItem]:
        self.calls.append((meeting.id, prompt_override))
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()

        response = self.responses.get(meeting.id, [])
        if isinstance(response, Exception):
            raise response
        return list(response)


# ---------------------------------------------------------------------------
# Linear API mock
# ---------------------------------------------------------------------------

TEAMS = [
    {"id": "team-1", "name": "Engineering", "key": "ENG"},
    {"id": "team-2", "name": "Design", "key": "DES"},
]


class FakeLinearAPI:
    """Routes GraphQL requests by operation name and records them."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.fail_issue_titles: set[str] = set()
        self.malformed_issue_titles: set[str] = set()
        self.issue_counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        query = body["query"]

        if "query Teams" in query:
            return httpx.Response(200, json={"data": {"teams": {"nodes": TEAMS}}})
        if "query Viewer" in query:
            return httpx.Response(
                200, json={"data": {"viewer": {"id": "u1", "name": "Ada", "email": "ada@example.com"}}}
            )
        if "mutation IssueCreate" in query:
            issue_input = body["variables"]["input"]
            if issue_input["title"] in self.fail_issue_titles:
                return httpx.Response(200, json={"errors": [{"message": "Issue rejected"}]})
            self.issue_counter += 1
            team_key = next(t["key"] for t in TEAMS if t["id"] == issue_input["teamId"])
            identifier = f"{team_key}-{self.issue_counter}"
            issue = {
                "id": f"issue-{self.issue_counter}",
                "identifier": identifier,
                "title": issue_input["title"],
                "url": f"https://linear.app/acme/issue/{identifier}",
            }
            if issue_input["title"] in self.malformed_issue_titles:
                del issue["url"]
            return httpx.Response(
                200,
                json={
                    "data": {
                        "issueCreate": {
                            "success": True,
                            "issue": issue,
                        }
                    }
                },
            )
        return httpx.Response(400, json={"errors": [{"message": "Unknown operation"}]})

    def issue_inputs(self) -> list[dict[str, Any]]:
        return [r["variables"]["input"] for r in self.requests if "mutation IssueCreate" in r["query"]]


@pytest.fixture
def fake_linear() -> FakeLinearAPI:
    return FakeLinearAPI()


@pytest.fixture
def linear_client(fake_linear: FakeLinearAPI) -> LinearClient:
    return LinearClient(
        "lin_test_key",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_linear.handler)),
    )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_path(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "granola" / "cache-v3.json"


@pytest.fixture
def write_cache(cache_path: pathlib.Path) -> Callable[[Any], pathlib.Path]:
    def write(document: Any) -> pathlib.Path:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(json.dumps(document), encoding="utf-8")
        return cache_path

    return write


@pytest.fixture
def reader(cache_path: pathlib.Path) -> CacheReader:
    return CacheReader(cache_path)


@pytest.fixture
def store(tmp_path: pathlib.Path) -> JsonStore:
    return JsonStore(tmp_path / "data" / "store.json")


@pytest.fixture
def extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture
def app_settings(tmp_path: pathlib.Path, cache_path: pathlib.Path) -> Settings:
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        granola_cache_path=cache_path,
        data_dir=tmp_path / "data",
        watch_enabled=False,
    )


@pytest.fixture
def services(
    app_settings: Settings, extractor: StubExtractor, linear_client: LinearClient
) -> Services:
    return build_services(app_settings, extractor=extractor, linear=linear_client)
