"""Claude-powered extraction of action items from Granola meetings."""

from __future__ import annotations

import json
from typing import Any

from anthropic import APIError, AsyncAnthropic

from src.config import settings
from src.extraction.models import ExtractedActionItem, ExtractionError
from src.granola.models import MeetingRecord
from src.store.models import UNASSIGNED, Priority

TOOL_NAME = "record_action_items"

# Tool definition for Claude structured output
EXTRACTION_TOOL: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": (
        "Record the action items extracted from a meeting. "
        "Call this once with every action item found (an empty list if none)."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "action_items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {
                            "type": "string",
                            "description": "Clear, concise title suitable for a Linear issue.",
                        },
                        "description": {
                            "type": "string",
                            "description": "Context from the meeting.",
                        },
                        "assignee": {
                            "type": "string",
                            "description": "Person responsible, or 'Unassigned' if not clear.",
                        },
                        "priority": {
                            "type": "string",
                            "enum": ["High", "Medium", "Low"],
                        },
                        "deadline": {
                            "type": ["string", "null"],
                            "description": "Deadline or timeframe if mentioned.",
                        },
                    },
                    "required": ["title", "description", "assignee", "priority"],
                },
            },
        },
        "required": ["action_items"],
    },
}

DEFAULT_PROMPT = (
    "You are an expert at analyzing meeting notes and transcripts to extract "
    "actionable items.\n\n"
    "Analyze the following meeting content and extract all action items, tasks, "
    "and commitments.\n\n"
    "For each action item, provide:\n"
    "1. A clear, concise title (suitable for a Linear issue title)\n"
    "2. A description with context from the meeting\n"
    "3. The assignee if mentioned (or \"Unassigned\" if not clear)\n"
    "4. Priority (High, Medium, Low) based on urgency signals in the conversation\n"
    "5. Any mentioned deadline or timeframe\n\n"
    "Focus on:\n"
    "- Explicit commitments (\"I will...\", \"Let's...\", \"We need to...\")\n"
    "- Assigned tasks (\"Can you...\", \"Please...\", \"[Name] will...\")\n"
    "- Follow-ups and next steps\n"
    "- Decisions that require implementation\n\n"
    "Ignore:\n"
    "- General discussion points without clear actions\n"
    "- Questions without resolution\n"
    "- Past completed items\n\n"
    f"Use the {TOOL_NAME} tool to return your results."
)


def default_prompt() -> str:
    return DEFAULT_PROMPT


def format_meeting(meeting: MeetingRecord) -> str:
    """Render a meeting as the user message sent to Claude."""
    lines = [
        f"Meeting: {meeting.title}",
        f"Date: {meeting.date:%Y-%m-%d}",
    ]
    if meeting.participants:
        lines.append(f"Participants: {', '.join(meeting.participants)}")

    content = "\n".join(lines)
    content += "\n\n--- MEETING NOTES ---\n"
    content += meeting.notes or "(No notes available)"
    if meeting.transcript:
        content += "\n\n--- TRANSCRIPT ---\n"
        content += meeting.transcript
    return content


def _parse_priority(value: Any) -> Priority:
    if isinstance(value, str):
        for priority in Priority:
            if priority.value.lower() == value.strip().lower():
                return priority
    return Priority.MEDIUM


def _optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value if value and value.lower() != "null" else None


def _parse_tool_response(response: Any) -> list[ExtractedActionItem]:
    """Parse the Claude tool_use response into ExtractedActionItem list.

    Raises:
        ExtractionError: If there is no tool_use block or its payload is malformed.
    """
    for block in response.content:
        if block.type != "tool_use" or block.name != TOOL_NAME:
            continue

        data = block.input
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError as exc:
                raise ExtractionError(f"Tool input is not valid JSON: {exc}") from exc

        raw_items = data.get("action_items") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            raise ExtractionError("Tool input has no action_items list")

        items: list[ExtractedActionItem] = []
        for index, raw in enumerate(raw_items):
            title = raw.get("title") if isinstance(raw, dict) else None
            if not isinstance(title, str) or not title.strip():
                raise ExtractionError(f"Action item {index} has no title")
            items.append(
                ExtractedActionItem(
                    title=title.strip(),
                    description=_optional_text(raw.get("description")) or "",
                    assignee=_optional_text(raw.get("assignee")) or UNASSIGNED,
                    priority=_parse_priority(raw.get("priority")),
                    deadline=_optional_text(raw.get("deadline")),
                )
            )
        return items

    raise ExtractionError(f"No {TOOL_NAME} tool_use block in response")


class ActionItemExtractor:
    """Extracts action items from a meeting with a single Claude call."""

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._client = client or AsyncAnthropic(api_key=settings.anthropic_api_key)
        self._model = model or settings.llm_model
        self._max_tokens = max_tokens or settings.extraction_max_tokens

    async def extract(
        self,
        meeting: MeetingRecord,
        prompt_override: str | None = None,
    ) -> list[ExtractedActionItem]:
        """Extract action items from *meeting*.

        Args:
            meeting: The normalized meeting.
            prompt_override: Instructions replacing the default prompt.

        Returns:
            Action items in the order Claude returned them.

        Raises:
            ExtractionError: On an API failure or a malformed response.
        """
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=prompt_override or DEFAULT_PROMPT,
                tools=[EXTRACTION_TOOL],
                tool_choice={"type": "tool", "name": TOOL_NAME},
                messages=[{"role": "user", "content": format_meeting(meeting)}],
            )
        except APIError as exc:
            raise ExtractionError(f"Claude request failed: {exc.message}") from exc

        return _parse_tool_response(response)
