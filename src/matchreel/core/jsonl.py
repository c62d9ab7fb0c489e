"""Tolerant JSONL loader for match event logs.

Unlike the typed models in ``matchreel.models.events``, this loader:

- keeps unknown fields and unknown event types (everything lands in ``raw``);
- normalizes the common fields: type, seq, matchId, turn, agentId;
- continues past bad lines, collecting errors with 1-based line numbers;
- sorts strictly by ``seq`` ascending, ties broken by original position.

Pure computation — no file access. Callers hand in the text.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from matchreel.models.events import ReplayEvent

logger = logging.getLogger(__name__)


class ParseError(BaseModel):
    """A line the loader skipped."""

    line: int
    message: str


class JsonlParseResult(BaseModel):
    events: list[ReplayEvent] = Field(default_factory=list)
    errors: list[ParseError] = Field(default_factory=list)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def normalize_event(obj: dict[str, Any]) -> ReplayEvent | str:
    """Normalize one decoded object, or return the reason it was rejected."""
    if not isinstance(obj.get("type"), str):
        return "Missing or invalid 'type' field"
    seq = _as_int(obj.get("seq"))
    if seq is None:
        return "Missing or invalid 'seq' field"
    if not isinstance(obj.get("matchId"), str):
        return "Missing or invalid 'matchId' field"
    agent_id = obj.get("agentId")
    return ReplayEvent(
        type=obj["type"],
        seq=seq,
        match_id=obj["matchId"],
        turn=_as_int(obj.get("turn")),
        agent_id=agent_id if isinstance(agent_id, str) else None,
        raw=obj,
    )


def order_events(events: list[ReplayEvent]) -> list[ReplayEvent]:
    """Sort by seq ascending; ``sorted`` is stable, so equal seqs keep input order."""
    return sorted(events, key=lambda e: e.seq)


def parse_jsonl(text: str) -> JsonlParseResult:
    """Parse a JSONL event log tolerantly."""
    events: list[ReplayEvent] = []
    errors: list[ParseError] = []

    for line_no, line in enumerate(text.split("\n"), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            errors.append(ParseError(line=line_no, message="Invalid JSON"))
            continue
        if not isinstance(obj, dict):
            errors.append(ParseError(line=line_no, message="Expected a JSON object"))
            continue
        normalized = normalize_event(obj)
        if isinstance(normalized, str):
            errors.append(ParseError(line=line_no, message=normalized))
            continue
        events.append(normalized)

    if errors:
        logger.warning("jsonl_parse_errors count=%d first_line=%d", len(errors), errors[0].line)

    return JsonlParseResult(events=order_events(events), errors=errors)
