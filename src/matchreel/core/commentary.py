"""Commentary ingestion — parse and bind a user-authored ``commentary.json``.

Each entry binds either to a moment id or to an explicit, inclusive event-index
range. Anything wrong with the document or an entry becomes a warning and the
offending part is dropped; parsing never raises. Surviving entries are sorted
by the event index at which they become relevant, then by id.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from matchreel.models.moments import MomentEventRange, SeqSpan

logger = logging.getLogger(__name__)

CommentarySeverity = Literal["hype", "analysis", "ref", "info"]

VALID_SEVERITIES: frozenset[str] = frozenset({"hype", "analysis", "ref", "info"})
DEFAULT_SEVERITY: CommentarySeverity = "info"

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class _EntryBase(BaseModel):
    model_config = _WIRE

    id: str
    text: str
    speaker: str | None = None
    severity: CommentarySeverity = DEFAULT_SEVERITY
    tags: list[str] = Field(default_factory=list)
    created_at: str | None = None


class MomentBoundEntry(_EntryBase):
    kind: Literal["moment"] = "moment"
    moment_id: str


class RangeBoundEntry(_EntryBase):
    kind: Literal["range"] = "range"
    start_event_idx: int
    end_event_idx: int


CommentaryEntry = Annotated[MomentBoundEntry | RangeBoundEntry, Field(discriminator="kind")]


class CommentaryWarning(BaseModel):
    """``index`` is the entry position, or -1 for a document-level problem."""

    model_config = _WIRE

    index: int
    message: str


class CommentaryFile(BaseModel):
    model_config = _WIRE

    version: int | float = 1
    match_id: str | None = None
    entries: list[CommentaryEntry] = Field(default_factory=list)
    warnings: list[CommentaryWarning] = Field(default_factory=list)


def _is_index(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


def entry_start_idx(entry: CommentaryEntry, moment_ranges: Mapping[str, MomentEventRange]) -> int:
    """Event index at which an entry becomes relevant."""
    if isinstance(entry, MomentBoundEntry):
        moment_range = moment_ranges.get(entry.moment_id)
        return moment_range.start_event_idx if moment_range else 0
    return entry.start_event_idx


def entry_end_idx(
    entry: CommentaryEntry,
    moment_ranges: Mapping[str, MomentEventRange],
    fallback_end_idx: int,
) -> int:
    if isinstance(entry, MomentBoundEntry):
        moment_range = moment_ranges.get(entry.moment_id)
        return moment_range.end_event_idx if moment_range else fallback_end_idx
    return entry.end_event_idx


def sort_entries(
    entries: Iterable[CommentaryEntry], moment_ranges: Mapping[str, MomentEventRange]
) -> list[CommentaryEntry]:
    return sorted(entries, key=lambda e: (entry_start_idx(e, moment_ranges), e.id))


def _parse_entry(
    index: int,
    raw: Any,
    moment_ids: set[str],
    max_idx: int,
    warnings: list[CommentaryWarning],
) -> CommentaryEntry | None:
    def warn(message: str) -> None:
        warnings.append(CommentaryWarning(index=index, message=message))

    if not isinstance(raw, dict):
        warn("Entry is not a JSON object")
        return None

    text = raw.get("text")
    if not isinstance(text, str) or not text.strip():
        warn("Missing or empty 'text' field")
        return None

    severity = raw.get("severity")
    tags = raw.get("tags")
    common: dict[str, Any] = {
        "id": raw["id"] if isinstance(raw.get("id"), str) else f"commentary-{index}",
        "text": text,
        "speaker": raw["speaker"] if isinstance(raw.get("speaker"), str) else None,
        "severity": severity if severity in VALID_SEVERITIES else DEFAULT_SEVERITY,
        "tags": [t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
        "created_at": raw["createdAt"] if isinstance(raw.get("createdAt"), str) else None,
    }

    # A moment binding wins over a range when both are present.
    moment_id = raw.get("momentId")
    if isinstance(moment_id, str):
        if moment_id not in moment_ids:
            warn(f"Unknown momentId '{moment_id}'")
            return None
        return MomentBoundEntry(moment_id=moment_id, **common)

    start, end = raw.get("startEventIdx"), raw.get("endEventIdx")
    if _is_index(start) and _is_index(end):
        start, end = int(start), int(end)
        if start > end:
            warn(f"Inverted range {start}..{end}; swapped")
            start, end = end, start
        start = max(0, min(start, max_idx))
        end = max(start, min(end, max_idx))
        return RangeBoundEntry(start_event_idx=start, end_event_idx=end, **common)

    warn("Entry must have 'momentId' or both 'startEventIdx' and 'endEventIdx'")
    return None


def parse_commentary(
    text: str,
    moments: Iterable[SeqSpan],
    event_count: int,
    moment_ranges: Mapping[str, MomentEventRange] | None = None,
) -> CommentaryFile:
    """Parse and validate a commentary document.

    Args:
        text: Raw file contents.
        moments: Everything an entry may bind to by id.
        event_count: Length of the event log; ranges are clamped into it.
        moment_ranges: Resolved event ranges per moment id, used for sorting.
            Moment-bound entries sort at index 0 when their range is unknown.
    """
    moment_ranges = moment_ranges or {}
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("commentary_invalid reason=json")
        return CommentaryFile(warnings=[CommentaryWarning(index=-1, message="Invalid JSON")])

    if not isinstance(parsed, dict):
        logger.warning("commentary_invalid reason=not_object")
        return CommentaryFile(
            warnings=[CommentaryWarning(index=-1, message="Expected a JSON object at top level")]
        )

    version = parsed.get("version")
    version = version if isinstance(version, (int, float)) and not isinstance(version, bool) else 1
    match_id = parsed["matchId"] if isinstance(parsed.get("matchId"), str) else None

    raw_entries = parsed.get("entries")
    if not isinstance(raw_entries, list):
        logger.warning("commentary_invalid reason=no_entries")
        return CommentaryFile(
            version=version,
            match_id=match_id,
            warnings=[CommentaryWarning(index=-1, message="Missing or invalid 'entries' array")],
        )

    moment_ids = {moment.id for moment in moments}
    max_idx = max(0, event_count - 1)
    warnings: list[CommentaryWarning] = []
    entries = [
        entry
        for index, raw in enumerate(raw_entries)
        if (entry := _parse_entry(index, raw, moment_ids, max_idx, warnings)) is not None
    ]

    logger.info(
        "commentary_parsed match=%s entries=%d warnings=%d",
        match_id or "",
        len(entries),
        len(warnings),
    )
    return CommentaryFile(
        version=version,
        match_id=match_id,
        entries=sort_entries(entries, moment_ranges),
        warnings=warnings,
    )
