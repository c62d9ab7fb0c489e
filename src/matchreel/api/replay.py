"""Replay query API — moments, redaction, commentary and playhead visibility.

Every request carries the match log it is about; a fresh ``ReplaySession`` is
built per request and discarded with it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from matchreel.config import VALID_VIEWER_MODES, Settings
from matchreel.core.jsonl import ParseError, normalize_event
from matchreel.core.redaction import SpectatorPolicy
from matchreel.core.session import ReplaySession

router = APIRouter(prefix="/api/replay", tags=["replay"])
logger = logging.getLogger(__name__)


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventsRequest(_Request):
    """A raw match log, one JSON object per event."""

    events: list[dict[str, Any]] = Field(default_factory=list)


class MomentsRequest(EventsRequest):
    moments_artifact: list[dict[str, Any]] | None = None
    playhead: int = 0
    reveal_spoilers: bool = False
    agent_id: str | None = None
    moment_register: str | None = Field(default=None, alias="register")
    category: str | None = None


class RedactRequest(EventsRequest):
    mode: str | None = None
    reveal_spoilers: bool = False


class StripRequest(_Request):
    payload: Any = None
    visibility: SpectatorPolicy = "live_safe"


class CommentaryRequest(EventsRequest):
    """``commentary`` is the document text, or the already-decoded document."""

    commentary: Any = None


class VisibleRequest(CommentaryRequest):
    playhead: int = 0
    mode: str | None = None
    reveal_spoilers: bool = False
    moment_id: str | None = None


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _check_mode(mode: str | None) -> None:
    if mode is not None and mode not in VALID_VIEWER_MODES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid mode '{mode}'. Must be one of: {sorted(VALID_VIEWER_MODES)}",
        )


def _build_session(body: EventsRequest, request: Request, artifact: str | None = None) -> ReplaySession:
    events = []
    errors = []
    for index, obj in enumerate(body.events):
        normalized = normalize_event(obj)
        if isinstance(normalized, str):
            errors.append(ParseError(line=index + 1, message=normalized))
        else:
            events.append(normalized)
    if errors:
        logger.warning("replay_request_rejected_events count=%d", len(errors))
    session = ReplaySession(events, settings=_get_settings(request), moments_artifact=artifact)
    session.parse_errors = errors
    return session


def _dump(items: list[BaseModel]) -> list[dict[str, Any]]:
    return [item.model_dump(by_alias=True, mode="json") for item in items]


def _commentary_text(commentary: Any) -> str:
    if commentary is None:
        return ""
    return commentary if isinstance(commentary, str) else json.dumps(commentary)


@router.post("/moments")
async def post_moments(body: MomentsRequest, request: Request) -> dict[str, Any]:
    """Ranked moment cards, the chronological timeline and replay moments.

    Only moments the playhead has reached are returned unless spoilers are revealed.
    """
    artifact = json.dumps(body.moments_artifact) if body.moments_artifact is not None else None
    session = _build_session(body, request, artifact)
    playhead, reveal = body.playhead, body.reveal_spoilers
    cards = session.moments(playhead, reveal, body.agent_id, body.moment_register, body.category)
    return {
        "moments": _dump(cards),
        "timeline": _dump(session.timeline(playhead, reveal)),
        "replayMoments": _dump(session.replay_moments(playhead, reveal)),
        "agentColors": session.agent_colors,
        "warnings": session.artifact_warnings,
        "errors": _dump(session.parse_errors),
    }


@router.post("/redact")
async def post_redact(body: RedactRequest, request: Request) -> dict[str, Any]:
    """Every event as the given viewer may see it."""
    _check_mode(body.mode)
    session = _build_session(body, request)
    return {
        "events": _dump(session.redact_all(body.mode, body.reveal_spoilers)),
        "errors": _dump(session.parse_errors),
    }


@router.post("/strip")
async def post_strip(body: StripRequest, request: Request) -> dict[str, Any]:
    """Structural private-field strip of an arbitrary payload."""
    settings = _get_settings(request)
    session = ReplaySession([], settings=settings)
    return {"payload": session.strip_private(body.payload, body.visibility)}


@router.post("/commentary")
async def post_commentary(body: CommentaryRequest, request: Request) -> dict[str, Any]:
    """Validate and bind a commentary document against the match."""
    session = _build_session(body, request)
    parsed = session.parse_commentary(_commentary_text(body.commentary))
    return parsed.model_dump(by_alias=True, mode="json")


@router.post("/visible")
async def post_visible(body: VisibleRequest, request: Request) -> dict[str, Any]:
    """What a viewer may render at a playhead position."""
    _check_mode(body.mode)
    session = _build_session(body, request)
    if body.commentary is not None:
        session.parse_commentary(_commentary_text(body.commentary))

    visible = session.visible_at(body.playhead, body.mode, body.reveal_spoilers)
    result: dict[str, Any] = {
        "playhead": visible.playhead,
        "events": _dump(visible.events),
        "moments": _dump(visible.moments),
        "commentary": _dump(visible.commentary),
    }
    if body.moment_id is not None:
        result["momentCommentary"] = _dump(
            session.for_moment(body.moment_id, body.playhead, body.reveal_spoilers)
        )
    return result
