"""Redaction gate — what a viewer may see of a raw event.

Two composable stages share one recursive walker:

1. **Structural strip.** Any key starting with the private marker (``_private``,
   ``_privateRemainingResources``, ...) is removed at every depth, through
   nested dicts and lists, regardless of event type. ``strip_private`` and
   ``gate_event`` expose this stage on its own, keyed by a spectator policy.

2. **Spoiler substitution.** ``redact_event`` first runs the structural strip
   over every event for anyone but the director or a viewer who revealed
   spoilers, then decides per viewer mode whether to substitute further. A
   spectator's fully private observation becomes a placeholder; match outcomes
   have their scores, reason and details replaced by one.

Every function returns a fresh copy and never mutates its input. Payloads of
the wrong shape (None, primitives, bare lists) pass through unchanged rather
than raising.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from matchreel.models.events import ReplayEvent

PRIVATE_PREFIX = "_private"
REDACTED_PLACEHOLDER = "[hidden — enable spoilers to reveal]"

ViewerMode = Literal["spectator", "postMatch", "director"]
SpectatorPolicy = Literal["live_safe", "post_match_reveal", "always_full"]
RedactionLevel = Literal["none", "partial", "full"]

_SPOILER_EVENT_TYPES = frozenset({"MatchEnded"})
_PRIVATE_EVENT_TYPES = frozenset({"ObservationEmitted"})
_SPOILER_FIELDS = ("scores", "reason", "details")


# ---------------------------------------------------------------------------
# Stage 1: structural strip
# ---------------------------------------------------------------------------


def strip_private_keys(value: Any, prefix: str = PRIVATE_PREFIX) -> tuple[Any, bool]:
    """Deep-copy ``value`` without any private-prefixed keys.

    Returns:
        The stripped copy and whether anything was removed.
    """
    if isinstance(value, list):
        stripped_any = False
        items = []
        for item in value:
            result, stripped = strip_private_keys(item, prefix)
            stripped_any = stripped_any or stripped
            items.append(result)
        return items, stripped_any

    if isinstance(value, dict):
        stripped_any = False
        out: dict[Any, Any] = {}
        for key, item in value.items():
            if isinstance(key, str) and key.startswith(prefix):
                stripped_any = True
                continue
            result, stripped = strip_private_keys(item, prefix)
            stripped_any = stripped_any or stripped
            out[key] = result
        return out, stripped_any

    return copy.deepcopy(value), False


def _policy_strips(policy: SpectatorPolicy, post_match_reveal_strips: bool) -> bool:
    if policy == "always_full":
        return False
    if policy == "post_match_reveal":
        return post_match_reveal_strips
    return True


def strip_private(
    payload: Any,
    policy: SpectatorPolicy = "live_safe",
    *,
    prefix: str = PRIVATE_PREFIX,
    post_match_reveal_strips: bool = True,
) -> Any:
    """Structural private-field gate for an arbitrary payload.

    ``post_match_reveal`` behaves like ``live_safe`` unless
    ``post_match_reveal_strips`` is switched off. ``always_full`` is a plain
    deep copy.
    """
    if not _policy_strips(policy, post_match_reveal_strips):
        return copy.deepcopy(payload)
    result, _ = strip_private_keys(payload, prefix)
    return result


def gate_event(
    raw_event: Any,
    policy: SpectatorPolicy | None = None,
    *,
    prefix: str = PRIVATE_PREFIX,
    post_match_reveal_strips: bool = True,
) -> Any:
    """Strip a whole raw event for a spectator stream.

    A missing policy is treated as ``live_safe``. An observation that was
    non-empty but consisted solely of private keys is replaced with
    ``{"redacted": True}`` so viewers still see the turn rhythm; a genuinely
    empty observation stays empty.
    """
    resolved: SpectatorPolicy = policy or "live_safe"
    if not _policy_strips(resolved, post_match_reveal_strips):
        return copy.deepcopy(raw_event)

    result, _ = strip_private_keys(raw_event, prefix)
    if (
        isinstance(raw_event, dict)
        and raw_event.get("type") == "ObservationEmitted"
        and isinstance(raw_event.get("observation"), dict)
        and raw_event["observation"]
        and result.get("observation") == {}
    ):
        result["observation"] = {"redacted": True}
    return result


# ---------------------------------------------------------------------------
# Stage 2: mode-aware view
# ---------------------------------------------------------------------------


class RedactionPolicy(BaseModel):
    """Who is watching and whether they asked to see spoilers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    mode: ViewerMode = "spectator"
    reveal_spoilers: bool = False


class RedactedEvent(BaseModel):
    """Safe render model for one event."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: str
    seq: int
    match_id: str
    turn: int | None = None
    agent_id: str | None = None
    is_redacted: bool
    redaction: RedactionLevel = "none"
    summary: str
    display_raw: dict[str, Any] = Field(default_factory=dict)
    full_raw: dict[str, Any] | None = None


def should_redact(event_type: str, policy: RedactionPolicy) -> bool:
    """Decision table: director and reveal never redact; outcomes always do;
    observations only for spectators."""
    if policy.mode == "director" or policy.reveal_spoilers:
        return False
    if event_type in _SPOILER_EVENT_TYPES:
        return True
    return policy.mode == "spectator" and event_type in _PRIVATE_EVENT_TYPES


def _redact_observation(
    raw: dict[str, Any], stripped_raw: dict[str, Any], stripped: bool
) -> tuple[dict[str, Any], RedactionLevel]:
    original = raw.get("observation")
    if isinstance(original, dict) and original and stripped_raw.get("observation") == {}:
        stripped_raw["observation"] = REDACTED_PLACEHOLDER
        return stripped_raw, "full"
    return stripped_raw, "partial" if stripped else "none"


def _redact_outcome(stripped_raw: dict[str, Any]) -> dict[str, Any]:
    redacted = dict(stripped_raw)
    redacted["scores"] = REDACTED_PLACEHOLDER
    for key in _SPOILER_FIELDS[1:]:
        if key in redacted:
            redacted[key] = REDACTED_PLACEHOLDER
    return redacted


def build_summary(event: ReplayEvent, level: RedactionLevel) -> str:
    """One-line description that never reveals more than ``display_raw`` does."""
    raw = event.raw
    if event.type == "MatchStarted":
        agents = raw.get("agentIds")
        names = " vs ".join(a for a in agents if isinstance(a, str)) if isinstance(agents, list) else ""
        return f"{raw.get('scenarioName', '')} — {names}"
    if event.type == "TurnStarted":
        return f"Turn {event.turn} started"
    if event.type == "ObservationEmitted":
        suffix = {"none": "", "partial": " [partially redacted]", "full": " [redacted]"}[level]
        return f"Observation → {event.agent_id}{suffix}"
    if event.type == "ActionSubmitted":
        return f"Action ← {event.agent_id}"
    if event.type == "ActionAdjudicated":
        return f"{'Valid' if raw.get('valid') else 'INVALID'} — {event.agent_id}"
    if event.type == "StateUpdated":
        return "State updated"
    if event.type == "AgentError":
        return f"Error: {event.agent_id}"
    if event.type == "MatchEnded":
        return "Match ended [spoiler hidden]" if level != "none" else "Match ended"
    return f"{event.type} (unknown)"


def redact_event(
    event: ReplayEvent,
    policy: RedactionPolicy | None = None,
    *,
    prefix: str = PRIVATE_PREFIX,
) -> RedactedEvent:
    """Mode-aware safe view of one event.

    ``full_raw`` is populated only when spoilers are revealed or the viewer is
    the director.
    """
    policy = policy or RedactionPolicy()
    reveal = policy.reveal_spoilers or policy.mode == "director"
    level: RedactionLevel = "none"
    if reveal:
        display_raw = copy.deepcopy(event.raw)
    else:
        # Private keys never reach a non-director viewer, whatever the event type.
        display_raw, stripped = strip_private_keys(event.raw, prefix)
        level = "partial" if stripped else "none"
        if should_redact(event.type, policy):
            if event.type in _SPOILER_EVENT_TYPES:
                display_raw = _redact_outcome(display_raw)
                level = "partial"
            else:
                display_raw, level = _redact_observation(event.raw, display_raw, stripped)

    return RedactedEvent(
        type=event.type,
        seq=event.seq,
        match_id=event.match_id,
        turn=event.turn,
        agent_id=event.agent_id,
        is_redacted=level != "none",
        redaction=level,
        summary=build_summary(event, level),
        display_raw=display_raw,
        full_raw=copy.deepcopy(event.raw) if reveal else None,
    )


def redact_events(
    events: Iterable[ReplayEvent],
    policy: RedactionPolicy | None = None,
    *,
    prefix: str = PRIVATE_PREFIX,
) -> list[RedactedEvent]:
    return [redact_event(event, policy, prefix=prefix) for event in events]
