"""Stateless moment detection — classify single adjudications.

Each ``ActionAdjudicated`` event is looked up by its outcome code: the
``error`` code for invalid attempts, the ``result`` code for valid ones. The
lookup table below maps codes to a moment definition. Unknown codes are not
errors; they just produce no candidate.

A schema-fallback adjudication always produces a ``schema_fumble``, whatever
its validity.

This is a pure computation module — no I/O, no state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from matchreel.models.events import ActionAdjudicatedEvent
from matchreel.models.moments import (
    MomentCandidate,
    MomentContext,
    MomentId,
    MomentRegister,
    SeqRange,
)
from matchreel.models.scene import SceneState


@dataclass(frozen=True)
class MomentDefinition:
    """What an outcome code means for the moments panel.

    Attributes:
        moment_id: Taxonomy tag of the moment.
        register: Emotional category.
        priority: Ranking weight; higher sorts first in the panel.
    """

    moment_id: MomentId
    register: MomentRegister
    priority: int


SCHEMA_FUMBLE = MomentDefinition("schema_fumble", "failure", 95)

# Engine error codes (invalid attempts).
_ERROR_MOMENTS: dict[str, MomentDefinition] = {
    # Movement
    "invalid_move_target": MomentDefinition("misnavigation", "failure", 90),
    "no_door_between_rooms": MomentDefinition("misnavigation", "failure", 90),
    "missing_required_item": MomentDefinition("locked_door", "failure", 80),
    "door_locked": MomentDefinition("locked_door", "failure", 80),
    # Items and terminals
    "item_not_in_room": MomentDefinition("interaction_snag", "failure", 70),
    "invalid_item_id": MomentDefinition("interaction_snag", "failure", 70),
    "unknown_item": MomentDefinition("interaction_snag", "failure", 70),
    "invalid_terminal_id": MomentDefinition("interaction_snag", "failure", 70),
    "terminal_not_in_room": MomentDefinition("interaction_snag", "failure", 70),
    # Extraction
    "not_in_extraction_room": MomentDefinition("premature_extraction", "failure", 85),
    "agent_already_extracted": MomentDefinition("premature_extraction", "failure", 75),
    # Decoder
    "invalid_action_payload": SCHEMA_FUMBLE,
    "invalid_action_type": SCHEMA_FUMBLE,
    "unknown_agent": SCHEMA_FUMBLE,
}

# Engine result codes (valid actions worth a card).
_RESULT_MOMENTS: dict[str, MomentDefinition] = {
    "hack_complete": MomentDefinition("terminal_hacked", "progress", 60),
    "hack_progress": MomentDefinition("terminal_progress", "progress", 40),
    "item_pickup": MomentDefinition("item_acquired", "progress", 55),
    "extraction_success": MomentDefinition("clean_extraction", "progress", 70),
}


def lookup_definition(valid: bool, code: str | None) -> MomentDefinition | None:
    """Resolve an outcome code in the namespace matching the action's validity."""
    if not code:
        return None
    table = _RESULT_MOMENTS if valid else _ERROR_MOMENTS
    return table.get(code)


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def build_context(
    event: ActionAdjudicatedEvent,
    scene: SceneState,
    previous_scene: SceneState | None = None,
) -> MomentContext:
    """Resolve the ids an adjudication mentions into human labels."""
    feedback = event.feedback if isinstance(event.feedback, dict) else {}
    action = event.chosen_action if isinstance(event.chosen_action, dict) else {}

    agent = scene.agents.get(event.agent_id)
    current_room_id = agent.room_id if agent else None
    target_room_id = _as_str(action.get("toRoomId"))
    door_id = _as_str(feedback.get("doorId"))
    required_item_id = _as_str(feedback.get("requiredItem"))
    target_id = (
        _as_str(action.get("itemId"))
        or _as_str(action.get("terminalId"))
        or _as_str(action.get("target"))
    )
    terminal_id = _as_str(action.get("terminalId")) or _as_str(feedback.get("terminalId"))
    item_id = _as_str(action.get("itemId")) or _as_str(feedback.get("itemId"))
    extraction_room_id = _as_str(feedback.get("extractionRoomId")) or scene.extraction_room_id

    if target_id and target_id in scene.entities:
        target_label = scene.terminal_label(target_id)
    else:
        target_label = scene.item_label(target_id)

    item = scene.items.get(item_id) if item_id else None

    return MomentContext(
        agent_id=event.agent_id,
        agent_label=event.agent_id,
        action_type=_as_str(action.get("type")),
        error_code=_as_str(feedback.get("error")),
        result_code=_as_str(feedback.get("result")),
        message=_as_str(feedback.get("message")),
        fallback_reason=event.fallback_reason,
        current_room_id=current_room_id,
        current_room_label=scene.room_label(current_room_id),
        target_room_id=target_room_id,
        target_room_label=scene.room_label(target_room_id),
        door_id=door_id,
        door_label=scene.door_label(door_id),
        required_item_id=required_item_id,
        required_item_label=scene.item_label(required_item_id),
        target_id=target_id,
        target_label=target_label,
        terminal_id=terminal_id,
        terminal_label=scene.terminal_label(terminal_id),
        item_id=item_id,
        item_label=scene.item_label(item_id),
        item_type=item.kind if item else None,
        hack_progress=_as_number(feedback.get("progress")),
        hack_required=_as_number(feedback.get("hackRequired")),
        extraction_room_id=extraction_room_id,
        extraction_room_label=scene.room_label(extraction_room_id),
        alert_level_before=previous_scene.alert_level if previous_scene else None,
        alert_level_after=scene.alert_level,
    )


def adjudication_to_candidate(
    event: ActionAdjudicatedEvent,
    scene: SceneState,
    previous_scene: SceneState | None = None,
) -> MomentCandidate | None:
    """Classify one adjudication into at most one moment candidate.

    Args:
        event: The adjudication to classify.
        scene: Scene snapshot immediately after the event.
        previous_scene: Snapshot immediately before it, when available.

    Returns:
        A candidate, or None when the outcome code is absent or not notable.
    """
    feedback = event.feedback if isinstance(event.feedback, dict) else {}

    if event.fallback_reason:
        definition: MomentDefinition | None = SCHEMA_FUMBLE
    elif event.valid:
        definition = lookup_definition(True, _as_str(feedback.get("result")))
    else:
        definition = lookup_definition(False, _as_str(feedback.get("error")))

    if definition is None:
        return None

    return MomentCandidate(
        id=definition.moment_id,
        moment_register=definition.register,
        priority=definition.priority,
        turn=event.turn,
        agent_id=event.agent_id,
        seq_range=SeqRange(start=event.seq, end=event.seq),
        context=build_context(event, scene, previous_scene),
    )
