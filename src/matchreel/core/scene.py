"""Reference scene reducer — folds match events into SceneState snapshots.

The real reducer belongs to the domain engine; this one understands the heist
scenario wire format well enough for local replays and tests:

- ``MatchStarted``       → agents, status, max turns
- ``TurnStarted``        → current turn
- ``ObservationEmitted`` → agent room, scenario hydration from ``_private``
- ``StateUpdated``       → agent/guard rooms, alert level, noise
- ``MatchEnded``         → termination

Pure: every call returns a new snapshot and never touches its input.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

from matchreel.models.events import (
    MatchEndedEvent,
    MatchEvent,
    MatchStartedEvent,
    ObservationEmittedEvent,
    StateUpdatedEvent,
    TurnStartedEvent,
)
from matchreel.models.scene import (
    AgentPosition,
    Door,
    Entity,
    Guard,
    Item,
    Room,
    SceneReducer,
    SceneState,
)

_TERMINATION_REASONS = {
    "completed": "completed",
    "maxTurnsReached": "maxTurns",
    "agentForfeited": "error",
}


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _hydrate(state: SceneState, params: dict[str, Any]) -> SceneState:
    """Fill whichever scene collections are still empty from scenario params."""
    update: dict[str, Any] = {}
    raw_map = params.get("map") if isinstance(params.get("map"), dict) else {}

    if not state.rooms:
        rooms: dict[str, Room] = {}
        for room in _as_list(raw_map.get("rooms")):
            if isinstance(room, dict) and _as_str(room.get("id")):
                label = _as_str(room.get("label")) or _as_str(room.get("type"))
                rooms[room["id"]] = Room(room_id=room["id"], label=label)
        update["rooms"] = rooms

    if not state.doors:
        doors: dict[str, Door] = {}
        for door in _as_list(raw_map.get("doors")):
            if not isinstance(door, dict):
                continue
            room_a, room_b = _as_str(door.get("roomA")), _as_str(door.get("roomB"))
            if not room_a or not room_b:
                continue
            door_id = _as_str(door.get("id")) or f"door:{room_a}:{room_b}"
            locked = door.get("locked")
            doors[door_id] = Door(
                door_id=door_id,
                from_room=room_a,
                to_room=room_b,
                is_locked=locked if isinstance(locked, bool) else None,
            )
        update["doors"] = doors

    if not state.guards and not state.entities:
        guards: dict[str, Guard] = {}
        entities: dict[str, Entity] = {}
        for entity in _as_list(params.get("entities")):
            if not isinstance(entity, dict):
                continue
            entity_id, kind = _as_str(entity.get("id")), _as_str(entity.get("type"))
            if not entity_id or not kind:
                continue
            if kind == "guard":
                patrol = [r for r in _as_list(entity.get("patrolRoute")) if isinstance(r, str)]
                room_id = _as_str(entity.get("roomId")) or (patrol[0] if patrol else None)
                guards[entity_id] = Guard(
                    guard_id=entity_id, room_id=room_id, patrol_room_ids=patrol
                )
            else:
                entities[entity_id] = Entity(
                    entity_id=entity_id,
                    kind=kind,
                    room_id=_as_str(entity.get("roomId")),
                    label=_as_str(entity.get("label")),
                )
        update["guards"] = guards
        update["entities"] = entities

    if not state.items:
        items: dict[str, Item] = {}
        for item in _as_list(params.get("items")):
            if isinstance(item, dict) and _as_str(item.get("id")):
                items[item["id"]] = Item(
                    item_id=item["id"],
                    kind=_as_str(item.get("type")) or "item",
                    room_id=_as_str(item.get("roomId")),
                    label=_as_str(item.get("label")),
                )
        update["items"] = items

    if state.extraction_room_id is None:
        update["extraction_room_id"] = _as_str(params.get("extractionRoomId"))
    if not state.alert_thresholds:
        thresholds = params.get("alertThresholds")
        if isinstance(thresholds, list):
            update["alert_thresholds"] = [
                t for t in thresholds if _as_number(t) is not None
            ]

    return state.model_copy(update=update)


def _with_agent_room(state: SceneState, agent_id: str, room_id: str) -> SceneState:
    agents = dict(state.agents)
    agents[agent_id] = AgentPosition(agent_id=agent_id, room_id=room_id)
    return state.model_copy(update={"agents": agents})


def _apply_observation(state: SceneState, event: ObservationEmittedEvent) -> SceneState:
    observation = event.observation if isinstance(event.observation, dict) else {}
    private = observation.get("_private")
    if isinstance(private, dict):
        state = _hydrate(state, private)
        alert_level = _as_number(private.get("alertLevel"))
        if alert_level is not None:
            state = state.model_copy(update={"alert_level": int(alert_level)})
        progress = private.get("terminalProgress")
        if isinstance(progress, dict) and progress:
            entities = dict(state.entities)
            for terminal_id, value in progress.items():
                existing = entities.get(terminal_id)
                if existing is not None and _as_number(value) is not None:
                    entities[terminal_id] = existing.model_copy(
                        update={"state": {**existing.state, "progress": value}}
                    )
            state = state.model_copy(update={"entities": entities})

    room_id = _as_str(observation.get("currentRoomId"))
    if room_id:
        state = _with_agent_room(state, event.agent_id, room_id)
    return state


def _apply_state_update(state: SceneState, event: StateUpdatedEvent) -> SceneState:
    summary = event.summary if isinstance(event.summary, dict) else {}
    update: dict[str, Any] = {}

    alert_level = _as_number(summary.get("alertLevel"))
    if alert_level is not None:
        update["alert_level"] = int(alert_level)
    noise = _as_number(summary.get("noise"))
    if noise is not None:
        update["noise"] = noise

    agents_summary = summary.get("agents")
    if isinstance(agents_summary, dict):
        agents = dict(state.agents)
        for agent_id, agent_summary in agents_summary.items():
            room_id = _as_str(agent_summary.get("roomId")) if isinstance(agent_summary, dict) else None
            if room_id:
                agents[agent_id] = AgentPosition(agent_id=agent_id, room_id=room_id)
        update["agents"] = agents

    guards_summary = summary.get("guards")
    if isinstance(guards_summary, dict):
        guards = dict(state.guards)
        for guard_id, guard_summary in guards_summary.items():
            room_id = _as_str(guard_summary.get("roomId")) if isinstance(guard_summary, dict) else None
            if not room_id:
                continue
            existing = guards.get(guard_id) or Guard(guard_id=guard_id)
            guards[guard_id] = existing.model_copy(update={"room_id": room_id})
        update["guards"] = guards

    return state.model_copy(update=update)


def reduce_scene(state: SceneState | None, event: MatchEvent) -> SceneState:
    """Fold one event into the scene."""
    if state is None:
        state = SceneState(match_id=event.match_id)

    if isinstance(event, MatchStartedEvent):
        agents = dict(state.agents)
        for agent_id in event.agent_ids:
            agents.setdefault(agent_id, AgentPosition(agent_id=agent_id))
        state = state.model_copy(
            update={
                "match_id": event.match_id,
                "scenario_name": event.scenario_name,
                "status": "running",
                "turn": 0,
                "max_turns": event.max_turns or None,
                "agents": agents,
            }
        )
    elif isinstance(event, TurnStartedEvent):
        state = state.model_copy(update={"turn": event.turn})
    elif isinstance(event, ObservationEmittedEvent):
        state = _apply_observation(state, event)
    elif isinstance(event, StateUpdatedEvent):
        state = _apply_state_update(state, event)
    elif isinstance(event, MatchEndedEvent):
        state = state.model_copy(
            update={
                "status": "ended",
                "termination_reason": _TERMINATION_REASONS.get(event.reason, event.reason),
            }
        )

    return state.model_copy(update={"last_event_seq": event.seq})


def fold_scene(events: Iterable[MatchEvent], reducer: SceneReducer = reduce_scene) -> SceneState:
    """Fold a whole log into its final scene.

    Raises:
        ValueError: If ``events`` is empty.
    """
    state: SceneState | None = None
    for event in events:
        state = reducer(state, event)
    if state is None:
        msg = "No events provided to fold_scene"
        raise ValueError(msg)
    return state
