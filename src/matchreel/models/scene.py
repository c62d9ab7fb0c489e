"""Scene snapshot models — the domain view stateful detectors read.

A ``SceneReducer`` folds events into ``SceneState`` snapshots. The reducer is
supplied by the domain engine; detection treats it as a black box and never
writes to a snapshot. See ``matchreel.core.scene`` for the reference reducer.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

from matchreel.models.events import MatchEvent


class Room(BaseModel):
    room_id: str
    label: str | None = None


class Door(BaseModel):
    """An undirected connection between two rooms."""

    door_id: str
    from_room: str
    to_room: str
    is_locked: bool | None = None


class AgentPosition(BaseModel):
    agent_id: str
    room_id: str | None = None


class Guard(BaseModel):
    """A mobile threat patrolling the map."""

    guard_id: str
    room_id: str | None = None
    patrol_room_ids: list[str] = Field(default_factory=list)


class Entity(BaseModel):
    """A fixed map object, e.g. a terminal."""

    entity_id: str
    kind: str
    room_id: str | None = None
    label: str | None = None
    state: dict[str, Any] = Field(default_factory=dict)


class Item(BaseModel):
    item_id: str
    kind: str
    room_id: str | None = None
    label: str | None = None
    held_by: str | None = None


class SceneState(BaseModel):
    """Snapshot of the match scene after some prefix of the event log."""

    match_id: str
    scenario_name: str = ""
    status: Literal["idle", "running", "ended"] = "idle"
    termination_reason: str | None = None
    turn: int = 0
    max_turns: int | None = None
    rooms: dict[str, Room] = Field(default_factory=dict)
    doors: dict[str, Door] = Field(default_factory=dict)
    agents: dict[str, AgentPosition] = Field(default_factory=dict)
    guards: dict[str, Guard] = Field(default_factory=dict)
    entities: dict[str, Entity] = Field(default_factory=dict)
    items: dict[str, Item] = Field(default_factory=dict)
    alert_level: int | None = None
    noise: float | None = None
    alert_thresholds: list[float] = Field(default_factory=list)
    extraction_room_id: str | None = None
    last_event_seq: int | None = None

    def room_label(self, room_id: str | None) -> str | None:
        """Human label for a room, falling back to the raw id."""
        if not room_id:
            return None
        room = self.rooms.get(room_id)
        return room.label if room and room.label else room_id

    def door_label(self, door_id: str | None) -> str | None:
        if not door_id:
            return None
        door = self.doors.get(door_id)
        if door is None:
            return door_id
        return f"{self.room_label(door.from_room)} ↔ {self.room_label(door.to_room)}"

    def item_label(self, item_id: str | None) -> str | None:
        if not item_id:
            return None
        item = self.items.get(item_id)
        return item.label if item and item.label else item_id

    def terminal_label(self, terminal_id: str | None) -> str | None:
        if not terminal_id:
            return None
        entity = self.entities.get(terminal_id)
        return entity.label if entity and entity.label else terminal_id

    def adjacency(self) -> dict[str, set[str]]:
        """Undirected room adjacency built from the door list."""
        graph: dict[str, set[str]] = {}
        for door in self.doors.values():
            graph.setdefault(door.from_room, set()).add(door.to_room)
            graph.setdefault(door.to_room, set()).add(door.from_room)
        return graph


SceneReducer = Callable[[SceneState | None, MatchEvent], SceneState]
