"""Match event models — the immutable, sequence-numbered log produced by the engine.

Each event kind is its own model carrying only the fields valid for that kind.
``MatchEvent`` is the closed tagged union, discriminated on ``type``. Unknown
extra fields are preserved so a round trip through the models never loses data.

``ReplayEvent`` is the tolerant, normalized record the JSONL loader produces for
every line, including event types this package does not model.
"""

from __future__ import annotations

import copy
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

EventType = Literal[
    "MatchStarted",
    "TurnStarted",
    "ObservationEmitted",
    "ActionSubmitted",
    "ActionAdjudicated",
    "StateUpdated",
    "AgentError",
    "MatchEnded",
]


class BaseEvent(BaseModel):
    """Fields shared by every event."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )

    seq: int
    match_id: str

    def to_raw(self) -> dict[str, Any]:
        """Wire-format dict (camelCase keys, extras included)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class MatchStartedEvent(BaseEvent):
    type: Literal["MatchStarted"] = "MatchStarted"
    seed: int = 0
    agent_ids: list[str] = Field(default_factory=list)
    scenario_name: str = ""
    max_turns: int = 0


class TurnStartedEvent(BaseEvent):
    type: Literal["TurnStarted"] = "TurnStarted"
    turn: int


class ObservationEmittedEvent(BaseEvent):
    type: Literal["ObservationEmitted"] = "ObservationEmitted"
    agent_id: str
    turn: int
    observation: Any = None


class ActionSubmittedEvent(BaseEvent):
    type: Literal["ActionSubmitted"] = "ActionSubmitted"
    agent_id: str
    turn: int
    action: Any = None


class ActionAdjudicatedEvent(BaseEvent):
    """The engine's verdict on a submitted action.

    ``feedback`` carries ``error`` (invalid attempts) or ``result`` (valid ones)
    outcome codes. ``fallback_reason`` is set when the action was only decoded
    through a schema fallback.
    """

    type: Literal["ActionAdjudicated"] = "ActionAdjudicated"
    agent_id: str
    turn: int
    valid: bool
    feedback: Any = None
    chosen_action: Any = None
    fallback_reason: str | None = None


class StateUpdatedEvent(BaseEvent):
    type: Literal["StateUpdated"] = "StateUpdated"
    turn: int
    summary: Any = None


class AgentErrorEvent(BaseEvent):
    type: Literal["AgentError"] = "AgentError"
    agent_id: str
    turn: int
    message: str = ""


class MatchEndedEvent(BaseEvent):
    type: Literal["MatchEnded"] = "MatchEnded"
    reason: str = "completed"
    scores: dict[str, float] = Field(default_factory=dict)
    turns: int = 0
    details: Any = None


MatchEvent = Annotated[
    MatchStartedEvent
    | TurnStartedEvent
    | ObservationEmittedEvent
    | ActionSubmittedEvent
    | ActionAdjudicatedEvent
    | StateUpdatedEvent
    | AgentErrorEvent
    | MatchEndedEvent,
    Field(discriminator="type"),
]

match_event_adapter: TypeAdapter[MatchEvent] = TypeAdapter(MatchEvent)


class ReplayEvent(BaseModel):
    """A normalized log entry with the complete original object in ``raw``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: str
    seq: int
    match_id: str
    turn: int | None = None
    agent_id: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, event: BaseEvent) -> ReplayEvent:
        """Wrap a typed event."""
        raw = event.to_raw()
        return cls(
            type=raw["type"],
            seq=event.seq,
            match_id=event.match_id,
            turn=raw.get("turn"),
            agent_id=raw.get("agentId"),
            raw=raw,
        )

    def typed(self) -> MatchEvent | None:
        """Validate ``raw`` into its tagged variant, or None for unknown/malformed kinds."""
        try:
            return match_event_adapter.validate_python(copy.deepcopy(self.raw))
        except ValidationError:
            return None
