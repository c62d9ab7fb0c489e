"""Moment models — detection output and its presentation forms.

Vocabulary: a Candidate is one detector firing; a Moment is its presented form;
the Register is its emotional category (failure, tension, progress).

Lifecycle: detectors create ``MomentCandidate``s, the template resolver turns
each into a ``MomentCard``, and the collapser merges adjacent cards into
``CollapsedMomentCard``s. All three are frozen; recomputing from the same log
yields identical objects.
"""

from __future__ import annotations

from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MomentRegister = Literal["failure", "tension", "progress"]

MomentId = Literal[
    "misnavigation",
    "locked_door",
    "interaction_snag",
    "premature_extraction",
    "schema_fumble",
    "terminal_hacked",
    "terminal_progress",
    "item_acquired",
    "clean_extraction",
    "guard_closing",
    "stalled_objective",
    "noise_creep",
    "near_miss",
]

ReplayMomentType = Literal[
    "score_swing", "lead_change", "comeback", "blunder", "clutch", "close_call"
]

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class MomentContext(BaseModel):
    """Everything a template may reference. Detectors fill only what they know."""

    model_config = _WIRE

    # Actor
    agent_id: str | None = None
    agent_label: str | None = None
    action_type: str | None = None

    # Adjudication feedback
    error_code: str | None = None
    result_code: str | None = None
    message: str | None = None
    fallback_reason: str | None = None

    # Navigation
    current_room_id: str | None = None
    current_room_label: str | None = None
    target_room_id: str | None = None
    target_room_label: str | None = None
    door_id: str | None = None
    door_label: str | None = None
    required_item_id: str | None = None
    required_item_label: str | None = None

    # Interaction targets
    target_id: str | None = None
    target_label: str | None = None
    terminal_id: str | None = None
    terminal_label: str | None = None
    item_id: str | None = None
    item_label: str | None = None
    item_type: str | None = None
    hack_progress: float | None = None
    hack_required: float | None = None
    extraction_room_id: str | None = None
    extraction_room_label: str | None = None

    # Alert
    alert_level: int | None = None
    alert_level_before: int | None = None
    alert_level_after: int | None = None
    noise: float | None = None
    noise_percent: int | None = None
    threshold_ratio: float | None = None
    next_threshold: float | None = None

    # Threat proximity
    guard_id: str | None = None
    guard_label: str | None = None
    guard_room_id: str | None = None
    guard_room_label: str | None = None
    agent_room_id: str | None = None
    agent_room_label: str | None = None

    # Tempo
    stalled_turns: int | None = None

    # Set by detectors that observed an actual detection ("spotted")
    detection_event: bool | None = None

    def template_fields(self) -> dict[str, Any]:
        """Populated fields only, keyed by Python name — the template namespace."""
        return self.model_dump(exclude_none=True)


class SeqRange(BaseModel):
    model_config = _WIRE

    start: int
    end: int


class MomentCandidate(BaseModel):
    """A raw detection, one per detector firing."""

    model_config = _WIRE

    id: MomentId
    moment_register: MomentRegister = Field(alias="register")
    priority: int
    turn: int
    agent_id: str
    seq_range: SeqRange
    context: MomentContext = Field(default_factory=MomentContext)


class MomentCard(BaseModel):
    """A candidate rendered to text by the template resolver."""

    model_config = _WIRE

    id: str
    turn: int
    seq: int
    agent_id: str
    moment_register: MomentRegister = Field(alias="register")
    priority: int
    icon: str
    title: str
    detail: str
    category: str
    moment_id: MomentId


class CollapsedMomentCard(MomentCard):
    """One or more adjacent, equivalent cards merged for the moments panel."""

    count: int = 1
    collapsed_seqs: list[int] = Field(default_factory=list)

    @property
    def start_seq(self) -> int:
        return self.collapsed_seqs[0] if self.collapsed_seqs else self.seq

    @property
    def end_seq(self) -> int:
        return self.collapsed_seqs[-1] if self.collapsed_seqs else self.seq


class ReplayMoment(BaseModel):
    """Score-level moment; also the precomputed ``moments.json`` artifact format."""

    model_config = _WIRE

    id: str
    label: str
    type: ReplayMomentType
    start_seq: int
    end_seq: int
    signals: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None


class MomentEventRange(BaseModel):
    """A moment's seq range resolved to inclusive event indices."""

    model_config = _WIRE

    start_event_idx: int
    end_event_idx: int


class SeqSpan(Protocol):
    """Anything commentary can bind to: an id plus a seq range."""

    @property
    def id(self) -> str: ...

    @property
    def start_seq(self) -> int: ...

    @property
    def end_seq(self) -> int: ...
