"""Detection pass — fold a match log into moment candidates.

The pass replays the log through the scene reducer once. Along the way:

1. Every ``ActionAdjudicated`` is classified by the stateless detector.
2. Every ``StateUpdated`` closes a turn and runs the stateful detectors,
   at most once per turn.
3. If the log ends before the final turn was closed, the stateful detectors
   run one last time against the final scene.

The ``DetectorState`` is created here and dies with the pass. Running the pass
twice over the same log yields identical candidates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from matchreel.core.detectors import adjudication_to_candidate
from matchreel.core.scene import reduce_scene
from matchreel.core.stateful import (
    DEFAULT_DETECTOR_CONFIG,
    DetectorConfig,
    DetectorState,
    TurnInput,
    step_detectors,
)
from matchreel.models.events import (
    ActionAdjudicatedEvent,
    MatchEvent,
    ReplayEvent,
    StateUpdatedEvent,
)
from matchreel.models.moments import MomentCandidate
from matchreel.models.scene import SceneReducer, SceneState

logger = logging.getLogger(__name__)


def typed_events(events: Iterable[ReplayEvent]) -> list[MatchEvent]:
    """Typed variants of a tolerant log, skipping kinds the detectors cannot read."""
    typed: list[MatchEvent] = []
    for event in events:
        variant = event.typed()
        if variant is not None:
            typed.append(variant)
    return typed


def detect_candidates(
    events: Sequence[MatchEvent],
    reducer: SceneReducer = reduce_scene,
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> list[MomentCandidate]:
    """Run both detector families over a chronologically ordered log.

    Returns:
        Candidates in the order they were detected (chronological by seq).
    """
    scene: SceneState | None = None
    state = DetectorState()
    candidates: list[MomentCandidate] = []
    by_turn: dict[int, list[MomentCandidate]] = {}

    def record(candidate: MomentCandidate) -> None:
        candidates.append(candidate)
        by_turn.setdefault(candidate.turn, []).append(candidate)

    def close_turn(current: SceneState, turn: int, seq: int) -> None:
        nonlocal state
        turn_input = TurnInput(
            scene=current,
            turn=turn,
            seq=seq,
            candidates_this_turn=tuple(by_turn.get(turn, [])),
        )
        state, fired = step_detectors(state, turn_input, config)
        for candidate in fired:
            record(candidate)

    for event in events:
        previous_scene = scene
        scene = reducer(scene, event)

        if isinstance(event, ActionAdjudicatedEvent):
            state.last_agent_id = event.agent_id
            candidate = adjudication_to_candidate(event, scene, previous_scene)
            if candidate is not None:
                record(candidate)
        elif isinstance(event, StateUpdatedEvent):
            if event.turn == state.last_processed_turn:
                continue
            close_turn(scene, event.turn, event.seq)

    if scene is not None and scene.turn != state.last_processed_turn:
        close_turn(scene, scene.turn, scene.last_event_seq or 0)

    logger.info(
        "moments_detected match=%s events=%d candidates=%d",
        scene.match_id if scene else "",
        len(events),
        len(candidates),
    )
    return candidates
