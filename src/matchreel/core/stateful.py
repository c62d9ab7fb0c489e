"""Multi-turn moment detection — detectors that need memory across turns.

Four independent detectors run once per turn boundary:

- **guard_closing** — a guard's room neighbours an agent's room (per-guard cooldown).
- **stalled_objective** — several consecutive turns without any progress moment.
- **noise_creep** — noise crosses fixed fractions of the gap to the next alert threshold.
- **near_miss** — a guard shares, or just left, an agent's room without spotting them.

The memory lives in ``DetectorState``, which belongs to exactly one detection
pass. ``step_detectors`` is the transition ``(state, turn) -> (state', candidates)``:
it never mutates the state it is handed, so a turn can be replayed in isolation
and a fresh pass always starts clean.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from matchreel.models.moments import MomentCandidate, MomentContext, SeqRange
from matchreel.models.scene import SceneState


@dataclass(frozen=True)
class DetectorConfig:
    """Tuning for the stateful detectors.

    Attributes:
        guard_cooldown_turns: Turns a guard stays silent after a guard_closing.
        stall_interval: A stall moment fires on every Nth consecutive stalled turn.
        noise_fractions: Fractions of the threshold gap that trigger noise_creep.
    """

    guard_cooldown_turns: int = 3
    stall_interval: int = 3
    noise_fractions: tuple[float, ...] = (0.5, 0.75)


DEFAULT_DETECTOR_CONFIG = DetectorConfig()


@dataclass
class DetectorState:
    """Working memory of one detection pass over one match."""

    guard_cooldowns: dict[str, int] = field(default_factory=dict)
    stalled_turns: int = 0
    noise_fired: dict[int, set[float]] = field(default_factory=dict)
    last_guard_rooms: dict[str, str | None] = field(default_factory=dict)
    last_agent_id: str | None = None
    last_processed_turn: int = -1

    def copy(self) -> DetectorState:
        """Independent copy; nothing mutable is shared with the original."""
        return DetectorState(
            guard_cooldowns=dict(self.guard_cooldowns),
            stalled_turns=self.stalled_turns,
            noise_fired={level: set(fired) for level, fired in self.noise_fired.items()},
            last_guard_rooms=dict(self.last_guard_rooms),
            last_agent_id=self.last_agent_id,
            last_processed_turn=self.last_processed_turn,
        )


@dataclass(frozen=True)
class TurnInput:
    """Everything the detectors see at one turn boundary."""

    scene: SceneState
    turn: int
    seq: int
    candidates_this_turn: tuple[MomentCandidate, ...] = ()


def _candidate(
    moment_id: str,
    priority: int,
    turn_input: TurnInput,
    agent_id: str,
    context: MomentContext,
) -> MomentCandidate:
    return MomentCandidate(
        id=moment_id,
        moment_register="tension",
        priority=priority,
        turn=turn_input.turn,
        agent_id=agent_id,
        seq_range=SeqRange(start=turn_input.seq, end=turn_input.seq),
        context=context,
    )


def _fallback_agent(state: DetectorState, scene: SceneState) -> str:
    if state.last_agent_id:
        return state.last_agent_id
    return next(iter(scene.agents), "team")


def detect_guard_closing(
    state: DetectorState, turn_input: TurnInput, config: DetectorConfig
) -> list[MomentCandidate]:
    """One candidate per agent in a room adjacent to a guard, per guard off cooldown."""
    scene = turn_input.scene
    adjacency = scene.adjacency()
    results: list[MomentCandidate] = []

    for guard in scene.guards.values():
        if not guard.room_id:
            continue
        last_fired = state.guard_cooldowns.get(guard.guard_id)
        if last_fired is not None and turn_input.turn - last_fired < config.guard_cooldown_turns:
            continue
        neighbours = adjacency.get(guard.room_id, set())
        threatened = [
            agent
            for agent in scene.agents.values()
            if agent.room_id and agent.room_id in neighbours
        ]
        for agent in threatened:
            results.append(
                _candidate(
                    "guard_closing",
                    85,
                    turn_input,
                    agent.agent_id,
                    MomentContext(
                        guard_id=guard.guard_id,
                        guard_label=guard.guard_id,
                        guard_room_id=guard.room_id,
                        guard_room_label=scene.room_label(guard.room_id),
                        agent_room_id=agent.room_id,
                        agent_room_label=scene.room_label(agent.room_id),
                    ),
                )
            )
        if threatened:
            state.guard_cooldowns[guard.guard_id] = turn_input.turn

    return results


def detect_stall(
    state: DetectorState, turn_input: TurnInput, config: DetectorConfig
) -> list[MomentCandidate]:
    """Count progress-free turns; fire on every ``stall_interval``-th one."""
    if any(c.moment_register == "progress" for c in turn_input.candidates_this_turn):
        state.stalled_turns = 0
        return []

    state.stalled_turns += 1
    if config.stall_interval <= 0 or state.stalled_turns % config.stall_interval:
        return []
    return [
        _candidate(
            "stalled_objective",
            70,
            turn_input,
            _fallback_agent(state, turn_input.scene),
            MomentContext(stalled_turns=state.stalled_turns),
        )
    ]


def detect_noise_creep(
    state: DetectorState, turn_input: TurnInput, config: DetectorConfig
) -> list[MomentCandidate]:
    """Fire once per (alert level, fraction) as noise climbs toward the next threshold."""
    scene = turn_input.scene
    noise = scene.noise
    level = scene.alert_level or 0
    thresholds = scene.alert_thresholds
    if noise is None or level < 0 or level + 1 >= len(thresholds):
        return []
    current_threshold, next_threshold = thresholds[level], thresholds[level + 1]
    if next_threshold <= current_threshold:
        return []

    ratio = (noise - current_threshold) / (next_threshold - current_threshold)
    fired = state.noise_fired.setdefault(level, set())
    results: list[MomentCandidate] = []
    for fraction in config.noise_fractions:
        if ratio < fraction or fraction in fired:
            continue
        fired.add(fraction)
        results.append(
            _candidate(
                "noise_creep",
                75,
                turn_input,
                _fallback_agent(state, scene),
                MomentContext(
                    noise=noise,
                    alert_level=level,
                    threshold_ratio=fraction,
                    noise_percent=math.floor(ratio * 100 + 0.5),
                    next_threshold=next_threshold,
                ),
            )
        )
    return results


def detect_near_miss(
    state: DetectorState, turn_input: TurnInput, config: DetectorConfig
) -> list[MomentCandidate]:
    """Guard/agent pairs that shared a room this turn, or just passed through it.

    Suppressed for any turn that already produced an actual detection, which
    would otherwise be double-counted as a near miss.
    """
    scene = turn_input.scene
    spotted = any(c.context.detection_event for c in turn_input.candidates_this_turn)
    results: list[MomentCandidate] = []
    seen_pairs: set[tuple[str, str]] = set()

    if not spotted:
        for guard in scene.guards.values():
            if not guard.room_id:
                continue
            previous_room = state.last_guard_rooms.get(guard.guard_id)
            for agent in scene.agents.values():
                if not agent.room_id:
                    continue
                shares_room = guard.room_id == agent.room_id
                passed_through = previous_room == agent.room_id and not shares_room
                pair = (guard.guard_id, agent.agent_id)
                if not (shares_room or passed_through) or pair in seen_pairs:
                    continue
                seen_pairs.add(pair)
                results.append(
                    _candidate(
                        "near_miss",
                        80,
                        turn_input,
                        agent.agent_id,
                        MomentContext(
                            agent_label=agent.agent_id,
                            guard_id=guard.guard_id,
                            guard_label=guard.guard_id,
                            guard_room_id=guard.room_id,
                            guard_room_label=scene.room_label(guard.room_id),
                            agent_room_id=agent.room_id,
                            agent_room_label=scene.room_label(agent.room_id),
                        ),
                    )
                )

    for guard in scene.guards.values():
        state.last_guard_rooms[guard.guard_id] = guard.room_id
    return results


_DETECTORS = (detect_guard_closing, detect_stall, detect_noise_creep, detect_near_miss)


def step_detectors(
    state: DetectorState,
    turn_input: TurnInput,
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> tuple[DetectorState, list[MomentCandidate]]:
    """Run every stateful detector for one turn.

    Returns:
        The successor state and the candidates fired this turn, in detector order.
    """
    next_state = state.copy()
    candidates: list[MomentCandidate] = []
    for detector in _DETECTORS:
        candidates.extend(detector(next_state, turn_input, config))
    next_state.last_processed_turn = turn_input.turn
    return next_state, candidates
