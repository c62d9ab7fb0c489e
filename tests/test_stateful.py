"""Tests for the multi-turn stateful detectors."""

from __future__ import annotations

from matchreel.core.stateful import (
    DetectorConfig,
    DetectorState,
    TurnInput,
    step_detectors,
)
from matchreel.models.moments import MomentCandidate, MomentContext, SeqRange
from matchreel.models.scene import AgentPosition, Door, Guard, Room, SceneState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_scene(
    guard_room: str | None = "a",
    agent_rooms: dict[str, str] | None = None,
    noise: float | None = None,
    alert_level: int | None = 0,
    thresholds: list[float] | None = None,
) -> SceneState:
    """Rooms a - b - c in a line, one guard, agents placed as given."""
    agent_rooms = agent_rooms if agent_rooms is not None else {"alpha": "b"}
    return SceneState(
        match_id="m",
        rooms={r: Room(room_id=r, label=r.upper()) for r in ("a", "b", "c")},
        doors={
            "d-ab": Door(door_id="d-ab", from_room="a", to_room="b"),
            "d-bc": Door(door_id="d-bc", from_room="b", to_room="c"),
        },
        agents={aid: AgentPosition(agent_id=aid, room_id=room) for aid, room in agent_rooms.items()},
        guards={"g1": Guard(guard_id="g1", room_id=guard_room)} if guard_room else {},
        noise=noise,
        alert_level=alert_level,
        alert_thresholds=thresholds if thresholds is not None else [],
    )


def _make_candidate(register: str = "progress", detection: bool | None = None) -> MomentCandidate:
    return MomentCandidate(
        id="terminal_progress" if register == "progress" else "misnavigation",
        moment_register=register,
        priority=40,
        turn=1,
        agent_id="alpha",
        seq_range=SeqRange(start=1, end=1),
        context=MomentContext(detection_event=detection),
    )


def _step(
    state: DetectorState,
    scene: SceneState,
    turn: int,
    candidates: tuple[MomentCandidate, ...] = (),
    config: DetectorConfig | None = None,
) -> tuple[DetectorState, list[MomentCandidate]]:
    turn_input = TurnInput(scene=scene, turn=turn, seq=turn * 10, candidates_this_turn=candidates)
    return step_detectors(state, turn_input, config or DetectorConfig())


def _ids(candidates: list[MomentCandidate], moment_id: str) -> list[MomentCandidate]:
    return [c for c in candidates if c.id == moment_id]


# ---------------------------------------------------------------------------
# Proximity
# ---------------------------------------------------------------------------


class TestGuardClosing:
    def test_cooldown_fires_at_5_silent_until_8(self) -> None:
        scene = _make_scene()
        state = DetectorState()
        fired_turns = []
        for turn in range(5, 10):
            state, candidates = _step(state, scene, turn, (_make_candidate(),))
            if _ids(candidates, "guard_closing"):
                fired_turns.append(turn)
        assert fired_turns == [5, 8]

    def test_names_both_rooms(self) -> None:
        _, candidates = _step(DetectorState(), _make_scene(), 1)
        (closing,) = _ids(candidates, "guard_closing")
        assert closing.moment_register == "tension"
        assert closing.priority == 85
        assert closing.context.guard_room_label == "A"
        assert closing.context.agent_room_label == "B"

    def test_one_candidate_per_threatened_agent(self) -> None:
        scene = _make_scene(agent_rooms={"alpha": "b", "bravo": "b", "charlie": "c"})
        _, candidates = _step(DetectorState(), scene, 1)
        closing = _ids(candidates, "guard_closing")
        assert sorted(c.agent_id for c in closing) == ["alpha", "bravo"]

    def test_no_adjacent_agent_no_candidate(self) -> None:
        _, candidates = _step(DetectorState(), _make_scene(agent_rooms={"alpha": "c"}), 1)
        assert _ids(candidates, "guard_closing") == []


# ---------------------------------------------------------------------------
# Stall
# ---------------------------------------------------------------------------


class TestStall:
    def test_fires_every_third_stalled_turn(self) -> None:
        scene = _make_scene(guard_room=None)
        state = DetectorState()
        stalls = []
        for turn in range(1, 7):
            state, candidates = _step(state, scene, turn)
            stalls.extend(_ids(candidates, "stalled_objective"))
        assert [c.turn for c in stalls] == [3, 6]
        assert [c.context.stalled_turns for c in stalls] == [3, 6]

    def test_progress_resets_counter(self) -> None:
        scene = _make_scene(guard_room=None)
        state = DetectorState()
        state, _ = _step(state, scene, 1)
        state, _ = _step(state, scene, 2)
        state, _ = _step(state, scene, 3, (_make_candidate("progress"),))
        assert state.stalled_turns == 0
        state, candidates = _step(state, scene, 4)
        assert _ids(candidates, "stalled_objective") == []

    def test_failures_do_not_reset(self) -> None:
        scene = _make_scene(guard_room=None)
        state = DetectorState()
        for turn in (1, 2):
            state, _ = _step(state, scene, turn, (_make_candidate("failure"),))
        state, candidates = _step(state, scene, 3, (_make_candidate("failure"),))
        assert len(_ids(candidates, "stalled_objective")) == 1


# ---------------------------------------------------------------------------
# Threshold crossing
# ---------------------------------------------------------------------------


class TestNoiseCreep:
    def _scene(self, noise: float, level: int = 0) -> SceneState:
        return _make_scene(guard_room=None, noise=noise, alert_level=level, thresholds=[0, 10, 20])

    def test_fires_at_half_way(self) -> None:
        _, candidates = _step(DetectorState(), self._scene(5), 1)
        (creep,) = _ids(candidates, "noise_creep")
        assert creep.priority == 75
        assert creep.context.noise_percent == 50
        assert creep.context.threshold_ratio == 0.5
        assert creep.context.next_threshold == 10

    def test_big_jump_fires_both_fractions(self) -> None:
        _, candidates = _step(DetectorState(), self._scene(8), 1)
        assert [c.context.threshold_ratio for c in _ids(candidates, "noise_creep")] == [0.5, 0.75]

    def test_crossing_twice_fires_once(self) -> None:
        state = DetectorState()
        fired = []
        for turn, noise in enumerate((5, 3, 6), start=1):
            state, candidates = _step(state, self._scene(noise), turn)
            fired.extend(_ids(candidates, "noise_creep"))
        assert len(fired) == 1

    def test_reevaluating_same_turn_is_idempotent(self) -> None:
        state, first = _step(DetectorState(), self._scene(5), 1)
        _, again = _step(state, self._scene(5), 1)
        assert len(_ids(first, "noise_creep")) == 1
        assert _ids(again, "noise_creep") == []

    def test_level_change_resets_eligibility(self) -> None:
        state, _ = _step(DetectorState(), self._scene(5, level=0), 1)
        _, candidates = _step(state, self._scene(15, level=1), 2)
        (creep,) = _ids(candidates, "noise_creep")
        assert creep.context.alert_level == 1
        assert creep.context.next_threshold == 20

    def test_top_level_has_no_next_threshold(self) -> None:
        _, candidates = _step(DetectorState(), self._scene(25, level=2), 1)
        assert _ids(candidates, "noise_creep") == []


# ---------------------------------------------------------------------------
# Near miss
# ---------------------------------------------------------------------------


class TestNearMiss:
    def test_shared_room(self) -> None:
        _, candidates = _step(DetectorState(), _make_scene(guard_room="b"), 1)
        (miss,) = _ids(candidates, "near_miss")
        assert miss.priority == 80
        assert miss.agent_id == "alpha"
        assert miss.context.agent_room_id == "b"

    def test_guard_just_left_agent_room(self) -> None:
        state, _ = _step(DetectorState(), _make_scene(guard_room="b"), 1)
        _, candidates = _step(state, _make_scene(guard_room="c"), 2)
        (miss,) = _ids(candidates, "near_miss")
        assert miss.context.guard_room_id == "c"

    def test_suppressed_by_actual_detection(self) -> None:
        spotted = _make_candidate("failure", detection=True)
        _, candidates = _step(DetectorState(), _make_scene(guard_room="b"), 1, (spotted,))
        assert _ids(candidates, "near_miss") == []

    def test_guard_rooms_tracked_even_when_suppressed(self) -> None:
        spotted = _make_candidate("failure", detection=True)
        state, _ = _step(DetectorState(), _make_scene(guard_room="b"), 1, (spotted,))
        assert state.last_guard_rooms == {"g1": "b"}


# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------


class TestStepDetectors:
    def test_input_state_not_mutated(self) -> None:
        state = DetectorState()
        scene = _make_scene(noise=8, thresholds=[0, 10])
        new_state, candidates = _step(state, scene, 1)
        assert candidates
        assert state == DetectorState()
        assert new_state.last_processed_turn == 1
        assert new_state.guard_cooldowns == {"g1": 1}

    def test_copy_is_independent(self) -> None:
        state = DetectorState(noise_fired={0: {0.5}})
        clone = state.copy()
        clone.noise_fired[0].add(0.75)
        assert state.noise_fired == {0: {0.5}}

    def test_config_changes_cadence(self) -> None:
        scene = _make_scene(guard_room=None)
        config = DetectorConfig(stall_interval=1)
        state = DetectorState()
        total = 0
        for turn in (1, 2):
            state, candidates = _step(state, scene, turn, config=config)
            total += len(_ids(candidates, "stalled_objective"))
        assert total == 2
