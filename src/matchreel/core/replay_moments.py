"""Score-level replay moments — swings, lead changes, comebacks and friends.

Works on any event log: score records are discovered under a handful of
conventional keys, directly on the event or nested under ``summary``/``state``.
Candidate moments are scored by impact, overlapping ones are deduplicated
keeping the most impactful, and the survivors are ordered by ``start_seq``.

Also resolves seq ranges to event indices, and loads the precomputed
``moments.json`` artifact when a match ships one.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from matchreel.models.events import ReplayEvent
from matchreel.models.moments import MomentEventRange, ReplayMoment, SeqSpan

logger = logging.getLogger(__name__)

SCORE_KEYS = ("scores", "score", "scoreboard", "points", "totals")
MAX_SCORE_KEYS = ("maxScore", "maxPoints", "scoreMax", "maxTotalScore")

_ERROR_TYPE_MARKERS = ("Error", "Rejected", "Invalid")


@dataclass(frozen=True)
class ReplayMomentConfig:
    """Thresholds left as ``None`` are derived from the match's max score,
    or take the fallback when no max score is published."""

    score_swing_window: int = 3
    score_swing_threshold: float | None = None
    score_swing_threshold_fallback: float = 10
    lead_change_min_delta: float = 1
    comeback_deficit: float | None = None
    comeback_deficit_fallback: float = 10
    clutch_final_turn_percent: float = 0.1
    close_call_threshold: float | None = None
    close_call_threshold_fallback: float = 5


DEFAULT_REPLAY_MOMENT_CONFIG = ReplayMomentConfig()


@dataclass(frozen=True)
class ScoreSnapshot:
    seq: int
    turn: int | None
    scores: dict[str, float]


@dataclass(frozen=True)
class Leader:
    leader: str
    lead: float
    runner_up: str
    diff: float


class _HasSeq(Protocol):
    @property
    def seq(self) -> int: ...


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _fmt(value: float) -> str:
    return f"{value:g}"


# ---------------------------------------------------------------------------
# Score series
# ---------------------------------------------------------------------------


def _numeric_record(value: Any) -> dict[str, float] | None:
    if not isinstance(value, dict):
        return None
    record = {k: v for k, v in value.items() if _is_number(v)}
    return record if len(record) >= 2 else None


def _record_from_keys(obj: dict[str, Any]) -> dict[str, float] | None:
    for key in SCORE_KEYS:
        if key in obj:
            record = _numeric_record(obj[key])
            if record:
                return record
    return None


def extract_scores(payload: dict[str, Any]) -> dict[str, float] | None:
    """Scores published by one event, if any."""
    record = _record_from_keys(payload)
    if record:
        return record
    for nested in ("summary", "state"):
        if isinstance(payload.get(nested), dict):
            record = _record_from_keys(payload[nested])
            if record:
                return record
    return None


def build_score_series(events: Iterable[ReplayEvent]) -> list[ScoreSnapshot]:
    snapshots = []
    for event in events:
        scores = extract_scores(event.raw)
        if scores:
            snapshots.append(ScoreSnapshot(seq=event.seq, turn=event.turn, scores=scores))
    return sorted(snapshots, key=lambda s: s.seq)


def _max_score(events: Sequence[ReplayEvent]) -> float | None:
    for event in events:
        for key in MAX_SCORE_KEYS:
            value = event.raw.get(key)
            if _is_number(value) and value > 0:
                return value
    return None


def _total_turns(events: Sequence[ReplayEvent], snapshots: Sequence[ScoreSnapshot]) -> int | None:
    for event in events:
        for key in ("turns", "maxTurns"):
            value = event.raw.get(key)
            if _is_number(value):
                return value
    for snapshot in reversed(snapshots):
        if snapshot.turn is not None:
            return snapshot.turn
    for event in reversed(events):
        if event.turn is not None:
            return event.turn
    return None


def get_leader(scores: dict[str, float]) -> Leader | None:
    """Top two by score; None for a tie at the top or fewer than two agents."""
    if len(scores) < 2:
        return None
    ranked = sorted(scores.items(), key=lambda kv: -kv[1])
    (leader, lead), (runner_up, runner_score) = ranked[0], ranked[1]
    if lead == runner_score:
        return None
    return Leader(leader=leader, lead=lead, runner_up=runner_up, diff=lead - runner_score)


# ---------------------------------------------------------------------------
# Detectors: each returns (moment, impact) pairs
# ---------------------------------------------------------------------------

Scored = tuple[ReplayMoment, float]


def _score_swings(snapshots: Sequence[ScoreSnapshot], threshold: float, window: int) -> list[Scored]:
    results: list[Scored] = []
    for i, start in enumerate(snapshots):
        for end in snapshots[i + 1 : i + window]:
            best_agent, best_delta = "", 0.0
            for agent_id, start_score in start.scores.items():
                if agent_id not in end.scores:
                    continue
                delta = abs(end.scores[agent_id] - start_score)
                if delta > best_delta:
                    best_agent, best_delta = agent_id, delta
            if best_delta < threshold:
                continue
            description = (
                f"{best_agent} swung the score by {_fmt(best_delta)}."
                if best_agent
                else f"Score swung by {_fmt(best_delta)}."
            )
            moment = ReplayMoment(
                id=f"moment-score-swing-{start.seq}-{end.seq}-{best_agent or 'unknown'}",
                label="Score swing",
                type="score_swing",
                start_seq=start.seq,
                end_seq=end.seq,
                signals={
                    "agentId": best_agent or None,
                    "delta": best_delta,
                    "startScores": dict(start.scores),
                    "endScores": dict(end.scores),
                },
                description=description,
            )
            results.append((moment, best_delta))
    return results


def _lead_changes(snapshots: Sequence[ScoreSnapshot], min_delta: float) -> list[Scored]:
    results: list[Scored] = []
    for prev, nxt in zip(snapshots, snapshots[1:]):
        before, after = get_leader(prev.scores), get_leader(nxt.scores)
        if before is None or after is None:
            continue
        if before.leader == after.leader or after.diff < min_delta:
            continue
        moment = ReplayMoment(
            id=f"moment-lead-change-{prev.seq}-{nxt.seq}-{after.leader}",
            label=f"Lead change: {after.leader}",
            type="lead_change",
            start_seq=prev.seq,
            end_seq=nxt.seq,
            signals={
                "previousLeader": before.leader,
                "newLeader": after.leader,
                "lead": after.diff,
            },
            description=f"{after.leader} overtook {before.leader}.",
        )
        results.append((moment, after.diff))
    return results


def _comebacks(snapshots: Sequence[ScoreSnapshot], deficit_threshold: float) -> list[Scored]:
    if not snapshots:
        return []
    final = snapshots[-1]
    winner = get_leader(final.scores)
    if winner is None:
        return []

    max_deficit = 0.0
    deficit_snapshot: ScoreSnapshot | None = None
    for snapshot in snapshots:
        leader = get_leader(snapshot.scores)
        winner_score = snapshot.scores.get(winner.leader)
        if leader is None or winner_score is None:
            continue
        deficit = leader.lead - winner_score
        if deficit > max_deficit:
            max_deficit, deficit_snapshot = deficit, snapshot

    if deficit_snapshot is None or max_deficit <= deficit_threshold:
        return []
    moment = ReplayMoment(
        id=f"moment-comeback-{deficit_snapshot.seq}-{final.seq}-{winner.leader}",
        label=f"Comeback: {winner.leader}",
        type="comeback",
        start_seq=deficit_snapshot.seq,
        end_seq=final.seq,
        signals={"winner": winner.leader, "deficit": max_deficit},
        description=f"{winner.leader} erased a {_fmt(max_deficit)} deficit to win.",
    )
    return [(moment, max_deficit)]


def _is_error_event(event: ReplayEvent) -> bool:
    if any(marker in event.type for marker in _ERROR_TYPE_MARKERS):
        return True
    raw = event.raw
    return raw.get("valid", True) is False or raw.get("accepted", True) is False


def _blunders(events: Iterable[ReplayEvent]) -> list[Scored]:
    results: list[Scored] = []
    for event in events:
        if not _is_error_event(event):
            continue
        agent_id = event.agent_id
        moment = ReplayMoment(
            id=f"moment-blunder-{event.seq}-{agent_id or 'unknown'}",
            label=f"Blunder: {agent_id}" if agent_id else "Blunder",
            type="blunder",
            start_seq=event.seq,
            end_seq=event.seq,
            signals={"agentId": agent_id, "eventType": event.type},
            description="Explicit error/invalid action detected.",
        )
        results.append((moment, 1))
    return results


def _clutch(
    snapshots: Sequence[ScoreSnapshot], total_turns: int | None, final_turn_percent: float
) -> list[Scored]:
    if not total_turns or not snapshots:
        return []
    final = snapshots[-1]
    winner = get_leader(final.scores)
    if winner is None:
        return []

    # Earliest snapshot from which the eventual winner led uninterrupted.
    decisive_index = 0
    for i in range(len(snapshots) - 1, -1, -1):
        leader = get_leader(snapshots[i].scores)
        if leader is None or leader.leader != winner.leader:
            decisive_index = min(i + 1, len(snapshots) - 1)
            break

    decisive = snapshots[decisive_index]
    if decisive.turn is None:
        return []
    threshold_turn = max(1, math.ceil(total_turns * (1 - final_turn_percent)))
    if decisive.turn < threshold_turn:
        return []
    moment = ReplayMoment(
        id=f"moment-clutch-{decisive.seq}-{final.seq}-{winner.leader}",
        label="Clutch finish",
        type="clutch",
        start_seq=decisive.seq,
        end_seq=final.seq,
        signals={"winner": winner.leader, "decisiveTurn": decisive.turn, "totalTurns": total_turns},
        description=f"{winner.leader} secured the win late in the match.",
    )
    return [(moment, winner.diff)]


def _close_calls(
    snapshots: Sequence[ScoreSnapshot], total_turns: int | None, threshold: float
) -> list[Scored]:
    if not snapshots:
        return []
    final = snapshots[-1]
    winner = get_leader(final.scores)
    if winner is None or winner.diff > threshold:
        return []

    start = final
    if total_turns:
        threshold_turn = max(1, math.ceil(total_turns * 0.9))
        for snapshot in reversed(snapshots):
            leader = get_leader(snapshot.scores)
            if leader is None or leader.diff > threshold:
                break
            if snapshot.turn is not None and snapshot.turn < threshold_turn:
                break
            start = snapshot

    moment = ReplayMoment(
        id=f"moment-close-call-{start.seq}-{final.seq}",
        label="Close call",
        type="close_call",
        start_seq=start.seq,
        end_seq=final.seq,
        signals={"winner": winner.leader, "diff": winner.diff},
        description="Final score difference stayed razor-thin.",
    )
    return [(moment, threshold - winner.diff)]


def dedupe_moments(scored: Iterable[Scored]) -> list[ReplayMoment]:
    """Drop moments overlapping a more impactful one; order the rest by start."""
    ranked = sorted(scored, key=lambda s: (-s[1], s[0].start_seq, s[0].end_seq, s[0].id))
    kept: list[Scored] = []
    for moment, impact in ranked:
        if any(
            other.start_seq <= moment.end_seq and other.end_seq >= moment.start_seq
            for other, _ in kept
        ):
            continue
        kept.append((moment, impact))
    kept.sort(key=lambda s: (s[0].start_seq, -s[1], s[0].id))
    return [moment for moment, _ in kept]


def detect_replay_moments(
    events: Sequence[ReplayEvent],
    config: ReplayMomentConfig = DEFAULT_REPLAY_MOMENT_CONFIG,
) -> list[ReplayMoment]:
    """Run every score-level detector over a log."""
    if not events:
        return []

    snapshots = build_score_series(events)
    max_score = _max_score(events)
    total_turns = _total_turns(events, snapshots)

    def threshold(explicit: float | None, share: float, fallback: float) -> float:
        if explicit is not None:
            return explicit
        return max_score * share if max_score else fallback

    swing = threshold(config.score_swing_threshold, 0.15, config.score_swing_threshold_fallback)
    comeback = threshold(config.comeback_deficit, 0.2, config.comeback_deficit_fallback)
    close = threshold(config.close_call_threshold, 0.1, config.close_call_threshold_fallback)

    scored: list[Scored] = []
    if len(snapshots) > 1:
        scored.extend(_score_swings(snapshots, swing, config.score_swing_window))
        scored.extend(_lead_changes(snapshots, config.lead_change_min_delta))
        scored.extend(_comebacks(snapshots, comeback))
        scored.extend(_clutch(snapshots, total_turns, config.clutch_final_turn_percent))
        scored.extend(_close_calls(snapshots, total_turns, close))
    scored.extend(_blunders(events))

    moments = dedupe_moments(scored)
    logger.info(
        "replay_moments_detected events=%d snapshots=%d raw=%d kept=%d",
        len(events),
        len(snapshots),
        len(scored),
        len(moments),
    )
    return moments


# ---------------------------------------------------------------------------
# Seq → event index resolution
# ---------------------------------------------------------------------------


def moment_event_range(moment: SeqSpan, events: Sequence[_HasSeq]) -> MomentEventRange:
    """Inclusive event indices covered by a moment's seq range.

    A start beyond every event falls back to 0, an end before every event to
    the last index, and the end never precedes the start.
    """
    if not events:
        return MomentEventRange(start_event_idx=0, end_event_idx=0)

    start_idx = next((i for i, e in enumerate(events) if e.seq >= moment.start_seq), 0)
    end_idx = next(
        (i for i in range(len(events) - 1, -1, -1) if events[i].seq <= moment.end_seq),
        len(events) - 1,
    )
    return MomentEventRange(start_event_idx=start_idx, end_event_idx=max(start_idx, end_idx))


def build_moment_range_map(
    moments: Iterable[SeqSpan], events: Sequence[_HasSeq]
) -> dict[str, MomentEventRange]:
    return {moment.id: moment_event_range(moment, events) for moment in moments}


# ---------------------------------------------------------------------------
# Artifact loading
# ---------------------------------------------------------------------------


def load_moments_artifact(text: str) -> tuple[list[ReplayMoment], list[str]]:
    """Parse a ``moments.json`` artifact.

    Returns:
        The valid moments in file order and one warning per rejected item.
        A document that is not a JSON array yields no moments and one warning.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("moments_artifact_invalid reason=json")
        return [], ["Invalid JSON"]
    if not isinstance(data, list):
        logger.warning("moments_artifact_invalid reason=not_array")
        return [], ["Expected a JSON array of moments"]

    moments: list[ReplayMoment] = []
    warnings: list[str] = []
    for index, item in enumerate(data):
        try:
            moments.append(ReplayMoment.model_validate(item))
        except ValidationError as exc:
            warnings.append(f"Moment {index}: {exc.error_count()} validation error(s)")
    if warnings:
        logger.warning("moments_artifact_partial kept=%d dropped=%d", len(moments), len(warnings))
    return moments, warnings
