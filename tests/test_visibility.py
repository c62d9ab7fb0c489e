"""Tests for playhead-gated visibility."""

from __future__ import annotations

from matchreel.core.commentary import MomentBoundEntry, RangeBoundEntry
from matchreel.core.redaction import REDACTED_PLACEHOLDER, RedactionPolicy
from matchreel.core.visibility import VisibilityFilter
from matchreel.models.events import ReplayEvent
from matchreel.models.moments import ReplayMoment


def _make_events(count: int = 10) -> list[ReplayEvent]:
    events = [
        ReplayEvent(type="TurnStarted", seq=i, match_id="m", turn=i, raw={"type": "TurnStarted", "seq": i})
        for i in range(count - 1)
    ]
    ended_raw = {"type": "MatchEnded", "seq": count - 1, "scores": {"a": 1}, "reason": "completed"}
    events.append(ReplayEvent(type="MatchEnded", seq=count - 1, match_id="m", raw=ended_raw))
    return events


def _make_moment(moment_id: str, start: int, end: int) -> ReplayMoment:
    return ReplayMoment(id=moment_id, label=moment_id, type="blunder", start_seq=start, end_seq=end)


def _make_filter() -> VisibilityFilter:
    moments = [_make_moment("early", 1, 2), _make_moment("late", 6, 8)]
    entries = [
        RangeBoundEntry(id="r-early", text="warmup", start_event_idx=0, end_event_idx=1),
        MomentBoundEntry(id="m-late", text="here it comes", moment_id="late"),
        RangeBoundEntry(id="r-overlap", text="tension", start_event_idx=5, end_event_idx=7),
        RangeBoundEntry(id="r-after", text="aftermath", start_event_idx=9, end_event_idx=9),
    ]
    return VisibilityFilter(_make_events(), moments, entries)


class TestGating:
    def test_nothing_ahead_of_playhead(self) -> None:
        vf = _make_filter()
        assert [m.id for m in vf.visible_moments(3)] == ["early"]
        assert [e.id for e in vf.visible_commentary(3)] == ["r-early"]

    def test_reveal_shows_everything(self) -> None:
        vf = _make_filter()
        assert len(vf.visible_moments(0, reveal=True)) == 2
        assert len(vf.visible_commentary(0, reveal=True)) == 4

    def test_monotonic_in_playhead(self) -> None:
        vf = _make_filter()
        previous_moments: set[str] = set()
        previous_entries: set[str] = set()
        for playhead in range(-1, 11):
            moments = {m.id for m in vf.visible_moments(playhead)}
            entries = {e.id for e in vf.visible_commentary(playhead)}
            assert previous_moments <= moments
            assert previous_entries <= entries
            previous_moments, previous_entries = moments, entries
        assert previous_entries == {"r-early", "m-late", "r-overlap", "r-after"}

    def test_gate_moments_keeps_given_order(self) -> None:
        vf = _make_filter()
        late, early = _make_moment("late", 6, 8), _make_moment("early", 1, 2)
        assert [m.id for m in vf.gate_moments([late, early], playhead=6)] == ["late", "early"]
        assert [m.id for m in vf.gate_moments([late, early], playhead=5)] == ["early"]
        assert len(vf.gate_moments([late, early], playhead=0, reveal=True)) == 2

    def test_negative_playhead_sees_nothing(self) -> None:
        vf = _make_filter()
        assert vf.visible_moments(-1) == []
        assert vf.visible_events(-1, RedactionPolicy()) == []


class TestMomentScopedCommentary:
    def test_bound_and_overlapping_entries(self) -> None:
        vf = _make_filter()
        entries = vf.commentary_for_moment("late", playhead=9)
        assert [e.id for e in entries] == ["m-late", "r-overlap"]

    def test_still_gated_by_playhead(self) -> None:
        vf = _make_filter()
        assert [e.id for e in vf.commentary_for_moment("late", playhead=5)] == ["r-overlap"]

    def test_unknown_moment(self) -> None:
        assert _make_filter().commentary_for_moment("nope", playhead=9) == []

    def test_at_index(self) -> None:
        vf = _make_filter()
        assert [e.id for e in vf.commentary_at_index(7, playhead=9)] == ["m-late", "r-overlap"]
        assert [e.id for e in vf.commentary_at_index(0, playhead=9)] == ["r-early"]


class TestVisibleEvents:
    def test_events_up_to_playhead_redacted(self) -> None:
        vf = _make_filter()
        events = vf.visible_events(9, RedactionPolicy(mode="spectator"))
        assert len(events) == 10
        assert events[-1].display_raw["scores"] == REDACTED_PLACEHOLDER

    def test_slice_bundles_everything(self) -> None:
        visible = _make_filter().visible_at(6)
        assert visible.playhead == 6
        assert len(visible.events) == 7
        assert [m.id for m in visible.moments] == ["early", "late"]
        assert [e.id for e in visible.commentary] == ["r-early", "m-late", "r-overlap"]

    def test_slice_with_reveal(self) -> None:
        visible = _make_filter().visible_at(0, RedactionPolicy(mode="director", reveal_spoilers=True))
        assert len(visible.events) == 1
        assert len(visible.commentary) == 4
