"""Tests for the tolerant JSONL loader and the ReplayEvent record."""

from __future__ import annotations

from matchreel.core.jsonl import normalize_event, parse_jsonl
from matchreel.models.events import (
    ActionAdjudicatedEvent,
    MatchEndedEvent,
    ReplayEvent,
    TurnStartedEvent,
)


class TestParseJsonl:
    def test_valid_log(self, heist_jsonl: str) -> None:
        result = parse_jsonl(heist_jsonl)
        assert result.errors == []
        assert [e.seq for e in result.events] == list(range(10))
        assert result.events[3].agent_id == "alpha"
        assert result.events[1].turn == 1

    def test_bad_lines_reported_with_line_numbers(self) -> None:
        text = "\n".join(
            [
                '{"type": "TurnStarted", "seq": 2, "matchId": "m", "turn": 1}',
                "not json",
                "[1, 2]",
                '{"seq": 1, "matchId": "m"}',
                '{"type": "X", "seq": "one", "matchId": "m"}',
                '{"type": "X", "seq": 1}',
            ]
        )
        result = parse_jsonl(text)
        assert [(e.line, e.message) for e in result.errors] == [
            (2, "Invalid JSON"),
            (3, "Expected a JSON object"),
            (4, "Missing or invalid 'type' field"),
            (5, "Missing or invalid 'seq' field"),
            (6, "Missing or invalid 'matchId' field"),
        ]
        assert len(result.events) == 1

    def test_blank_lines_skipped(self) -> None:
        text = '\n\n{"type": "A", "seq": 0, "matchId": "m"}\n   \n'
        result = parse_jsonl(text)
        assert len(result.events) == 1
        assert result.errors == []

    def test_sorted_by_seq_ties_keep_input_order(self) -> None:
        text = "\n".join(
            [
                '{"type": "C", "seq": 2, "matchId": "m"}',
                '{"type": "A", "seq": 1, "matchId": "m"}',
                '{"type": "B", "seq": 1, "matchId": "m"}',
            ]
        )
        result = parse_jsonl(text)
        assert [e.type for e in result.events] == ["A", "B", "C"]

    def test_unknown_fields_and_types_preserved(self) -> None:
        result = parse_jsonl('{"type": "Weather", "seq": 0, "matchId": "m", "rain": true}')
        event = result.events[0]
        assert event.type == "Weather"
        assert event.raw["rain"] is True


class TestNormalizeEvent:
    def test_integral_float_seq_accepted(self) -> None:
        event = normalize_event({"type": "A", "seq": 3.0, "matchId": "m"})
        assert isinstance(event, ReplayEvent)
        assert event.seq == 3

    def test_boolean_seq_rejected(self) -> None:
        assert normalize_event({"type": "A", "seq": True, "matchId": "m"}) == (
            "Missing or invalid 'seq' field"
        )

    def test_non_string_agent_dropped(self) -> None:
        event = normalize_event({"type": "A", "seq": 0, "matchId": "m", "agentId": 5})
        assert isinstance(event, ReplayEvent)
        assert event.agent_id is None


class TestTypedVariants:
    def test_known_event_types_validate(self, heist_events: list[ReplayEvent]) -> None:
        assert isinstance(heist_events[1].typed(), TurnStartedEvent)
        adjudicated = heist_events[3].typed()
        assert isinstance(adjudicated, ActionAdjudicatedEvent)
        assert adjudicated.valid is False
        assert adjudicated.feedback["error"] == "door_locked"
        ended = heist_events[9].typed()
        assert isinstance(ended, MatchEndedEvent)
        assert ended.scores == {"alpha": 1, "bravo": 0}

    def test_unknown_type_is_none(self) -> None:
        event = ReplayEvent(type="Weather", seq=0, match_id="m", raw={"type": "Weather"})
        assert event.typed() is None

    def test_malformed_known_type_is_none(self) -> None:
        raw = {"type": "TurnStarted", "seq": 0, "matchId": "m"}
        event = ReplayEvent(type="TurnStarted", seq=0, match_id="m", raw=raw)
        assert event.typed() is None

    def test_round_trip_keeps_extras(self) -> None:
        ended = MatchEndedEvent(seq=9, match_id="m", scores={"a": 2.0}, trophy="gold")
        wrapped = ReplayEvent.from_event(ended)
        assert wrapped.raw["trophy"] == "gold"
        assert wrapped.raw["matchId"] == "m"
        assert wrapped.typed() == ended
