"""Tests for collapsing, ordering and filtering moment cards."""

from __future__ import annotations

from matchreel.core.collapse import (
    AGENT_COLOR_LIST,
    assign_agent_colors,
    chronological_order,
    collapse_cards,
    filter_cards,
    presentation_order,
)
from matchreel.models.moments import MomentCard


def _make_card(
    seq: int,
    agent_id: str = "agentX",
    title: str = "Wrong turn",
    category: str = "navigation",
    register: str = "failure",
    priority: int = 90,
) -> MomentCard:
    return MomentCard(
        id=f"moment-misnavigation-{seq}",
        turn=seq,
        seq=seq,
        agent_id=agent_id,
        moment_register=register,
        priority=priority,
        icon="\U0001f9ed",
        title=title,
        detail=f"detail {seq}",
        category=category,
        moment_id="misnavigation",
    )


class TestCollapse:
    def test_adjacent_run_collapses(self) -> None:
        cards = [
            _make_card(1),
            _make_card(2),
            _make_card(3),
            _make_card(4, title="Blocked path"),
        ]
        collapsed = collapse_cards(cards)
        assert len(collapsed) == 2
        assert collapsed[0].count == 3
        assert collapsed[0].collapsed_seqs == [1, 2, 3]
        assert collapsed[0].detail == "detail 1"
        assert (collapsed[0].start_seq, collapsed[0].end_seq) == (1, 3)
        assert collapsed[1].count == 1
        assert collapsed[1].collapsed_seqs == [4]

    def test_non_adjacent_runs_stay_separate(self) -> None:
        cards = [_make_card(1), _make_card(2, agent_id="agentY"), _make_card(3)]
        assert [c.count for c in collapse_cards(cards)] == [1, 1, 1]

    def test_register_is_part_of_the_key(self) -> None:
        cards = [_make_card(1), _make_card(2, register="tension")]
        assert len(collapse_cards(cards)) == 2

    def test_empty(self) -> None:
        assert collapse_cards([]) == []


class TestOrdering:
    def test_chronological_is_stable(self) -> None:
        a, b, c = _make_card(5, title="A"), _make_card(2), _make_card(5, title="C")
        assert [x.title for x in chronological_order([a, b, c])] == ["Wrong turn", "A", "C"]

    def test_presentation_priority_then_recency(self) -> None:
        cards = collapse_cards(
            [
                _make_card(1, priority=60, title="old low"),
                _make_card(2, priority=90, title="old high"),
                _make_card(3, priority=90, title="new high"),
            ]
        )
        assert [c.title for c in presentation_order(cards)] == ["new high", "old high", "old low"]


class TestFilterAndColors:
    def test_filter_by_facets(self) -> None:
        cards = collapse_cards(
            [
                _make_card(1),
                _make_card(2, agent_id="agentY", register="tension", category="stealth"),
            ]
        )
        assert [c.seq for c in filter_cards(cards, agent_id="agentY")] == [2]
        assert [c.seq for c in filter_cards(cards, register="failure")] == [1]
        assert [c.seq for c in filter_cards(cards, category="stealth")] == [2]
        assert len(filter_cards(cards)) == 2

    def test_colors_assigned_in_order(self) -> None:
        colors = assign_agent_colors(["alpha", "bravo", "alpha"])
        assert colors == {"alpha": AGENT_COLOR_LIST[0], "bravo": AGENT_COLOR_LIST[1]}

    def test_colors_extend_given_mapping_without_mutating_it(self) -> None:
        existing = {"alpha": "#123456"}
        colors = assign_agent_colors(["alpha", "bravo"], existing)
        assert existing == {"alpha": "#123456"}
        assert colors["alpha"] == "#123456"
        assert colors["bravo"] == AGENT_COLOR_LIST[1]

    def test_palette_wraps(self) -> None:
        agents = [f"a{i}" for i in range(len(AGENT_COLOR_LIST) + 1)]
        colors = assign_agent_colors(agents)
        assert colors[agents[-1]] == AGENT_COLOR_LIST[0]


class TestWireFormat:
    def test_register_keeps_its_wire_name(self) -> None:
        (collapsed,) = collapse_cards([_make_card(1)])
        dumped = collapsed.model_dump(by_alias=True)
        assert dumped["register"] == "failure"
        assert "momentRegister" not in dumped
        assert collapsed.moment_register == "failure"

    def test_register_read_from_wire_name(self) -> None:
        dumped = _make_card(1).model_dump(by_alias=True)
        assert MomentCard.model_validate(dumped).moment_register == "failure"
