"""Collapsing and ordering of moment cards for the moments panel.

Two orderings exist and must never be mixed up:

- **chronological** (ascending seq) — timeline placement and seek-to-moment;
- **presentation** (priority desc, then seq desc) — the ranked panel.

Collapsing runs on the chronological sequence in one left-to-right pass: a run
of consecutive cards with the same agent, title, category and register becomes
one card that remembers how many it absorbed and where each one was.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from matchreel.core.templates import candidate_to_card
from matchreel.models.moments import CollapsedMomentCard, MomentCandidate, MomentCard

AGENT_COLOR_LIST: tuple[str, ...] = ("#00e5ff", "#ff3d71", "#ffd740", "#00e676")


def chronological_order(cards: Iterable[MomentCard]) -> list[MomentCard]:
    """Ascending seq; equal seqs keep their detection order."""
    return sorted(cards, key=lambda c: c.seq)


def presentation_order(cards: Iterable[CollapsedMomentCard]) -> list[CollapsedMomentCard]:
    """Most important first; among equals, most recent first."""
    return sorted(cards, key=lambda c: (-c.priority, -c.seq))


def _collapse_key(card: MomentCard) -> tuple[str, str, str, str]:
    return (card.agent_id, card.title, card.category, card.moment_register)


def collapse_cards(cards: Sequence[MomentCard]) -> list[CollapsedMomentCard]:
    """Merge adjacent equivalent cards. Input must already be chronological."""
    collapsed: list[CollapsedMomentCard] = []
    run_start: MomentCard | None = None
    run_seqs: list[int] = []

    def flush() -> None:
        if run_start is not None:
            collapsed.append(
                CollapsedMomentCard(
                    **run_start.model_dump(),
                    count=len(run_seqs),
                    collapsed_seqs=list(run_seqs),
                )
            )

    for card in cards:
        if run_start is not None and _collapse_key(card) == _collapse_key(run_start):
            run_seqs.append(card.seq)
            continue
        flush()
        run_start = card
        run_seqs = [card.seq]
    flush()

    return collapsed


def build_timeline(candidates: Iterable[MomentCandidate]) -> list[CollapsedMomentCard]:
    """Render, order chronologically, and collapse — the timeline view."""
    cards = [card for c in candidates if (card := candidate_to_card(c)) is not None]
    return collapse_cards(chronological_order(cards))


def build_moment_cards(candidates: Iterable[MomentCandidate]) -> list[CollapsedMomentCard]:
    """The ranked moments panel: collapsed timeline in presentation order."""
    return presentation_order(build_timeline(candidates))


def filter_cards(
    cards: Iterable[CollapsedMomentCard],
    agent_id: str | None = None,
    register: str | None = None,
    category: str | None = None,
) -> list[CollapsedMomentCard]:
    """Panel filters; ``None`` means no filter on that facet."""
    return [
        card
        for card in cards
        if (agent_id is None or card.agent_id == agent_id)
        and (register is None or card.moment_register == register)
        and (category is None or card.category == category)
    ]


def assign_agent_colors(
    agent_ids: Iterable[str],
    colors: dict[str, str] | None = None,
) -> dict[str, str]:
    """Give each new agent the next palette colour.

    The mapping is passed in and returned rather than cached, so every
    replay session owns its own assignment.
    """
    assigned = dict(colors or {})
    for agent_id in agent_ids:
        if agent_id not in assigned:
            assigned[agent_id] = AGENT_COLOR_LIST[len(assigned) % len(AGENT_COLOR_LIST)]
    return assigned
