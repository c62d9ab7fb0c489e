"""Playhead gating — the only viewer-facing read path into a replay.

Nothing at or beyond an unseen point of the match may leak: a moment or a
commentary entry is visible once the playhead has reached its effective start
index, unless the viewer explicitly revealed spoilers. Events are additionally
passed through the redaction gate before they are handed out.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from matchreel.core.commentary import (
    CommentaryEntry,
    MomentBoundEntry,
    entry_end_idx,
    entry_start_idx,
)
from matchreel.core.redaction import (
    PRIVATE_PREFIX,
    RedactedEvent,
    RedactionPolicy,
    redact_events,
)
from matchreel.core.replay_moments import build_moment_range_map
from matchreel.models.events import ReplayEvent
from matchreel.models.moments import MomentEventRange, SeqSpan

M = TypeVar("M", bound=SeqSpan)


@dataclass(frozen=True)
class VisibleSlice(Generic[M]):
    """What a viewer may render at one playhead position."""

    playhead: int
    events: list[RedactedEvent] = field(default_factory=list)
    moments: list[M] = field(default_factory=list)
    commentary: list[CommentaryEntry] = field(default_factory=list)


class VisibilityFilter(Generic[M]):
    """Answers "what may the viewer see right now" for one replay.

    Args:
        events: The ordered event log.
        moments: Anything commentary binds to (replay moments, moment cards).
        entries: Parsed, sorted commentary entries.
        moment_ranges: Resolved event ranges per moment id; computed from
            ``moments`` and ``events`` when omitted.
        private_prefix: Marker for private keys stripped from events.
    """

    def __init__(
        self,
        events: Sequence[ReplayEvent],
        moments: Sequence[M] = (),
        entries: Sequence[CommentaryEntry] = (),
        moment_ranges: Mapping[str, MomentEventRange] | None = None,
        private_prefix: str = PRIVATE_PREFIX,
    ) -> None:
        self.events = list(events)
        self.moments = list(moments)
        self.entries = list(entries)
        self.moment_ranges = (
            dict(moment_ranges)
            if moment_ranges is not None
            else build_moment_range_map(self.moments, self.events)
        )
        self.private_prefix = private_prefix

    def _moment_start(self, moment: M) -> int:
        moment_range = self.moment_ranges.get(moment.id)
        return moment_range.start_event_idx if moment_range else 0

    def gate_moments(self, moments: Sequence[M], playhead: int, reveal: bool = False) -> list[M]:
        """Keep only the given moments the playhead has reached, in their order."""
        if reveal:
            return list(moments)
        return [m for m in moments if self._moment_start(m) <= playhead]

    def visible_moments(self, playhead: int, reveal: bool = False) -> list[M]:
        return self.gate_moments(self.moments, playhead, reveal)

    def visible_commentary(self, playhead: int, reveal: bool = False) -> list[CommentaryEntry]:
        if reveal:
            return list(self.entries)
        return [e for e in self.entries if entry_start_idx(e, self.moment_ranges) <= playhead]

    def commentary_for_moment(
        self, moment_id: str, playhead: int, reveal: bool = False
    ) -> list[CommentaryEntry]:
        """Entries bound to the moment, plus range entries overlapping its range."""
        moment_range = self.moment_ranges.get(moment_id)
        results = []
        for entry in self.visible_commentary(playhead, reveal):
            if isinstance(entry, MomentBoundEntry):
                if entry.moment_id == moment_id:
                    results.append(entry)
            elif (
                moment_range is not None
                and entry.start_event_idx <= moment_range.end_event_idx
                and entry.end_event_idx >= moment_range.start_event_idx
            ):
                results.append(entry)
        return results

    def commentary_at_index(
        self, event_idx: int, playhead: int, reveal: bool = False
    ) -> list[CommentaryEntry]:
        """Visible entries whose span contains ``event_idx``."""
        return [
            entry
            for entry in self.visible_commentary(playhead, reveal)
            if entry_start_idx(entry, self.moment_ranges)
            <= event_idx
            <= entry_end_idx(entry, self.moment_ranges, event_idx)
        ]

    def visible_events(self, playhead: int, policy: RedactionPolicy) -> list[RedactedEvent]:
        """Events ``[0..playhead]`` through the redaction gate."""
        if playhead < 0:
            return []
        return redact_events(self.events[: playhead + 1], policy, prefix=self.private_prefix)

    def visible_at(self, playhead: int, policy: RedactionPolicy | None = None) -> VisibleSlice[M]:
        policy = policy or RedactionPolicy()
        return VisibleSlice(
            playhead=playhead,
            events=self.visible_events(playhead, policy),
            moments=self.visible_moments(playhead, policy.reveal_spoilers),
            commentary=self.visible_commentary(playhead, policy.reveal_spoilers),
        )
