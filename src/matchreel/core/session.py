"""Replay session — one match log and every query a replay viewer makes of it.

A session owns its derived data (candidates, agent colours, parsed commentary)
for its own lifetime only; nothing is cached at module level, so two sessions
over different matches never see each other's state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import cached_property
from typing import Any

from matchreel.config import Settings
from matchreel.core.collapse import (
    assign_agent_colors,
    build_moment_cards,
    build_timeline,
    filter_cards,
)
from matchreel.core.commentary import CommentaryEntry, CommentaryFile, parse_commentary
from matchreel.core.jsonl import ParseError, order_events, parse_jsonl
from matchreel.core.moments import detect_candidates, typed_events
from matchreel.core.redaction import (
    RedactedEvent,
    RedactionPolicy,
    SpectatorPolicy,
    gate_event,
    redact_event,
    redact_events,
    strip_private,
)
from matchreel.core.replay_moments import (
    build_moment_range_map,
    detect_replay_moments,
    load_moments_artifact,
)
from matchreel.core.scene import reduce_scene
from matchreel.core.visibility import VisibilityFilter, VisibleSlice
from matchreel.models.events import ReplayEvent
from matchreel.models.moments import (
    CollapsedMomentCard,
    MomentCandidate,
    MomentEventRange,
    ReplayMoment,
)
from matchreel.models.scene import SceneReducer

logger = logging.getLogger(__name__)


class ReplaySession:
    """Query surface over one match.

    Args:
        events: The match log; re-sorted by seq if needed.
        reducer: Scene reducer the detectors read snapshots from.
        settings: Redaction and detector configuration.
        moments_artifact: Contents of a precomputed ``moments.json``; when
            given it replaces score-based detection.
    """

    def __init__(
        self,
        events: Iterable[ReplayEvent],
        reducer: SceneReducer = reduce_scene,
        settings: Settings | None = None,
        moments_artifact: str | None = None,
    ) -> None:
        self.events = order_events(list(events))
        self.reducer = reducer
        self.settings = settings or Settings()
        self.moments_artifact = moments_artifact
        self.parse_errors: list[ParseError] = []
        self.artifact_warnings: list[str] = []
        self.commentary: CommentaryFile | None = None

    @classmethod
    def from_jsonl(cls, text: str, **kwargs: Any) -> ReplaySession:
        """Build a session from JSONL text, keeping the loader's errors."""
        result = parse_jsonl(text)
        session = cls(result.events, **kwargs)
        session.parse_errors = result.errors
        return session

    # --- Moments ---

    # Ungated; moments reach viewers only through the visibility filter.

    @cached_property
    def _candidates(self) -> list[MomentCandidate]:
        return detect_candidates(
            typed_events(self.events),
            self.reducer,
            self.settings.detector_config(),
        )

    @cached_property
    def _timeline(self) -> list[CollapsedMomentCard]:
        return build_timeline(self._candidates)

    @cached_property
    def _replay_moments(self) -> list[ReplayMoment]:
        if self.moments_artifact is None:
            return detect_replay_moments(self.events)
        moments, self.artifact_warnings = load_moments_artifact(self.moments_artifact)
        return moments

    def _bindable_moments(self) -> list[ReplayMoment | CollapsedMomentCard]:
        """Everything commentary may reference by id."""
        return [*self._replay_moments, *self._timeline]

    @cached_property
    def _moment_ranges(self) -> dict[str, MomentEventRange]:
        return build_moment_range_map(self._bindable_moments(), self.events)

    def moments(
        self,
        playhead: int,
        reveal: bool = False,
        agent_id: str | None = None,
        register: str | None = None,
        category: str | None = None,
    ) -> list[CollapsedMomentCard]:
        """Moment cards reached by the playhead, in presentation order, optionally filtered."""
        cards = filter_cards(build_moment_cards(self._candidates), agent_id, register, category)
        return self.visibility().gate_moments(cards, playhead, reveal)

    def timeline(self, playhead: int, reveal: bool = False) -> list[CollapsedMomentCard]:
        """Moment cards reached by the playhead, in chronological order."""
        return self.visibility().gate_moments(self._timeline, playhead, reveal)

    def replay_moments(self, playhead: int, reveal: bool = False) -> list[ReplayMoment]:
        """Artifact moments if supplied, else detected ones, gated by the playhead."""
        return self.visibility().gate_moments(self._replay_moments, playhead, reveal)

    @cached_property
    def agent_colors(self) -> dict[str, str]:
        agent_ids: list[str] = []
        for event in self.events:
            if event.type == "MatchStarted" and isinstance(event.raw.get("agentIds"), list):
                agent_ids.extend(a for a in event.raw["agentIds"] if isinstance(a, str))
            elif event.agent_id:
                agent_ids.append(event.agent_id)
        return assign_agent_colors(agent_ids)

    # --- Redaction ---

    def policy(self, mode: str | None = None, reveal: bool = False) -> RedactionPolicy:
        return RedactionPolicy(mode=mode or self.settings.matchreel_default_mode, reveal_spoilers=reveal)

    def redact(self, event: ReplayEvent, mode: str | None = None, reveal: bool = False) -> RedactedEvent:
        return redact_event(event, self.policy(mode, reveal), prefix=self.settings.matchreel_private_prefix)

    def redact_all(self, mode: str | None = None, reveal: bool = False) -> list[RedactedEvent]:
        return redact_events(
            self.events, self.policy(mode, reveal), prefix=self.settings.matchreel_private_prefix
        )

    def strip_private(self, payload: Any, visibility: SpectatorPolicy = "live_safe") -> Any:
        return strip_private(
            payload,
            visibility,
            prefix=self.settings.matchreel_private_prefix,
            post_match_reveal_strips=self.settings.matchreel_post_match_reveal_strips,
        )

    def gate_events(self, visibility: SpectatorPolicy = "live_safe") -> list[dict[str, Any]]:
        """Raw events with private fields stripped, for a spectator stream."""
        return [
            gate_event(
                event.raw,
                visibility,
                prefix=self.settings.matchreel_private_prefix,
                post_match_reveal_strips=self.settings.matchreel_post_match_reveal_strips,
            )
            for event in self.events
        ]

    # --- Commentary and visibility ---

    def parse_commentary(self, text: str) -> CommentaryFile:
        """Parse and keep a commentary document for later visibility queries."""
        self.commentary = parse_commentary(
            text, self._bindable_moments(), len(self.events), self._moment_ranges
        )
        if self.commentary.warnings:
            logger.info(
                "commentary_warnings count=%d first=%s",
                len(self.commentary.warnings),
                self.commentary.warnings[0].message,
            )
        return self.commentary

    def _entries(self) -> list[CommentaryEntry]:
        return list(self.commentary.entries) if self.commentary else []

    def visibility(self) -> VisibilityFilter[ReplayMoment | CollapsedMomentCard]:
        return VisibilityFilter(
            self.events,
            self._bindable_moments(),
            self._entries(),
            self._moment_ranges,
            private_prefix=self.settings.matchreel_private_prefix,
        )

    def visible_at(
        self, playhead: int, mode: str | None = None, reveal: bool = False
    ) -> VisibleSlice[ReplayMoment | CollapsedMomentCard]:
        return self.visibility().visible_at(playhead, self.policy(mode, reveal))

    def for_moment(self, moment_id: str, playhead: int, reveal: bool = False) -> list[CommentaryEntry]:
        return self.visibility().commentary_for_moment(moment_id, playhead, reveal)
