"""Shared test fixtures."""

from __future__ import annotations

import json
from typing import Any

import pytest

from matchreel.config import Settings
from matchreel.core.jsonl import normalize_event
from matchreel.models.events import ReplayEvent


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(matchreel_env="development", matchreel_log_level="DEBUG")


@pytest.fixture
def heist_raw_events() -> list[dict[str, Any]]:
    """Two-turn match: a locked door on turn 1, a completed hack on turn 2."""
    return [
        {
            "type": "MatchStarted",
            "seq": 0,
            "matchId": "m-heist",
            "seed": 7,
            "agentIds": ["alpha", "bravo"],
            "scenarioName": "vault-job",
            "maxTurns": 2,
        },
        {"type": "TurnStarted", "seq": 1, "matchId": "m-heist", "turn": 1},
        {
            "type": "ActionSubmitted",
            "seq": 2,
            "matchId": "m-heist",
            "agentId": "alpha",
            "turn": 1,
            "action": {"type": "move", "toRoomId": "vault"},
        },
        {
            "type": "ActionAdjudicated",
            "seq": 3,
            "matchId": "m-heist",
            "agentId": "alpha",
            "turn": 1,
            "valid": False,
            "feedback": {"error": "door_locked", "doorId": "d-vault", "requiredItem": "keycard"},
            "chosenAction": {"type": "move", "toRoomId": "vault"},
        },
        {
            "type": "StateUpdated",
            "seq": 4,
            "matchId": "m-heist",
            "turn": 1,
            "summary": {"alertLevel": 0, "noise": 0},
        },
        {"type": "TurnStarted", "seq": 5, "matchId": "m-heist", "turn": 2},
        {
            "type": "ActionSubmitted",
            "seq": 6,
            "matchId": "m-heist",
            "agentId": "alpha",
            "turn": 2,
            "action": {"type": "hack", "terminalId": "t-1"},
        },
        {
            "type": "ActionAdjudicated",
            "seq": 7,
            "matchId": "m-heist",
            "agentId": "alpha",
            "turn": 2,
            "valid": True,
            "feedback": {"result": "hack_complete"},
            "chosenAction": {"type": "hack", "terminalId": "t-1"},
        },
        {
            "type": "StateUpdated",
            "seq": 8,
            "matchId": "m-heist",
            "turn": 2,
            "summary": {"alertLevel": 0, "noise": 0},
        },
        {
            "type": "MatchEnded",
            "seq": 9,
            "matchId": "m-heist",
            "reason": "completed",
            "scores": {"alpha": 1, "bravo": 0},
            "turns": 2,
            "details": {"extracted": ["alpha"]},
        },
    ]


@pytest.fixture
def heist_events(heist_raw_events: list[dict[str, Any]]) -> list[ReplayEvent]:
    events = [normalize_event(raw) for raw in heist_raw_events]
    assert all(isinstance(e, ReplayEvent) for e in events)
    return events


@pytest.fixture
def heist_jsonl(heist_raw_events: list[dict[str, Any]]) -> str:
    return "\n".join(json.dumps(raw) for raw in heist_raw_events)
