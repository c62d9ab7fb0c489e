"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings

from matchreel.core.stateful import DetectorConfig

VALID_VIEWER_MODES = frozenset({"spectator", "postMatch", "director"})


class Settings(BaseSettings):
    """Matchreel configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Environment
    matchreel_env: str = "development"

    # Logging
    matchreel_log_level: str = "INFO"

    # Redaction
    matchreel_private_prefix: str = "_private"
    matchreel_default_mode: str = "spectator"
    matchreel_post_match_reveal_strips: bool = True

    # Stateful detectors
    matchreel_guard_cooldown_turns: int = 3
    matchreel_stall_interval: int = 3
    matchreel_noise_fractions: list[float] = [0.5, 0.75]

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_default_mode(self) -> Settings:
        """Reject a default viewer mode the redaction gate does not know."""
        if self.matchreel_default_mode not in VALID_VIEWER_MODES:
            msg = (
                f"MATCHREEL_DEFAULT_MODE must be one of {sorted(VALID_VIEWER_MODES)}, "
                f"got {self.matchreel_default_mode!r}"
            )
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _sort_noise_fractions(self) -> Settings:
        """Keep noise fractions ascending so lower crossings fire first."""
        self.matchreel_noise_fractions = sorted(set(self.matchreel_noise_fractions))
        return self

    def detector_config(self) -> DetectorConfig:
        """Build the stateful detector tuning from these settings."""
        return DetectorConfig(
            guard_cooldown_turns=self.matchreel_guard_cooldown_turns,
            stall_interval=self.matchreel_stall_interval,
            noise_fractions=tuple(self.matchreel_noise_fractions),
        )
