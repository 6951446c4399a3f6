"""Engine tuning values, decoupled from the Flask config object."""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class EngineSettings:
    """Timings and thresholds used by the game core."""

    pin_length: int = 6
    leaderboard_size: int = 10
    cumulative_leaderboard_size: int = 20

    results_display_seconds: float = 1.0
    countdown_tick_seconds: float = 1.0
    fast_poll_seconds: float = 0.2
    session_poll_seconds: float = 0.5
    roster_poll_seconds: float = 3.0
    roster_game_poll_seconds: float = 2.0
    completion_poll_seconds: float = 2.0

    quick_draw_seconds: int = 5
    streak_master_streak: int = 10
    perfect_streak_streak: int = 25
    knowledge_seeker_games: int = 50

    devtools_poll_seconds: float = 1.0
    devtools_threshold_px: int = 160

    risk_medium_at: int = 5
    risk_high_at: int = 10
    risk_severe_at: int = 15
    severity_medium_at: int = 5
    severity_high_at: int = 10

    @classmethod
    def from_config(cls, config) -> EngineSettings:
        """Build from a Flask config mapping (upper-case keys); missing keys keep defaults."""
        values = {}
        for f in fields(cls):
            key = f.name.upper()
            if key in config:
                values[f.name] = config[key]
        return cls(**values)
