"""
Core data models for inter-agent communication.
All models use __slots__ for minimal memory footprint.
GameSnapshot and SignalTransition are frozen (immutable) since they cross agent boundaries.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import time
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from strategy.outcome import OutcomeResult

GameStatus = Literal["scheduled", "live", "halftime", "final"]
LIVE_STATUSES: frozenset[str] = frozenset({"live", "halftime"})


@dataclass(frozen=True, slots=True)
class ScorePair:
    home: int = 0
    away: int = 0

    @property
    def total(self) -> int:
        return self.home + self.away

    @property
    def differential(self) -> int:
        return self.home - self.away


@dataclass(frozen=True, slots=True)
class QuarterScores:
    """Points scored within each regulation quarter. Unplayed quarters stay 0-0."""
    q1: ScorePair = field(default_factory=ScorePair)
    q2: ScorePair = field(default_factory=ScorePair)
    q3: ScorePair = field(default_factory=ScorePair)
    q4: ScorePair = field(default_factory=ScorePair)

    def get(self, quarter: int) -> ScorePair:
        return (self.q1, self.q2, self.q3, self.q4)[quarter - 1]


@dataclass(frozen=True, slots=True)
class GameSnapshot:
    """
    Canonical representation of one live game tick from the ingestion feed.
    received_at_ns is captured at receive time, not parse time.
    spread is quoted from the home side (negative = home favoured).
    """
    game_id: str
    event_id: str          # Feed-side id; used for deduplication
    league: str
    home_team: str
    away_team: str
    home_team_id: str
    away_team_id: str
    home_score: int
    away_score: int
    quarter: int           # 1..4 regulation, >= 5 overtime
    clock: str             # Time remaining in quarter, "M:SS"
    quarter_scores: QuarterScores
    halftime: ScorePair
    final: ScorePair | None
    spread: float | None
    moneyline_home: float | None
    moneyline_away: float | None
    total_line: float | None
    status: GameStatus
    received_at_ns: int

    @property
    def total_score(self) -> int:
        return self.home_score + self.away_score

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_final(self) -> bool:
        return self.status == "final"

    @staticmethod
    def make(
        game_id: str,
        home_score: int,
        away_score: int,
        quarter: int,
        clock: str,
        status: GameStatus = "live",
        home_team: str = "",
        away_team: str = "",
        home_team_id: str = "",
        away_team_id: str = "",
        league: str = "",
        event_id: str | None = None,
        quarter_scores: QuarterScores | None = None,
        halftime: ScorePair | None = None,
        final: ScorePair | None = None,
        spread: float | None = None,
        moneyline_home: float | None = None,
        moneyline_away: float | None = None,
        total_line: float | None = None,
        received_at_ns: int | None = None,
    ) -> "GameSnapshot":
        return GameSnapshot(
            game_id=game_id,
            event_id=event_id if event_id is not None else f"{game_id}-{quarter}-{clock}-{home_score}-{away_score}",
            league=league,
            home_team=home_team,
            away_team=away_team,
            home_team_id=home_team_id or home_team,
            away_team_id=away_team_id or away_team,
            home_score=home_score,
            away_score=away_score,
            quarter=quarter,
            clock=clock,
            quarter_scores=quarter_scores if quarter_scores is not None else QuarterScores(),
            halftime=halftime if halftime is not None else ScorePair(),
            final=final,
            spread=spread,
            moneyline_home=moneyline_home,
            moneyline_away=moneyline_away,
            total_line=total_line,
            status=status,
            received_at_ns=received_at_ns if received_at_ns is not None else time.monotonic_ns(),
        )


@dataclass(frozen=True, slots=True)
class PlayerStats:
    """Season record for one simulated player (eBasketball teams are player-driven)."""
    name: str
    win_rate: float            # percent, 0-100
    avg_points_for: float
    games_played: int
    recent_form: tuple[str, ...] = ()   # most recent first, "W" / "L"

    @property
    def form_wins(self) -> int:
        return sum(1 for r in self.recent_form if r == "W")


@dataclass(frozen=True, slots=True)
class PlayerMatchup:
    home: PlayerStats | None = None
    away: PlayerStats | None = None


@dataclass(frozen=True, slots=True)
class SignalTransition:
    """
    Published by the engine whenever a signal changes status.
    Consumed by the Reporter agent and by any persistence collaborator.
    record is Signal.to_record() taken inside the key lock.
    """
    signal_id: str
    game_id: str
    strategy_id: str
    from_status: str | None      # None on creation
    to_status: str
    at: str                      # ISO-8601 UTC
    note: str | None
    record: dict[str, Any]
    outcome: "OutcomeResult | None" = None
