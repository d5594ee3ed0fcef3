"""
Ranking data models for the fantasy ranking engine.

Read-only records mirror rows of the persistent store; the ranking
structures are built fresh on every ranking run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Union

Points = Union[int, float]


@dataclass(frozen=True)
class TeamRecord:
    """A fantasy team and the user who owns it."""
    team_id: str
    user_id: str
    team_name: str


@dataclass(frozen=True)
class TransactionRecord:
    """One completed purchase, read from the transaction log."""
    buyer_team_id: str
    seller_team_id: str
    player_id: int
    player_name: str
    created_at: datetime
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class RosterRecord:
    """A player currently held by a team."""
    team_id: str
    player_id: int
    player_name: str
    purchased_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def acquired_at(self) -> Optional[datetime]:
        """Purchase time, falling back to the row creation time."""
        return self.purchased_at or self.created_at


@dataclass(frozen=True)
class OwnershipPeriod:
    """One continuous stretch during which a user's team held a player.

    purchase_date is inclusive, sale_date exclusive; sale_date None means the
    player is still on the roster.
    """
    user_id: str
    team_id: str
    player_id: int
    player_name: str
    purchase_date: datetime
    sale_date: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.sale_date is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'teamId': self.team_id,
            'playerId': self.player_id,
            'playerName': self.player_name,
            'purchaseDate': self.purchase_date.isoformat(),
            'saleDate': self.sale_date.isoformat() if self.sale_date else None,
        }


@dataclass(frozen=True)
class GameLogEntry:
    """One played game: normalized date, points scored and the provider's raw date."""
    date: datetime
    points: Points
    raw_date: Optional[str] = None


@dataclass(frozen=True)
class WeeklyPoints:
    """Sum of a player's in-interval points within one calendar week."""
    week_number: int
    week_start: datetime
    week_end: datetime
    points: Points


@dataclass
class TeamRanking:
    """Leaderboard row for one team; total_points is the sum of weekly_breakdown."""
    user_id: str
    team_id: str
    team_name: str
    total_points: Points = 0
    weekly_breakdown: Dict[int, Points] = field(default_factory=dict)

    def add_weekly_points(self, weekly_points: Iterable[WeeklyPoints]) -> Points:
        """Merge weekly buckets into this ranking and return the points added."""
        added = 0
        for weekly in weekly_points:
            self.weekly_breakdown[weekly.week_number] = (
                self.weekly_breakdown.get(weekly.week_number, 0) + weekly.points
            )
            self.total_points += weekly.points
            added += weekly.points
        return added

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'teamId': self.team_id,
            'teamName': self.team_name,
            'totalPoints': self.total_points,
            'weeklyBreakdown': {
                str(week): points for week, points in sorted(self.weekly_breakdown.items())
            },
        }


def leaderboard_sort_key(ranking: TeamRanking):
    """Points descending, then team name and team id ascending."""
    return (-ranking.total_points, ranking.team_name, ranking.team_id)


@dataclass
class RankingDiagnostics:
    """Counts of the recoverable problems met during one ranking run."""
    skipped_transactions: int = 0
    skipped_roster_rows: int = 0
    orphaned_open_periods: int = 0
    adjusted_periods: int = 0
    inputs_unavailable: List[str] = field(default_factory=list)
    players_without_logs: Set[int] = field(default_factory=set)

    @property
    def has_issues(self) -> bool:
        return bool(
            self.skipped_transactions
            or self.skipped_roster_rows
            or self.orphaned_open_periods
            or self.adjusted_periods
            or self.inputs_unavailable
            or self.players_without_logs
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'skippedTransactions': self.skipped_transactions,
            'skippedRosterRows': self.skipped_roster_rows,
            'orphanedOpenPeriods': self.orphaned_open_periods,
            'adjustedPeriods': self.adjusted_periods,
            'inputsUnavailable': list(self.inputs_unavailable),
            'playersWithoutLogs': sorted(self.players_without_logs),
        }


@dataclass(frozen=True)
class RankingReport:
    """Result of one ranking run."""
    rankings: List[TeamRanking]
    diagnostics: RankingDiagnostics
    calculated_at: datetime
    periods_processed: int = 0
