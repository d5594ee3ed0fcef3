"""
Ownership Interval Reconstruction

Rebuilds, from the purchase log and the current roster snapshot, the periods
during which each team held each player. Points are only credited to a team
for games played inside one of its periods, so for any one player the
periods of different owners must never overlap.

The transaction log is authoritative for when a player changed hands; the
roster snapshot decides who holds a player now. Rows that cannot be placed
are logged, counted in RankingDiagnostics and skipped; reconstruction never
raises on bad data.
"""

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from fantasy.constants import DateConstants
from fantasy.data_models.ranking import (
    OwnershipPeriod, RankingDiagnostics, RosterRecord, TeamRecord, TransactionRecord
)
from fantasy.utils.logger import setup_logger
from fantasy.utils.time_utils import ensure_utc

logger = setup_logger(__name__)


@dataclass
class _WorkingPeriod:
    user_id: str
    team_id: str
    player_id: int
    purchase_date: datetime
    sale_date: Optional[datetime] = None
    claimed: bool = False

    @property
    def is_open(self) -> bool:
        return self.sale_date is None


def _safe_utc(value) -> Optional[datetime]:
    try:
        return ensure_utc(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Unusable timestamp {value!r}: {e}")
        return None


class OwnershipReconstructor:
    """
    Derives OwnershipPeriod lists from transactions and roster rows.

    One instance can be reused; each reconstruct() call records its problems
    on the diagnostics object passed in (or a fresh one, see last_diagnostics).
    """

    def __init__(self):
        self.logger = logger
        self.last_diagnostics = RankingDiagnostics()

    def reconstruct(
        self,
        teams: Iterable[TeamRecord],
        transactions: Iterable[TransactionRecord],
        roster_rows: Iterable[RosterRecord],
        diagnostics: Optional[RankingDiagnostics] = None,
    ) -> List[OwnershipPeriod]:
        """
        Build the ownership periods of every player.

        Args:
            teams: All fantasy teams; maps team ids to their users
            transactions: Purchase log, in any order
            roster_rows: Current roster snapshot
            diagnostics: Collector for skipped and adjusted rows

        Returns:
            Periods ordered by player id, then purchase date
        """
        diagnostics = diagnostics if diagnostics is not None else RankingDiagnostics()
        self.last_diagnostics = diagnostics

        team_users = {team.team_id: team.user_id for team in teams}
        transactions = list(transactions)
        roster_rows = list(roster_rows)

        player_names = self._collect_player_names(transactions, roster_rows)
        history = self._replay_transactions(team_users, transactions, diagnostics)
        current = self._claim_roster_rows(team_users, history, roster_rows, diagnostics)
        closed = self._closed_periods(history, player_names, current, diagnostics)

        periods = self._enforce_exclusive_ownership(current + closed, diagnostics)
        self.logger.debug(
            f"Reconstructed {len(periods)} ownership periods from "
            f"{len(transactions)} transactions and {len(roster_rows)} roster rows"
        )
        return periods

    @staticmethod
    def _collect_player_names(
        transactions: List[TransactionRecord], roster_rows: List[RosterRecord]
    ) -> Dict[int, str]:
        names = {}
        for transaction in transactions:
            if transaction.player_name:
                names[transaction.player_id] = transaction.player_name
        # Roster names are the freshest
        for row in roster_rows:
            if row.player_name:
                names[row.player_id] = row.player_name
        return names

    def _replay_transactions(
        self,
        team_users: Dict[str, str],
        transactions: List[TransactionRecord],
        diagnostics: RankingDiagnostics,
    ) -> Dict[int, List[_WorkingPeriod]]:
        history: Dict[int, List[_WorkingPeriod]] = defaultdict(list)

        timed = []
        for transaction in transactions:
            created_at = _safe_utc(transaction.created_at)
            if created_at is None:
                self.logger.warning(
                    f"Skipping transaction {transaction.transaction_id} for player "
                    f"{transaction.player_id}: no usable timestamp"
                )
                diagnostics.skipped_transactions += 1
                continue
            timed.append((created_at, transaction))

        # sorted() is stable, so same-instant transactions keep their log order
        timed.sort(key=lambda item: item[0])

        for created_at, transaction in timed:
            buyer_user = team_users.get(transaction.buyer_team_id)
            seller_user = team_users.get(transaction.seller_team_id)
            if buyer_user is None or seller_user is None:
                self.logger.warning(
                    f"Skipping transaction {transaction.transaction_id} for player "
                    f"{transaction.player_id}: unknown team "
                    f"(buyer={transaction.buyer_team_id}, seller={transaction.seller_team_id})"
                )
                diagnostics.skipped_transactions += 1
                continue

            periods = history[transaction.player_id]
            seller_period = self._latest_open(
                periods, seller_user, transaction.seller_team_id
            )
            if seller_period is not None:
                seller_period.sale_date = created_at
            else:
                self.logger.debug(
                    f"Seller team {transaction.seller_team_id} had no recorded period for "
                    f"player {transaction.player_id} before {created_at.isoformat()}"
                )

            periods.append(_WorkingPeriod(
                user_id=buyer_user,
                team_id=transaction.buyer_team_id,
                player_id=transaction.player_id,
                purchase_date=created_at,
            ))

        return history

    @staticmethod
    def _latest_open(
        periods: List[_WorkingPeriod], user_id: str, team_id: str
    ) -> Optional[_WorkingPeriod]:
        for period in reversed(periods):
            if period.is_open and period.user_id == user_id and period.team_id == team_id:
                return period
        return None

    def _claim_roster_rows(
        self,
        team_users: Dict[str, str],
        history: Dict[int, List[_WorkingPeriod]],
        roster_rows: List[RosterRecord],
        diagnostics: RankingDiagnostics,
    ) -> List[OwnershipPeriod]:
        current = []
        for row in roster_rows:
            user_id = team_users.get(row.team_id)
            if user_id is None:
                self.logger.warning(
                    f"Skipping roster row for player {row.player_id}: unknown team {row.team_id}"
                )
                diagnostics.skipped_roster_rows += 1
                continue

            working = self._latest_open(history.get(row.player_id, []), user_id, row.team_id)
            if working is not None:
                working.claimed = True
                purchase_date = working.purchase_date
            else:
                purchase_date = _safe_utc(row.acquired_at)
                if purchase_date is None:
                    self.logger.warning(
                        f"Skipping roster row for player {row.player_id} on team "
                        f"{row.team_id}: no acquisition timestamp"
                    )
                    diagnostics.skipped_roster_rows += 1
                    continue

            current.append(OwnershipPeriod(
                user_id=user_id,
                team_id=row.team_id,
                player_id=row.player_id,
                player_name=row.player_name,
                purchase_date=purchase_date,
            ))
        return current

    def _closed_periods(
        self,
        history: Dict[int, List[_WorkingPeriod]],
        player_names: Dict[int, str],
        current: List[OwnershipPeriod],
        diagnostics: RankingDiagnostics,
    ) -> List[OwnershipPeriod]:
        tolerance = timedelta(seconds=DateConstants.DUPLICATE_PERIOD_TOLERANCE_SECONDS)
        emitted = list(current)
        closed = []

        for player_id, periods in history.items():
            for working in periods:
                if working.is_open:
                    if not working.claimed:
                        self.logger.warning(
                            f"Open period of player {player_id} on team {working.team_id} "
                            f"since {working.purchase_date.isoformat()} has no roster row"
                        )
                        diagnostics.orphaned_open_periods += 1
                    continue

                duplicate = any(
                    other.player_id == player_id
                    and other.user_id == working.user_id
                    and other.team_id == working.team_id
                    and abs(other.purchase_date - working.purchase_date) < tolerance
                    for other in emitted
                )
                if duplicate:
                    continue

                period = OwnershipPeriod(
                    user_id=working.user_id,
                    team_id=working.team_id,
                    player_id=player_id,
                    player_name=player_names.get(player_id, f"Player {player_id}"),
                    purchase_date=working.purchase_date,
                    sale_date=working.sale_date,
                )
                emitted.append(period)
                closed.append(period)
        return closed

    def _enforce_exclusive_ownership(
        self, periods: List[OwnershipPeriod], diagnostics: RankingDiagnostics
    ) -> List[OwnershipPeriod]:
        by_player: Dict[int, List[OwnershipPeriod]] = defaultdict(list)
        for period in periods:
            by_player[period.player_id].append(period)

        result = []
        for player_id in sorted(by_player):
            result.extend(self._exclusive_for_player(by_player[player_id], diagnostics))
        return result

    def _exclusive_for_player(
        self, periods: List[OwnershipPeriod], diagnostics: RankingDiagnostics
    ) -> List[OwnershipPeriod]:
        """Most recent acquirer wins wherever two owners' periods overlap."""
        order = lambda period: (period.purchase_date, period.team_id)
        open_periods = sorted((p for p in periods if p.is_open), key=order)
        closed = [p for p in periods if not p.is_open]

        for earlier, later in zip(open_periods, open_periods[1:]):
            self.logger.warning(
                f"Player {earlier.player_id} is on teams {earlier.team_id} and "
                f"{later.team_id}; closing the older period at "
                f"{later.purchase_date.isoformat()}"
            )
            closed.append(replace(earlier, sale_date=later.purchase_date))
            diagnostics.adjusted_periods += 1
        holder = open_periods[-1] if open_periods else None

        closed.sort(key=order)
        exclusive = []
        for index, period in enumerate(closed):
            if index + 1 < len(closed):
                next_start = closed[index + 1].purchase_date
                if period.sale_date > next_start:
                    self.logger.warning(
                        f"Truncating period of player {period.player_id} on team "
                        f"{period.team_id} at {next_start.isoformat()} (overlaps next owner)"
                    )
                    period = replace(period, sale_date=next_start)
                    diagnostics.adjusted_periods += 1
            if period.sale_date <= period.purchase_date:
                self.logger.debug(
                    f"Dropping empty period of player {period.player_id} on team {period.team_id}"
                )
                continue
            exclusive.append(period)

        if holder is not None:
            if exclusive:
                latest_sale = max(period.sale_date for period in exclusive)
                if holder.purchase_date < latest_sale:
                    self.logger.warning(
                        f"Current period of player {holder.player_id} on team "
                        f"{holder.team_id} starts before the previous owner's sale; "
                        f"moving start to {latest_sale.isoformat()}"
                    )
                    holder = replace(holder, purchase_date=latest_sale)
                    diagnostics.adjusted_periods += 1
            exclusive.append(holder)

        return exclusive
