"""
Ranking calculator.

Credits every team with the points its players scored only while they were
on its roster, bucketed by week, and sorts the teams into a leaderboard.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fantasy.config import Config
from fantasy.data_models.ranking import (
    GameLogEntry, OwnershipPeriod, RankingDiagnostics, RankingReport, TeamRanking,
    leaderboard_sort_key
)
from fantasy.operations.ownership import OwnershipReconstructor
from fantasy.operations.weekly_points import aggregate_weekly_points
from fantasy.utils.ranking_exceptions import GameLogFetchError, TeamListUnavailableError
from fantasy.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class RankingCalculator:
    """
    Builds the fantasy leaderboard from the store and the game log provider.

    Args:
        database: Source of teams, purchase transactions and roster rows
        fetcher: Object with an async get_game_log(player_id, season)
        season: Season label passed to the fetcher
        season_start: Anchor date of week 1
        max_concurrency: Upper bound on simultaneous game log requests
    """

    def __init__(self, database, fetcher, season: Optional[str] = None,
                 season_start: Optional[Any] = None, max_concurrency: Optional[int] = None):
        self.db = database
        self.fetcher = fetcher
        self.season = season or Config.SEASON
        self.season_start = season_start or Config.get_season_start()
        self.max_concurrency = max_concurrency or Config.STATS_MAX_CONCURRENCY
        self.reconstructor = OwnershipReconstructor()

    async def compute_rankings(self) -> List[TeamRanking]:
        """Leaderboard rows, best team first."""
        report = await self.calculate()
        return report.rankings

    async def calculate(self, now: Optional[datetime] = None) -> RankingReport:
        """
        Run one full ranking computation.

        Raises:
            TeamListUnavailableError: If the team list cannot be loaded
        """
        calculated_at = now or utc_now()
        diagnostics = RankingDiagnostics()

        try:
            teams = await self.db.load_teams()
        except Exception as e:
            logger.error(f"Could not load teams: {e}")
            raise TeamListUnavailableError(str(e)) from e

        rankings: Dict[str, TeamRanking] = {
            team.team_id: TeamRanking(user_id=team.user_id, team_id=team.team_id, team_name=team.team_name)
            for team in teams
        }

        transactions = await self._load_optional('transactions', self.db.load_purchase_transactions, diagnostics)
        roster_rows = await self._load_optional('roster', self.db.load_roster_rows, diagnostics)

        periods = self.reconstructor.reconstruct(teams, transactions, roster_rows, diagnostics)
        logger.info(f"Processing {len(periods)} ownership periods for {len(teams)} teams")

        game_logs = await self._fetch_game_logs({period.player_id for period in periods}, diagnostics)

        # Accumulate only after every fetch has resolved
        for period in periods:
            ranking = rankings.get(period.team_id)
            if ranking is None:
                continue
            weeks = aggregate_weekly_points(
                game_logs.get(period.player_id, []),
                period.purchase_date,
                period.sale_date,
                self.season_start,
            )
            added = ranking.add_weekly_points(weeks)
            self._log_period(period, added)

        ordered = sorted(rankings.values(), key=leaderboard_sort_key)
        for ranking in ordered:
            logger.info(f"{ranking.team_name} ({ranking.user_id}): {ranking.total_points} points")
        if diagnostics.has_issues:
            logger.warning(f"Ranking run finished with issues: {diagnostics.to_dict()}")

        return RankingReport(
            rankings=ordered,
            diagnostics=diagnostics,
            calculated_at=calculated_at,
            periods_processed=len(periods),
        )

    async def debug_snapshot(self, sample_size: int = 3, game_sample_size: int = 5) -> Dict[str, Any]:
        """
        Inputs of a ranking run without computing it: teams, roster rows,
        sample ownership periods, the game log of the first rostered player
        and the diagnostics of the reconstruction.
        """
        diagnostics = RankingDiagnostics()
        teams = await self._load_optional('teams', self.db.load_teams, diagnostics)
        transactions = await self._load_optional('transactions', self.db.load_purchase_transactions, diagnostics)
        roster_rows = await self._load_optional('roster', self.db.load_roster_rows, diagnostics)

        periods = self.reconstructor.reconstruct(teams, transactions, roster_rows, diagnostics)

        example = {'playerId': None, 'playerName': None, 'gameLogsCount': 0, 'sampleGameLogs': []}
        if roster_rows:
            first = roster_rows[0]
            game_logs = await self._fetch_game_logs({first.player_id}, diagnostics)
            entries = game_logs.get(first.player_id, [])
            example = {
                'playerId': first.player_id,
                'playerName': first.player_name,
                'gameLogsCount': len(entries),
                'sampleGameLogs': [
                    {'date': entry.date.date().isoformat(), 'rawDate': entry.raw_date, 'points': entry.points}
                    for entry in entries[:game_sample_size]
                ],
            }

        return {
            'teams': {
                'count': len(teams),
                'data': [
                    {'teamId': team.team_id, 'userId': team.user_id, 'teamName': team.team_name}
                    for team in teams
                ],
            },
            'transactions': {'count': len(transactions)},
            'players': {
                'count': len(roster_rows),
                'data': [
                    {
                        'teamId': row.team_id,
                        'playerId': row.player_id,
                        'playerName': row.player_name,
                        'purchasedAt': row.purchased_at.isoformat() if row.purchased_at else None,
                    }
                    for row in roster_rows
                ],
            },
            'ownershipPeriods': {
                'count': len(periods),
                'open': sum(1 for period in periods if period.is_open),
                'sample': [period.to_dict() for period in periods[:sample_size]],
            },
            'gameLogsExample': example,
            'diagnostics': diagnostics.to_dict(),
        }

    async def _load_optional(self, name: str, loader, diagnostics: RankingDiagnostics) -> list:
        try:
            return list(await loader())
        except Exception as e:
            logger.error(f"Could not load {name}, continuing without it: {e}")
            diagnostics.inputs_unavailable.append(name)
            return []

    async def _fetch_game_logs(self, player_ids, diagnostics: RankingDiagnostics) -> Dict[int, List[GameLogEntry]]:
        """Fetch each player's log once, at most max_concurrency at a time."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        ordered_ids = sorted(player_ids)

        async def fetch(player_id: int) -> List[GameLogEntry]:
            async with semaphore:
                try:
                    return await self.fetcher.get_game_log(player_id, self.season)
                except GameLogFetchError as e:
                    logger.warning(f"No game log for player {player_id}: {e}")
                    diagnostics.players_without_logs.add(player_id)
                    return []
                except Exception as e:
                    logger.error(f"Unexpected error fetching game log of player {player_id}: {e}")
                    diagnostics.players_without_logs.add(player_id)
                    return []

        results = await asyncio.gather(*(fetch(player_id) for player_id in ordered_ids))
        return dict(zip(ordered_ids, results))

    @staticmethod
    def _log_period(period: OwnershipPeriod, added):
        sale = period.sale_date.isoformat() if period.sale_date else 'present'
        logger.debug(
            f"{period.player_name} ({period.player_id}) on team {period.team_id}: "
            f"{period.purchase_date.isoformat()} -> {sale}, {added} points"
        )
