"""
Ranking cache service.

Persists computed leaderboards in the team_rankings_cache table so readers
get a recent leaderboard without waiting for every game log to be fetched.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from fantasy.config import Config
from fantasy.database.models import TeamRankingCache
from fantasy.data_models.ranking import RankingReport, TeamRanking, leaderboard_sort_key
from fantasy.services.base import BaseService
from fantasy.utils.ranking_exceptions import CacheError
from fantasy.utils.time_utils import to_naive_utc, utc_now

logger = logging.getLogger(__name__)

MaxAge = Union[timedelta, int, float]


def _as_timedelta(max_age: Optional[MaxAge]) -> timedelta:
    if max_age is None:
        return timedelta(minutes=Config.RANKING_CACHE_MAX_AGE_MINUTES)
    if isinstance(max_age, timedelta):
        return max_age
    return timedelta(minutes=max_age)


def _points(value):
    """Stored points come back as floats; whole numbers are returned as int."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class RankingCacheService(BaseService):
    """Read-through cache for the fantasy leaderboard."""

    def __init__(self, session_factory, calculator, max_age: Optional[MaxAge] = None):
        super().__init__(session_factory)
        self.calculator = calculator
        self.max_age = _as_timedelta(max_age)
        self._compute_lock = asyncio.Lock()  # One computation at a time per process

    async def load_rankings(self, max_age: Optional[MaxAge] = None,
                            now: Optional[datetime] = None) -> Optional[List[TeamRanking]]:
        """
        Get cached rankings calculated within max_age of now.

        Returns:
            Fresh rankings in leaderboard order, or None when no row is fresh

        Raises:
            CacheError: If the cache table cannot be read
        """
        age = self.max_age if max_age is None else _as_timedelta(max_age)
        cutoff = to_naive_utc((now or utc_now()) - age)

        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(TeamRankingCache).where(TeamRankingCache.calculated_at >= cutoff)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise CacheError('load', str(e)) from e

        if not rows:
            return None

        rankings = [self._to_ranking(row) for row in rows]
        rankings.sort(key=leaderboard_sort_key)
        logger.debug(f"Loaded {len(rankings)} cached rankings newer than {cutoff.isoformat()}")
        return rankings

    async def save_rankings(self, rankings: List[TeamRanking], now: Optional[datetime] = None):
        """
        Upsert one cache row per ranking, keyed by (user_id, team_id).

        Raises:
            CacheError: If the rows cannot be written
        """
        calculated_at = to_naive_utc(now or utc_now())
        try:
            async with self.get_session() as session:
                for ranking in rankings:
                    result = await session.execute(
                        select(TeamRankingCache).where(
                            TeamRankingCache.user_id == ranking.user_id,
                            TeamRankingCache.team_id == ranking.team_id,
                        )
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        row = TeamRankingCache(user_id=ranking.user_id, team_id=ranking.team_id)
                        session.add(row)
                    row.team_name = ranking.team_name
                    row.total_points = ranking.total_points
                    row.weekly_breakdown = json.dumps(ranking.to_dict()['weeklyBreakdown'])
                    row.calculated_at = calculated_at
        except SQLAlchemyError as e:
            raise CacheError('save', str(e)) from e

        logger.info(f"Cached {len(rankings)} team rankings")

    async def calculate_and_cache(self, now: Optional[datetime] = None) -> RankingReport:
        """Recompute the leaderboard and store it, ignoring any fresh cache."""
        now = now or utc_now()
        report = await self.calculator.calculate(now=now)
        try:
            await self.save_rankings(report.rankings, now=now)
        except CacheError as e:
            logger.error(f"Rankings computed but not cached: {e}")
        return report

    async def get_leaderboard(self, max_age: Optional[MaxAge] = None,
                              now: Optional[datetime] = None) -> Tuple[List[TeamRanking], Optional[RankingReport]]:
        """
        Serve cached rankings when fresh, otherwise compute and cache them.

        Concurrent callers in one process share a single computation.

        Returns:
            (rankings, report); report is None when the rankings came from the cache
        """
        now = now or utc_now()
        async with self._compute_lock:
            try:
                cached = await self.load_rankings(max_age=max_age, now=now)
            except CacheError as e:
                logger.warning(f"Ignoring unreadable ranking cache: {e}")
                cached = None

            if cached is not None:
                logger.info(f"Serving {len(cached)} cached rankings")
                return cached, None

            logger.info("Ranking cache stale or empty, recomputing")
            report = await self.calculate_and_cache(now=now)
            return report.rankings, report

    async def get_or_compute(self, max_age: Optional[MaxAge] = None,
                             now: Optional[datetime] = None) -> List[TeamRanking]:
        """Leaderboard rows, from the cache when fresh."""
        rankings, _ = await self.get_leaderboard(max_age=max_age, now=now)
        return rankings

    async def invalidate(self):
        """Remove every cached ranking."""
        try:
            async with self.get_session() as session:
                await session.execute(delete(TeamRankingCache))
        except SQLAlchemyError as e:
            raise CacheError('invalidate', str(e)) from e
        logger.info("Ranking cache invalidated")

    @staticmethod
    def _to_ranking(row: TeamRankingCache) -> TeamRanking:
        try:
            breakdown = json.loads(row.weekly_breakdown or '{}')
        except ValueError:
            logger.warning(f"Unreadable weekly breakdown cached for team {row.team_id}")
            breakdown = {}
        return TeamRanking(
            user_id=row.user_id,
            team_id=row.team_id,
            team_name=row.team_name,
            total_points=_points(row.total_points),
            weekly_breakdown={int(week): _points(points) for week, points in breakdown.items()},
        )
