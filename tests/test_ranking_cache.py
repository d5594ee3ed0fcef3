"""
Tests for the database-backed ranking cache.
"""

import asyncio
import os
import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy import func, select

from fantasy.data_models.ranking import RankingDiagnostics, RankingReport, TeamRanking
from fantasy.database.database import Database
from fantasy.database.models import TeamRankingCache
from fantasy.services.ranking_cache import RankingCacheService

NOW = datetime(2024, 11, 20, 12, 0, tzinfo=timezone.utc)


def sample_rankings(bravo_points=8):
    return [
        TeamRanking("u2", "t2", "Bravo", total_points=bravo_points, weekly_breakdown={3: bravo_points}),
        TeamRanking("u1", "t1", "Alpha", total_points=0, weekly_breakdown={}),
    ]


class TestRankingCacheService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db = Database(f"sqlite:///{os.path.join(self.tmpdir.name, 'cache.db')}")
        await self.db.initialize()

        self.calculator = AsyncMock()
        self.calculator.calculate.side_effect = self._calculate
        self.points = 8
        self.service = RankingCacheService(self.db.async_session, self.calculator, max_age=30)

    async def asyncTearDown(self):
        await self.db.close()
        self.tmpdir.cleanup()

    async def _calculate(self, now=None):
        await asyncio.sleep(0)
        return RankingReport(
            rankings=sample_rankings(self.points),
            diagnostics=RankingDiagnostics(),
            calculated_at=now,
        )

    async def _row_count(self):
        async with self.db.get_session() as session:
            result = await session.execute(select(func.count(TeamRankingCache.id)))
            return result.scalar()

    async def test_empty_cache_computes_and_stores(self):
        rankings = await self.service.get_or_compute(now=NOW)

        self.assertEqual([r.team_id for r in rankings], ["t2", "t1"])
        self.assertEqual(self.calculator.calculate.await_count, 1)
        self.assertEqual(await self._row_count(), 2)

    async def test_fresh_rows_are_served_verbatim(self):
        await self.service.get_or_compute(now=NOW)
        cached = await self.service.get_or_compute(now=NOW + timedelta(minutes=29))

        self.assertEqual(self.calculator.calculate.await_count, 1)
        self.assertEqual(
            [r.to_dict() for r in cached],
            [r.to_dict() for r in sample_rankings()],
        )
        self.assertIsInstance(cached[0].total_points, int)
        self.assertEqual(cached[0].weekly_breakdown, {3: 8})

    async def test_stale_rows_trigger_recompute(self):
        await self.service.get_or_compute(now=NOW)
        self.points = 15

        rankings = await self.service.get_or_compute(now=NOW + timedelta(minutes=31))

        self.assertEqual(self.calculator.calculate.await_count, 2)
        self.assertEqual(rankings[0].total_points, 15)
        self.assertEqual(await self._row_count(), 2)

    async def test_explicit_max_age_overrides_default(self):
        await self.service.get_or_compute(now=NOW)
        await self.service.get_or_compute(max_age=timedelta(minutes=5), now=NOW + timedelta(minutes=10))
        self.assertEqual(self.calculator.calculate.await_count, 2)

    async def test_save_upserts_per_team(self):
        await self.service.save_rankings(sample_rankings(8), now=NOW)
        await self.service.save_rankings(sample_rankings(12), now=NOW + timedelta(minutes=1))

        self.assertEqual(await self._row_count(), 2)
        loaded = await self.service.load_rankings(now=NOW + timedelta(minutes=2))
        self.assertEqual(loaded[0].total_points, 12)

    async def test_load_returns_none_when_nothing_fresh(self):
        self.assertIsNone(await self.service.load_rankings(now=NOW))
        await self.service.save_rankings(sample_rankings(), now=NOW)
        self.assertIsNone(await self.service.load_rankings(now=NOW + timedelta(hours=1)))

    async def test_concurrent_readers_share_one_computation(self):
        results = await asyncio.gather(*(self.service.get_or_compute(now=NOW) for _ in range(5)))

        self.assertEqual(self.calculator.calculate.await_count, 1)
        for rankings in results:
            self.assertEqual([r.team_id for r in rankings], ["t2", "t1"])

    async def test_calculate_and_cache_ignores_fresh_rows(self):
        await self.service.get_or_compute(now=NOW)
        await self.service.calculate_and_cache(now=NOW + timedelta(minutes=1))
        self.assertEqual(self.calculator.calculate.await_count, 2)

    async def test_leaderboard_reports_only_fresh_computations(self):
        rankings, report = await self.service.get_leaderboard(now=NOW)
        self.assertIsNotNone(report)
        self.assertEqual(report.calculated_at, NOW)
        self.assertEqual([r.team_id for r in rankings], ["t2", "t1"])

        rankings, report = await self.service.get_leaderboard(now=NOW + timedelta(minutes=5))
        self.assertIsNone(report)
        self.assertEqual([r.team_id for r in rankings], ["t2", "t1"])
        self.assertEqual(self.calculator.calculate.await_count, 1)

    async def test_calculate_and_cache_returns_report(self):
        report = await self.service.calculate_and_cache(now=NOW)
        self.assertEqual(len(report.rankings), 2)
        self.assertEqual(await self._row_count(), 2)

    async def test_invalidate_clears_rows(self):
        await self.service.get_or_compute(now=NOW)
        await self.service.invalidate()
        self.assertEqual(await self._row_count(), 0)
        self.assertIsNone(await self.service.load_rankings(now=NOW))


if __name__ == "__main__":
    unittest.main()
