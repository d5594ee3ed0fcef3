"""
Tests for the ranking calculator with an in-memory store and game log source.
"""

import asyncio
import os
import sys
import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fantasy.data_models.ranking import GameLogEntry, RosterRecord, TeamRecord, TransactionRecord
from fantasy.services.game_log_fetcher import GameLogFetcher
from fantasy.services.ranking_calculator import RankingCalculator
from fantasy.utils.date_normalizer import normalize_date
from fantasy.utils.ranking_exceptions import GameLogFetchError, TeamListUnavailableError

SEASON_START = "2024-10-22"
P1 = 2544
P2 = 201939


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def game(day, points):
    return GameLogEntry(date=normalize_date(day), points=points, raw_date=day)


class FakeDatabase:
    def __init__(self, teams, transactions=None, roster=None):
        self.teams = teams
        self.transactions = transactions or []
        self.roster = roster or []
        self.fail = set()

    async def load_teams(self):
        if 'teams' in self.fail:
            raise ConnectionError("store unavailable")
        return list(self.teams)

    async def load_purchase_transactions(self):
        if 'transactions' in self.fail:
            raise ConnectionError("store unavailable")
        return list(self.transactions)

    async def load_roster_rows(self):
        if 'roster' in self.fail:
            raise ConnectionError("store unavailable")
        return list(self.roster)


class FakeFetcher:
    def __init__(self, logs, failing=(), broken=()):
        self.logs = logs
        self.failing = set(failing)
        self.broken = set(broken)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_game_log(self, player_id, season=None):
        self.calls.append(player_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if player_id in self.failing:
                raise GameLogFetchError(player_id, 3, "HTTP 503")
            if player_id in self.broken:
                raise KeyError(0)
            return list(self.logs.get(player_id, []))
        finally:
            self.in_flight -= 1


TEAMS = [
    TeamRecord(team_id="t1", user_id="u1", team_name="Alpha"),
    TeamRecord(team_id="t2", user_id="u2", team_name="Bravo"),
    TeamRecord(team_id="t3", user_id="u3", team_name="Charlie"),
]


class TestRankingCalculator(unittest.IsolatedAsyncioTestCase):
    def make_calculator(self, database, fetcher, max_concurrency=4):
        return RankingCalculator(
            database, fetcher, season="2024-25", season_start=SEASON_START, max_concurrency=max_concurrency
        )

    async def test_only_games_after_purchase_count(self):
        database = FakeDatabase(
            TEAMS[:1],
            roster=[RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25))],
        )
        fetcher = FakeFetcher({P1: [game("2024-10-24", 10), game("2024-11-01", 20)]})

        rankings = await self.make_calculator(database, fetcher).compute_rankings()

        self.assertEqual(rankings[0].total_points, 20)
        self.assertEqual(rankings[0].weekly_breakdown, {2: 20})

    async def test_buyer_is_credited_from_transaction_date(self):
        database = FakeDatabase(
            TEAMS[:2],
            transactions=[TransactionRecord("t2", "t1", P1, "LeBron James", utc(2024, 11, 5))],
            roster=[RosterRecord("t2", P1, "LeBron James", purchased_at=utc(2024, 10, 1))],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-04", 5), game("2024-11-06", 8)]})

        rankings = await self.make_calculator(database, fetcher).compute_rankings()
        totals = {r.team_id: r.total_points for r in rankings}

        self.assertEqual(totals, {"t1": 0, "t2": 8})

    async def test_team_without_players_is_listed_with_zero(self):
        database = FakeDatabase(
            TEAMS,
            roster=[RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25))],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-01", 20)]})

        rankings = await self.make_calculator(database, fetcher).compute_rankings()

        self.assertEqual(sorted(r.team_id for r in rankings), ["t1", "t2", "t3"])
        charlie = next(r for r in rankings if r.team_id == "t3")
        self.assertEqual(charlie.total_points, 0)
        self.assertEqual(charlie.weekly_breakdown, {})
        self.assertEqual(charlie.to_dict()['weeklyBreakdown'], {})

    async def test_points_are_conserved_across_owners(self):
        database = FakeDatabase(
            TEAMS,
            transactions=[
                TransactionRecord("t2", "t1", P1, "LeBron James", utc(2024, 11, 5)),
                TransactionRecord("t3", "t2", P1, "LeBron James", utc(2024, 11, 10)),
            ],
            roster=[RosterRecord("t3", P1, "LeBron James", purchased_at=utc(2024, 11, 10))],
        )
        log = [game("2024-11-04", 5), game("2024-11-06", 8), game("2024-11-10", 3), game("2024-11-12", 7)]
        fetcher = FakeFetcher({P1: log})

        report = await self.make_calculator(database, fetcher).calculate()
        totals = {r.team_id: r.total_points for r in report.rankings}

        self.assertEqual(totals, {"t1": 0, "t2": 8, "t3": 10})
        self.assertEqual(sum(totals.values()), 18)  # every game from 2024-11-05 on, once
        self.assertEqual(report.periods_processed, 2)
        for ranking in report.rankings:
            self.assertEqual(ranking.total_points, sum(ranking.weekly_breakdown.values()))

    async def test_each_player_log_fetched_once(self):
        database = FakeDatabase(
            TEAMS,
            transactions=[TransactionRecord("t2", "t1", P1, "LeBron James", utc(2024, 11, 5))],
            roster=[
                RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25)),
                RosterRecord("t2", P1, "LeBron James", purchased_at=utc(2024, 11, 5)),
                RosterRecord("t3", P2, "Stephen Curry", purchased_at=utc(2024, 10, 25)),
            ],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-01", 20)], P2: [game("2024-11-01", 30)]})

        await self.make_calculator(database, fetcher).compute_rankings()

        self.assertEqual(sorted(fetcher.calls), [P1, P2])

    async def test_ties_break_by_team_name(self):
        teams = [
            TeamRecord(team_id="t9", user_id="u9", team_name="Zulu"),
            TeamRecord(team_id="t8", user_id="u8", team_name="Echo"),
            TeamRecord(team_id="t7", user_id="u7", team_name="Echo"),
            TeamRecord(team_id="t1", user_id="u1", team_name="Alpha"),
        ]
        database = FakeDatabase(
            teams,
            roster=[RosterRecord("t9", P1, "LeBron James", purchased_at=utc(2024, 10, 25))],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-01", 20)]})
        calculator = self.make_calculator(database, fetcher)

        first = await calculator.compute_rankings()
        second = await calculator.compute_rankings()

        self.assertEqual([r.team_id for r in first], ["t9", "t1", "t7", "t8"])
        self.assertEqual([r.to_dict() for r in first], [r.to_dict() for r in second])

    async def test_failed_game_log_degrades_to_zero(self):
        database = FakeDatabase(
            TEAMS[:2],
            roster=[
                RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25)),
                RosterRecord("t2", P2, "Stephen Curry", purchased_at=utc(2024, 10, 25)),
            ],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-01", 20)]}, failing=[P2])

        report = await self.make_calculator(database, fetcher).calculate()
        totals = {r.team_id: r.total_points for r in report.rankings}

        self.assertEqual(totals, {"t1": 20, "t2": 0})
        self.assertEqual(report.diagnostics.players_without_logs, {P2})
        self.assertTrue(report.diagnostics.has_issues)

    async def test_unexpected_fetch_error_degrades_to_zero(self):
        database = FakeDatabase(
            TEAMS[:2],
            roster=[
                RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25)),
                RosterRecord("t2", P2, "Stephen Curry", purchased_at=utc(2024, 10, 25)),
            ],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-01", 20)]}, broken=[P2])

        report = await self.make_calculator(database, fetcher).calculate()

        self.assertEqual({r.team_id: r.total_points for r in report.rankings}, {"t1": 20, "t2": 0})
        self.assertEqual(report.diagnostics.players_without_logs, {P2})

    async def test_quirky_provider_payload_degrades_to_zero(self):
        database = FakeDatabase(
            TEAMS[:2],
            roster=[
                RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25)),
                RosterRecord("t2", P2, "Stephen Curry", purchased_at=utc(2024, 10, 25)),
            ],
        )
        good = {"resultSets": [{"headers": ["GAME_DATE", "PTS"], "rowSet": [["NOV 01, 2024", 20]]}]}
        quirky = {"resultSets": {"name": "PlayerGameLog", "headers": ["GAME_DATE", "PTS"], "rowSet": []}}

        async def respond(url, params):
            return good if params["PlayerID"] == str(P1) else quirky

        fetcher = GameLogFetcher(http_session=None, max_retries=1, backoff=0)
        with patch.object(fetcher, "_request_json", AsyncMock(side_effect=respond)):
            report = await self.make_calculator(database, fetcher).calculate()

        self.assertEqual({r.team_id: r.total_points for r in report.rankings}, {"t1": 20, "t2": 0})
        self.assertEqual(report.diagnostics.players_without_logs, {P2})

    async def test_debug_snapshot_lists_inputs_and_periods(self):
        database = FakeDatabase(
            TEAMS[:2],
            transactions=[TransactionRecord("t2", "t1", P1, "LeBron James", utc(2024, 11, 5))],
            roster=[
                RosterRecord("t2", P1, "LeBron James", purchased_at=utc(2024, 11, 5)),
                RosterRecord("t9", P2, "Stephen Curry", purchased_at=utc(2024, 10, 25)),
            ],
        )
        fetcher = FakeFetcher({P1: [game("2024-11-04", 5), game("2024-11-06", 8)]})

        snapshot = await self.make_calculator(database, fetcher).debug_snapshot()

        self.assertEqual(snapshot["teams"]["count"], 2)
        self.assertEqual(snapshot["transactions"]["count"], 1)
        self.assertEqual(snapshot["players"]["count"], 2)
        self.assertEqual(snapshot["ownershipPeriods"]["count"], 1)
        self.assertEqual(snapshot["ownershipPeriods"]["open"], 1)
        self.assertEqual(snapshot["ownershipPeriods"]["sample"][0]["teamId"], "t2")
        self.assertEqual(snapshot["gameLogsExample"]["playerId"], P1)
        self.assertEqual(snapshot["gameLogsExample"]["gameLogsCount"], 2)
        self.assertEqual(snapshot["gameLogsExample"]["sampleGameLogs"][0]["points"], 5)
        self.assertEqual(snapshot["diagnostics"]["skippedRosterRows"], 1)
        self.assertEqual(fetcher.calls, [P1])

    async def test_team_list_failure_is_fatal(self):
        database = FakeDatabase(TEAMS)
        database.fail.add('teams')

        with self.assertRaises(TeamListUnavailableError):
            await self.make_calculator(database, FakeFetcher({})).compute_rankings()

    async def test_missing_transactions_are_treated_as_empty(self):
        database = FakeDatabase(
            TEAMS[:1],
            transactions=[TransactionRecord("t1", "t2", P1, "LeBron James", utc(2024, 11, 5))],
            roster=[RosterRecord("t1", P1, "LeBron James", purchased_at=utc(2024, 10, 25))],
        )
        database.fail.add('transactions')
        fetcher = FakeFetcher({P1: [game("2024-11-01", 20)]})

        report = await self.make_calculator(database, fetcher).calculate()

        self.assertEqual(report.rankings[0].total_points, 20)
        self.assertEqual(report.diagnostics.inputs_unavailable, ['transactions'])

    async def test_fetch_concurrency_is_bounded(self):
        players = list(range(1, 11))
        database = FakeDatabase(
            TEAMS[:1],
            roster=[
                RosterRecord("t1", player_id, f"Player {player_id}", purchased_at=utc(2024, 10, 25))
                for player_id in players
            ],
        )
        fetcher = FakeFetcher({})

        await self.make_calculator(database, fetcher, max_concurrency=3).compute_rankings()

        self.assertEqual(sorted(fetcher.calls), players)
        self.assertLessEqual(fetcher.max_in_flight, 3)

    async def test_calculated_at_uses_given_now(self):
        now = utc(2024, 11, 20, 12)
        report = await self.make_calculator(FakeDatabase(TEAMS), FakeFetcher({})).calculate(now=now)
        self.assertEqual(report.calculated_at, now)


if __name__ == "__main__":
    unittest.main()
