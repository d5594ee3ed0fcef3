"""
Tests for weekly points aggregation over an ownership period.
"""

import os
import sys
import unittest
from datetime import date, datetime, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fantasy.data_models.ranking import GameLogEntry
from fantasy.operations.weekly_points import aggregate_weekly_points
from fantasy.utils.date_normalizer import normalize_date

SEASON_START = date(2024, 10, 22)


def game(day, points):
    return GameLogEntry(date=normalize_date(day), points=points, raw_date=day)


class TestAggregateWeeklyPoints(unittest.TestCase):
    def test_games_before_purchase_do_not_count(self):
        log = [game("2024-10-24", 10), game("2024-11-01", 20)]
        weeks = aggregate_weekly_points(log, datetime(2024, 10, 25, tzinfo=timezone.utc), None, SEASON_START)

        self.assertEqual(len(weeks), 1)
        self.assertEqual(weeks[0].week_number, 2)
        self.assertEqual(weeks[0].points, 20)
        self.assertEqual(weeks[0].week_start.date(), date(2024, 10, 28))
        self.assertEqual(weeks[0].week_end.date(), date(2024, 11, 3))

    def test_purchase_day_counts_and_sale_day_does_not(self):
        log = [game("2024-11-05", 5), game("2024-11-08", 7), game("2024-11-10", 9)]
        weeks = aggregate_weekly_points(
            log,
            datetime(2024, 11, 5, 18, 30, tzinfo=timezone.utc),
            datetime(2024, 11, 10, 1, 0, tzinfo=timezone.utc),
            SEASON_START,
        )
        self.assertEqual([(w.week_number, w.points) for w in weeks], [(3, 12)])

    def test_points_are_bucketed_per_week_in_ascending_order(self):
        log = [
            game("2024-11-12", 30),
            game("2024-10-22", 11),
            game("2024-10-25", 14),
            game("2024-11-01", 20),
        ]
        weeks = aggregate_weekly_points(log, "2024-10-01", None, SEASON_START)
        self.assertEqual([(w.week_number, w.points) for w in weeks], [(1, 25), (2, 20), (4, 30)])

    def test_no_matching_games(self):
        log = [game("2024-10-24", 10)]
        self.assertEqual(aggregate_weekly_points(log, "2024-11-01", None, SEASON_START), [])
        self.assertEqual(aggregate_weekly_points([], "2024-11-01", None, SEASON_START), [])

    def test_unparsable_game_dates_never_count_for_a_real_period(self):
        log = [GameLogEntry(date=normalize_date("TBD"), points=40, raw_date="TBD"), game("2024-11-01", 20)]
        weeks = aggregate_weekly_points(log, "2024-10-25", None, SEASON_START)
        self.assertEqual(sum(w.points for w in weeks), 20)


if __name__ == "__main__":
    unittest.main()
