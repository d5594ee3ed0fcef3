"""
Tests for season week bucketing.
"""

import os
import sys
import unittest
from datetime import date, datetime, time, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fantasy.utils.week_calendar import dates_of_week, week_of

SEASON_START = "2024-10-22"  # a Tuesday


class TestWeekOf(unittest.TestCase):
    def test_first_week_runs_from_anchor_monday_to_sunday(self):
        self.assertEqual(week_of("2024-10-21", SEASON_START), 1)
        self.assertEqual(week_of("2024-10-22", SEASON_START), 1)
        self.assertEqual(week_of("2024-10-27", SEASON_START), 1)
        self.assertEqual(week_of("2024-10-28", SEASON_START), 2)

    def test_mid_week_start_opens_week_two_on_next_monday(self):
        self.assertEqual(week_of("2025-10-26", "2025-10-21"), 1)
        self.assertEqual(week_of("2025-10-27", "2025-10-21"), 2)
        self.assertEqual(dates_of_week(2, "2025-10-21").start.date(), date(2025, 10, 27))

    def test_pre_season_dates_clamp_to_week_one(self):
        self.assertEqual(week_of("2024-10-15", SEASON_START), 1)
        self.assertEqual(week_of("2024-01-01", SEASON_START), 1)

    def test_monday_season_start_matches_plain_week_count(self):
        start = date(2024, 10, 21)
        for offset in (0, 6, 7, 13, 14, 100):
            day = start + timedelta(days=offset)
            self.assertEqual(week_of(day, start), offset // 7 + 1)

    def test_accepts_provider_strings(self):
        self.assertEqual(week_of("NOV 01, 2024", SEASON_START), 2)


class TestDatesOfWeek(unittest.TestCase):
    def test_week_bounds(self):
        week = dates_of_week(1, SEASON_START, tz='America/New_York')
        self.assertEqual(week.week_number, 1)
        self.assertEqual(week.start.date(), date(2024, 10, 21))
        self.assertEqual(week.end.date(), date(2024, 10, 27))
        self.assertEqual(week.start.time(), time(0, 0))
        self.assertEqual(week.end.time(), time(23, 59, 59, 999000))
        self.assertEqual(week.start.tzinfo.zone, 'America/New_York')
        self.assertEqual(week.start.weekday(), 0)
        self.assertEqual(week.end.weekday(), 6)

    def test_later_week(self):
        week = dates_of_week(3, SEASON_START)
        self.assertEqual(week.start.date(), date(2024, 11, 4))
        self.assertEqual(week.end.date(), date(2024, 11, 10))

    def test_rejects_week_below_one(self):
        with self.assertRaises(ValueError):
            dates_of_week(0, SEASON_START)

    def test_every_date_falls_inside_its_week(self):
        first = date(2024, 10, 21)
        for offset in range(0, 250):
            day = first + timedelta(days=offset)
            with self.subTest(day=day):
                week_number = week_of(day, SEASON_START)
                self.assertTrue(dates_of_week(week_number, SEASON_START).contains(day))

    def test_contains_handles_datetimes_and_strings(self):
        week = dates_of_week(2, SEASON_START)
        self.assertTrue(week.contains(datetime(2024, 11, 3, 23, 0)))
        self.assertTrue(week.contains("10/28/2024"))
        self.assertFalse(week.contains("2024-11-04"))


if __name__ == "__main__":
    unittest.main()
