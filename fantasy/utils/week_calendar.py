"""
Week bucketing relative to the season start.

Weeks run Monday to Sunday. Week 1 is the week containing the season start,
anchored on its Monday, so every date on or after that Monday falls inside the
range returned for its own week number. Dates before the season clamp to week 1.

With a season that starts mid-week, week 1 is shorter than seven days of
play: for a Tuesday start the following Monday already opens week 2. Counting
whole weeks from the start day itself would instead keep that Monday in
week 1.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

import pytz

from fantasy.config import Config
from fantasy.constants import DateConstants
from fantasy.utils.date_normalizer import normalize_date


@dataclass(frozen=True)
class WeekRange:
    """Inclusive Monday-to-Sunday range for one week bucket."""
    week_number: int
    start: datetime
    end: datetime

    def contains(self, value: Any) -> bool:
        day = normalize_date(value).date()
        return self.start.date() <= day <= self.end.date()


def _anchor_monday(season_start: Any) -> date:
    start_day = normalize_date(season_start).date()
    return start_day - timedelta(days=start_day.weekday())


def week_of(value: Any, season_start: Any) -> int:
    """Map a date to its 1-based week number, clamping pre-season dates to week 1."""
    day = normalize_date(value).date()
    days_since_anchor = (day - _anchor_monday(season_start)).days
    week_number = days_since_anchor // DateConstants.DAYS_PER_WEEK + 1
    return max(1, week_number)


def dates_of_week(week_number: int, season_start: Any, tz: Optional[str] = None) -> WeekRange:
    """
    Get the start (Monday 00:00:00.000) and end (Sunday 23:59:59.999) of a week.

    Both bounds are localized in the league timezone.

    Raises:
        ValueError: If week_number is lower than 1
    """
    if week_number < 1:
        raise ValueError(f"week_number must be >= 1, got {week_number}")

    zone = pytz.timezone(tz or Config.LEAGUE_TIMEZONE)
    monday = _anchor_monday(season_start) + timedelta(
        days=(week_number - 1) * DateConstants.DAYS_PER_WEEK
    )
    sunday = monday + timedelta(days=DateConstants.DAYS_PER_WEEK - 1)

    start = zone.localize(datetime.combine(monday, time.min))
    end = zone.localize(datetime.combine(sunday, time(23, 59, 59, 999000)))
    return WeekRange(week_number=week_number, start=start, end=end)
