"""
Weekly points aggregation for a single ownership period.
"""

from typing import Any, Dict, Iterable, List, Optional

from fantasy.data_models.ranking import GameLogEntry, Points, WeeklyPoints
from fantasy.utils.date_normalizer import normalize_date
from fantasy.utils.week_calendar import dates_of_week, week_of


def aggregate_weekly_points(
    game_log: Iterable[GameLogEntry],
    purchase_date: Any,
    sale_date: Optional[Any],
    season_start: Any,
) -> List[WeeklyPoints]:
    """
    Sum the points of games played while a player was owned, per week.

    A game counts when its date is on or after the purchase date and, for a
    closed period, strictly before the sale date. Comparisons are made on
    normalized calendar days.

    Returns:
        One WeeklyPoints per week with at least one counted game, ascending by
        week number. Empty when no game falls inside the period.
    """
    start = normalize_date(purchase_date)
    end = normalize_date(sale_date) if sale_date is not None else None

    weeks: Dict[int, Points] = {}
    for game in game_log:
        game_date = normalize_date(game.date)
        if game_date < start:
            continue
        if end is not None and game_date >= end:
            continue

        week_number = week_of(game_date, season_start)
        weeks[week_number] = weeks.get(week_number, 0) + game.points

    result = []
    for week_number in sorted(weeks):
        week_range = dates_of_week(week_number, season_start)
        result.append(WeeklyPoints(
            week_number=week_number,
            week_start=week_range.start,
            week_end=week_range.end,
            points=weeks[week_number],
        ))
    return result
