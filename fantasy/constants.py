"""
Service-wide constants for the fantasy ranking engine.

This module contains the magic numbers and fixed values used throughout
the codebase to improve maintainability and clarity.
"""

from datetime import datetime

import pytz


class RosterConstants:
    """Constants related to roster composition."""

    # Team name used when a user gets a team created on demand
    DEFAULT_TEAM_NAME_TEMPLATE = "Team {prefix}"
    DEFAULT_TEAM_NAME_PREFIX_LENGTH = 8


class DateConstants:
    """Constants for date normalization and week bucketing."""

    # Returned for unparsable dates so callers always get an orderable value
    EPOCH_SENTINEL = datetime(1970, 1, 1, tzinfo=pytz.utc)

    DAYS_PER_WEEK = 7

    # Two timestamps closer than this are considered the same purchase
    DUPLICATE_PERIOD_TOLERANCE_SECONDS = 1


class CacheConstants:
    """Constants for caching behavior."""

    # Default TTL for cached data (seconds)
    DEFAULT_CACHE_TTL = 3600  # 1 hour

    # Maximum cache size (number of entries) for the in-memory backend
    DEFAULT_MAX_CACHE_SIZE = 500

    PLAYER_CATALOG_KEY_TEMPLATE = "players:nba:active:{season}"
    PLAYER_STATS_KEY_TEMPLATE = "players:nba:stats:{player_id}:{season}"
    PLAYER_STATS_CACHE_TTL = 1800  # 30 minutes


class StatsProviderConstants:
    """Constants for the external player statistics providers."""

    # stats.nba.com rejects requests that do not look like a browser
    NBA_STATS_HEADERS = {
        'Accept': 'application/json, text/plain, */*',
        'Accept-Language': 'en-US,en;q=0.9',
        'Referer': 'https://www.nba.com/',
        'Origin': 'https://www.nba.com',
        'User-Agent': (
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
            '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
        ),
    }

    GAME_DATE_COLUMN = 'GAME_DATE'
    POINTS_COLUMN = 'PTS'
    SEASON_TYPE = 'Regular Season'
    LEAGUE_ID = '00'

    # Season dashboard columns; per-game values when PerMode=PerGame
    SEASON_STATS_COLUMNS = {
        'gamesPlayed': 'GP',
        'pointsPerGame': 'PTS',
        'reboundsPerGame': 'REB',
        'assistsPerGame': 'AST',
        'stealsPerGame': 'STL',
        'blocksPerGame': 'BLK',
        'fieldGoalPercentage': 'FG_PCT',
        'threePointPercentage': 'FG3_PCT',
        'freeThrowPercentage': 'FT_PCT',
        'minutesPerGame': 'MIN',
    }

    BALLDONTLIE_BASE_URL = 'https://api.balldontlie.io/v1'
    BALLDONTLIE_PER_PAGE = 100
