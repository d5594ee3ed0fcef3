"""
Game log and season stats fetcher for the stats.nba.com player endpoints.

Returns every game a player played in a season as GameLogEntry values sorted
by normalized date. Transient HTTP failures are retried with exponential
backoff; a player whose log still cannot be fetched raises GameLogFetchError,
which the ranking calculator turns into an empty log.
"""

import asyncio
import logging
import math
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp

from fantasy.config import Config
from fantasy.constants import StatsProviderConstants
from fantasy.data_models.ranking import GameLogEntry, Points
from fantasy.services.base import retry_async
from fantasy.utils.date_normalizer import normalize_date
from fantasy.utils.ranking_exceptions import GameLogFetchError
from fantasy.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def parse_points(value: Any) -> int:
    """Read a points cell the lenient way: leading integer, else 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def parse_game_log(payload: Dict[str, Any]) -> List[GameLogEntry]:
    """
    Convert a playergamelog response into game log entries.

    Uses the first result set only. A missing or empty resultSets yields an
    empty log; a result set without the date or points column is malformed.
    Rows that are not lists are skipped.

    Raises:
        ValueError: If the structure is not a playergamelog result set
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected game log payload type: {type(payload).__name__}")

    result_sets = payload.get('resultSets') or []
    if not isinstance(result_sets, list):
        raise ValueError(f"Unexpected resultSets type: {type(result_sets).__name__}")
    if not result_sets:
        return []

    game_logs = result_sets[0]
    if not isinstance(game_logs, dict):
        raise ValueError(f"Unexpected result set type: {type(game_logs).__name__}")
    headers = game_logs.get('headers') or []
    rows = game_logs.get('rowSet') or []
    if not isinstance(headers, list) or not isinstance(rows, list):
        raise ValueError("Unexpected game log structure: headers and rowSet must be lists")

    try:
        date_index = headers.index(StatsProviderConstants.GAME_DATE_COLUMN)
        points_index = headers.index(StatsProviderConstants.POINTS_COLUMN)
    except ValueError:
        raise ValueError(f"Unexpected game log structure, columns: {headers}")

    entries = []
    for row in rows:
        if not isinstance(row, (list, tuple)):
            logger.warning(f"Skipping game log row of type {type(row).__name__}")
            continue
        raw_date = row[date_index] if date_index < len(row) else None
        raw_points = row[points_index] if points_index < len(row) else None
        entries.append(GameLogEntry(
            date=normalize_date(raw_date),
            points=parse_points(raw_points),
            raw_date=raw_date,
        ))

    entries.sort(key=lambda entry: entry.date)
    return entries


def summarize_recent_games(entries: List[GameLogEntry], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Points of the latest game and of the last seven days.

    Returns:
        dict with dailyPoints, weeklyPoints, lastGameDate and totalGames
    """
    now = now or utc_now()
    cutoff = normalize_date(now - timedelta(days=7))

    latest = max(entries, key=lambda entry: entry.date) if entries else None
    weekly_points: Points = sum(entry.points for entry in entries if entry.date >= cutoff)

    return {
        'dailyPoints': latest.points if latest else 0,
        'weeklyPoints': weekly_points,
        'lastGameDate': latest.raw_date if latest else None,
        'totalGames': len(entries),
    }


_GAME_LOG_MARKERS = ('GAME_DATE', 'VS_TEAM', 'STAT')


def _number(value: Any) -> float:
    """Numeric cell as float; missing or unreadable cells count as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _find_season_result_set(result_sets: List[Any]) -> Optional[Dict[str, Any]]:
    """Pick the aggregated season row: GP, PTS and REB columns, no per-game columns."""
    candidates = [
        result_set for result_set in result_sets
        if isinstance(result_set, dict)
        and isinstance(result_set.get('headers'), list)
        and isinstance(result_set.get('rowSet'), list)
        and result_set['rowSet']
        and isinstance(result_set['rowSet'][0], (list, tuple))
    ]
    for result_set in candidates:
        headers = result_set['headers']
        if ('GP' in headers and 'PTS' in headers and 'REB' in headers
                and not any(marker in headers for marker in _GAME_LOG_MARKERS)):
            return result_set
    for result_set in candidates:
        headers = result_set['headers']
        if 'GP' in headers and 'PTS' in headers and 'GAME_DATE' not in headers:
            return result_set
    return None


def parse_season_stats(payload: Dict[str, Any], player_id: int, season: str) -> Optional[Dict[str, Any]]:
    """
    Convert a playerdashboardbygeneralsplits response into season averages and totals.

    Per-game values are rounded to one decimal, percentages are scaled to
    0-100 and totals are per-game values times games played.

    Returns:
        Stats dict, or None when the response has no season row
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected season stats payload type: {type(payload).__name__}")
    result_sets = payload.get('resultSets') or []
    if not isinstance(result_sets, list):
        raise ValueError(f"Unexpected resultSets type: {type(result_sets).__name__}")

    result_set = _find_season_result_set(result_sets)
    if result_set is None:
        return None

    headers = result_set['headers']
    row = result_set['rowSet'][0]

    def column(name: str) -> float:
        index = headers.index(name) if name in headers else -1
        return _number(row[index]) if 0 <= index < len(row) else 0.0

    values = {key: column(name) for key, name in StatsProviderConstants.SEASON_STATS_COLUMNS.items()}
    games_played = int(values['gamesPlayed'])

    return {
        'playerId': player_id,
        'season': season,
        'gamesPlayed': games_played,
        'pointsPerGame': round(values['pointsPerGame'], 1),
        'reboundsPerGame': round(values['reboundsPerGame'], 1),
        'assistsPerGame': round(values['assistsPerGame'], 1),
        'stealsPerGame': round(values['stealsPerGame'], 1),
        'blocksPerGame': round(values['blocksPerGame'], 1),
        'fieldGoalPercentage': round(values['fieldGoalPercentage'] * 100, 1),
        'threePointPercentage': round(values['threePointPercentage'] * 100, 1),
        'freeThrowPercentage': round(values['freeThrowPercentage'] * 100, 1),
        'minutesPerGame': round(values['minutesPerGame'], 1),
        'totalPoints': _round_half_up(values['pointsPerGame'] * games_played),
        'totalRebounds': _round_half_up(values['reboundsPerGame'] * games_played),
        'totalAssists': _round_half_up(values['assistsPerGame'] * games_played),
        'totalSteals': _round_half_up(values['stealsPerGame'] * games_played),
        'totalBlocks': _round_half_up(values['blocksPerGame'] * games_played),
    }


MALFORMED_PAYLOAD_ERRORS = (ValueError, TypeError, AttributeError, KeyError, IndexError)


class GameLogFetcher:
    """Fetches per-game scoring history and season stats for one player at a time."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.http_session = http_session
        self.base_url = (base_url or Config.STATS_API_BASE_URL).rstrip('/')
        self.max_retries = max_retries or Config.STATS_MAX_RETRIES
        self.backoff = Config.STATS_RETRY_BACKOFF if backoff is None else backoff
        self.timeout = aiohttp.ClientTimeout(total=timeout or Config.STATS_REQUEST_TIMEOUT)

    async def get_game_log(self, player_id: int, season: Optional[str] = None) -> List[GameLogEntry]:
        """
        Fetch a player's regular season game log.

        Args:
            player_id: NBA person id
            season: Season label such as '2025-26', defaults to Config.SEASON

        Returns:
            Entries sorted by normalized game date, possibly empty

        Raises:
            GameLogFetchError: If every attempt failed or the payload is malformed
        """
        season = season or Config.SEASON
        params = {
            'DateFrom': '',
            'DateTo': '',
            'LeagueID': StatsProviderConstants.LEAGUE_ID,
            'PlayerID': str(player_id),
            'Season': season,
            'SeasonType': StatsProviderConstants.SEASON_TYPE,
        }
        payload = await self._fetch_payload('playergamelog', params, player_id, 'Game log')

        try:
            entries = parse_game_log(payload)
        except MALFORMED_PAYLOAD_ERRORS as e:
            logger.error(f"Malformed game log for player {player_id}: {e}")
            raise GameLogFetchError(player_id, 1, str(e)) from e

        logger.debug(f"Fetched {len(entries)} games for player {player_id} ({season})")
        return entries

    async def get_season_stats(self, player_id: int, season: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Fetch a player's regular season averages and totals.

        Returns:
            Stats dict as built by parse_season_stats, or None when the player
            has no season row

        Raises:
            GameLogFetchError: If every attempt failed or the payload is malformed
        """
        season = season or Config.SEASON
        params = {
            'DateFrom': '',
            'DateTo': '',
            'GameSegment': '',
            'LastNGames': '0',
            'LeagueID': StatsProviderConstants.LEAGUE_ID,
            'Location': '',
            'MeasureType': 'Base',
            'Month': '0',
            'OpponentTeamID': '0',
            'Outcome': '',
            'PORound': '0',
            'PaceAdjust': 'N',
            'PerMode': 'PerGame',
            'Period': '0',
            'PlayerID': str(player_id),
            'PlusMinus': 'N',
            'Rank': 'N',
            'Season': season,
            'SeasonSegment': '',
            'SeasonType': StatsProviderConstants.SEASON_TYPE,
            'ShotClockRange': '',
            'VsConference': '',
            'VsDivision': '',
        }
        payload = await self._fetch_payload('playerdashboardbygeneralsplits', params, player_id, 'Season stats')

        try:
            stats = parse_season_stats(payload, player_id, season)
        except MALFORMED_PAYLOAD_ERRORS as e:
            logger.error(f"Malformed season stats for player {player_id}: {e}")
            raise GameLogFetchError(player_id, 1, str(e), resource='Season stats') from e

        if stats is None:
            logger.warning(f"No season stats for player {player_id} in {season}")
        return stats

    async def _fetch_payload(self, endpoint: str, params: Dict[str, str], player_id: int,
                             resource: str) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"

        async def attempt():
            return await self._request_json(url, params)

        try:
            return await retry_async(
                attempt,
                max_retries=self.max_retries,
                backoff=self.backoff,
                retry_on=RETRYABLE_ERRORS,
                description=f"{resource.lower()} of player {player_id}",
            )
        except RETRYABLE_ERRORS as e:
            logger.error(f"Giving up on {resource.lower()} of player {player_id}: {e}")
            raise GameLogFetchError(player_id, self.max_retries, str(e), resource=resource) from e
        except ValueError as e:
            logger.error(f"Undecodable {resource.lower()} response for player {player_id}: {e}")
            raise GameLogFetchError(player_id, 1, str(e), resource=resource) from e

    async def _request_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        async with self.http_session.get(
            url,
            params=params,
            headers=StatsProviderConstants.NBA_STATS_HEADERS,
            timeout=self.timeout,
        ) as response:
            response.raise_for_status()
            return await response.json(content_type=None)
