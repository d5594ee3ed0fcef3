"""
Player catalog service.

Lists the active NBA players offered on the market. Providers are tried in
order and the first non-empty result is cached for
Config.PLAYER_CATALOG_CACHE_TTL seconds.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from fantasy.config import Config
from fantasy.constants import CacheConstants, StatsProviderConstants
from fantasy.data_models.players import CatalogPlayer, CatalogTeam, PlayerCatalog
from fantasy.services.cache_backends import CacheBackend
from fantasy.utils.ranking_exceptions import PlayerCatalogUnavailableError

logger = logging.getLogger(__name__)

EASTERN_CONFERENCE = {
    'ATL', 'BOS', 'BKN', 'CHA', 'CHI', 'CLE', 'DET', 'IND',
    'MIA', 'MIL', 'NYK', 'ORL', 'PHI', 'TOR', 'WAS',
}


class PlayersProvider:
    """One source of the active player list."""

    name = 'provider'

    async def fetch_players(self) -> List[CatalogPlayer]:
        raise NotImplementedError


class NbaStatsPlayersProvider(PlayersProvider):
    """stats.nba.com commonallplayers, keeping rostered players of the current season."""

    name = 'stats.nba.com'

    def __init__(self, http_session: aiohttp.ClientSession, season: Optional[str] = None,
                 base_url: Optional[str] = None):
        self.http_session = http_session
        self.season = season or Config.SEASON
        self.base_url = (base_url or Config.STATS_API_BASE_URL).rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=Config.STATS_REQUEST_TIMEOUT)

    async def fetch_players(self) -> List[CatalogPlayer]:
        payload = await self._request_json(
            f"{self.base_url}/commonallplayers",
            {
                'LeagueID': StatsProviderConstants.LEAGUE_ID,
                'Season': self.season,
                'IsOnlyCurrentSeason': '1',
            },
        )
        return self.parse_players(payload)

    @staticmethod
    def parse_players(payload: Dict[str, Any]) -> List[CatalogPlayer]:
        result_sets = payload.get('resultSets') or []
        if not result_sets:
            return []

        headers = result_sets[0].get('headers') or []
        rows = result_sets[0].get('rowSet') or []
        column = {name: index for index, name in enumerate(headers)}

        def cell(row, name, default=None):
            index = column.get(name)
            if index is None or index >= len(row):
                return default
            return row[index]

        players = []
        for row in rows:
            team_id = cell(row, 'TEAM_ID')
            # Only active players with a team assigned
            if cell(row, 'ROSTERSTATUS') != 1 or not team_id:
                continue

            name_parts = (cell(row, 'DISPLAY_FIRST_LAST') or '').strip().split(' ')
            first_name = name_parts[0]
            last_name = ' '.join(name_parts[1:])
            abbreviation = cell(row, 'TEAM_ABBREVIATION') or ''
            if not first_name or not last_name or not abbreviation:
                continue

            city = cell(row, 'TEAM_CITY') or ''
            team_name = cell(row, 'TEAM_NAME') or ''
            players.append(CatalogPlayer(
                id=cell(row, 'PERSON_ID', 0),
                first_name=first_name,
                last_name=last_name,
                position='',
                team=CatalogTeam(
                    id=team_id,
                    abbreviation=abbreviation,
                    city=city,
                    conference='East' if abbreviation in EASTERN_CONFERENCE else 'West',
                    full_name=f"{city} {team_name}".strip() or abbreviation,
                    name=team_name or abbreviation,
                ),
            ))
        return players

    async def _request_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        async with self.http_session.get(
            url, params=params, headers=StatsProviderConstants.NBA_STATS_HEADERS, timeout=self.timeout
        ) as response:
            response.raise_for_status()
            return await response.json(content_type=None)


class BalldontliePlayersProvider(PlayersProvider):
    """balldontlie.io players endpoint, walked with cursor pagination."""

    name = 'balldontlie.io'

    def __init__(self, http_session: aiohttp.ClientSession, api_key: Optional[str] = None,
                 base_url: Optional[str] = None, page_delay: float = 0.2):
        self.http_session = http_session
        self.api_key = api_key or Config.BALLDONTLIE_API_KEY
        self.base_url = (base_url or StatsProviderConstants.BALLDONTLIE_BASE_URL).rstrip('/')
        self.page_delay = page_delay
        self.timeout = aiohttp.ClientTimeout(total=Config.STATS_REQUEST_TIMEOUT)

    async def fetch_players(self) -> List[CatalogPlayer]:
        if not self.api_key:
            raise ValueError("BALLDONTLIE_API_KEY is required for the balldontlie provider")

        players = []
        cursor = None
        while True:
            params = {'per_page': StatsProviderConstants.BALLDONTLIE_PER_PAGE}
            if cursor is not None:
                params['cursor'] = cursor
            data = await self._get('/players/active', params)

            for item in data.get('data', []) or []:
                # Skip free agents and players without a listed position
                if not item.get('team') or not item.get('position'):
                    continue
                players.append(self._to_player(item))

            cursor = (data.get('meta') or {}).get('next_cursor')
            if cursor is None:
                break
            await asyncio.sleep(self.page_delay)
        return players

    @staticmethod
    def _to_player(item: Dict[str, Any]) -> CatalogPlayer:
        team = item['team']
        return CatalogPlayer(
            id=item['id'],
            first_name=item.get('first_name', ''),
            last_name=item.get('last_name', ''),
            position=item.get('position', ''),
            team=CatalogTeam(
                id=team['id'],
                abbreviation=team.get('abbreviation', ''),
                city=team.get('city', ''),
                conference=team.get('conference', ''),
                full_name=team.get('full_name', ''),
                name=team.get('name', ''),
                division=team.get('division', ''),
            ),
        )

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with self.http_session.get(
            f"{self.base_url}{path}",
            params=params,
            headers={'Authorization': self.api_key},
            timeout=self.timeout,
        ) as response:
            response.raise_for_status()
            return await response.json()


def _sample_team(id, abbreviation, city, name, conference, division) -> CatalogTeam:
    return CatalogTeam(id=id, abbreviation=abbreviation, city=city, conference=conference,
                       full_name=f"{city} {name}", name=name, division=division)


SAMPLE_PLAYERS = [
    CatalogPlayer(2544, 'LeBron', 'James', 'F',
                  _sample_team(1610612747, 'LAL', 'Los Angeles', 'Lakers', 'West', 'Pacific')),
    CatalogPlayer(201939, 'Stephen', 'Curry', 'G',
                  _sample_team(1610612744, 'GSW', 'Golden State', 'Warriors', 'West', 'Pacific')),
    CatalogPlayer(201142, 'Kevin', 'Durant', 'F',
                  _sample_team(1610612745, 'HOU', 'Houston', 'Rockets', 'West', 'Southwest')),
    CatalogPlayer(203507, 'Giannis', 'Antetokounmpo', 'F',
                  _sample_team(1610612749, 'MIL', 'Milwaukee', 'Bucks', 'East', 'Central')),
    CatalogPlayer(203999, 'Nikola', 'Jokic', 'C',
                  _sample_team(1610612743, 'DEN', 'Denver', 'Nuggets', 'West', 'Northwest')),
    CatalogPlayer(1628369, 'Jayson', 'Tatum', 'F',
                  _sample_team(1610612738, 'BOS', 'Boston', 'Celtics', 'East', 'Atlantic')),
    CatalogPlayer(203954, 'Joel', 'Embiid', 'C',
                  _sample_team(1610612755, 'PHI', 'Philadelphia', '76ers', 'East', 'Atlantic')),
    CatalogPlayer(1628983, 'Shai', 'Gilgeous-Alexander', 'G',
                  _sample_team(1610612760, 'OKC', 'Oklahoma City', 'Thunder', 'West', 'Northwest')),
    CatalogPlayer(1630162, 'Anthony', 'Edwards', 'G',
                  _sample_team(1610612750, 'MIN', 'Minnesota', 'Timberwolves', 'West', 'Northwest')),
    CatalogPlayer(1628378, 'Donovan', 'Mitchell', 'G',
                  _sample_team(1610612739, 'CLE', 'Cleveland', 'Cavaliers', 'East', 'Central')),
]


class StaticPlayersProvider(PlayersProvider):
    """Bundled sample list, the last resort when every remote source is down."""

    name = 'static sample'

    def __init__(self, players: Optional[Sequence[CatalogPlayer]] = None):
        self.players = list(SAMPLE_PLAYERS if players is None else players)

    async def fetch_players(self) -> List[CatalogPlayer]:
        return list(self.players)


class PlayerCatalogService:
    """Serves the active player list from the cache or the first working provider."""

    def __init__(self, providers: Sequence[PlayersProvider], cache: CacheBackend,
                 ttl: Optional[int] = None, season: Optional[str] = None):
        self.providers = list(providers)
        self.cache = cache
        self.ttl = ttl or Config.PLAYER_CATALOG_CACHE_TTL
        self.cache_key = CacheConstants.PLAYER_CATALOG_KEY_TEMPLATE.format(season=season or Config.SEASON)

    async def get_players(self, use_cache: bool = True) -> PlayerCatalog:
        """
        Get the active player list.

        Raises:
            PlayerCatalogUnavailableError: If no provider returned any player
        """
        if use_cache:
            cached = await self._read_cache()
            if cached is not None:
                return cached

        for provider in self.providers:
            try:
                logger.info(f"Fetching players from {provider.name}...")
                players = await provider.fetch_players()
            except Exception as e:
                logger.warning(f"Player provider {provider.name} failed: {e}")
                continue

            if not players:
                logger.warning(f"Player provider {provider.name} returned no players")
                continue

            catalog = PlayerCatalog(players=players, source=provider.name)
            logger.info(f"Loaded {catalog.total_count} players from {provider.name}")
            if use_cache:
                await self._write_cache(catalog)
            return catalog

        raise PlayerCatalogUnavailableError([provider.name for provider in self.providers])

    async def invalidate(self):
        await self.cache.delete(self.cache_key)

    async def _read_cache(self) -> Optional[PlayerCatalog]:
        try:
            data = await self.cache.get(self.cache_key)
        except Exception as e:
            logger.warning(f"Player catalog cache read failed: {e}")
            return None
        if not data:
            return None
        return PlayerCatalog.from_dict(data)

    async def _write_cache(self, catalog: PlayerCatalog):
        try:
            await self.cache.set(self.cache_key, catalog.to_dict(), ttl=self.ttl)
        except Exception as e:
            logger.warning(f"Player catalog cache write failed: {e}")
