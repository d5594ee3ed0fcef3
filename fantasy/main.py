import argparse
import asyncio
import json
import logging
import sys
import traceback
from typing import Any, Dict, Optional

import aiohttp

from fantasy.config import Config
from fantasy.constants import CacheConstants
from fantasy.database.database import Database
from fantasy.operations.market_operations import MarketOperations
from fantasy.services.cache_backends import InMemoryCache, RedisCache
from fantasy.services.game_log_fetcher import GameLogFetcher, summarize_recent_games
from fantasy.services.player_catalog import (
    BalldontliePlayersProvider, NbaStatsPlayersProvider, PlayerCatalogService, StaticPlayersProvider
)
from fantasy.services.ranking_cache import RankingCacheService
from fantasy.services.ranking_calculator import RankingCalculator
from fantasy.utils.logger import setup_logger
from fantasy.utils.ranking_exceptions import RankingException
from fantasy.utils.redis_utils import RedisUtils
from fantasy.utils.time_utils import utc_now


class FantasyRankingApp:
    """Wires the store, the providers and the services together."""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.db: Optional[Database] = None
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.redis_client = None
        self.fetcher: Optional[GameLogFetcher] = None
        self.calculator: Optional[RankingCalculator] = None
        self.ranking_cache: Optional[RankingCacheService] = None
        self.catalog: Optional[PlayerCatalogService] = None
        self.market: Optional[MarketOperations] = None
        self.cache = None

    async def setup(self):
        """Open connections and build the services"""
        self.logger.info("Setting up fantasy ranking service...")

        self.db = Database(self.database_url)
        await self.db.initialize()

        self.http_session = aiohttp.ClientSession()

        self.redis_client = await RedisUtils.create_redis_client()
        if self.redis_client is not None:
            self.cache = RedisCache(self.redis_client)
        else:
            self.logger.info("Redis unavailable, using in-memory cache")
            self.cache = InMemoryCache()

        self.fetcher = GameLogFetcher(self.http_session)
        self.calculator = RankingCalculator(self.db, self.fetcher)
        self.ranking_cache = RankingCacheService(self.db.async_session, self.calculator)
        self.catalog = PlayerCatalogService(
            providers=[
                NbaStatsPlayersProvider(self.http_session),
                BalldontliePlayersProvider(self.http_session),
                StaticPlayersProvider(),
            ],
            cache=self.cache,
        )
        self.market = MarketOperations(self.db)

        self.logger.info("Fantasy ranking service ready")

    async def close(self):
        """Cleanup when shutting down"""
        if self.http_session:
            await self.http_session.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
        if self.db:
            await self.db.close()

    async def get_ranking(self, max_age_minutes: Optional[float] = None) -> Dict[str, Any]:
        rankings, report = await self.ranking_cache.get_leaderboard(max_age=max_age_minutes)
        result = {
            'success': True,
            'totalUsers': len(rankings),
            'cached': report is None,
            'rankings': [ranking.to_dict() for ranking in rankings],
        }
        if report is not None:
            result['diagnostics'] = report.diagnostics.to_dict()
        return result

    async def update_rankings(self) -> Dict[str, Any]:
        now = utc_now()
        report = await self.ranking_cache.calculate_and_cache(now=now)
        return {
            'success': True,
            'message': f"Rankings updated: {len(report.rankings)} teams",
            'totalTeams': len(report.rankings),
            'updatedAt': now.isoformat(),
            'diagnostics': report.diagnostics.to_dict(),
        }

    async def debug_rankings(self) -> Dict[str, Any]:
        return {'success': True, 'debug': await self.calculator.debug_snapshot()}

    async def get_players(self, use_cache: bool = True) -> Dict[str, Any]:
        catalog = await self.catalog.get_players(use_cache=use_cache)
        return {'success': True, 'season': Config.SEASON, **catalog.to_dict()}

    async def get_player_points(self, player_id: int, season: Optional[str] = None) -> Dict[str, Any]:
        entries = await self.fetcher.get_game_log(player_id, season)
        return {'success': True, **summarize_recent_games(entries)}

    async def get_player_stats(self, player_id: int, season: Optional[str] = None) -> Dict[str, Any]:
        """Season averages and totals of a player, cached for half an hour."""
        season = season or Config.SEASON
        key = CacheConstants.PLAYER_STATS_KEY_TEMPLATE.format(player_id=player_id, season=season)

        stats = None
        if self.cache is not None:
            try:
                stats = await self.cache.get(key)
            except Exception as e:
                self.logger.warning(f"Player stats cache read failed: {e}")

        if stats is None:
            stats = await self.fetcher.get_season_stats(player_id, season)
            if stats is None:
                return {
                    'success': False,
                    'error': f"No season stats found for player {player_id} in {season}",
                }
            if self.cache is not None:
                try:
                    await self.cache.set(key, stats, ttl=CacheConstants.PLAYER_STATS_CACHE_TTL)
                except Exception as e:
                    self.logger.warning(f"Player stats cache write failed: {e}")

        return {'success': True, **stats}

    async def release_cooldowns(self) -> Dict[str, Any]:
        released = await self.market.release_expired_cooldowns()
        return {'success': True, 'released': released}

    async def refresh_loop(self, interval_minutes: float, iterations: Optional[int] = None):
        """Recompute and cache the leaderboard every interval_minutes."""
        completed = 0
        while iterations is None or completed < iterations:
            try:
                result = await self.update_rankings()
                self.logger.info(result['message'])
            except RankingException as e:
                self.logger.error(f"Scheduled ranking update failed: {e}")
            completed += 1
            if iterations is None or completed < iterations:
                await asyncio.sleep(interval_minutes * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fantasy NBA ranking service.")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ranking = subparsers.add_parser("ranking", help="Print the leaderboard, served from cache when fresh")
    ranking.add_argument("--max-age", type=float, help="Cache freshness in minutes")

    subparsers.add_parser("update-rankings", help="Recompute and cache the leaderboard")

    players = subparsers.add_parser("players", help="List active NBA players")
    players.add_argument("--no-cache", action="store_true", help="Bypass the player catalog cache")

    points = subparsers.add_parser("player-points", help="Latest game and last 7 days points of a player")
    points.add_argument("player_id", type=int)
    points.add_argument("--season", help="Season label such as 2025-26")

    stats = subparsers.add_parser("player-stats", help="Season averages and totals of a player")
    stats.add_argument("player_id", type=int)
    stats.add_argument("--season", help="Season label such as 2025-26")

    subparsers.add_parser("debug-rankings", help="Show the ranking inputs and reconstructed ownership periods")

    loop = subparsers.add_parser("refresh-loop", help="Recompute the leaderboard periodically")
    loop.add_argument("--interval", type=float, default=Config.RANKING_CACHE_MAX_AGE_MINUTES,
                      help="Minutes between recomputations")

    subparsers.add_parser("release-cooldowns", help="Make players past their resale cooldown sellable")
    return parser


async def run_command(app: FantasyRankingApp, args: argparse.Namespace) -> Optional[Dict[str, Any]]:
    if args.command == "ranking":
        return await app.get_ranking(args.max_age)
    if args.command == "update-rankings":
        return await app.update_rankings()
    if args.command == "players":
        return await app.get_players(use_cache=not args.no_cache)
    if args.command == "player-points":
        return await app.get_player_points(args.player_id, args.season)
    if args.command == "player-stats":
        return await app.get_player_stats(args.player_id, args.season)
    if args.command == "debug-rankings":
        return await app.debug_rankings()
    if args.command == "release-cooldowns":
        return await app.release_cooldowns()
    if args.command == "refresh-loop":
        await app.refresh_loop(args.interval)
        return None
    raise ValueError(f"Unknown command: {args.command}")


async def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    try:
        Config.validate()
    except ValueError as e:
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        print(json.dumps({'success': False, 'error': f"Invalid configuration: {e}"}, indent=2))
        return 1

    app = FantasyRankingApp(args.database_url)
    exit_code = 0
    try:
        await app.setup()
        result = await run_command(app, args)
        if result is not None and result.get('success') is False:
            exit_code = 1
    except RankingException as e:
        logging.getLogger(__name__).error(str(e))
        result = {'success': False, 'error': e.user_message}
        exit_code = 1
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        result = {'success': False, 'error': "Internal error"}
        exit_code = 1
    finally:
        await app.close()

    if result is not None:
        print(json.dumps(result, indent=2, default=str))
    return exit_code


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
