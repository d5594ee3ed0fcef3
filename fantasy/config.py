import os
from datetime import date, datetime
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ranking service configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///fantasy.db')

    # Service settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Season settings
    SEASON = os.getenv('SEASON', '2025-26')
    SEASON_START_DATE = os.getenv('SEASON_START_DATE', '2025-10-21')
    LEAGUE_TIMEZONE = os.getenv('LEAGUE_TIMEZONE', 'America/New_York')

    # Stats provider settings
    STATS_API_BASE_URL = os.getenv('STATS_API_BASE_URL', 'https://stats.nba.com/stats')
    STATS_REQUEST_TIMEOUT = float(os.getenv('STATS_REQUEST_TIMEOUT', 15))
    STATS_MAX_RETRIES = int(os.getenv('STATS_MAX_RETRIES', 3))
    STATS_RETRY_BACKOFF = float(os.getenv('STATS_RETRY_BACKOFF', 0.5))  # seconds, doubled per attempt
    STATS_MAX_CONCURRENCY = int(os.getenv('STATS_MAX_CONCURRENCY', 8))
    BALLDONTLIE_API_KEY = os.getenv('BALLDONTLIE_API_KEY')

    # Cache settings
    REDIS_URL = os.getenv('REDIS_URL')
    RANKING_CACHE_MAX_AGE_MINUTES = int(os.getenv('RANKING_CACHE_MAX_AGE_MINUTES', 30))
    PLAYER_CATALOG_CACHE_TTL = int(os.getenv('PLAYER_CATALOG_CACHE_TTL', 3600))  # 1 hour

    # Roster and market rules
    STARTING_BUDGET = 1_000_000.00
    MAX_STARTERS = 5
    MAX_BENCH = 4
    RESALE_COOLDOWN_DAYS = 7

    @classmethod
    def get_season_start(cls) -> date:
        """Parse the configured season start anchor (YYYY-MM-DD)"""
        try:
            return datetime.strptime(cls.SEASON_START_DATE, '%Y-%m-%d').date()
        except ValueError:
            raise ValueError("SEASON_START_DATE must use the YYYY-MM-DD format")

    @classmethod
    def max_roster_size(cls) -> int:
        return cls.MAX_STARTERS + cls.MAX_BENCH

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        cls.get_season_start()
        if cls.STATS_MAX_RETRIES < 1:
            raise ValueError("STATS_MAX_RETRIES must be at least 1")
        if cls.STATS_MAX_CONCURRENCY < 1:
            raise ValueError("STATS_MAX_CONCURRENCY must be at least 1")
        if cls.RANKING_CACHE_MAX_AGE_MINUTES < 0:
            raise ValueError("RANKING_CACHE_MAX_AGE_MINUTES cannot be negative")
