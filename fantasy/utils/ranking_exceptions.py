"""
Custom exceptions for the ranking engine with user-friendly error messages.
"""

class RankingException(Exception):
    """Base exception for ranking-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class TeamListUnavailableError(RankingException):
    """Raised when the team list cannot be loaded, leaving nothing to rank."""
    def __init__(self, details: str = None):
        super().__init__(
            f"Team list could not be loaded: {details}",
            "Rankings are unavailable right now. Please try again later."
        )

class GameLogFetchError(RankingException):
    """Raised when a player's game log or season stats cannot be fetched after all retries."""
    def __init__(self, player_id: int, attempts: int, details: str = None, resource: str = "Game log"):
        super().__init__(
            f"{resource} fetch failed for player {player_id} after {attempts} attempts: {details}",
            "Player statistics are temporarily unavailable."
        )
        self.player_id = player_id
        self.attempts = attempts
        self.resource = resource

class PlayerCatalogUnavailableError(RankingException):
    """Raised when every player catalog provider failed."""
    def __init__(self, providers: list):
        super().__init__(
            f"No player catalog provider succeeded (tried: {', '.join(providers)})",
            "Could not load players from any available source. Check your connection and try again."
        )
        self.providers = providers

class CacheError(RankingException):
    """Raised when the ranking cache cannot be read or written."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Ranking cache error during {operation}: {details}",
            "Cached rankings are unavailable."
        )
