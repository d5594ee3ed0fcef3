"""
Base service class for the fantasy ranking services.

Provides async database session management and the retry helper shared by
the database-backed services and the HTTP providers.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Any, Optional, Tuple, Type
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    backoff: float = 0.1,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: Optional[str] = None,
) -> Any:
    """
    Await func() until it succeeds, sleeping backoff * 2**attempt between tries.

    The last exception is re-raised once max_retries attempts have failed.
    """
    name = description or getattr(func, '__name__', 'operation')
    for attempt in range(max_retries):
        try:
            return await func()
        except retry_on as e:
            if attempt == max_retries - 1:
                raise
            logger.warning(f"Retry attempt {attempt + 1} for {name}: {e}")
            await asyncio.sleep(backoff * (2 ** attempt))  # Exponential backoff


class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(self, func: Callable, max_retries: int = 3) -> Any:
        """Execute a function with automatic retry on database errors."""
        return await retry_async(func, max_retries=max_retries, backoff=0.1)
