from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from fantasy.config import Config
from fantasy.data_models.ranking import RosterRecord, TeamRecord, TransactionRecord
from fantasy.database.models import Base, UserTeam, PlayerOnTeam, Transaction, TransactionType
from fantasy.utils.logger import setup_logger


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        if self.async_session is None:
            raise RuntimeError("Database is not initialized; call initialize() first")
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure.

        Usage:
            async with db.transaction() as session:
                await market_ops.buy_player(..., session=session)

        The caller passes the yielded session to every participating
        operation. Exceptions must propagate out of the context for the
        rollback to occur.
        """
        if self.async_session is None:
            raise RuntimeError("Database is not initialized; call initialize() first")
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Ranking inputs
    async def load_teams(self) -> List[TeamRecord]:
        """Get every fantasy team"""
        async with self.get_session() as session:
            result = await session.execute(select(UserTeam).order_by(UserTeam.created_at))
            return [
                TeamRecord(team_id=team.id, user_id=team.user_id, team_name=team.team_name)
                for team in result.scalars().all()
            ]

    async def load_purchase_transactions(self) -> List[TransactionRecord]:
        """Get the purchase log, oldest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Transaction)
                .where(Transaction.transaction_type == TransactionType.PURCHASE)
                .order_by(Transaction.created_at.asc())
            )
            return [
                TransactionRecord(
                    buyer_team_id=row.buyer_team_id,
                    seller_team_id=row.seller_team_id,
                    player_id=row.player_id,
                    player_name=row.player_name,
                    created_at=row.created_at,
                    transaction_id=row.id,
                )
                for row in result.scalars().all()
            ]

    async def load_roster_rows(self) -> List[RosterRecord]:
        """Get the current roster snapshot of every team"""
        async with self.get_session() as session:
            result = await session.execute(select(PlayerOnTeam))
            return [
                RosterRecord(
                    team_id=row.team_id,
                    player_id=row.player_id,
                    player_name=row.player_name,
                    purchased_at=row.purchased_at,
                    created_at=row.created_at,
                )
                for row in result.scalars().all()
            ]

    # Team and roster lookups
    async def get_team_by_user_id(self, user_id: str, session: AsyncSession) -> Optional[UserTeam]:
        """Get a user's team"""
        result = await session.execute(select(UserTeam).where(UserTeam.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_team_by_id(self, team_id: str, session: AsyncSession) -> Optional[UserTeam]:
        result = await session.execute(select(UserTeam).where(UserTeam.id == team_id))
        return result.scalar_one_or_none()

    async def get_player_on_team(self, player_on_team_id: str, session: AsyncSession) -> Optional[PlayerOnTeam]:
        result = await session.execute(select(PlayerOnTeam).where(PlayerOnTeam.id == player_on_team_id))
        return result.scalar_one_or_none()

    async def get_team_players(self, team_id: str, session: AsyncSession) -> List[PlayerOnTeam]:
        """Get a team's roster, starters first"""
        result = await session.execute(
            select(PlayerOnTeam)
            .where(PlayerOnTeam.team_id == team_id)
            .order_by(PlayerOnTeam.is_starter.desc(), PlayerOnTeam.created_at)
        )
        return list(result.scalars().all())

    async def count_team_players(self, team_id: str, session: AsyncSession, is_starter: Optional[bool] = None) -> int:
        """Count a team's players, optionally only starters or only bench"""
        query = select(func.count(PlayerOnTeam.id)).where(PlayerOnTeam.team_id == team_id)
        if is_starter is not None:
            query = query.where(PlayerOnTeam.is_starter == is_starter)
        result = await session.execute(query)
        return result.scalar() or 0

    async def find_player_holder(self, player_id: int, session: AsyncSession) -> Optional[PlayerOnTeam]:
        """Get the roster row currently holding an NBA player, if any"""
        result = await session.execute(
            select(PlayerOnTeam).where(PlayerOnTeam.player_id == player_id).limit(1)
        )
        return result.scalar_one_or_none()
