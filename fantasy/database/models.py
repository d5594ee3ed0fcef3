import uuid
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class TransactionType(Enum):
    PURCHASE = "purchase"
    SALE = "sale"


class UserTeam(Base):
    __tablename__ = 'user_teams'

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, unique=True, index=True)
    team_name = Column(String(100), nullable=False)
    budget = Column(Float, nullable=False, default=1000000.00)

    # Metadata (naive UTC)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    players = relationship("PlayerOnTeam", back_populates="team", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UserTeam(user_id='{self.user_id}', name='{self.team_name}', budget={self.budget})>"


class PlayerOnTeam(Base):
    __tablename__ = 'players_on_team'

    id = Column(String(36), primary_key=True, default=_new_id)
    team_id = Column(String(36), ForeignKey('user_teams.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(Integer, nullable=False, index=True)  # NBA player id
    player_name = Column(String(200), nullable=False)

    # Roster slot
    is_starter = Column(Boolean, default=False)

    # Market state
    purchase_price = Column(Float, nullable=False)
    release_clause = Column(Float, nullable=True)
    purchased_at = Column(DateTime, default=func.now())
    purchased_from_user_id = Column(String(36), nullable=True)  # None for initial picks
    can_be_sold = Column(Boolean, default=True, index=True)  # False during the resale cooldown

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    team = relationship("UserTeam", back_populates="players")

    __table_args__ = (
        UniqueConstraint('team_id', 'player_id', name='uq_player_per_team'),
    )

    def __repr__(self):
        slot = 'starter' if self.is_starter else 'bench'
        return f"<PlayerOnTeam(player='{self.player_name}', team_id='{self.team_id}', {slot})>"


class Transaction(Base):
    __tablename__ = 'transactions'

    id = Column(String(36), primary_key=True, default=_new_id)
    buyer_team_id = Column(String(36), ForeignKey('user_teams.id', ondelete='CASCADE'), nullable=False, index=True)
    seller_team_id = Column(String(36), ForeignKey('user_teams.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(Integer, nullable=False)
    player_name = Column(String(200), nullable=False)
    transaction_price = Column(Float, nullable=False)
    release_clause_paid = Column(Float, nullable=True)
    transaction_type = Column(SQLEnum(TransactionType), nullable=False)
    created_at = Column(DateTime, default=func.now(), index=True)

    def __repr__(self):
        return (f"<Transaction(player='{self.player_name}', buyer='{self.buyer_team_id}', "
                f"seller='{self.seller_team_id}', type={self.transaction_type})>")


class TeamRankingCache(Base):
    __tablename__ = 'team_rankings_cache'

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False)
    team_id = Column(String(36), ForeignKey('user_teams.id', ondelete='CASCADE'), nullable=False)
    team_name = Column(String(100), nullable=False)
    total_points = Column(Float, nullable=False, default=0)
    weekly_breakdown = Column(Text, nullable=False, default='{}')  # JSON object keyed by week number
    calculated_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'team_id', name='uq_ranking_per_team'),
        Index('ix_team_rankings_cache_total_points', 'total_points'),
        Index('ix_team_rankings_cache_calculated_at', 'calculated_at'),
    )

    def __repr__(self):
        return f"<TeamRankingCache(team='{self.team_name}', points={self.total_points})>"
