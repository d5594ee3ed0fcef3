"""
Market Operations Module

Business logic for building rosters and trading players between users.

Rules:
- A roster holds at most Config.MAX_STARTERS starters and Config.MAX_BENCH
  bench players
- Every purchase is paid from the team budget
- A player bought from another user cannot be resold for
  Config.RESALE_COOLDOWN_DAYS days
- A release clause fixes the minimum price another user must pay; setting it
  costs the clause amount, lowering or removing it refunds the difference

Every write runs inside Database.transaction() (or the session passed in),
so a trade either fully commits or leaves budgets and rosters untouched.
A completed trade appends a purchase row to the transaction log, which is
what the ranking engine later replays.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fantasy.config import Config
from fantasy.constants import RosterConstants
from fantasy.database.models import PlayerOnTeam, Transaction, TransactionType, UserTeam
from fantasy.utils.logger import setup_logger
from fantasy.utils.time_utils import ensure_utc, to_naive_utc, utc_now

logger = setup_logger(__name__)


class MarketOperationError(Exception):
    """Base exception for market operation errors"""
    pass


class MarketValidationError(MarketOperationError):
    """Raised when request data is invalid"""
    pass


class TeamNotFoundError(MarketOperationError):
    """Raised when a team cannot be found"""
    pass


class PlayerNotFoundError(MarketOperationError):
    """Raised when a roster row cannot be found or is not on the expected team"""
    pass


class InsufficientBudgetError(MarketOperationError):
    """Raised when a team cannot afford an operation"""
    pass


class RosterFullError(MarketOperationError):
    """Raised when a team already holds the maximum number of players"""
    pass


class RosterSlotError(MarketOperationError):
    """Raised when a starter or bench slot limit would be exceeded"""
    pass


class CooldownActiveError(MarketOperationError):
    """Raised when a recently bought player is offered for resale"""
    pass


class ReleaseClauseError(MarketOperationError):
    """Raised when an offer does not cover the player's release clause"""
    pass


def can_player_be_sold(player: PlayerOnTeam, now: Optional[datetime] = None) -> bool:
    """
    Whether a roster row may be bought by another user at `now`.

    Initial picks and rows already flagged sellable are always available;
    bought players become available once the resale cooldown has elapsed.
    """
    if player.can_be_sold:
        return True
    if player.purchased_at is None or player.purchased_from_user_id is None:
        return True
    elapsed = ensure_utc(now or utc_now()) - ensure_utc(player.purchased_at)
    return elapsed >= timedelta(days=Config.RESALE_COOLDOWN_DAYS)


class MarketOperations:
    """
    Roster and trading workflows for fantasy teams.
    """

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise opens a transaction that commits when the block succeeds.
        """
        if session:
            # The caller owns the transaction
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    async def get_or_create_team(
        self,
        user_id: str,
        team_name: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> UserTeam:
        """
        Get a user's team, creating it with the starting budget on first use.

        Raises:
            MarketValidationError: If user_id is empty
        """
        if not user_id:
            raise MarketValidationError("user_id is required")

        async with self._get_session_context(session) as s:
            team = await self.db.get_team_by_user_id(user_id, s)
            if team:
                return team

            name = team_name or RosterConstants.DEFAULT_TEAM_NAME_TEMPLATE.format(
                prefix=user_id[:RosterConstants.DEFAULT_TEAM_NAME_PREFIX_LENGTH]
            )
            team = UserTeam(user_id=user_id, team_name=name, budget=Config.STARTING_BUDGET)
            s.add(team)
            await s.flush()
            self.logger.info(f"Created team '{name}' for user {user_id}")
            return team

    async def get_roster(self, user_id: str, session: Optional[AsyncSession] = None) -> List[PlayerOnTeam]:
        """Get a user's players, starters first"""
        async with self._get_session_context(session) as s:
            team = await self._require_team(user_id, s)
            return await self.db.get_team_players(team.id, s)

    async def get_market_players(self, user_id: str, now: Optional[datetime] = None,
                                 session: Optional[AsyncSession] = None) -> List[PlayerOnTeam]:
        """Players of other teams that can be bought right now"""
        async with self._get_session_context(session) as s:
            team = await self.db.get_team_by_user_id(user_id, s)
            query = select(PlayerOnTeam)
            if team:
                query = query.where(PlayerOnTeam.team_id != team.id)
            result = await s.execute(query)
            return [row for row in result.scalars().all() if can_player_be_sold(row, now)]

    async def add_initial_player(
        self,
        user_id: str,
        player_id: int,
        player_name: str,
        price: float,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> PlayerOnTeam:
        """
        Sign a free NBA player onto the user's team.

        The player takes a starter slot while fewer than Config.MAX_STARTERS
        starters exist, otherwise a bench slot. Initial picks are immediately
        sellable and are not written to the transaction log.

        Raises:
            MarketValidationError: If the player data or price is invalid
            InsufficientBudgetError: If the budget does not cover the price
            RosterFullError: If the roster is full or the player is taken
        """
        if not player_id or not player_name or price is None or price < 0:
            raise MarketValidationError("player_id, player_name and a non-negative price are required")

        async with self._get_session_context(session) as s:
            team = await self.get_or_create_team(user_id, session=s)
            if team.budget < price:
                raise InsufficientBudgetError(
                    f"Budget {team.budget:,.2f} does not cover price {price:,.2f}"
                )

            roster = await self.db.get_team_players(team.id, s)
            if len(roster) >= Config.max_roster_size():
                raise RosterFullError(f"Team already has the maximum of {Config.max_roster_size()} players")
            if any(row.player_id == player_id for row in roster):
                raise RosterFullError(f"{player_name} is already on your team")

            holder = await self.db.find_player_holder(player_id, s)
            if holder is not None:
                raise RosterFullError(f"{player_name} already belongs to another team")

            starters = sum(1 for row in roster if row.is_starter)
            player = PlayerOnTeam(
                team_id=team.id,
                player_id=player_id,
                player_name=player_name,
                is_starter=starters < Config.MAX_STARTERS,
                purchase_price=price,
                purchased_at=to_naive_utc(now or utc_now()),
                purchased_from_user_id=None,
                can_be_sold=True,
            )
            s.add(player)
            team.budget -= price
            await s.flush()

            self.logger.info(
                f"User {user_id} signed {player_name} ({player_id}) for {price:,.2f} "
                f"as {'starter' if player.is_starter else 'bench'}"
            )
            return player

    async def buy_player(
        self,
        user_id: str,
        player_on_team_id: str,
        price: float,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> PlayerOnTeam:
        """
        Buy a player from another user's team.

        Moves the roster row to the buyer, transfers the price between budgets,
        clears the release clause, starts the resale cooldown and records a
        purchase transaction at `now`.

        Raises:
            MarketValidationError: If the price is not positive or the buyer owns the player
            PlayerNotFoundError: If the roster row does not exist
            InsufficientBudgetError: If the buyer cannot afford the price
            RosterFullError: If the buyer's roster is full
            CooldownActiveError: If the player was bought less than the cooldown ago
            ReleaseClauseError: If the price is below the release clause
        """
        if price is None or price <= 0:
            raise MarketValidationError("A positive price is required")
        now = ensure_utc(now or utc_now())

        async with self._get_session_context(session) as s:
            buyer = await self.get_or_create_team(user_id, session=s)

            player = await self.db.get_player_on_team(player_on_team_id, s)
            if player is None:
                raise PlayerNotFoundError(f"Player {player_on_team_id} not found")

            seller = await self.db.get_team_by_id(player.team_id, s)
            if seller is None:
                raise TeamNotFoundError(f"Team {player.team_id} of player {player.player_name} not found")
            if seller.user_id == user_id:
                raise MarketValidationError("You cannot buy your own player")

            if buyer.budget < price:
                raise InsufficientBudgetError(
                    f"Budget {buyer.budget:,.2f} does not cover price {price:,.2f}"
                )

            roster = await self.db.get_team_players(buyer.id, s)
            if len(roster) >= Config.max_roster_size():
                raise RosterFullError(f"Team already has the maximum of {Config.max_roster_size()} players")

            if not can_player_be_sold(player, now):
                available_at = ensure_utc(player.purchased_at) + timedelta(days=Config.RESALE_COOLDOWN_DAYS)
                raise CooldownActiveError(
                    f"{player.player_name} cannot be sold until {available_at.isoformat()}"
                )

            clause = player.release_clause
            if clause and price < clause:
                raise ReleaseClauseError(
                    f"Offer {price:,.2f} is below the release clause of {clause:,.2f}"
                )

            starters = sum(1 for row in roster if row.is_starter)
            buyer.budget -= price
            seller.budget += price

            player.team_id = buyer.id
            player.purchase_price = price
            player.release_clause = None
            player.purchased_from_user_id = seller.user_id
            player.purchased_at = to_naive_utc(now)
            player.can_be_sold = False
            player.is_starter = starters < Config.MAX_STARTERS

            s.add(Transaction(
                buyer_team_id=buyer.id,
                seller_team_id=seller.id,
                player_id=player.player_id,
                player_name=player.player_name,
                transaction_price=price,
                release_clause_paid=clause or None,
                transaction_type=TransactionType.PURCHASE,
                created_at=to_naive_utc(now),
            ))
            await s.flush()

            self.logger.info(
                f"User {user_id} bought {player.player_name} from user {seller.user_id} for {price:,.2f}"
            )
            return player

    async def move_player(
        self,
        user_id: str,
        player_on_team_id: str,
        is_starter: bool,
        session: Optional[AsyncSession] = None
    ) -> PlayerOnTeam:
        """
        Move one of the user's players between the starting five and the bench.

        Raises:
            PlayerNotFoundError: If the player is not on the user's team
            RosterSlotError: If the target slot group is full
        """
        async with self._get_session_context(session) as s:
            team = await self._require_team(user_id, s)
            player = await self._require_own_player(team, player_on_team_id, s)

            if player.is_starter == is_starter:
                return player

            others = await self.db.count_team_players(team.id, s, is_starter=is_starter)
            limit = Config.MAX_STARTERS if is_starter else Config.MAX_BENCH
            if others >= limit:
                slot = 'starters' if is_starter else 'bench players'
                raise RosterSlotError(f"Team already has {limit} {slot}")

            player.is_starter = is_starter
            await s.flush()
            self.logger.debug(f"Moved {player.player_name} to {'starters' if is_starter else 'bench'}")
            return player

    async def swap_players(
        self,
        user_id: str,
        first_id: str,
        second_id: str,
        session: Optional[AsyncSession] = None
    ) -> List[PlayerOnTeam]:
        """
        Exchange the slots of a starter and a bench player of the same team.

        Raises:
            PlayerNotFoundError: If either player is not on the user's team
            RosterSlotError: If both players are in the same slot group
        """
        async with self._get_session_context(session) as s:
            team = await self._require_team(user_id, s)
            first = await self._require_own_player(team, first_id, s)
            second = await self._require_own_player(team, second_id, s)

            if first.is_starter == second.is_starter:
                raise RosterSlotError("Both players are in the same group; use move_player instead")

            first.is_starter, second.is_starter = second.is_starter, first.is_starter
            await s.flush()
            self.logger.debug(f"Swapped {first.player_name} and {second.player_name}")
            return [first, second]

    async def set_release_clause(
        self,
        user_id: str,
        player_on_team_id: str,
        clause: float,
        session: Optional[AsyncSession] = None
    ) -> Dict[str, Any]:
        """
        Set, change or remove (clause == 0) a player's release clause.

        The difference to the current clause is paid from, or refunded to,
        the team budget.

        Returns:
            dict with new_budget and clause_difference

        Raises:
            MarketValidationError: If the clause is negative
            PlayerNotFoundError: If the player is not on the user's team
            InsufficientBudgetError: If the budget does not cover a raise
        """
        if clause is None or clause < 0:
            raise MarketValidationError("Release clause cannot be negative")

        async with self._get_session_context(session) as s:
            team = await self._require_team(user_id, s)
            player = await self._require_own_player(team, player_on_team_id, s)

            current = player.release_clause or 0
            difference = clause - current
            if difference > 0 and team.budget < difference:
                raise InsufficientBudgetError(
                    f"Setting the clause costs {difference:,.2f} but the budget is {team.budget:,.2f}"
                )

            team.budget -= difference
            player.release_clause = clause or None
            await s.flush()

            self.logger.info(
                f"Release clause of {player.player_name} set to {clause:,.2f} "
                f"(budget change {-difference:,.2f})"
            )
            return {'new_budget': team.budget, 'clause_difference': difference}

    async def release_expired_cooldowns(
        self,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> int:
        """Make players sellable again once their cooldown has passed. Returns the rows changed."""
        cutoff = to_naive_utc(ensure_utc(now or utc_now()) - timedelta(days=Config.RESALE_COOLDOWN_DAYS))
        async with self._get_session_context(session) as s:
            result = await s.execute(
                update(PlayerOnTeam)
                .where(PlayerOnTeam.can_be_sold == False)  # noqa: E712
                .where(PlayerOnTeam.purchased_at <= cutoff)
                .values(can_be_sold=True)
            )
            released = result.rowcount or 0
        if released:
            self.logger.info(f"Released resale cooldown of {released} players")
        return released

    async def _require_team(self, user_id: str, session: AsyncSession) -> UserTeam:
        team = await self.db.get_team_by_user_id(user_id, session)
        if team is None:
            raise TeamNotFoundError(f"User {user_id} has no team")
        return team

    async def _require_own_player(self, team: UserTeam, player_on_team_id: str,
                                  session: AsyncSession) -> PlayerOnTeam:
        player = await self.db.get_player_on_team(player_on_team_id, session)
        if player is None or player.team_id != team.id:
            raise PlayerNotFoundError(f"Player {player_on_team_id} is not on team {team.team_name}")
        return player
