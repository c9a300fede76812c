"""Clan Membership Service.

Creating, joining, leaving and kicking all change which clan a user's strength
counts towards, so each operation recomputes the affected clans in the same
transaction.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from clanwars.domain import cooldown
from clanwars.domain.game_settings import GameSettings
from clanwars.errors import (
    ConflictError,
    CooldownActiveError,
    InvalidStateError,
    NotFoundError,
)
from clanwars.models import Clan, User, utc_now
from clanwars.services.stats_service import StatsService

logger = logging.getLogger(__name__)


class MembershipService:
    """Service for clan membership changes."""

    def __init__(
        self,
        session: Session,
        settings: GameSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.settings = settings
        self._clock = clock
        self._stats = StatsService(session)

    def create_clan(self, user_id: int, name: str, max_members: int = 50) -> Clan:
        """Found a clan led by ``user_id``, who becomes its first member.

        Raises:
            NotFoundError: If the user does not exist
            InvalidStateError: If the user is already in a clan
            ConflictError: If the name is taken
        """
        try:
            user = self._get_user(user_id)
            if user.clan_id is not None:
                raise InvalidStateError("User is already in a clan")
            taken = self.session.execute(
                select(Clan.id).where(Clan.name == name)
            ).scalar_one_or_none()
            if taken is not None:
                raise ConflictError(f"Clan name '{name}' is already taken")

            clan = Clan(name=name, leader_id=user.id, max_members=max_members)
            self.session.add(clan)
            self.session.flush()
            user.clan_id = clan.id
            self._stats.recompute(user_ids=[user.id])
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("user %s founded clan %s (%s)", user_id, clan.id, name)
        return clan

    def join_clan(self, user_id: int, clan_id: int) -> User:
        """Add a clanless user to a clan.

        Raises:
            NotFoundError: If the user or clan does not exist
            InvalidStateError: If the user is already in a clan
            CooldownActiveError: If the user left a clan too recently
            ConflictError: If the clan is full
        """
        try:
            user = self._get_user(user_id)
            if user.clan_id is not None:
                raise InvalidStateError("User is already in a clan")
            clan = self.session.get(Clan, clan_id, with_for_update=True)
            if clan is None:
                raise NotFoundError(f"Clan {clan_id} not found")

            now = self._clock()
            check = cooldown.eligible(user.clan_leave_time, self.settings.clan_join_cooldown, now)
            if not check.eligible:
                raise CooldownActiveError(
                    "Clan join cooldown is still active", check.cooldown_end or now
                )

            self._stats.recompute_clan(clan.id)
            if clan.members_count >= clan.max_members:
                raise ConflictError("Clan is full")

            user.clan_id = clan.id
            self._stats.recompute(user_ids=[user.id])
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return user

    def leave_clan(self, user_id: int) -> User:
        """Remove a member from their clan and start the join cooldown.

        Raises:
            NotFoundError: If the user does not exist
            InvalidStateError: If the user is clanless or leads the clan
        """
        try:
            user = self._get_user(user_id)
            if user.clan_id is None:
                raise InvalidStateError("User is not in a clan")
            clan = self.session.get(Clan, user.clan_id)
            if clan is not None and clan.leader_id == user.id:
                raise InvalidStateError("Clan leader cannot leave the clan")
            self._detach(user)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return user

    def kick_member(self, leader_id: int, member_id: int) -> User:
        """Remove ``member_id`` from the clan led by ``leader_id``.

        Raises:
            NotFoundError: If either user does not exist or the leader leads no clan
            InvalidStateError: If the member is the leader or belongs elsewhere
        """
        try:
            self._get_user(leader_id)
            clan = self.session.execute(
                select(Clan).where(Clan.leader_id == leader_id)
            ).scalar_one_or_none()
            if clan is None:
                raise NotFoundError("Clan not found or user is not a leader")
            if member_id == leader_id:
                raise InvalidStateError("Leader cannot kick themselves")
            member = self._get_user(member_id)
            if member.clan_id != clan.id:
                raise InvalidStateError("User is not a member of your clan")
            self._detach(member)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("clan %s kicked user %s", clan.id, member_id)
        return member

    def _detach(self, user: User) -> None:
        former_clan = user.clan_id
        user.clan_id = None
        user.clan_leave_time = self._clock()
        self.session.flush()
        self._stats.recompute(clan_ids=[former_clan])

    def _get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user
