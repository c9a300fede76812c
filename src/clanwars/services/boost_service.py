"""Boost queries used by combat: shields and cooldown halving."""

from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from clanwars.domain.enums import BoostStatus, BoostType
from clanwars.models import UserBoost, utc_now


class BoostService:
    """Reads and ends a user's temporary effects within the caller's transaction."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = utc_now):
        self.session = session
        self._clock = clock

    def active_boosts(self, user_id: int, boost_type: BoostType | None = None) -> list[UserBoost]:
        """Boosts still marked ACTIVE, newest first (may include expired ones)."""
        stmt = select(UserBoost).where(
            UserBoost.user_id == user_id, UserBoost.status == BoostStatus.ACTIVE
        )
        if boost_type is not None:
            stmt = stmt.where(UserBoost.type == boost_type)
        stmt = stmt.order_by(UserBoost.created_at.desc(), UserBoost.id.desc())
        return list(self.session.execute(stmt).scalars().all())

    def active_shield(self, user_id: int) -> UserBoost | None:
        """Return the user's unexpired shield, completing any that have run out."""
        now = self._clock()
        current: UserBoost | None = None
        for boost in self.active_boosts(user_id, BoostType.SHIELD):
            if boost.is_effective(now):
                current = current or boost
            else:
                boost.status = BoostStatus.COMPLETED
        self.session.flush()
        return current

    def has_cooldown_halving(self, user_id: int) -> bool:
        """Whether an unexpired cooldown-halving boost is in effect."""
        now = self._clock()
        return any(
            boost.is_effective(now)
            for boost in self.active_boosts(user_id, BoostType.COOLDOWN_HALVING)
        )

    def end_shield(self, user_id: int) -> int:
        """Complete every ACTIVE shield of the user; returns how many were ended."""
        shields = self.active_boosts(user_id, BoostType.SHIELD)
        for boost in shields:
            boost.status = BoostStatus.COMPLETED
        self.session.flush()
        return len(shields)

    def grant(self, user_id: int, boost_type: BoostType, duration: timedelta) -> UserBoost:
        """Give the user a boost lasting ``duration`` from now."""
        boost = UserBoost(
            user_id=user_id,
            type=boost_type.value,
            status=BoostStatus.ACTIVE.value,
            end_time=self._clock() + duration,
        )
        self.session.add(boost)
        self.session.flush()
        return boost
