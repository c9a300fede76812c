"""Stats Aggregation Service.

Recomputes the denormalized strength / guard / member counters of users and
clans from their source rows. Every call re-derives from the database inside
the caller's transaction; nothing is cached between calls.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from clanwars.errors import NotFoundError
from clanwars.models import Clan, Guard, User


@dataclass(frozen=True, slots=True)
class GuardTotals:
    """Aggregate over one user's guard rows."""

    strength: int
    count: int
    capturable_count: int


class StatsService:
    """Service keeping User and Clan aggregates equal to their source rows."""

    def __init__(self, session: Session):
        self.session = session

    def guard_totals(self, user_id: int) -> GuardTotals:
        """Sum strength and count guards owned by ``user_id``."""
        self.session.flush()
        strength, count, capturable = self.session.execute(
            select(
                func.coalesce(func.sum(Guard.strength), 0),
                func.count(Guard.id),
                func.coalesce(func.sum(case((Guard.is_first.is_(False), 1), else_=0)), 0),
            ).where(Guard.user_id == user_id)
        ).one()
        return GuardTotals(
            strength=int(strength), count=int(count), capturable_count=int(capturable)
        )

    def recompute_user(self, user_id: int) -> User:
        """Rewrite ``strength`` and ``guards_count`` of a user from its guards.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        totals = self.guard_totals(user_id)
        user.strength = totals.strength
        user.guards_count = totals.count
        self.session.flush()
        return user

    def recompute_clan(self, clan_id: int) -> Clan:
        """Rewrite a clan's aggregates from its current members' own fields.

        Raises:
            NotFoundError: If the clan does not exist
        """
        clan = self.session.get(Clan, clan_id)
        if clan is None:
            raise NotFoundError(f"Clan {clan_id} not found")
        self.session.flush()
        strength, guards_count, members_count = self.session.execute(
            select(
                func.coalesce(func.sum(User.strength), 0),
                func.coalesce(func.sum(User.guards_count), 0),
                func.count(User.id),
            ).where(User.clan_id == clan_id)
        ).one()
        clan.strength = int(strength)
        clan.guards_count = int(guards_count)
        clan.members_count = int(members_count)
        self.session.flush()
        return clan

    def recompute(
        self, *, user_ids: Iterable[int] = (), clan_ids: Iterable[int | None] = ()
    ) -> None:
        """Refresh the given users, then every clan they belong to plus ``clan_ids``.

        Users go first so clan sums see the refreshed member values. Duplicate ids
        are recomputed once.
        """
        affected_clans: set[int] = {cid for cid in clan_ids if cid is not None}
        for user_id in dict.fromkeys(user_ids):
            user = self.recompute_user(user_id)
            if user.clan_id is not None:
                affected_clans.add(user.clan_id)
        for clan_id in sorted(affected_clans):
            self.recompute_clan(clan_id)

    def recompute_all(self) -> int:
        """Rebuild every user and clan aggregate; returns the number of users touched.

        Used to repair drift, e.g. after manual edits to guard rows.
        """
        user_ids = self.session.execute(select(User.id).order_by(User.id)).scalars().all()
        for user_id in user_ids:
            self.recompute_user(user_id)
        clan_ids = self.session.execute(select(Clan.id).order_by(Clan.id)).scalars().all()
        for clan_id in clan_ids:
            self.recompute_clan(clan_id)
        return len(user_ids)
