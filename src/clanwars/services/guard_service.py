"""Guard Management Service."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from clanwars.errors import InvalidStateError, NotFoundError
from clanwars.models import Guard, User
from clanwars.services.stats_service import StatsService


class GuardService:
    """Service for giving users guards and listing them."""

    def __init__(self, session: Session):
        self.session = session
        self._stats = StatsService(session)

    def grant_guard(
        self, user_id: int, strength: int, *, is_first: bool = False, name: str = "Guard"
    ) -> Guard:
        """Create a guard for ``user_id`` and refresh the owner's and clan's stats.

        A user can hold at most one starter guard.

        Raises:
            NotFoundError: If the user does not exist
            InvalidStateError: If strength is negative or a second starter is requested
        """
        try:
            if self.session.get(User, user_id) is None:
                raise NotFoundError(f"User {user_id} not found")
            if strength < 0:
                raise InvalidStateError("Guard strength cannot be negative")
            if is_first and self._has_first_guard(user_id):
                raise InvalidStateError("User already has a starter guard")

            guard = Guard(user_id=user_id, name=name, strength=strength, is_first=is_first)
            self.session.add(guard)
            self.session.flush()
            self._stats.recompute(user_ids=[user_id])
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return guard

    def list_guards(self, user_id: int) -> list[Guard]:
        """Guards owned by the user, starter first, then by id."""
        if self.session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        stmt = (
            select(Guard)
            .where(Guard.user_id == user_id)
            .order_by(Guard.is_first.desc(), Guard.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def _has_first_guard(self, user_id: int) -> bool:
        found = self.session.execute(
            select(Guard.id).where(Guard.user_id == user_id, Guard.is_first.is_(True)).limit(1)
        ).scalar_one_or_none()
        return found is not None
