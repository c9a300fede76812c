"""War Declaration Service.

Declares wars between clans and answers the read-side questions around them:
which clans can be attacked, which wars are running, the war history of a
clan and the members of an enemy clan.
"""

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from clanwars.domain import cooldown
from clanwars.domain.enums import ClanWarStatus, NotificationType
from clanwars.domain.game_settings import GameSettings
from clanwars.errors import (
    ConflictError,
    CooldownActiveError,
    InvalidStateError,
    NotFoundError,
)
from clanwars.models import Clan, ClanWar, User, utc_now
from clanwars.services.notification_service import Dispatcher, InlineDispatcher, Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnemyClan:
    """A clan currently at war with the user's clan, with that war."""

    clan: Clan
    war: ClanWar


@dataclass(frozen=True, slots=True)
class WarPage:
    wars: list[ClanWar]
    total: int
    page: int
    limit: int


def _involving(clan_id: int):
    return or_(ClanWar.clan_1_id == clan_id, ClanWar.clan_2_id == clan_id)


class WarService:
    """Service for declaring and listing clan wars."""

    def __init__(
        self,
        session: Session,
        settings: GameSettings,
        *,
        notifier: Notifier | None = None,
        dispatcher: Dispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.settings = settings
        self._notifier = notifier
        self._dispatcher = dispatcher or InlineDispatcher()
        self._clock = clock

    def declare_war(self, user_id: int, target_clan_id: int) -> ClanWar:
        """Start a war from the user's clan against ``target_clan_id``.

        Raises:
            NotFoundError: If the user leads no clan or the target does not exist
            InvalidStateError: If the target is the user's own clan
            CooldownActiveError: If the declaring clan's war cooldown has not elapsed
            ConflictError: If the target already fights the maximum number of wars
        """
        try:
            war, recipients, message = self._declare(user_id, target_clan_id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        if self._notifier is not None and recipients:
            self._dispatcher.submit(
                self._notifier.push,
                "Clan war declared",
                message,
                recipients,
                notification_type=NotificationType.WAR_DECLARED,
                details={
                    "clan_war_id": war.id,
                    "clan_1_id": war.clan_1_id,
                    "clan_2_id": war.clan_2_id,
                    "end_time": war.end_time.isoformat(),
                },
            )
        return war

    def _declare(self, user_id: int, target_clan_id: int) -> tuple[ClanWar, list[int], str]:
        now = self._clock()
        own = self.leader_clan(user_id)
        if own.id == target_clan_id:
            raise InvalidStateError("Cannot declare war on your own clan")

        clans = self._lock_clans([own.id, target_clan_id])
        if target_clan_id not in clans:
            raise NotFoundError(f"Clan {target_clan_id} not found")
        own, target = clans[own.id], clans[target_clan_id]

        self._check_war_cooldown(own.id)

        active = self.in_progress_count(target.id)
        if active >= self.settings.max_clan_wars_count:
            raise ConflictError("Target clan has reached maximum active wars")

        war = ClanWar(
            clan_1_id=own.id,
            clan_2_id=target.id,
            start_time=now,
            end_time=now + self.settings.clan_war_duration,
            status=ClanWarStatus.IN_PROGRESS.value,
        )
        self.session.add(war)
        self.session.flush()
        logger.info(
            "clan %s declared war %s on clan %s (ends %s)",
            own.id,
            war.id,
            target.id,
            war.end_time.isoformat(),
        )

        recipients = self._member_ids([own.id, target.id])
        return war, recipients, f"Clan {own.name} declared war on clan {target.name}"

    def leader_clan(self, user_id: int) -> Clan:
        """The clan led by ``user_id``.

        Raises:
            NotFoundError: If the user does not exist or leads no clan
        """
        if self.session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        clan = self.session.execute(
            select(Clan).where(Clan.leader_id == user_id)
        ).scalar_one_or_none()
        if clan is None:
            raise NotFoundError("Clan not found or user is not a leader")
        return clan

    def war_cooldown(self, clan_id: int) -> cooldown.CooldownCheck:
        """Cooldown since the end of the clan's latest war against anyone.

        A war still in progress counts with its scheduled ``end_time``.
        """
        last_end = self.session.execute(
            select(func.max(ClanWar.end_time)).where(_involving(clan_id))
        ).scalar_one_or_none()
        return cooldown.eligible(last_end, self.settings.clan_war_cooldown, self._clock())

    def _check_war_cooldown(self, clan_id: int) -> None:
        check = self.war_cooldown(clan_id)
        if not check.eligible:
            raise CooldownActiveError(
                "Clan war cooldown is still active", check.cooldown_end or self._clock()
            )

    def in_progress_count(self, clan_id: int) -> int:
        return self.session.execute(
            select(func.count(ClanWar.id)).where(
                _involving(clan_id), ClanWar.status == ClanWarStatus.IN_PROGRESS
            )
        ).scalar_one()

    def available_clans_for_war(self, user_id: int) -> list[Clan]:
        """Clans the user's clan could declare war on right now.

        Raises:
            NotFoundError: If the user leads no clan
            CooldownActiveError: If the user's clan is still on war cooldown
        """
        own = self.leader_clan(user_id)
        self._check_war_cooldown(own.id)

        counts: Counter[int] = Counter()
        rows = self.session.execute(
            select(ClanWar.clan_1_id, ClanWar.clan_2_id).where(
                ClanWar.status == ClanWarStatus.IN_PROGRESS
            )
        ).all()
        for clan_1_id, clan_2_id in rows:
            counts[clan_1_id] += 1
            counts[clan_2_id] += 1

        clans = self.session.execute(
            select(Clan).where(Clan.id != own.id).order_by(Clan.id)
        ).scalars()
        return [clan for clan in clans if counts[clan.id] < self.settings.max_clan_wars_count]

    def find_active_war(self, clan_a: int, clan_b: int) -> ClanWar | None:
        return self.session.execute(
            select(ClanWar)
            .where(
                ClanWar.status == ClanWarStatus.IN_PROGRESS,
                or_(
                    (ClanWar.clan_1_id == clan_a) & (ClanWar.clan_2_id == clan_b),
                    (ClanWar.clan_1_id == clan_b) & (ClanWar.clan_2_id == clan_a),
                ),
            )
            .order_by(ClanWar.id)
            .limit(1)
        ).scalar_one_or_none()

    def active_wars(self, clan_id: int) -> list[ClanWar]:
        """IN_PROGRESS wars of a clan, newest first."""
        self._get_clan(clan_id)
        stmt = (
            select(ClanWar)
            .where(_involving(clan_id), ClanWar.status == ClanWarStatus.IN_PROGRESS)
            .order_by(ClanWar.start_time.desc(), ClanWar.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def war_history(self, clan_id: int, page: int = 1, limit: int = 10) -> WarPage:
        """Every war of a clan, newest first, one page at a time."""
        self._get_clan(clan_id)
        page = max(page, 1)
        limit = max(limit, 1)
        total = self.session.execute(
            select(func.count(ClanWar.id)).where(_involving(clan_id))
        ).scalar_one()
        wars = self.session.execute(
            select(ClanWar)
            .where(_involving(clan_id))
            .order_by(ClanWar.start_time.desc(), ClanWar.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
        return WarPage(wars=list(wars), total=total, page=page, limit=limit)

    def enemy_clans(self, user_id: int) -> list[EnemyClan]:
        """Clans at war with the user's clan, each with the running war."""
        user = self._clan_member(user_id)
        enemies: list[EnemyClan] = []
        for war in self.active_wars(user.clan_id):
            enemy = self.session.get(Clan, war.opponent_of(user.clan_id))
            if enemy is not None:
                enemies.append(EnemyClan(clan=enemy, war=war))
        return enemies

    def enemy_clan_members(self, user_id: int, enemy_clan_id: int) -> list[User]:
        """Members of an enemy clan, strongest and richest first.

        Raises:
            InvalidStateError: If the clan is not at war with the user's clan
        """
        user = self._clan_member(user_id)
        if self.find_active_war(user.clan_id, enemy_clan_id) is None:
            raise InvalidStateError("Clan is not an enemy or war is not active")
        members = self.session.execute(
            select(User).where(User.clan_id == enemy_clan_id)
        ).scalars()
        return sorted(members, key=lambda m: (-(m.strength * 1000 + m.money), m.id))

    def _clan_member(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.clan_id is None:
            raise InvalidStateError("User is not in a clan")
        return user

    def _get_clan(self, clan_id: int) -> Clan:
        clan = self.session.get(Clan, clan_id)
        if clan is None:
            raise NotFoundError(f"Clan {clan_id} not found")
        return clan

    def _lock_clans(self, clan_ids: list[int]) -> dict[int, Clan]:
        # Lock in id order so concurrent declarations never deadlock.
        stmt = (
            select(Clan)
            .where(Clan.id.in_(clan_ids))
            .order_by(Clan.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {clan.id: clan for clan in self.session.execute(stmt).scalars()}

    def _member_ids(self, clan_ids: list[int]) -> list[int]:
        return list(
            self.session.execute(
                select(User.id).where(User.clan_id.in_(clan_ids)).order_by(User.id)
            ).scalars()
        )
