"""War Settlement Service.

Closes wars whose ``end_time`` has passed. Each war is settled in its own
transaction: the war row is locked and re-checked, a winner is picked from the
thefts recorded during the war, the thefts the verdict undoes are reversed and
the stats of every touched user (and their clans) are recomputed.

A war that is no longer IN_PROGRESS is skipped, so a repeated pass never
changes a closed war or reverses a theft twice.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from clanwars.domain.enums import ClanWarStatus, NotificationType, StolenItemType
from clanwars.domain.settlement import WarVerdict, decide_winner, should_reverse
from clanwars.errors import NotFoundError
from clanwars.models import Clan, ClanWar, Guard, StolenItem, User, utc_now
from clanwars.services.notification_service import Dispatcher, InlineDispatcher, Notifier
from clanwars.services.stats_service import StatsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettlementResult:
    """What settling one war did."""

    clan_war_id: int
    status: ClanWarStatus
    winner_clan_id: int
    loser_clan_id: int
    clan_1_thefts: int
    clan_2_thefts: int
    reversed_item_ids: tuple[int, ...]
    kept_item_ids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class _Announcement:
    title: str
    message: str
    recipients: list[int]
    details: dict[str, object]


class SettlementService:
    """Service for settling expired clan wars."""

    def __init__(
        self,
        session: Session,
        *,
        notifier: Notifier | None = None,
        dispatcher: Dispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self._notifier = notifier
        self._dispatcher = dispatcher or InlineDispatcher()
        self._clock = clock
        self._stats = StatsService(session)

    def expired_war_ids(self, now: datetime | None = None) -> list[int]:
        """Ids of IN_PROGRESS wars whose end_time is at or before ``now``."""
        now = now or self._clock()
        stmt = (
            select(ClanWar.id)
            .where(ClanWar.status == ClanWarStatus.IN_PROGRESS, ClanWar.end_time <= now)
            .order_by(ClanWar.end_time, ClanWar.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def settle_expired_wars(self) -> list[SettlementResult]:
        """Settle every expired war; a war that fails is logged and left for the next pass."""
        now = self._clock()
        war_ids = self.expired_war_ids(now)
        self.session.rollback()

        results: list[SettlementResult] = []
        for war_id in war_ids:
            try:
                result = self.settle_war(war_id, now=now)
            except Exception:
                logger.exception("failed to settle clan war %s", war_id)
                continue
            if result is not None:
                results.append(result)

        if results:
            logger.info("settled %d of %d expired clan wars", len(results), len(war_ids))
        return results

    def settle_war(self, war_id: int, *, now: datetime | None = None) -> SettlementResult | None:
        """Settle one war if it is still IN_PROGRESS and expired.

        Returns:
            SettlementResult, or None when there was nothing to settle

        Raises:
            NotFoundError: If the war does not exist
        """
        now = now or self._clock()
        try:
            settled = self._settle(war_id, now)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        if settled is None:
            return None
        result, announcement = settled
        if self._notifier is not None and announcement.recipients:
            self._dispatcher.submit(
                self._notifier.push,
                announcement.title,
                announcement.message,
                announcement.recipients,
                notification_type=NotificationType.WAR_FINISHED,
                details=announcement.details,
            )
        return result

    def _settle(
        self, war_id: int, now: datetime
    ) -> tuple[SettlementResult, _Announcement] | None:
        # Rows cached from an earlier war of the same pass may be stale.
        self.session.expire_all()
        war = self.session.execute(
            select(ClanWar)
            .where(ClanWar.id == war_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if war is None:
            raise NotFoundError(f"Clan war {war_id} not found")
        if war.status != ClanWarStatus.IN_PROGRESS or war.end_time > now:
            return None

        items = list(
            self.session.execute(
                select(StolenItem)
                .where(StolenItem.clan_war_id == war.id)
                .order_by(StolenItem.id)
                .with_for_update()
            ).scalars()
        )
        verdict = decide_winner(war.clan_1_id, war.clan_2_id, (i.thief_clan_id for i in items))
        war.status = verdict.status.value

        touched: set[int] = set()
        reversed_ids: list[int] = []
        kept_ids: list[int] = []
        for item in items:
            if should_reverse(item.thief_clan_id, item.victim_clan_id, verdict):
                touched |= self._reverse(item)
                reversed_ids.append(item.id)
            else:
                kept_ids.append(item.id)

        self.session.flush()
        if touched:
            self._stats.recompute(user_ids=sorted(touched))

        logger.info(
            "clan war %s settled: %s (thefts %d:%d, reversed %d of %d)",
            war.id,
            verdict.status.value,
            verdict.clan_1_thefts,
            verdict.clan_2_thefts,
            len(reversed_ids),
            len(items),
        )

        result = SettlementResult(
            clan_war_id=war.id,
            status=verdict.status,
            winner_clan_id=verdict.winner_clan_id,
            loser_clan_id=verdict.loser_clan_id,
            clan_1_thefts=verdict.clan_1_thefts,
            clan_2_thefts=verdict.clan_2_thefts,
            reversed_item_ids=tuple(reversed_ids),
            kept_item_ids=tuple(kept_ids),
        )
        return result, self._announcement(war, verdict)

    def _reverse(self, item: StolenItem) -> set[int]:
        """Hand a theft back to its victim; returns the ids of users whose holdings changed."""
        if item.type == StolenItemType.MONEY:
            thief = self.session.get(User, item.thief_id, with_for_update=True)
            victim = self.session.get(User, item.victim_id, with_for_update=True)
            if thief is None or victim is None:
                logger.warning("cannot reverse money theft %s: user missing", item.id)
                return set()
            thief.money -= item.amount
            victim.money += item.amount
            return {thief.id, victim.id}

        guard = self.session.get(Guard, item.guard_id, with_for_update=True)
        if guard is None:
            logger.warning("cannot reverse guard theft %s: guard %s is gone", item.id, item.value)
            return set()
        previous_owner = guard.user_id
        guard.user_id = item.victim_id
        return {previous_owner, item.victim_id}

    def _announcement(self, war: ClanWar, verdict: WarVerdict) -> _Announcement:
        winner = self.session.get(Clan, verdict.winner_clan_id)
        loser = self.session.get(Clan, verdict.loser_clan_id)
        recipients = list(
            self.session.execute(
                select(User.id)
                .where(User.clan_id.in_([war.clan_1_id, war.clan_2_id]))
                .order_by(User.id)
            ).scalars()
        )
        winner_name = winner.name if winner is not None else f"#{verdict.winner_clan_id}"
        loser_name = loser.name if loser is not None else f"#{verdict.loser_clan_id}"
        return _Announcement(
            title="Clan war finished",
            message=f"Clan {winner_name} won the war against clan {loser_name}",
            recipients=recipients,
            details={
                "clan_war_id": war.id,
                "status": verdict.status.value,
                "winner_clan_id": verdict.winner_clan_id,
                "loser_clan_id": verdict.loser_clan_id,
            },
        )
