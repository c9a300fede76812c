"""Combat Resolution Service.

This module resolves one user attacking a member of an enemy clan during an
active war: it checks eligibility, rolls the outcome against a clamped win
chance, moves money and guards from defender to attacker, records every theft
as a StolenItem of the war, refreshes the denormalized stats and starts the
attacker's cooldown. All of it commits as one transaction; event history is
published only after the commit.
"""

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from clanwars.domain import combat, cooldown
from clanwars.domain.enums import ClanWarStatus, EventHistoryType, StolenItemType
from clanwars.domain.game_settings import GameSettings
from clanwars.errors import CooldownActiveError, InvalidStateError, NotFoundError
from clanwars.models import ClanWar, Guard, StolenItem, User, utc_now
from clanwars.services.boost_service import BoostService
from clanwars.services.notification_service import (
    Dispatcher,
    EventHistoryRecorder,
    InlineDispatcher,
)
from clanwars.services.stats_service import StatsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TheftRecord:
    """Detached copy of a StolenItem created by an attack."""

    id: int
    type: StolenItemType
    value: str
    thief_id: int
    victim_id: int
    clan_war_id: int


@dataclass(frozen=True, slots=True)
class AttackOutcome:
    """Everything the caller needs to report an attack."""

    attacker_id: int
    defender_id: int
    clan_war_id: int
    win_chance: float
    roll: float
    is_win: bool
    stolen_money: int
    captured_guards: int
    stolen_items: tuple[TheftRecord, ...]
    attack_cooldown_end: datetime


class CombatService:
    """Service for resolving attacks between members of clans at war."""

    def __init__(
        self,
        session: Session,
        settings: GameSettings,
        *,
        event_history: EventHistoryRecorder | None = None,
        dispatcher: Dispatcher | None = None,
        rng: combat.RandomSource | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.settings = settings
        self._event_history = event_history
        self._dispatcher = dispatcher or InlineDispatcher()
        self._rng = rng or random.SystemRandom()
        self._clock = clock
        self._boosts = BoostService(session, clock)
        self._stats = StatsService(session)

    def attack(
        self, attacker_id: int, defender_id: int, enemy_clan_id: int | None = None
    ) -> AttackOutcome:
        """Resolve an attack and commit it.

        Args:
            attacker_id: The attacking user
            defender_id: The attacked user
            enemy_clan_id: Clan the caller believes the defender belongs to

        Returns:
            AttackOutcome describing chance, result, loot and the new cooldown end

        Raises:
            NotFoundError: If either user does not exist
            InvalidStateError: If clans, shield, war or guards forbid the attack
            CooldownActiveError: If the attacker's cooldown has not elapsed
        """
        try:
            outcome = self._resolve(attacker_id, defender_id, enemy_clan_id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self._publish(outcome)
        return outcome

    def cooldown_status(self, user_id: int) -> cooldown.CooldownCheck:
        """Current attack cooldown of a user, halving boosts included."""
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return cooldown.eligible(
            user.last_attack_time,
            self.settings.attack_cooldown,
            self._clock(),
            halving_active=self._boosts.has_cooldown_halving(user_id),
        )

    def _resolve(
        self, attacker_id: int, defender_id: int, enemy_clan_id: int | None
    ) -> AttackOutcome:
        now = self._clock()
        if attacker_id == defender_id:
            raise InvalidStateError("Cannot attack yourself")

        attacker = self._get_user(attacker_id)
        defender = self._get_user(defender_id)
        self._check_clans(attacker, defender, enemy_clan_id)

        if self._boosts.active_shield(defender.id) is not None:
            raise InvalidStateError("Cannot attack user with active shield")

        war = self._lock_active_war(attacker.clan_id, defender.clan_id)

        # Re-read both users under lock now that the war is held.
        attacker, defender = self._lock_users(attacker.id, defender.id)
        if not (war.involves(attacker.clan_id) and war.involves(defender.clan_id)):
            raise InvalidStateError("Clan membership changed during the attack")

        self._boosts.end_shield(attacker.id)

        check = cooldown.eligible(
            attacker.last_attack_time,
            self.settings.attack_cooldown,
            now,
            halving_active=self._boosts.has_cooldown_halving(attacker.id),
        )
        if not check.eligible:
            raise CooldownActiveError("Attack cooldown is still active", check.cooldown_end or now)

        attacker_totals = self._stats.guard_totals(attacker.id)
        defender_totals = self._stats.guard_totals(defender.id)
        if attacker_totals.count == 0 or defender_totals.count == 0:
            raise InvalidStateError("Attacker or defender has no guards")
        if defender_totals.capturable_count == 0:
            raise InvalidStateError("Defender has no capturable guards")

        chance = combat.win_chance(
            attacker_totals.strength,
            attacker_totals.count,
            defender_totals.strength,
            defender_totals.capturable_count,
        )
        roll_value = combat.roll(self._rng)
        won = combat.is_win(roll_value, chance)

        thefts: list[StolenItem] = []
        money = 0
        captured = 0
        if won:
            money = combat.stolen_money(defender.money, chance)
            if money > 0:
                defender.money -= money
                attacker.money += money
                thefts.append(
                    self._record_theft(war, attacker, defender, StolenItemType.MONEY, str(money))
                )

            wanted = combat.captured_guards(defender_totals.capturable_count, chance)
            if wanted > 0:
                for guard in self._capturable_guards(defender.id, wanted):
                    guard.user_id = attacker.id
                    thefts.append(
                        self._record_theft(
                            war, attacker, defender, StolenItemType.GUARD, str(guard.id)
                        )
                    )
                    captured += 1
                self.session.expire(attacker, ["guards"])
                self.session.expire(defender, ["guards"])

        self.session.flush()
        # Recompute on losses too so earlier drift gets corrected.
        self._stats.recompute(user_ids=[attacker.id, defender.id])

        attacker.last_attack_time = now
        self.session.flush()

        logger.debug(
            "attack %s -> %s in war %s: chance=%.1f roll=%.1f win=%s money=%d guards=%d",
            attacker.id,
            defender.id,
            war.id,
            chance,
            roll_value,
            won,
            money,
            captured,
        )

        return AttackOutcome(
            attacker_id=attacker.id,
            defender_id=defender.id,
            clan_war_id=war.id,
            win_chance=chance,
            roll=roll_value,
            is_win=won,
            stolen_money=money,
            captured_guards=captured,
            stolen_items=tuple(_detach(item) for item in thefts),
            attack_cooldown_end=now + check.duration,
        )

    def _get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def _check_clans(attacker: User, defender: User, enemy_clan_id: int | None) -> None:
        if attacker.clan_id is None or defender.clan_id is None:
            raise InvalidStateError("Attacker or defender is not in a clan")
        if attacker.clan_id == defender.clan_id:
            raise InvalidStateError("Cannot attack member of your own clan")
        if enemy_clan_id is not None and defender.clan_id != enemy_clan_id:
            raise InvalidStateError("Target user does not belong to the specified enemy clan")

    def _lock_active_war(self, clan_a: int | None, clan_b: int | None) -> ClanWar:
        """Find and row-lock the IN_PROGRESS war between two clans."""
        stmt = (
            select(ClanWar)
            .where(
                ClanWar.status == ClanWarStatus.IN_PROGRESS,
                or_(
                    (ClanWar.clan_1_id == clan_a) & (ClanWar.clan_2_id == clan_b),
                    (ClanWar.clan_1_id == clan_b) & (ClanWar.clan_2_id == clan_a),
                ),
            )
            .order_by(ClanWar.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        wars = self.session.execute(stmt).scalars().all()
        if not wars:
            raise InvalidStateError("No active war between clans")
        if len(wars) > 1:
            logger.warning(
                "clans %s and %s have %d wars in progress; using war %s",
                clan_a,
                clan_b,
                len(wars),
                wars[0].id,
            )
        return wars[0]

    def _lock_users(self, attacker_id: int, defender_id: int) -> tuple[User, User]:
        stmt = (
            select(User)
            .where(User.id.in_([attacker_id, defender_id]))
            .order_by(User.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        users = {user.id: user for user in self.session.execute(stmt).scalars()}
        if attacker_id not in users or defender_id not in users:
            raise NotFoundError("Attacker or defender not found")
        return users[attacker_id], users[defender_id]

    def _capturable_guards(self, defender_id: int, limit: int) -> list[Guard]:
        """The defender's non-starter guards, lowest ids first."""
        stmt = (
            select(Guard)
            .where(Guard.user_id == defender_id, Guard.is_first.is_(False))
            .order_by(Guard.id)
            .limit(limit)
            .with_for_update()
        )
        return list(self.session.execute(stmt).scalars().all())

    def _record_theft(
        self,
        war: ClanWar,
        thief: User,
        victim: User,
        item_type: StolenItemType,
        value: str,
    ) -> StolenItem:
        item = StolenItem(
            clan_war_id=war.id,
            thief_id=thief.id,
            victim_id=victim.id,
            thief_clan_id=thief.clan_id,
            victim_clan_id=victim.clan_id,
            type=item_type.value,
            value=value,
        )
        self.session.add(item)
        self.session.flush()
        return item

    def _publish(self, outcome: AttackOutcome) -> None:
        if self._event_history is None:
            return
        item_ids = [item.id for item in outcome.stolen_items]
        self._dispatcher.submit(
            self._event_history.record,
            outcome.attacker_id,
            EventHistoryType.ATTACK,
            item_ids,
            outcome.defender_id,
        )
        self._dispatcher.submit(
            self._event_history.record,
            outcome.defender_id,
            EventHistoryType.DEFENSE,
            item_ids,
            outcome.attacker_id,
        )


def _detach(item: StolenItem) -> TheftRecord:
    return TheftRecord(
        id=item.id,
        type=StolenItemType(item.type),
        value=item.value,
        thief_id=item.thief_id,
        victim_id=item.victim_id,
        clan_war_id=item.clan_war_id,
    )
