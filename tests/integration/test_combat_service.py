"""Integration tests for the Combat Resolution Service.

Each test builds two clans at war in a temporary SQLite database and resolves
attacks with a fixed random source.
"""

from __future__ import annotations

import random
from datetime import timedelta

import pytest
from sqlalchemy import select

from clanwars.domain.enums import BoostStatus, BoostType, EventHistoryType, StolenItemType
from clanwars.domain.game_settings import GameSettings
from clanwars.errors import CooldownActiveError, InvalidStateError, NotFoundError
from clanwars.models import EventHistory, Guard, StolenItem, UserBoost, utc_now
from clanwars.services.combat_service import CombatService
from clanwars.services.notification_service import InlineDispatcher, SqlEventHistoryRecorder

SETTINGS = GameSettings()


@pytest.fixture
def battlefield(builder):
    """Attacker (100 strength, 2 guards) vs defender (50 strength, 1 capturable guard)."""
    attacker = builder.user("attacker", money=100, first_guard=50, guards=[50])
    ally = builder.user("ally", money=10, first_guard=20)
    defender = builder.user("defender", money=1000, first_guard=30, guards=[20])
    red = builder.clan("Red", attacker, [ally])
    blue = builder.clan("Blue", defender)
    war = builder.war(red, blue)
    return {
        "attacker": attacker,
        "ally": ally,
        "defender": defender,
        "red": red,
        "blue": blue,
        "war": war,
    }


class TestAttackOutcome:
    def test_forced_win_steals_money(self, session, battlefield, win_rng):
        """Capped chance, half-up money loot and no guard capture for a single guard."""
        attacker, defender = battlefield["attacker"], battlefield["defender"]
        service = CombatService(session, SETTINGS, rng=win_rng)

        before = utc_now()
        outcome = service.attack(attacker.id, defender.id, battlefield["blue"].id)

        assert outcome.win_chance == 75.0
        assert outcome.is_win
        assert outcome.stolen_money == 113  # round(1000 * 0.15 * 0.75)
        assert outcome.captured_guards == 0
        assert outcome.clan_war_id == battlefield["war"].id
        assert attacker.money == 213
        assert defender.money == 887
        assert outcome.attack_cooldown_end >= before + SETTINGS.attack_cooldown

        [item] = outcome.stolen_items
        assert item.type == StolenItemType.MONEY
        assert item.value == "113"
        stored = session.get(StolenItem, item.id)
        assert stored.thief_clan_id == battlefield["red"].id
        assert stored.victim_clan_id == battlefield["blue"].id

    def test_forced_loss_changes_nothing_but_cooldown(self, session, battlefield, lose_rng):
        attacker, defender = battlefield["attacker"], battlefield["defender"]
        service = CombatService(session, SETTINGS, rng=lose_rng)

        outcome = service.attack(attacker.id, defender.id)

        assert not outcome.is_win
        assert outcome.stolen_items == ()
        assert (attacker.money, defender.money) == (100, 1000)
        assert attacker.last_attack_time is not None
        assert session.execute(select(StolenItem)).scalars().all() == []

    def test_win_captures_lowest_capturable_guards(self, session, builder, win_rng):
        attacker = builder.user("raider", money=0, first_guard=500, guards=[500])
        defender = builder.user("hoarder", money=0, first_guard=5, guards=[1] * 25)
        red = builder.clan("Raiders", attacker)
        blue = builder.clan("Hoarders", defender)
        builder.war(red, blue)
        capturable = session.execute(
            select(Guard.id)
            .where(Guard.user_id == defender.id, Guard.is_first.is_(False))
            .order_by(Guard.id)
        ).scalars().all()

        outcome = CombatService(session, SETTINGS, rng=win_rng).attack(attacker.id, defender.id)

        # round(25 * 0.08 * 0.75) = round(1.5) = 2
        assert outcome.captured_guards == 2
        assert outcome.stolen_money == 0
        assert [int(i.value) for i in outcome.stolen_items] == capturable[:2]
        assert all(i.type == StolenItemType.GUARD for i in outcome.stolen_items)
        for guard_id in capturable[:2]:
            assert session.get(Guard, guard_id).user_id == attacker.id

        assert attacker.guards_count == 4
        assert attacker.strength == 1002
        assert defender.guards_count == 24
        assert defender.strength == 28
        assert red.strength == 1002
        assert blue.guards_count == 24

    def test_money_is_conserved_over_many_attacks(self, session, battlefield):
        attacker, defender = battlefield["attacker"], battlefield["defender"]
        service = CombatService(
            session, GameSettings(attack_cooldown=timedelta(0)), rng=random.Random(1234)
        )
        total = attacker.money + defender.money

        for _ in range(20):
            service.attack(attacker.id, defender.id)
            assert attacker.money + defender.money == total
            assert defender.money >= 0


class TestAttackPreconditions:
    def test_missing_user(self, session, battlefield, win_rng):
        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(NotFoundError):
            service.attack(battlefield["attacker"].id, 9999)

    def test_cannot_attack_own_clan(self, session, battlefield, win_rng):
        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(InvalidStateError, match="own clan"):
            service.attack(battlefield["attacker"].id, battlefield["ally"].id)

    def test_clanless_defender(self, session, builder, battlefield, win_rng):
        loner = builder.user("loner", money=50, guards=[5])
        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(InvalidStateError, match="not in a clan"):
            service.attack(battlefield["attacker"].id, loner.id)

    def test_wrong_enemy_clan(self, session, battlefield, win_rng):
        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(InvalidStateError, match="enemy clan"):
            service.attack(
                battlefield["attacker"].id, battlefield["defender"].id, battlefield["red"].id
            )

    def test_no_active_war(self, session, builder, battlefield, win_rng):
        outsider = builder.user("outsider", money=50, guards=[5])
        builder.clan("Green", outsider)
        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(InvalidStateError, match="No active war"):
            service.attack(battlefield["attacker"].id, outsider.id)

    def test_shielded_defender(self, session, builder, battlefield, win_rng):
        builder.boost(battlefield["defender"], BoostType.SHIELD)
        service = CombatService(session, SETTINGS, rng=win_rng)

        with pytest.raises(InvalidStateError, match="shield"):
            service.attack(battlefield["attacker"].id, battlefield["defender"].id)
        assert battlefield["defender"].money == 1000
        assert battlefield["attacker"].last_attack_time is None

    def test_expired_shield_is_completed_and_ignored(self, session, builder, battlefield, win_rng):
        shield = builder.boost(battlefield["defender"], BoostType.SHIELD, lasts=-timedelta(1))

        outcome = CombatService(session, SETTINGS, rng=win_rng).attack(
            battlefield["attacker"].id, battlefield["defender"].id
        )

        assert outcome.is_win
        assert session.get(UserBoost, shield.id).status == BoostStatus.COMPLETED

    def test_defender_without_capturable_guards(self, session, builder, battlefield, win_rng):
        starter_only = builder.user("recruit", money=500)
        starter_only.clan_id = battlefield["blue"].id
        session.commit()

        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(InvalidStateError, match="capturable"):
            service.attack(battlefield["attacker"].id, starter_only.id)
        assert starter_only.money == 500

    def test_attacker_without_guards(self, session, builder, battlefield, win_rng):
        unarmed = builder.user("unarmed", money=5, first_guard=None)
        unarmed.clan_id = battlefield["red"].id
        session.commit()

        service = CombatService(session, SETTINGS, rng=win_rng)
        with pytest.raises(InvalidStateError, match="no guards"):
            service.attack(unarmed.id, battlefield["defender"].id)


class TestAttackCooldown:
    def test_second_attack_is_on_cooldown(self, session, battlefield, lose_rng):
        service = CombatService(session, SETTINGS, rng=lose_rng)
        first = service.attack(battlefield["attacker"].id, battlefield["defender"].id)

        with pytest.raises(CooldownActiveError) as excinfo:
            service.attack(battlefield["attacker"].id, battlefield["defender"].id)

        assert excinfo.value.cooldown_end == first.attack_cooldown_end

    def test_cooldown_end_never_moves_back(self, session, battlefield, lose_rng):
        service = CombatService(session, GameSettings(attack_cooldown=timedelta(0)), rng=lose_rng)
        first = service.attack(battlefield["attacker"].id, battlefield["defender"].id)
        second = service.attack(battlefield["attacker"].id, battlefield["defender"].id)
        assert second.attack_cooldown_end >= first.attack_cooldown_end

    def test_halving_boost_allows_earlier_attack(self, session, builder, battlefield, lose_rng):
        attacker = battlefield["attacker"]
        attacker.last_attack_time = utc_now() - timedelta(minutes=10)
        session.commit()
        builder.boost(attacker, BoostType.COOLDOWN_HALVING)
        service = CombatService(session, SETTINGS, rng=lose_rng)

        before = utc_now()
        outcome = service.attack(attacker.id, battlefield["defender"].id)

        assert outcome.attack_cooldown_end - before < timedelta(minutes=8)
        assert service.cooldown_status(attacker.id).duration == timedelta(minutes=7, seconds=30)

    def test_attack_ends_attackers_shield(self, session, builder, battlefield, lose_rng):
        shield = builder.boost(battlefield["attacker"], BoostType.SHIELD)

        CombatService(session, SETTINGS, rng=lose_rng).attack(
            battlefield["attacker"].id, battlefield["defender"].id
        )

        assert session.get(UserBoost, shield.id).status == BoostStatus.COMPLETED

    def test_failed_attack_keeps_attackers_shield(self, session, builder, battlefield, lose_rng):
        attacker = battlefield["attacker"]
        attacker.last_attack_time = utc_now()
        session.commit()
        shield = builder.boost(attacker, BoostType.SHIELD)

        with pytest.raises(CooldownActiveError):
            CombatService(session, SETTINGS, rng=lose_rng).attack(
                attacker.id, battlefield["defender"].id
            )

        assert session.get(UserBoost, shield.id).status == BoostStatus.ACTIVE


class TestAttackSideEffects:
    def test_event_history_for_both_sides(self, session, session_factory, battlefield, win_rng):
        service = CombatService(
            session,
            SETTINGS,
            event_history=SqlEventHistoryRecorder(session_factory),
            dispatcher=InlineDispatcher(),
            rng=win_rng,
        )

        outcome = service.attack(battlefield["attacker"].id, battlefield["defender"].id)

        entries = session.execute(select(EventHistory).order_by(EventHistory.id)).scalars().all()
        assert [(e.user_id, e.type, e.opponent_id) for e in entries] == [
            (battlefield["attacker"].id, EventHistoryType.ATTACK, battlefield["defender"].id),
            (battlefield["defender"].id, EventHistoryType.DEFENSE, battlefield["attacker"].id),
        ]
        assert entries[0].stolen_item_ids == [item.id for item in outcome.stolen_items]

    def test_failing_recorder_does_not_undo_attack(self, session, battlefield, win_rng, caplog):
        class BrokenRecorder:
            def record(self, *args, **kwargs):
                raise RuntimeError("history store offline")

        service = CombatService(
            session, SETTINGS, event_history=BrokenRecorder(), rng=win_rng
        )

        outcome = service.attack(battlefield["attacker"].id, battlefield["defender"].id)

        assert outcome.is_win
        session.expire_all()
        assert session.get(StolenItem, outcome.stolen_items[0].id) is not None
        assert "history store offline" in caplog.text
