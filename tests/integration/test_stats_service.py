"""Integration tests for aggregate recomputation and boosts."""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import update

from clanwars.domain.enums import BoostStatus, BoostType
from clanwars.models import Clan, Guard, User
from clanwars.services.boost_service import BoostService
from clanwars.services.stats_service import StatsService


def test_guard_totals_split_capturable(session, builder):
    user = builder.user("owner", first_guard=10, guards=[4, 6])

    totals = StatsService(session).guard_totals(user.id)

    assert (totals.strength, totals.count, totals.capturable_count) == (20, 3, 2)


def test_recompute_is_idempotent(session, builder):
    leader = builder.user("leader", first_guard=10, guards=[5])
    member = builder.user("member", first_guard=3)
    clan = builder.clan("Wolves", leader, [member])
    stats = StatsService(session)

    stats.recompute(user_ids=[leader.id, member.id, leader.id])
    first = (clan.strength, clan.guards_count, clan.members_count)
    stats.recompute(user_ids=[leader.id, member.id])

    assert first == (18, 3, 2)
    assert (clan.strength, clan.guards_count, clan.members_count) == first


def test_recompute_all_repairs_drift(session, builder):
    leader = builder.user("leader", first_guard=10, guards=[5])
    clan = builder.clan("Wolves", leader)
    session.execute(update(User).where(User.id == leader.id).values(strength=999, guards_count=0))
    session.execute(update(Clan).where(Clan.id == clan.id).values(members_count=7))
    session.add(Guard(user_id=leader.id, strength=2))
    session.commit()
    session.expire_all()

    touched = StatsService(session).recompute_all()
    session.commit()

    assert touched == 1
    leader = session.get(User, leader.id)
    clan = session.get(Clan, clan.id)
    assert (leader.strength, leader.guards_count) == (17, 3)
    assert (clan.strength, clan.guards_count, clan.members_count) == (17, 3, 1)


def test_recompute_empty_clan(session, builder):
    leader = builder.user("leader")
    clan = builder.clan("Wolves", leader)
    leader.clan_id = None
    session.flush()

    StatsService(session).recompute(clan_ids=[clan.id])

    assert (clan.strength, clan.guards_count, clan.members_count) == (0, 0, 0)


class TestBoosts:
    def test_shield_lookup_completes_expired(self, session, builder):
        user = builder.user("shielded")
        expired = builder.boost(user, BoostType.SHIELD, lasts=-timedelta(minutes=1))
        current = builder.boost(user, BoostType.SHIELD)
        boosts = BoostService(session)

        assert boosts.active_shield(user.id) is current
        assert expired.status == BoostStatus.COMPLETED
        assert current.status == BoostStatus.ACTIVE

    def test_halving_requires_unexpired_boost(self, session, builder):
        user = builder.user("hasty")
        boosts = BoostService(session)
        builder.boost(user, BoostType.COOLDOWN_HALVING, lasts=-timedelta(seconds=1))
        assert not boosts.has_cooldown_halving(user.id)

        boosts.grant(user.id, BoostType.COOLDOWN_HALVING, timedelta(minutes=30))
        assert boosts.has_cooldown_halving(user.id)

    def test_end_shield(self, session, builder):
        user = builder.user("bold")
        builder.boost(user, BoostType.SHIELD)
        boosts = BoostService(session)

        assert boosts.end_shield(user.id) == 1
        assert boosts.active_shield(user.id) is None
