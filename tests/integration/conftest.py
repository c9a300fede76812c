"""Shared fixtures for integration tests against a temporary SQLite database."""

from __future__ import annotations

from datetime import timedelta

import pytest

from clanwars.database import build_session_factory, create_db_engine, init_db
from clanwars.domain.enums import BoostStatus, BoostType, ClanWarStatus
from clanwars.models import Clan, ClanWar, Guard, User, UserBoost, utc_now
from clanwars.services.stats_service import StatsService


class FixedRandom:
    """Random source that always returns the same draw."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class GameBuilder:
    """Creates users, clans and wars with consistent aggregates."""

    def __init__(self, session) -> None:
        self.session = session
        self.stats = StatsService(session)

    def user(
        self,
        name: str,
        *,
        money: int = 0,
        first_guard: int | None = 10,
        guards: list[int] | tuple[int, ...] = (),
        clan: Clan | None = None,
    ) -> User:
        user = User(name=name, money=money, clan_id=clan.id if clan else None)
        self.session.add(user)
        self.session.flush()
        if first_guard is not None:
            self.session.add(
                Guard(user_id=user.id, name="Starter", strength=first_guard, is_first=True)
            )
        for strength in guards:
            self.session.add(Guard(user_id=user.id, strength=strength))
        self.session.flush()
        self.stats.recompute(user_ids=[user.id])
        self.session.commit()
        return user

    def clan(self, name: str, leader: User, members: list[User] | tuple[User, ...] = ()) -> Clan:
        clan = Clan(name=name, leader_id=leader.id)
        self.session.add(clan)
        self.session.flush()
        for user in (leader, *members):
            user.clan_id = clan.id
        self.session.flush()
        self.stats.recompute(user_ids=[leader.id, *(m.id for m in members)])
        self.session.commit()
        return clan

    def war(
        self,
        clan_1: Clan,
        clan_2: Clan,
        *,
        started_ago: timedelta = timedelta(hours=1),
        duration: timedelta = timedelta(hours=6),
        status: ClanWarStatus = ClanWarStatus.IN_PROGRESS,
    ) -> ClanWar:
        start = utc_now() - started_ago
        war = ClanWar(
            clan_1_id=clan_1.id,
            clan_2_id=clan_2.id,
            start_time=start,
            end_time=start + duration,
            status=status.value,
        )
        self.session.add(war)
        self.session.commit()
        return war

    def boost(
        self, user: User, boost_type: BoostType, *, lasts: timedelta = timedelta(hours=1)
    ) -> UserBoost:
        boost = UserBoost(
            user_id=user.id,
            type=boost_type.value,
            status=BoostStatus.ACTIVE.value,
            end_time=utc_now() + lasts,
        )
        self.session.add(boost)
        self.session.commit()
        return boost


@pytest.fixture
def engine(tmp_path):
    """Create a file-backed SQLite engine so separate sessions share data."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'clanwars.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """Create a new database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def builder(session):
    return GameBuilder(session)


@pytest.fixture
def win_rng():
    """Every roll is 0, below any win chance."""
    return FixedRandom(0.0)


@pytest.fixture
def lose_rng():
    """Every roll is 99.9, above the 75% ceiling."""
    return FixedRandom(0.999)
