"""Rating Service.

Leaderboards of clans and users. Both rank by ``strength * 1000 + money``,
read from the denormalized aggregates kept by the StatsService; a clan's
money is the sum of its members' balances. Clans additionally carry their
war record, counted from finished wars on either side.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clanwars.domain.enums import ClanWarStatus
from clanwars.models import Clan, ClanWar, User

T = TypeVar("T")

STRENGTH_WEIGHT = 1000


def rating_score(strength: int, money: int) -> int:
    return strength * STRENGTH_WEIGHT + money


@dataclass(frozen=True, slots=True)
class ClanRating:
    clan: Clan
    money: int
    wins: int
    losses: int

    @property
    def score(self) -> int:
        return rating_score(self.clan.strength, self.money)


@dataclass(frozen=True, slots=True)
class RatingPage(Generic[T]):
    entries: list[T]
    total: int
    page: int
    limit: int


def _window(page: int, limit: int) -> tuple[int, int]:
    page = max(page, 1)
    limit = max(limit, 1)
    return page, limit


class RatingService:
    """Service for clan and user leaderboards."""

    def __init__(self, session: Session):
        self.session = session

    def war_records(self) -> tuple[Counter[int], Counter[int]]:
        """Wins and losses per clan id over every finished war."""
        wins: Counter[int] = Counter()
        losses: Counter[int] = Counter()
        rows = self.session.execute(
            select(ClanWar.clan_1_id, ClanWar.clan_2_id, ClanWar.status).where(
                ClanWar.status != ClanWarStatus.IN_PROGRESS
            )
        )
        for clan_1_id, clan_2_id, status in rows:
            if status == ClanWarStatus.WON_BY_CLAN_1:
                winner, loser = clan_1_id, clan_2_id
            else:
                winner, loser = clan_2_id, clan_1_id
            wins[winner] += 1
            losses[loser] += 1
        return wins, losses

    def clan_rating(self, page: int = 1, limit: int = 10) -> RatingPage[ClanRating]:
        """Clans by score, then by wins, then by id.

        Args:
            page: 1-based page number (values below 1 are treated as 1)
            limit: Page size (values below 1 are treated as 1)
        """
        page, limit = _window(page, limit)
        wins, losses = self.war_records()
        money = dict(
            self.session.execute(
                select(User.clan_id, func.coalesce(func.sum(User.money), 0))
                .where(User.clan_id.is_not(None))
                .group_by(User.clan_id)
            ).all()
        )
        ratings = [
            ClanRating(
                clan=clan,
                money=int(money.get(clan.id, 0)),
                wins=wins[clan.id],
                losses=losses[clan.id],
            )
            for clan in self.session.execute(select(Clan)).scalars()
        ]
        ratings.sort(key=lambda r: (-r.score, -r.wins, r.clan.id))
        start = (page - 1) * limit
        return RatingPage(
            entries=ratings[start : start + limit], total=len(ratings), page=page, limit=limit
        )

    def user_rating(self, page: int = 1, limit: int = 10) -> RatingPage[User]:
        """Users by score, ties broken by id."""
        page, limit = _window(page, limit)
        total = self.session.execute(select(func.count(User.id))).scalar_one()
        users = self.session.execute(
            select(User)
            .order_by((User.strength * STRENGTH_WEIGHT + User.money).desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
        return RatingPage(entries=list(users), total=total, page=page, limit=limit)
