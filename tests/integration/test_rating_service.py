"""Integration tests for the clan and user leaderboards."""

from __future__ import annotations

from datetime import timedelta

import pytest

from clanwars.domain.enums import ClanWarStatus
from clanwars.services.rating_service import RatingService
from clanwars.services.settlement_service import SettlementService


@pytest.fixture
def league(builder):
    red_leader = builder.user("red-leader", money=500, first_guard=10)
    red_member = builder.user("red-member", money=300, first_guard=2)
    blue_leader = builder.user("blue-leader", money=200, first_guard=10, guards=[3])
    green_leader = builder.user("green-leader", first_guard=10)
    yellow_leader = builder.user("yellow-leader", first_guard=10)
    return {
        "red": builder.clan("Red", red_leader, [red_member]),
        "blue": builder.clan("Blue", blue_leader),
        "green": builder.clan("Green", green_leader),
        "yellow": builder.clan("Yellow", yellow_leader),
    }


class TestClanRating:
    def test_orders_by_strength_and_member_money(self, session, league):
        result = RatingService(session).clan_rating()

        assert [entry.clan.name for entry in result.entries] == [
            "Blue",
            "Red",
            "Green",
            "Yellow",
        ]
        red = result.entries[1]
        assert (red.clan.strength, red.money, red.score) == (12, 800, 12800)
        assert result.total == 4

    def test_wins_break_score_ties(self, session, builder, league):
        builder.war(league["yellow"], league["green"], status=ClanWarStatus.WON_BY_CLAN_1)
        builder.war(league["blue"], league["yellow"], status=ClanWarStatus.WON_BY_CLAN_1)

        entries = {e.clan.name: e for e in RatingService(session).clan_rating().entries}

        assert [name for name in entries] == ["Blue", "Red", "Yellow", "Green"]
        assert (entries["Yellow"].wins, entries["Yellow"].losses) == (1, 1)
        assert (entries["Green"].wins, entries["Green"].losses) == (0, 1)
        assert (entries["Blue"].wins, entries["Blue"].losses) == (1, 0)

    def test_running_wars_do_not_count(self, session, builder, league):
        builder.war(league["red"], league["blue"])

        entries = RatingService(session).clan_rating().entries

        assert all((e.wins, e.losses) == (0, 0) for e in entries)

    def test_settlement_updates_record(self, session, builder, league):
        builder.war(
            league["red"],
            league["blue"],
            started_ago=timedelta(hours=7),
            duration=timedelta(hours=6),
        )
        ratings = RatingService(session)
        assert ratings.war_records() == ({}, {})

        SettlementService(session).settle_expired_wars()

        entries = {e.clan.name: e for e in ratings.clan_rating().entries}
        assert (entries["Red"].wins, entries["Red"].losses) == (1, 0)
        assert (entries["Blue"].wins, entries["Blue"].losses) == (0, 1)

    def test_pagination(self, session, league):
        ratings = RatingService(session)

        second = ratings.clan_rating(page=2, limit=3)
        clamped = ratings.clan_rating(page=0, limit=0)

        assert [e.clan.name for e in second.entries] == ["Yellow"]
        assert (second.total, second.page, second.limit) == (4, 2, 3)
        assert [e.clan.name for e in clamped.entries] == ["Blue"]
        assert (clamped.page, clamped.limit) == (1, 1)

    def test_no_clans(self, session):
        result = RatingService(session).clan_rating()
        assert (result.entries, result.total) == ([], 0)


class TestUserRating:
    def test_orders_users_including_clanless(self, session, builder, league):
        hoarder = builder.user("hoarder", money=20_000, first_guard=None)

        result = RatingService(session).user_rating(limit=3)

        assert [u.name for u in result.entries] == [hoarder.name, "blue-leader", "red-leader"]
        assert result.total == 6

    def test_ties_keep_id_order(self, session, league):
        result = RatingService(session).user_rating(page=2, limit=2)

        assert [u.name for u in result.entries] == ["green-leader", "yellow-leader"]
