"""Enumerations shared by the models and services."""

from __future__ import annotations

from enum import StrEnum


class ClanWarStatus(StrEnum):
    """Lifecycle of a clan war. Only IN_PROGRESS is non-terminal."""

    IN_PROGRESS = "in_progress"
    WON_BY_CLAN_1 = "won_by_clan_1"
    WON_BY_CLAN_2 = "won_by_clan_2"

    @property
    def is_terminal(self) -> bool:
        return self is not ClanWarStatus.IN_PROGRESS


class StolenItemType(StrEnum):
    """Kind of loot recorded by a theft."""

    MONEY = "money"
    GUARD = "guard"


class BoostType(StrEnum):
    """Temporary effects a user may hold."""

    SHIELD = "shield"
    COOLDOWN_HALVING = "cooldown_halving"


class BoostStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class EventHistoryType(StrEnum):
    """Which side of an attack an event-history entry describes."""

    ATTACK = "attack"
    DEFENSE = "defense"


class NotificationType(StrEnum):
    WAR_DECLARED = "war_declared"
    WAR_FINISHED = "war_finished"


class SettingKey(StrEnum):
    """Keys of the gameplay tunables read by the engine."""

    ATTACK_COOLDOWN = "ATTACK_COOLDOWN"
    CLAN_WAR_DURATION = "CLAN_WAR_DURATION"
    CLAN_WAR_COOLDOWN = "CLAN_WAR_COOLDOWN"
    MAX_CLAN_WARS_COUNT = "MAX_CLAN_WARS_COUNT"
    CLAN_JOIN_COOLDOWN = "CLAN_JOIN_COOLDOWN"
