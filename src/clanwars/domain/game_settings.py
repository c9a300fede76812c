"""Immutable snapshot of the gameplay tunables the engine reads."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

from clanwars.domain.enums import SettingKey

logger = logging.getLogger(__name__)

MINUTES = timedelta(minutes=1)
HOURS = timedelta(hours=1)

# Stored numbers for duration keys are expressed in these units.
TIME_UNITS: dict[SettingKey, timedelta] = {
    SettingKey.ATTACK_COOLDOWN: MINUTES,
    SettingKey.CLAN_WAR_DURATION: HOURS,
    SettingKey.CLAN_WAR_COOLDOWN: HOURS,
    SettingKey.CLAN_JOIN_COOLDOWN: HOURS,
}


@dataclass(frozen=True, slots=True)
class GameSettings:
    """Current values of the combat and war tunables."""

    attack_cooldown: timedelta = field(default=15 * MINUTES)
    clan_war_duration: timedelta = field(default=6 * HOURS)
    clan_war_cooldown: timedelta = field(default=12 * HOURS)
    max_clan_wars_count: int = 2
    clan_join_cooldown: timedelta = field(default=24 * HOURS)

    @classmethod
    def from_raw(cls, raw: Mapping[str, str]) -> GameSettings:
        """Build a snapshot from stored string values.

        Missing keys, and values that are not finite non-negative numbers of a
        representable size, keep their default.
        """
        defaults = cls()
        values: dict[str, object] = {}
        for key, attr in _ATTRIBUTES.items():
            text = raw.get(key.value)
            if text is None:
                continue
            try:
                number = float(text.strip())
            except ValueError:
                logger.warning("ignoring unparsable setting %s=%r", key.value, text)
                continue
            if not math.isfinite(number) or number < 0:
                logger.warning("ignoring out-of-range setting %s=%r", key.value, text)
                continue
            unit = TIME_UNITS.get(key)
            try:
                values[attr] = number * unit if unit is not None else int(number)
            except (OverflowError, ValueError):
                logger.warning("ignoring oversized setting %s=%r", key.value, text)
        return cls(**{**_as_kwargs(defaults), **values})

    def to_raw(self) -> dict[str, str]:
        """Inverse of :meth:`from_raw`, in stored units."""
        raw: dict[str, str] = {}
        for key, attr in _ATTRIBUTES.items():
            value = getattr(self, attr)
            unit = TIME_UNITS.get(key)
            raw[key.value] = f"{value / unit:g}" if unit is not None else str(value)
        return raw


_ATTRIBUTES: dict[SettingKey, str] = {
    SettingKey.ATTACK_COOLDOWN: "attack_cooldown",
    SettingKey.CLAN_WAR_DURATION: "clan_war_duration",
    SettingKey.CLAN_WAR_COOLDOWN: "clan_war_cooldown",
    SettingKey.MAX_CLAN_WARS_COUNT: "max_clan_wars_count",
    SettingKey.CLAN_JOIN_COOLDOWN: "clan_join_cooldown",
}


def _as_kwargs(settings: GameSettings) -> dict[str, object]:
    return {attr: getattr(settings, attr) for attr in _ATTRIBUTES.values()}


DEFAULT_GAME_SETTINGS = GameSettings()
