"""Pure combat formulas: win chance, loot sizes and the outcome roll.

All percentages are on a 0-100 scale.
"""

from __future__ import annotations

import math
from typing import Protocol

MIN_WIN_CHANCE = 25.0
MAX_WIN_CHANCE = 75.0
MONEY_LOOT_RATE = 0.15
GUARD_CAPTURE_RATE = 0.08


class RandomSource(Protocol):
    """Anything with ``random() -> float`` in [0, 1), e.g. ``random.Random``."""

    def random(self) -> float: ...


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative input."""
    return math.floor(value + 0.5)


def win_chance(
    attacker_strength: int,
    attacker_guards: int,
    defender_strength: int,
    defender_guards: int,
) -> float:
    """Attacker's chance to win, clamped to [25, 75].

    ``defender_guards`` is the number of guards the attacker could capture.
    A zero defender side counts as overwhelming odds for the attacker unless
    the attacker side is zero too.
    """
    attack_power = attacker_strength * attacker_guards
    defense_power = defender_strength * defender_guards
    if defense_power <= 0:
        raw = MAX_WIN_CHANCE if attack_power > 0 else MIN_WIN_CHANCE
    else:
        raw = attack_power / defense_power * 100
    return min(MAX_WIN_CHANCE, max(MIN_WIN_CHANCE, raw))


def roll(rng: RandomSource) -> float:
    """Draw a uniform value in [0, 100)."""
    return rng.random() * 100


def is_win(roll_value: float, chance: float) -> bool:
    return roll_value < chance


def stolen_money(defender_money: int, chance: float) -> int:
    """Money taken on a win. Never more than the defender holds, never negative."""
    if defender_money <= 0:
        return 0
    amount = round_half_up(defender_money * MONEY_LOOT_RATE * (chance / 100))
    return min(amount, defender_money)


def captured_guards(capturable_count: int, chance: float) -> int:
    """Number of capturable guards taken on a win."""
    if capturable_count <= 0:
        return 0
    amount = round_half_up(capturable_count * GUARD_CAPTURE_RATE * (chance / 100))
    return min(amount, capturable_count)
