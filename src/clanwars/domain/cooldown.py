"""Cooldown predicate shared by attacks, war declarations and clan joins."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class CooldownCheck:
    """Result of a cooldown evaluation."""

    eligible: bool
    cooldown_end: datetime | None
    duration: timedelta


def effective_duration(base_duration: timedelta, halving_active: bool) -> timedelta:
    """Cooldown length after applying an in-effect halving boost."""
    return base_duration / 2 if halving_active else base_duration


def eligible(
    last_action_time: datetime | None,
    base_duration: timedelta,
    now: datetime,
    *,
    halving_active: bool = False,
) -> CooldownCheck:
    """Decide whether an action is off cooldown.

    Args:
        last_action_time: When the action was last performed (None if never)
        base_duration: Cooldown length before boosts
        now: Current time
        halving_active: Whether an unexpired cooldown-halving boost is held

    Returns:
        CooldownCheck with the end of the cooldown that currently applies
        (None when the action was never performed)
    """
    duration = effective_duration(base_duration, halving_active)
    if last_action_time is None:
        return CooldownCheck(eligible=True, cooldown_end=None, duration=duration)
    cooldown_end = last_action_time + duration
    return CooldownCheck(eligible=cooldown_end <= now, cooldown_end=cooldown_end, duration=duration)
