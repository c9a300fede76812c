"""Caller-visible failures raised by the engine's services.

Every one of these aborts the surrounding transaction with no partial effect.
"""

from __future__ import annotations

from datetime import datetime


class ClanWarsError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ClanWarsError):
    """A referenced user, clan or war does not exist."""


class InvalidStateError(ClanWarsError):
    """The entities exist but are not in a state that allows the action."""


class CooldownActiveError(ClanWarsError):
    """The action is still on cooldown."""

    def __init__(self, message: str, cooldown_end: datetime) -> None:
        super().__init__(message)
        self.cooldown_end = cooldown_end


class ConflictError(ClanWarsError):
    """A membership or capacity limit would be exceeded."""
