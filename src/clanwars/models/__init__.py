"""SQLAlchemy models for the clan war engine.

This module exports all database models and the declarative base.
"""

from .base import Base, TimestampCreatedMixin, TimestampMixin, UTCDateTime, utc_now

# Boost models
from .boost import UserBoost

# Clan models
from .clan import Clan

# Event history and notification models
from .event import EventHistory, Notification

# Setting models
from .setting import Setting

# User models
from .user import Guard, User

# War models
from .war import ClanWar, StolenItem

__all__ = [
    "Base",
    "Clan",
    "ClanWar",
    "EventHistory",
    "Guard",
    "Notification",
    "Setting",
    "StolenItem",
    "TimestampCreatedMixin",
    "TimestampMixin",
    "UTCDateTime",
    "User",
    "UserBoost",
    "utc_now",
]
