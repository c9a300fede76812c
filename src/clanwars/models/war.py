"""Clan war and stolen item models.

This module contains:
- ClanWar (a time-boxed conflict between two clans)
- StolenItem (the audit record of one theft made during a war)
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clanwars.domain.enums import ClanWarStatus, StolenItemType

from .base import Base, TimestampCreatedMixin, TimestampMixin

if TYPE_CHECKING:
    from .clan import Clan
    from .user import User


class ClanWar(Base, TimestampMixin):
    """Represents a war between two clans.

    ``clan_1`` is always the declaring clan. The status leaves IN_PROGRESS
    exactly once, when the settlement job closes the war after ``end_time``.

    Attributes:
        id: Primary key
        clan_1_id: Declaring clan
        clan_2_id: Target clan
        start_time: When the war was declared
        end_time: When the war expires
        status: in_progress / won_by_clan_1 / won_by_clan_2
    """

    __tablename__ = "clan_wars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    clan_1_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="CASCADE"), nullable=False
    )
    clan_2_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="CASCADE"), nullable=False
    )

    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ClanWarStatus.IN_PROGRESS.value
    )

    clan_1: Mapped["Clan"] = relationship("Clan", foreign_keys=[clan_1_id])
    clan_2: Mapped["Clan"] = relationship("Clan", foreign_keys=[clan_2_id])
    stolen_items: Mapped[list["StolenItem"]] = relationship(
        "StolenItem", back_populates="clan_war", order_by="StolenItem.id"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('in_progress', 'won_by_clan_1', 'won_by_clan_2')",
            name="ck_clan_wars_status",
        ),
        CheckConstraint("clan_1_id <> clan_2_id", name="ck_clan_wars_distinct_clans"),
        Index("idx_clan_wars_clan_1", "clan_1_id"),
        Index("idx_clan_wars_clan_2", "clan_2_id"),
        Index("idx_clan_wars_end_status", "end_time", "status"),
    )

    def involves(self, clan_id: int) -> bool:
        return clan_id in (self.clan_1_id, self.clan_2_id)

    def opponent_of(self, clan_id: int) -> int:
        return self.clan_2_id if clan_id == self.clan_1_id else self.clan_1_id

    def __repr__(self) -> str:
        return (
            f"<ClanWar(id={self.id}, clans=({self.clan_1_id}, {self.clan_2_id}), "
            f"status='{self.status}')>"
        )


class StolenItem(Base, TimestampCreatedMixin):
    """One theft of money or a guard during a war.

    Rows are never deleted; settlement reads them to pick a winner and to
    decide which thefts to reverse. ``value`` holds the amount for money and
    the guard id for guards. The thief's and victim's clans are captured at the
    moment of theft.
    """

    __tablename__ = "stolen_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    clan_war_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clan_wars.id", ondelete="CASCADE"), nullable=False
    )
    thief_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    victim_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    thief_clan_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    victim_clan_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    type: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[str] = mapped_column(String, nullable=False)

    clan_war: Mapped["ClanWar"] = relationship("ClanWar", back_populates="stolen_items")
    thief: Mapped["User"] = relationship("User", foreign_keys=[thief_id])
    victim: Mapped["User"] = relationship("User", foreign_keys=[victim_id])

    __table_args__ = (
        CheckConstraint("type IN ('money', 'guard')", name="ck_stolen_items_type"),
        Index("idx_stolen_items_war", "clan_war_id"),
    )

    @property
    def amount(self) -> int:
        """Stolen money amount (MONEY items only)."""
        if self.type != StolenItemType.MONEY:
            raise ValueError(f"StolenItem {self.id} is not a money theft")
        return int(self.value)

    @property
    def guard_id(self) -> int:
        """Captured guard id (GUARD items only)."""
        if self.type != StolenItemType.GUARD:
            raise ValueError(f"StolenItem {self.id} is not a guard capture")
        return int(self.value)

    def __repr__(self) -> str:
        return (
            f"<StolenItem(id={self.id}, war={self.clan_war_id}, type='{self.type}', "
            f"value='{self.value}')>"
        )
