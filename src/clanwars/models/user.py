"""User and guard models.

A user owns guards; the user's ``strength`` and ``guards_count`` columns are
denormalized from those guard rows and kept current by the stats service.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampCreatedMixin, TimestampMixin

if TYPE_CHECKING:
    from .boost import UserBoost
    from .clan import Clan


class User(Base, TimestampCreatedMixin):
    """Represents a player.

    Attributes:
        id: Primary key
        name: Display name
        money: Currency balance; moved, never minted, by combat and settlement
        strength: Sum of owned guard strength (denormalized)
        guards_count: Number of owned guards (denormalized)
        clan_id: Owning clan, if any
        last_attack_time: When the user last attacked; drives the attack cooldown
        clan_leave_time: When the user last left a clan; drives the join cooldown
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    clan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("clans.id", ondelete="SET NULL"), nullable=True
    )

    name: Mapped[str] = mapped_column(String, nullable=False)
    money: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    strength: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    guards_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attack_time: Mapped[datetime | None] = mapped_column(nullable=True)
    clan_leave_time: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    clan: Mapped[Optional["Clan"]] = relationship(
        "Clan", back_populates="members", foreign_keys=[clan_id]
    )
    guards: Mapped[list["Guard"]] = relationship(
        "Guard", back_populates="user", order_by="Guard.id"
    )
    boosts: Mapped[list["UserBoost"]] = relationship("UserBoost", back_populates="user")

    __table_args__ = (
        Index("idx_users_clan", "clan_id"),
        Index("idx_users_strength_guards", "strength", "guards_count"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, clan={self.clan_id}, strength={self.strength})>"


class Guard(Base, TimestampMixin):
    """A guard owned by exactly one user.

    The starter guard (``is_first``) never changes hands; every other guard can
    be captured by a successful attack.
    """

    __tablename__ = "guards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String, nullable=False, default="Guard")
    strength: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_first: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped["User"] = relationship("User", back_populates="guards")

    __table_args__ = (
        CheckConstraint("strength >= 0", name="ck_guards_strength_non_negative"),
        Index("idx_guards_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Guard(id={self.id}, user={self.user_id}, strength={self.strength})>"
