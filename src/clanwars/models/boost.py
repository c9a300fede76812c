"""User boost model (shields and cooldown halving)."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clanwars.domain.enums import BoostStatus

from .base import Base, TimestampCreatedMixin

if TYPE_CHECKING:
    from .user import User


class UserBoost(Base, TimestampCreatedMixin):
    """A temporary effect held by a user.

    A boost counts as in effect while its status is ACTIVE and ``end_time``
    lies in the future.
    """

    __tablename__ = "user_boosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=BoostStatus.ACTIVE.value)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="boosts")

    __table_args__ = (
        CheckConstraint("type IN ('shield', 'cooldown_halving')", name="ck_user_boosts_type"),
        CheckConstraint("status IN ('active', 'completed')", name="ck_user_boosts_status"),
        Index("idx_user_boosts_user_status", "user_id", "status"),
    )

    def is_effective(self, now: datetime) -> bool:
        return (
            self.status == BoostStatus.ACTIVE
            and self.end_time is not None
            and self.end_time > now
        )

    def __repr__(self) -> str:
        return f"<UserBoost(id={self.id}, user={self.user_id}, type='{self.type}')>"
