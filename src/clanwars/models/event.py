"""Event history and notification models.

These rows are written by the side-effect collaborators after a combat or war
transaction has committed; they are never part of that transaction.
"""

from typing import Any

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampCreatedMixin


class EventHistory(Base, TimestampCreatedMixin):
    """One entry of a user's combat history.

    Attributes:
        id: Primary key
        user_id: The user the entry belongs to
        type: attack / defense
        opponent_id: The other party of the attack
        stolen_item_ids: JSON array of StolenItem ids taken in the attack
    """

    __tablename__ = "event_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    opponent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    type: Mapped[str] = mapped_column(String, nullable=False)
    stolen_item_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("type IN ('attack', 'defense')", name="ck_event_history_type"),
        Index("idx_event_history_user", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventHistory(id={self.id}, user={self.user_id}, type='{self.type}')>"


class Notification(Base, TimestampCreatedMixin):
    """A titled message delivered to one user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (Index("idx_notifications_user", "user_id"),)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user={self.user_id}, title='{self.title}')>"
