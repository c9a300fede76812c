"""Clan model."""

from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampCreatedMixin

if TYPE_CHECKING:
    from .user import User


class Clan(Base, TimestampCreatedMixin):
    """Represents a clan: a group of users led by one of them.

    ``strength``, ``guards_count`` and ``members_count`` are aggregates over the
    current members' own denormalized fields.

    Attributes:
        id: Primary key
        name: Unique clan name
        leader_id: The leading user
        strength: Sum of member strength
        guards_count: Sum of member guard counts
        members_count: Number of members
        max_members: Membership ceiling enforced on join
    """

    __tablename__ = "clans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    leader_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", use_alter=True, name="fk_clans_leader_id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    strength: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    guards_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    members_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    leader: Mapped["User"] = relationship("User", foreign_keys=[leader_id], post_update=True)
    members: Mapped[list["User"]] = relationship(
        "User", back_populates="clan", foreign_keys="User.clan_id"
    )

    def __repr__(self) -> str:
        return f"<Clan(id={self.id}, name='{self.name}', members={self.members_count})>"
