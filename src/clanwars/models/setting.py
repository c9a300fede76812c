"""Gameplay setting model."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Setting(Base, TimestampMixin):
    """A raw key/value gameplay tunable, edited by operators.

    Values are kept as strings and parsed into a ``GameSettings`` snapshot.
    """

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    value: Mapped[str] = mapped_column(String, nullable=False)

    def __repr__(self) -> str:
        return f"<Setting(key='{self.key}', value='{self.value}')>"
