"""
StarLevel model.

Reference data for milestone rewards.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class StarLevel(Base):
    """Star level reached at a cumulative matched-pair threshold."""

    __tablename__ = "star_levels"
    __table_args__ = (
        CheckConstraint("level >= 1 AND level <= 12", name="check_star_level_range"),
        CheckConstraint("required_pairs >= 1", name="check_star_required_pairs"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    required_pairs: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<StarLevel(level={self.level}, "
            f"required_pairs={self.required_pairs}, reward={self.reward_amount})>"
        )
