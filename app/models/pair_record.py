"""
PairRecord model.

Immutable fact: member X completed pair #N.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class PairRecord(Base):
    """
    PairRecord entity.

    Pair indexes are 1-based, contiguous and unique per member.
    left_member_id/right_member_id are the pair_index-th active members of
    the member's left and right subtrees.

    Attributes:
        id: Primary key
        member_id: Beneficiary
        pair_index: 1-based index of the pair for this member
        left_member_id: Left-side member matched by this pair
        right_member_id: Right-side member matched by this pair
        amount: Amount credited for this index
        currency: Currency of amount
        completed_at: When the pair was recorded
    """

    __tablename__ = "pair_records"
    __table_args__ = (
        UniqueConstraint(
            "member_id", "pair_index", name="uq_pair_records_member_index"
        ),
        CheckConstraint("pair_index >= 1", name="check_pair_index_positive"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pair_index: Mapped[int] = mapped_column(Integer, nullable=False)
    left_member_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    right_member_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PairRecord(member_id={self.member_id}, "
            f"pair_index={self.pair_index}, amount={self.amount})>"
        )
