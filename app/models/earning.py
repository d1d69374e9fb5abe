"""
Earning model.

Immutable ledger entry credited to a member.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class Earning(Base):
    """
    Earning entity.

    (member_id, source_type, source_id) is the de-duplication key:
    at most one earning exists per key, so retries never double-credit.

    Attributes:
        id: Primary key
        member_id: Member credited
        source_type: pair, star_reward, sponsor_bonus or manual
        source_id: pair_{i}, star_{level}, member_{id} or a manual reference
        amount: Credited amount
        currency: Currency of amount
        balance_after: Member total earnings right after this credit
        note: Optional free text
        created_at: Credit timestamp
    """

    __tablename__ = "earnings"
    __table_args__ = (
        UniqueConstraint(
            "member_id",
            "source_type",
            "source_id",
            name="uq_earnings_member_source",
        ),
        CheckConstraint("amount >= 0", name="check_earning_amount_non_negative"),
        Index("idx_earnings_member_created", "member_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    balance_after: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Earning(member_id={self.member_id}, "
            f"source={self.source_type}:{self.source_id}, amount={self.amount})>"
        )
