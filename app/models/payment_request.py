"""
PaymentRequest model.

Registration fee proof submitted by a member for admin review.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import RequestStatus
from app.models.types import MoneyType


class PaymentRequest(Base):
    """
    PaymentRequest entity.

    Attributes:
        id: Primary key
        member_id: Member paying the registration fee
        payment_type: easypaisa or jazzcash
        amount: Paid amount
        transaction_id: Transaction reference from the payment provider
        screenshot_ref: Reference to the uploaded proof (storage is external)
        status: pending, approved or rejected
        reviewed_by: Admin member who reviewed the request
        reviewed_at: Review timestamp
        admin_notes: Notes left on approval
        rejection_reason: Reason left on rejection
    """

    __tablename__ = "payment_requests"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    screenshot_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=RequestStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    reviewed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PaymentRequest(id={self.id}, member_id={self.member_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
