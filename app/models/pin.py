"""
Pin model.

Referral PIN handed to a member when their payment is approved.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import PinStatus


class Pin(Base):
    """PIN code; assigned at most once."""

    __tablename__ = "pins"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    pin_code: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=PinStatus.UNUSED.value,
        nullable=False,
        index=True,
    )
    generated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_to: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Pin(code={self.pin_code}, status={self.status})>"
