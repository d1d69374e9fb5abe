"""
Member model.

A registered participant and, once placed, a node of the binary tree.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import PaymentStatus
from app.models.types import MoneyType


class Member(Base):
    """
    Member entity.

    Tree linkage and counters:
    - sponsor_id: who referred the member (identity, may differ from parent)
    - parent_id/side: position in the binary tree, set once on placement
    - left_child_id/right_child_id: explicit child pointers
    - depth/path: distance from the tree root and "/"-delimited ancestor chain
    - left/right_active_count, pairs_completed, star_level, total_earnings:
      maintained by the propagation engine only

    Attributes:
        id: Primary key
        name: Display name
        email: Login email (unique)
        referral_code: Code other members use to name this one as sponsor
        payment_status: Registration fee status
        is_active: True once placed into the tree
        referral_pin: PIN assigned on payment approval
        total_withdrawn: Sum of approved withdrawals
        placed_at: When the member was attached to the tree
    """

    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint(
            "side IS NULL OR side IN ('left', 'right')",
            name="check_member_side",
        ),
        CheckConstraint(
            "left_active_count >= 0 AND right_active_count >= 0",
            name="check_member_active_counts_non_negative",
        ),
        CheckConstraint(
            "total_earnings >= 0", name="check_member_total_earnings_non_negative"
        ),
        CheckConstraint(
            "star_level >= 0 AND star_level <= 12", name="check_member_star_level"
        ),
        Index("idx_members_parent_side", "parent_id", "side"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Identity
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    referral_code: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    sponsor_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Tree linkage
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    side: Mapped[str | None] = mapped_column(String(5), nullable=True)
    left_child_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    right_child_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    path: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        index=True,
        comment="Ancestor chain from the tree root, e.g. /1/4/9/",
    )

    # Counters (written by the propagation engine only)
    left_active_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    right_active_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    pairs_completed: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    total_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    star_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Withdrawals
    total_withdrawn: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.NOT_SUBMITTED.value,
        nullable=False,
        index=True,
    )
    registration_fee: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    referral_pin: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )

    # Timestamps
    placed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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
            f"<Member(id={self.id}, parent_id={self.parent_id}, "
            f"side={self.side}, L={self.left_active_count}, "
            f"R={self.right_active_count}, pairs={self.pairs_completed})>"
        )

    @property
    def is_placed(self) -> bool:
        """Whether the member already has a tree position."""
        return self.parent_id is not None or self.path is not None

    @property
    def is_root(self) -> bool:
        """Whether the member is a tree root."""
        return self.parent_id is None and self.path == "/"

    @property
    def subtree_path(self) -> str:
        """Path prefix shared by every descendant of this member."""
        return f"{self.path or '/'}{self.id}/"

    def child_id(self, side: str) -> int | None:
        """Child pointer for the given side."""
        return self.left_child_id if side == "left" else self.right_child_id