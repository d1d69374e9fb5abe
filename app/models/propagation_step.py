"""
PropagationStep model.

Marks that an ancestor's counters already absorbed one placement.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class PropagationStep(Base):
    """
    PropagationStep entity.

    Written in the same transaction as the ancestor's counter update, so a
    retried walk whose earlier commit did land does not increment twice.

    Attributes:
        id: Primary key
        ancestor_id: Ancestor whose counters were updated
        placed_member_id: Newly placed member that triggered the walk
        side: Side of the ancestor the placed member arrived from
        pairs_after: Ancestor pairs_completed after the step
        created_at: When the step was settled
    """

    __tablename__ = "propagation_steps"
    __table_args__ = (
        UniqueConstraint(
            "ancestor_id",
            "placed_member_id",
            name="uq_propagation_steps_ancestor_member",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    ancestor_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    placed_member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    side: Mapped[str] = mapped_column(String(5), nullable=False)
    pairs_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
