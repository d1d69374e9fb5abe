"""
PairRecord repository.

Data access layer for PairRecord model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pair_record import PairRecord
from app.repositories.base import BaseRepository


class PairRecordRepository(BaseRepository[PairRecord]):
    """PairRecord repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize pair record repository."""
        super().__init__(PairRecord, session)

    async def get_by_key(
        self, member_id: int, pair_index: int
    ) -> PairRecord | None:
        """
        Get pair record by its idempotence key.

        Args:
            member_id: Beneficiary member ID
            pair_index: 1-based pair index

        Returns:
            PairRecord or None
        """
        return await self.get_by(member_id=member_id, pair_index=pair_index)

    async def get_indexes(self, member_id: int) -> list[int]:
        """
        Get all pair indexes recorded for a member, ascending.

        Args:
            member_id: Member ID

        Returns:
            Sorted list of pair indexes
        """
        stmt = (
            select(PairRecord.pair_index)
            .where(PairRecord.member_id == member_id)
            .order_by(PairRecord.pair_index)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_total_amount(self, member_id: int) -> Decimal:
        """
        Sum of pair amounts credited to a member.

        Args:
            member_id: Member ID

        Returns:
            Total amount (0 if none)
        """
        stmt = select(func.sum(PairRecord.amount)).where(
            PairRecord.member_id == member_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or Decimal("0")
