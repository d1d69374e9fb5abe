"""
Earning repository.

Data access layer for Earning model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.earning import Earning
from app.repositories.base import BaseRepository


class EarningRepository(BaseRepository[Earning]):
    """Earning repository with aggregation queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize earning repository."""
        super().__init__(Earning, session)

    async def get_by_key(
        self, member_id: int, source_type: str, source_id: str
    ) -> Earning | None:
        """
        Get earning by its idempotence key.

        Args:
            member_id: Member ID
            source_type: Earning source type
            source_id: Source discriminator (pair_3, star_2, ...)

        Returns:
            Earning or None
        """
        return await self.get_by(
            member_id=member_id,
            source_type=source_type,
            source_id=source_id,
        )

    async def get_by_member(
        self,
        member_id: int,
        source_type: str | None = None,
        limit: int | None = None,
    ) -> list[Earning]:
        """
        Get earnings of a member, newest first.

        Args:
            member_id: Member ID
            source_type: Optional source type filter
            limit: Max number of results

        Returns:
            List of earnings
        """
        stmt = select(Earning).where(Earning.member_id == member_id)
        if source_type:
            stmt = stmt.where(Earning.source_type == source_type)
        stmt = stmt.order_by(Earning.created_at.desc(), Earning.id.desc())
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_total(
        self, member_id: int, source_type: str | None = None
    ) -> Decimal:
        """
        Sum of earnings of a member.

        Uses SQL aggregation to avoid loading the whole ledger.

        Args:
            member_id: Member ID
            source_type: Optional source type filter

        Returns:
            Total amount (0 if none)
        """
        stmt = select(func.sum(Earning.amount)).where(
            Earning.member_id == member_id
        )
        if source_type:
            stmt = stmt.where(Earning.source_type == source_type)

        result = await self.session.execute(stmt)
        return result.scalar() or Decimal("0")

    async def get_totals_by_source(self, member_id: int) -> dict[str, Decimal]:
        """
        Earnings of a member grouped by source type in a single query.

        Args:
            member_id: Member ID

        Returns:
            Dict mapping source type to total amount
        """
        stmt = (
            select(Earning.source_type, func.sum(Earning.amount).label("total"))
            .where(Earning.member_id == member_id)
            .group_by(Earning.source_type)
        )
        result = await self.session.execute(stmt)
        return {row.source_type: row.total or Decimal("0") for row in result.all()}
