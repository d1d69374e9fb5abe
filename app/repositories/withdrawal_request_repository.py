"""
WithdrawalRequest repository.

Data access layer for WithdrawalRequest model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import RequestStatus
from app.models.withdrawal_request import WithdrawalRequest
from app.repositories.base import BaseRepository


class WithdrawalRequestRepository(BaseRepository[WithdrawalRequest]):
    """WithdrawalRequest repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal request repository."""
        super().__init__(WithdrawalRequest, session)

    async def get_pending_total(self, member_id: int) -> Decimal:
        """
        Sum of pending withdrawal amounts of a member.

        Args:
            member_id: Member ID

        Returns:
            Total pending amount (0 if none)
        """
        stmt = select(func.sum(WithdrawalRequest.amount)).where(
            WithdrawalRequest.member_id == member_id,
            WithdrawalRequest.status == RequestStatus.PENDING.value,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or Decimal("0")

    async def get_by_status(
        self, status: str | None = None
    ) -> list[WithdrawalRequest]:
        """
        Get requests, optionally filtered by status.

        Args:
            status: Status filter, None or "all" for every request

        Returns:
            List of requests ordered by ID
        """
        if status and status != "all":
            return await self.find_by(status=status)
        return await self.find_all()
