"""
PaymentRequest repository.

Data access layer for PaymentRequest model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import RequestStatus
from app.models.payment_request import PaymentRequest
from app.repositories.base import BaseRepository


class PaymentRequestRepository(BaseRepository[PaymentRequest]):
    """PaymentRequest repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payment request repository."""
        super().__init__(PaymentRequest, session)

    async def has_pending(self, member_id: int) -> bool:
        """Whether the member has a request awaiting review."""
        return await self.exists(
            member_id=member_id, status=RequestStatus.PENDING.value
        )

    async def get_by_status(
        self, status: str | None = None
    ) -> list[PaymentRequest]:
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
