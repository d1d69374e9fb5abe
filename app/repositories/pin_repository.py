"""
Pin repository.

Data access layer for Pin model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import PinStatus
from app.models.pin import Pin
from app.repositories.base import BaseRepository


class PinRepository(BaseRepository[Pin]):
    """Pin repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize pin repository."""
        super().__init__(Pin, session)

    async def get_by_code(self, pin_code: str) -> Pin | None:
        """Get PIN by code."""
        return await self.get_by(pin_code=pin_code)

    async def get_unused(self, limit: int = 10) -> list[Pin]:
        """
        Get unused PINs, oldest first.

        Args:
            limit: Max number of results

        Returns:
            List of unused PINs
        """
        stmt = (
            select(Pin)
            .where(Pin.status == PinStatus.UNUSED.value)
            .order_by(Pin.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_existing_codes(self, codes: list[str]) -> set[str]:
        """
        Get which of the given codes already exist.

        Args:
            codes: Candidate codes

        Returns:
            Set of codes already stored
        """
        if not codes:
            return set()
        stmt = select(Pin.pin_code).where(Pin.pin_code.in_(codes))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())
