"""
PropagationStep repository.

Data access layer for PropagationStep model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.propagation_step import PropagationStep
from app.repositories.base import BaseRepository


class PropagationStepRepository(BaseRepository[PropagationStep]):
    """PropagationStep repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize propagation step repository."""
        super().__init__(PropagationStep, session)

    async def is_settled(self, ancestor_id: int, placed_member_id: int) -> bool:
        """
        Whether the ancestor already absorbed the placement.

        Args:
            ancestor_id: Ancestor member ID
            placed_member_id: Placed member ID

        Returns:
            True if a step row exists
        """
        return await self.exists(
            ancestor_id=ancestor_id, placed_member_id=placed_member_id
        )
