"""
StarLevel repository.

Data access layer for StarLevel reference data.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import DEFAULT_STAR_LEVELS
from app.models.star_level import StarLevel
from app.repositories.base import BaseRepository


class StarLevelRepository(BaseRepository[StarLevel]):
    """StarLevel repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize star level repository."""
        super().__init__(StarLevel, session)

    async def get_active_levels(self) -> list[StarLevel]:
        """
        Get active star levels ordered by level.

        Returns:
            List of active star levels
        """
        stmt = (
            select(StarLevel)
            .where(StarLevel.is_active.is_(True))
            .order_by(StarLevel.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def seed_defaults(self) -> int:
        """
        Insert the default star table for levels that are missing.

        Returns:
            Number of levels inserted
        """
        existing = {level.level for level in await self.find_all()}
        inserted = 0

        for level, (required_pairs, reward, title) in DEFAULT_STAR_LEVELS.items():
            if level in existing:
                continue
            await self.create(
                level=level,
                required_pairs=required_pairs,
                reward_amount=reward,
                title=title,
                is_active=True,
            )
            inserted += 1

        return inserted
