"""
Binary tree configuration.

Injected configuration for placement and propagation: strategy, pair
earning tiers and the star level table. Built from settings and the
star_levels table, never hardcoded in the engine.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import (
    DEFAULT_CURRENCY,
    DEFAULT_STAR_LEVELS,
    FIRST_PAIR_EARNING,
    REDUCED_PAIR_EARNING,
    REDUCED_PAIR_FROM_INDEX,
    REGULAR_PAIR_EARNING,
)
from app.config.settings import Settings, settings as app_settings
from app.models.enums import PlacementStrategy
from app.repositories.star_level_repository import StarLevelRepository


@dataclass(frozen=True)
class StarLevelRule:
    """Star level threshold and reward."""

    level: int
    required_pairs: int
    reward_amount: Decimal
    title: str


@dataclass(frozen=True)
class PairTierSchedule:
    """
    Tiered pair earning schedule.

    Pair #1 pays first_pair_amount, pairs #2 up to reduced_from_index - 1
    pay regular_pair_amount, every later pair pays reduced_pair_amount.
    """

    first_pair_amount: Decimal = FIRST_PAIR_EARNING
    regular_pair_amount: Decimal = REGULAR_PAIR_EARNING
    reduced_pair_amount: Decimal = REDUCED_PAIR_EARNING
    reduced_from_index: int = REDUCED_PAIR_FROM_INDEX

    def amount_for(self, pair_index: int) -> Decimal:
        """
        Amount credited for a pair index.

        Args:
            pair_index: 1-based pair index

        Returns:
            Amount for that index

        Raises:
            ValueError: If pair_index < 1
        """
        if pair_index < 1:
            raise ValueError(f"Pair index must be >= 1, got {pair_index}")
        if pair_index == 1:
            return self.first_pair_amount
        if pair_index < self.reduced_from_index:
            return self.regular_pair_amount
        return self.reduced_pair_amount

    def total_for(self, pairs_completed: int) -> Decimal:
        """
        Cumulative pair earnings for pairs 1..pairs_completed.

        Args:
            pairs_completed: Number of completed pairs

        Returns:
            Total amount
        """
        if pairs_completed <= 0:
            return Decimal("0")

        total = self.first_pair_amount
        regular_count = min(pairs_completed, self.reduced_from_index - 1) - 1
        total += self.regular_pair_amount * regular_count
        reduced_count = max(0, pairs_completed - (self.reduced_from_index - 1))
        total += self.reduced_pair_amount * reduced_count
        return total


def default_star_levels() -> tuple[StarLevelRule, ...]:
    """Star table from business constants."""
    return tuple(
        StarLevelRule(
            level=level,
            required_pairs=required_pairs,
            reward_amount=reward,
            title=title,
        )
        for level, (required_pairs, reward, title) in sorted(
            DEFAULT_STAR_LEVELS.items()
        )
    )


@dataclass(frozen=True)
class BinaryConfig:
    """Configuration consumed by placement and propagation."""

    placement_strategy: PlacementStrategy = PlacementStrategy.LEFTMOST
    pair_tiers: PairTierSchedule = field(default_factory=PairTierSchedule)
    star_levels: tuple[StarLevelRule, ...] = field(
        default_factory=default_star_levels
    )
    currency: str = DEFAULT_CURRENCY
    sponsor_bonus_amount: Decimal = Decimal("0")
    traversal_limit: int = 1_000_000
    placement_max_attempts: int = 5
    store_retry_attempts: int = 5
    store_retry_base_delay: float = 0.5

    def star_level_for(self, pairs_completed: int) -> StarLevelRule | None:
        """
        Highest star level whose threshold is met.

        Args:
            pairs_completed: Matched pairs of the member

        Returns:
            StarLevelRule or None below the first threshold
        """
        reached = [
            rule for rule in self.star_levels
            if rule.required_pairs <= pairs_completed
        ]
        if not reached:
            return None
        return max(reached, key=lambda rule: rule.level)

    def next_star_level(self, current_level: int) -> StarLevelRule | None:
        """Lowest configured star level above current_level."""
        above = [rule for rule in self.star_levels if rule.level > current_level]
        if not above:
            return None
        return min(above, key=lambda rule: rule.level)

    @classmethod
    def from_settings(
        cls,
        source: Settings,
        star_levels: tuple[StarLevelRule, ...] | None = None,
    ) -> "BinaryConfig":
        """
        Build configuration from settings.

        Args:
            source: Application settings
            star_levels: Star table (defaults to business constants)

        Returns:
            BinaryConfig
        """
        return cls(
            placement_strategy=PlacementStrategy(source.placement_strategy),
            pair_tiers=PairTierSchedule(
                first_pair_amount=source.first_pair_earning,
                regular_pair_amount=source.regular_pair_earning,
                reduced_pair_amount=source.reduced_pair_earning,
                reduced_from_index=source.reduced_pair_from_index,
            ),
            star_levels=star_levels or default_star_levels(),
            currency=source.currency,
            sponsor_bonus_amount=source.sponsor_bonus_amount,
            traversal_limit=source.tree_traversal_limit,
            placement_max_attempts=source.placement_max_attempts,
            store_retry_attempts=source.store_retry_attempts,
            store_retry_base_delay=source.store_retry_base_delay,
        )


async def load_binary_config(
    session: AsyncSession, source: Settings | None = None
) -> BinaryConfig:
    """
    Load configuration from settings and the active star levels.

    Falls back to the default star table when star_levels is empty.

    Args:
        session: Database session
        source: Settings override (defaults to global settings)

    Returns:
        BinaryConfig
    """
    rows = await StarLevelRepository(session).get_active_levels()
    star_levels = tuple(
        StarLevelRule(
            level=row.level,
            required_pairs=row.required_pairs,
            reward_amount=row.reward_amount,
            title=row.title,
        )
        for row in rows
    )

    if not star_levels:
        logger.warning("star_levels table is empty, using default star table")

    return BinaryConfig.from_settings(
        source or app_settings, star_levels=star_levels or None
    )
