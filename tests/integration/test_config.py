"""Integration tests for loading the binary configuration."""

from decimal import Decimal

import pytest

from app.config.settings import Settings
from app.models.enums import PlacementStrategy
from app.models.star_level import StarLevel
from app.services.binary.config import load_binary_config


@pytest.fixture
def balanced_settings():
    """Settings with non-default strategy and pair amounts."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        environment="test",
        placement_strategy="balanced",
        first_pair_earning=Decimal("500"),
        sponsor_bonus_amount=Decimal("50"),
    )


class TestLoadBinaryConfig:
    """Tests for load_binary_config."""

    @pytest.mark.asyncio
    async def test_empty_table_uses_defaults(self, session, balanced_settings):
        """Without star rows the default twelve-level table applies."""
        config = await load_binary_config(session, balanced_settings)

        assert config.placement_strategy == PlacementStrategy.BALANCED
        assert config.pair_tiers.amount_for(1) == Decimal("500")
        assert config.sponsor_bonus_amount == Decimal("50")
        assert len(config.star_levels) == 12
        assert config.star_level_for(30).level == 2

    @pytest.mark.asyncio
    async def test_active_rows_replace_defaults(self, session, balanced_settings):
        """Only active star rows are loaded."""
        session.add_all([
            StarLevel(
                level=1, required_pairs=5, reward_amount=Decimal("250"),
                title="Bronze",
            ),
            StarLevel(
                level=2, required_pairs=20, reward_amount=Decimal("900"),
                title="Silver",
            ),
            StarLevel(
                level=3, required_pairs=60, reward_amount=Decimal("2000"),
                title="Gold", is_active=False,
            ),
        ])
        await session.commit()

        config = await load_binary_config(session, balanced_settings)

        assert [rule.level for rule in config.star_levels] == [1, 2]
        assert config.star_level_for(5).reward_amount == Decimal("250")
        assert config.star_level_for(100).level == 2
        assert config.next_star_level(2) is None
