"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.business_constants import (
    DEFAULT_CURRENCY,
    FIRST_PAIR_EARNING,
    REDUCED_PAIR_EARNING,
    REDUCED_PAIR_FROM_INDEX,
    REGISTRATION_FEE,
    REGULAR_PAIR_EARNING,
)


PLACEMENT_STRATEGIES = ("leftmost", "balanced")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = Field(
        default=None,
        description="Optional path of a rotating log file (e.g. logs/binarytree.log)",
    )

    # Placement
    placement_strategy: str = Field(
        default="leftmost",
        description="Slot search strategy: leftmost or balanced",
    )
    placement_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Slot resolution attempts before giving up on a contended slot",
    )
    tree_traversal_limit: int = Field(
        default=1_000_000,
        ge=1,
        description="Maximum nodes visited by a single tree traversal",
    )

    # Fees and earnings (PKR)
    currency: str = DEFAULT_CURRENCY
    registration_fee: Decimal = Field(default=REGISTRATION_FEE, gt=0)
    first_pair_earning: Decimal = Field(default=FIRST_PAIR_EARNING, ge=0)
    regular_pair_earning: Decimal = Field(default=REGULAR_PAIR_EARNING, ge=0)
    reduced_pair_earning: Decimal = Field(default=REDUCED_PAIR_EARNING, ge=0)
    reduced_pair_from_index: int = Field(
        default=REDUCED_PAIR_FROM_INDEX,
        ge=2,
        description="First pair index paid at the reduced rate",
    )
    sponsor_bonus_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Bonus credited to the sponsor on each placement (0 disables)",
    )

    # Withdrawals
    minimum_withdrawal_amount: Decimal = Field(default=Decimal("500"), gt=0)

    # Record store retries
    store_retry_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for transient record store failures",
    )
    store_retry_base_delay: float = Field(
        default=0.5,
        ge=0,
        description="Base delay in seconds for exponential backoff",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('placement_strategy')
    @classmethod
    def validate_placement_strategy(cls, v: str) -> str:
        """Validate placement strategy name."""
        value = v.strip().lower()
        if value not in PLACEMENT_STRATEGIES:
            raise ValueError(
                f'Invalid placement strategy: {v}. '
                f'Expected one of: {", ".join(PLACEMENT_STRATEGIES)}'
            )
        return value

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith((
            'postgresql://',
            'postgresql+asyncpg://',
            'sqlite+aiosqlite://',
        )):
            raise ValueError(
                'DATABASE_URL must start with postgresql+asyncpg:// '
                'or sqlite+aiosqlite://'
            )
        return v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Normalize currency code."""
        value = v.strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError(f'Invalid currency code: {v}')
        return value

    @model_validator(mode='after')
    def validate_pair_tiers(self) -> 'Settings':
        """Pair amounts must not increase with the pair index."""
        if self.regular_pair_earning > self.first_pair_earning:
            logger.warning(
                "REGULAR_PAIR_EARNING is higher than FIRST_PAIR_EARNING",
                extra={
                    "first": str(self.first_pair_earning),
                    "regular": str(self.regular_pair_earning),
                },
            )
        return self

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if self.database_url.startswith('sqlite'):
                raise ValueError(
                    'SQLite cannot be used in production: it has no row locks '
                    'for concurrent placements. Use postgresql+asyncpg://'
                )
        return self

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith('sqlite')


# Global settings instance
settings = Settings()
