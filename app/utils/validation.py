"""Validation utilities."""

import re
from decimal import Decimal, InvalidOperation

from app.config.business_constants import (
    CODE_ALPHABET,
    PIN_CODE_LENGTH,
    REFERRAL_CODE_LENGTH,
)


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str | None) -> bool:
    """
    Validate email format.

    Args:
        email: Email to check

    Returns:
        True if email looks valid
    """
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def normalize_code(code: str | None) -> str:
    """Uppercase and strip a referral code or PIN."""
    return (code or "").strip().upper()


def is_valid_referral_code(code: str | None) -> bool:
    """
    Validate referral code format.

    Args:
        code: Referral code

    Returns:
        True if code has the right length and alphabet
    """
    value = normalize_code(code)
    return len(value) == REFERRAL_CODE_LENGTH and all(
        ch in CODE_ALPHABET for ch in value
    )


def is_valid_pin(pin_code: str | None) -> bool:
    """
    Validate PIN format.

    Args:
        pin_code: PIN code

    Returns:
        True if PIN has the right length and alphabet
    """
    value = normalize_code(pin_code)
    return len(value) == PIN_CODE_LENGTH and all(ch in CODE_ALPHABET for ch in value)


def validate_amount(
    amount: Decimal | int | float | str,
    minimum: Decimal | None = None,
) -> tuple[bool, str | None]:
    """
    Validate a money amount.

    Args:
        amount: Amount to validate
        minimum: Optional inclusive minimum

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return False, "Invalid amount"

    if not value.is_finite():
        return False, "Invalid amount"

    if value <= 0:
        return False, "Amount must be positive"

    if minimum is not None and value < minimum:
        return False, f"Amount must be at least {minimum}"

    return True, None
