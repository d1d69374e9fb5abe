"""
Security utilities.

Random code generation for referral codes and PINs, and masking of
sensitive values (account numbers, PINs) before they reach the logs.
"""

import secrets

from app.config.business_constants import CODE_ALPHABET


def generate_code(length: int, alphabet: str = CODE_ALPHABET) -> str:
    """
    Generate a random code from a cryptographically secure source.

    Args:
        length: Number of characters
        alphabet: Allowed characters

    Returns:
        Random code

    Examples:
        >>> len(generate_code(8))
        8
    """
    return "".join(secrets.choice(alphabet) for _ in range(length))


def mask_sensitive(value: str | None, show_chars: int = 4) -> str:
    """
    Mask sensitive string (account numbers, PINs, etc).

    Args:
        value: Sensitive value to mask
        show_chars: Number of characters to show at start and end

    Returns:
        Masked value or '***' if too short

    Examples:
        >>> mask_sensitive("03001234567890", show_chars=4)
        '0300...7890'
        >>> mask_sensitive("short")
        '***'
        >>> mask_sensitive(None)
        '***'
    """
    if not value or len(value) <= show_chars * 2:
        return "***"
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def mask_pin(pin_code: str | None) -> str:
    """
    Mask a PIN, keeping only the last character.

    Examples:
        >>> mask_pin("AB12CD")
        '*****D'
    """
    if not pin_code:
        return "***"
    return "*" * (len(pin_code) - 1) + pin_code[-1]
