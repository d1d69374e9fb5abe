"""
Formatters utility.

Utility functions for formatting data in the app layer.
"""

from decimal import Decimal


def format_currency(amount: Decimal | int, currency: str = "PKR") -> str:
    """
    Format amount as whole currency units with thousands separators.

    Args:
        amount: Amount to format
        currency: Currency code

    Returns:
        Formatted string like "PKR 20,200"
    """
    value = Decimal(amount).quantize(Decimal("1"))
    return f"{currency} {value:,}"

