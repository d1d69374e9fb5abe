"""
Business logic constants.

Central location for business rules and defaults used across the application.
This module has no imports from the rest of the app so that settings,
services and scripts can all depend on it without circular imports.
"""

from decimal import Decimal


# Currency and joining fee
DEFAULT_CURRENCY = "PKR"
REGISTRATION_FEE = Decimal("850")

# Pair earning schedule: pair #1, pairs #2..#99, pairs #100 onwards
FIRST_PAIR_EARNING = Decimal("400")
REGULAR_PAIR_EARNING = Decimal("200")
REDUCED_PAIR_EARNING = Decimal("100")
REDUCED_PAIR_FROM_INDEX = 100

# Star levels: level -> (required matched pairs, reward, title)
DEFAULT_STAR_LEVELS: dict[int, tuple[int, Decimal, str]] = {
    1: (10, Decimal("500"), "1 Star"),
    2: (30, Decimal("1500"), "2 Star"),
    3: (100, Decimal("3000"), "3 Star"),
    4: (550, Decimal("25000"), "4 Star"),
    5: (1100, Decimal("35000"), "5 Star"),
    6: (2500, Decimal("60000"), "6 Star"),
    7: (5000, Decimal("140000"), "7 Star"),
    8: (10000, Decimal("300000"), "8 Star"),
    9: (20000, Decimal("600000"), "9 Star"),
    10: (30000, Decimal("1000000"), "10 Star"),
    11: (40000, Decimal("1500000"), "11 Star"),
    12: (50000, Decimal("2000000"), "12 Star"),
}
MAX_STAR_LEVEL = 12

# Referral codes and PINs
CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
REFERRAL_CODE_LENGTH = 8
PIN_CODE_LENGTH = 6
MAX_PINS_PER_BATCH = 500

# Payment methods accepted for manual payment proof
PAYMENT_TYPES = ("easypaisa", "jazzcash")
WITHDRAWAL_METHODS = ("easypaisa", "jazzcash", "bank")
