"""
Enumerations shared by models and services.

Values are stored as plain strings in the database.
"""

from enum import StrEnum


class TreeSide(StrEnum):
    """Side of a binary tree slot."""

    LEFT = "left"
    RIGHT = "right"

class PlacementStrategy(StrEnum):
    """Slot search strategy."""

    LEFTMOST = "leftmost"
    BALANCED = "balanced"


class PaymentStatus(StrEnum):
    """Registration fee status of a member."""

    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EarningSourceType(StrEnum):
    """Origin of an earning record."""

    PAIR = "pair"
    STAR_REWARD = "star_reward"
    SPONSOR_BONUS = "sponsor_bonus"
    MANUAL = "manual"


class RequestStatus(StrEnum):
    """Status of payment and withdrawal requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PinStatus(StrEnum):
    """Lifecycle of a referral PIN."""

    UNUSED = "unused"
    ASSIGNED = "assigned"
