"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base
from app.models.earning import Earning
from app.models.enums import (
    EarningSourceType,
    PaymentStatus,
    PinStatus,
    PlacementStrategy,
    RequestStatus,
    TreeSide,
)
from app.models.member import Member
from app.models.pair_record import PairRecord
from app.models.payment_request import PaymentRequest
from app.models.pin import Pin
from app.models.propagation_step import PropagationStep
from app.models.star_level import StarLevel
from app.models.withdrawal_request import WithdrawalRequest


__all__ = [
    "Base",
    # Tree and ledger
    "Member",
    "PairRecord",
    "Earning",
    "StarLevel",
    "PropagationStep",
    # Workflows
    "PaymentRequest",
    "WithdrawalRequest",
    "Pin",
    # Enums
    "EarningSourceType",
    "PaymentStatus",
    "PinStatus",
    "PlacementStrategy",
    "RequestStatus",
    "TreeSide",
]
