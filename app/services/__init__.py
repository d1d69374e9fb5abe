"""
Services.

Business logic layer.
"""

# Base Service Infrastructure
from app.services.base_service import BaseService, log_operation

# Binary tree core
from app.services.binary import (
    BinaryConfig,
    LedgerWriter,
    PlacementOrchestrator,
    PlacementResolver,
    PropagationEngine,
    TreeBalanceCalculator,
    load_binary_config,
)

# Member workflows
from app.services.member_service import MemberService, MemberStats
from app.services.payment_request_service import PaymentRequestService
from app.services.pin_service import PinService
from app.services.withdrawal_service import WithdrawalService


__all__ = [
    # Base
    "BaseService",
    "log_operation",
    # Binary tree core
    "BinaryConfig",
    "LedgerWriter",
    "PlacementOrchestrator",
    "PlacementResolver",
    "PropagationEngine",
    "TreeBalanceCalculator",
    "load_binary_config",
    # Member workflows
    "MemberService",
    "MemberStats",
    "PaymentRequestService",
    "PinService",
    "WithdrawalService",
]
