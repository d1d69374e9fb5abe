"""
Withdrawal service.

Members request payouts from their earnings; admins approve or reject.
Requests are PIN-gated and capped at the available balance:
total earnings minus approved and pending withdrawals.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import WITHDRAWAL_METHODS
from app.config.settings import settings
from app.models.enums import RequestStatus
from app.models.withdrawal_request import WithdrawalRequest
from app.repositories.member_repository import MemberRepository
from app.repositories.withdrawal_request_repository import (
    WithdrawalRequestRepository,
)
from app.services.base_service import BaseService, log_operation
from app.services.pin_service import PinService
from app.utils.formatters import format_currency
from app.utils.security import mask_sensitive
from app.utils.validation import validate_amount


class WithdrawalService(BaseService):
    """Withdrawal request lifecycle."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal service."""
        super().__init__(session)
        self.withdrawal_repo = WithdrawalRequestRepository(session)
        self.member_repo = MemberRepository(session)
        self.pin_service = PinService(session)

    async def get_available_balance(self, member_id: int) -> Decimal:
        """
        Balance a member can still withdraw.

        Args:
            member_id: Member ID

        Returns:
            Earnings minus approved and pending withdrawals (0 if unknown)
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            return Decimal("0")

        pending = await self.withdrawal_repo.get_pending_total(member_id)
        return member.total_earnings - member.total_withdrawn - pending

    async def submit(
        self,
        member_id: int,
        amount: Decimal,
        pin_code: str,
        method: str,
        account_details: str,
    ) -> tuple[WithdrawalRequest | None, str | None]:
        """
        Submit a withdrawal request.

        Args:
            member_id: Requesting member
            amount: Amount to withdraw
            pin_code: Member's assigned PIN
            method: easypaisa, jazzcash or bank
            account_details: Payout account

        Returns:
            Tuple of (request, error_message)
        """
        if method not in WITHDRAWAL_METHODS:
            return None, f"Unsupported withdrawal method: {method}"
        if not (account_details or "").strip():
            return None, "Account details are required"

        valid, error = validate_amount(
            amount, minimum=settings.minimum_withdrawal_amount
        )
        if not valid:
            return None, error
        amount = Decimal(str(amount))

        try:
            member = await self.member_repo.get_for_update(member_id)
            if member is None:
                await self.rollback()
                return None, "Member not found"
            if not member.is_active:
                await self.rollback()
                return None, "Only active members can withdraw"

            if not await self.pin_service.verify_member_pin(member_id, pin_code):
                await self.rollback()
                return None, "Invalid PIN"

            available = await self.get_available_balance(member_id)
            if amount > available:
                await self.rollback()
                return None, (
                    f"Insufficient balance: available "
                    f"{format_currency(available, settings.currency)}"
                )

            request = await self.withdrawal_repo.create(
                member_id=member_id,
                amount=amount,
                method=method,
                account_details=account_details.strip(),
                status=RequestStatus.PENDING.value,
            )
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to submit withdrawal",
                extra={"member_id": member_id, "error": str(e)},
                exc_info=True,
            )
            return None, "Withdrawal request failed"

        self.logger.info(
            "Withdrawal requested",
            extra={
                "request_id": request.id,
                "member_id": member_id,
                "amount": str(amount),
                "account": mask_sensitive(request.account_details),
            },
        )
        return request, None

    @log_operation
    async def approve(
        self, request_id: int, admin_id: int, notes: str | None = None
    ) -> tuple[bool, str | None]:
        """
        Approve a pending withdrawal.

        Args:
            request_id: Withdrawal request ID
            admin_id: Reviewing admin
            notes: Optional admin notes

        Returns:
            Tuple of (success, error_message)
        """
        try:
            request = await self.withdrawal_repo.get_for_update(request_id)
            if request is None:
                await self.rollback()
                return False, "Withdrawal request not found"
            if request.status != RequestStatus.PENDING.value:
                await self.rollback()
                return False, f"Withdrawal request is already {request.status}"

            member = await self.member_repo.get_for_update(request.member_id)
            if member is None:
                await self.rollback()
                return False, "Member not found"

            new_withdrawn = member.total_withdrawn + request.amount
            if new_withdrawn > member.total_earnings:
                await self.rollback()
                return False, "Withdrawal exceeds member earnings"

            await self.member_repo.update(member.id, total_withdrawn=new_withdrawn)
            await self.withdrawal_repo.update(
                request.id,
                status=RequestStatus.APPROVED.value,
                reviewed_by=admin_id,
                reviewed_at=datetime.now(UTC),
                admin_notes=notes,
            )
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to approve withdrawal",
                extra={"request_id": request_id, "error": str(e)},
                exc_info=True,
            )
            return False, "Withdrawal approval failed"

        self.logger.success(
            "Withdrawal approved",
            extra={
                "request_id": request_id,
                "member_id": member.id,
                "amount": str(request.amount),
                "admin_id": admin_id,
            },
        )
        return True, None

    async def reject(
        self, request_id: int, admin_id: int, reason: str
    ) -> tuple[bool, str | None]:
        """
        Reject a pending withdrawal.

        Args:
            request_id: Withdrawal request ID
            admin_id: Reviewing admin
            reason: Rejection reason shown to the member

        Returns:
            Tuple of (success, error_message)
        """
        if not (reason or "").strip():
            return False, "Rejection reason is required"

        try:
            request = await self.withdrawal_repo.get_for_update(request_id)
            if request is None:
                await self.rollback()
                return False, "Withdrawal request not found"
            if request.status != RequestStatus.PENDING.value:
                await self.rollback()
                return False, f"Withdrawal request is already {request.status}"

            await self.withdrawal_repo.update(
                request.id,
                status=RequestStatus.REJECTED.value,
                reviewed_by=admin_id,
                reviewed_at=datetime.now(UTC),
                rejection_reason=reason.strip(),
            )
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to reject withdrawal",
                extra={"request_id": request_id, "error": str(e)},
                exc_info=True,
            )
            return False, "Withdrawal rejection failed"

        self.logger.info(
            "Withdrawal rejected",
            extra={"request_id": request_id, "admin_id": admin_id},
        )
        return True, None

    async def list_requests(
        self, status: str | None = None
    ) -> list[WithdrawalRequest]:
        """List withdrawal requests, optionally filtered by status."""
        return await self.withdrawal_repo.get_by_status(status)
