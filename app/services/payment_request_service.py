"""
Payment request service.

Members submit proof of the registration fee payment; an admin approves
it, which assigns a PIN and places the member into the binary tree.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import PAYMENT_TYPES
from app.config.settings import settings
from app.models.enums import PaymentStatus, RequestStatus
from app.models.payment_request import PaymentRequest
from app.repositories.member_repository import MemberRepository
from app.repositories.payment_request_repository import (
    PaymentRequestRepository,
)
from app.services.base_service import BaseService, log_operation
from app.services.binary.config import load_binary_config
from app.services.binary.placement_orchestrator import (
    PlacementOrchestrator,
    PlacementResult,
)
from app.services.pin_service import PinService
from app.utils.exceptions import BinaryTreeError
from app.utils.formatters import format_currency
from app.utils.validation import validate_amount


class PaymentRequestService(BaseService):
    """Registration payment review and member activation."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payment request service."""
        super().__init__(session)
        self.request_repo = PaymentRequestRepository(session)
        self.member_repo = MemberRepository(session)
        self.pin_service = PinService(session)

    async def submit(
        self,
        member_id: int,
        payment_type: str,
        amount: Decimal,
        transaction_id: str,
        screenshot_ref: str | None = None,
    ) -> tuple[PaymentRequest | None, str | None]:
        """
        Submit a registration payment for review.

        Args:
            member_id: Paying member
            payment_type: easypaisa or jazzcash
            amount: Paid amount (at least the registration fee)
            transaction_id: Provider transaction reference
            screenshot_ref: Reference to the uploaded proof

        Returns:
            Tuple of (request, error_message)
        """
        if payment_type not in PAYMENT_TYPES:
            return None, f"Unsupported payment type: {payment_type}"
        if not (transaction_id or "").strip():
            return None, "Transaction ID is required"

        valid, _ = validate_amount(amount, minimum=settings.registration_fee)
        if not valid:
            return None, (
                "Minimum payment is "
                f"{format_currency(settings.registration_fee, settings.currency)}"
            )

        try:
            member = await self.member_repo.get_by_id(member_id)
            if member is None:
                return None, "Member not found"
            if member.payment_status == PaymentStatus.APPROVED.value:
                return None, "Payment already approved"
            if await self.request_repo.has_pending(member_id):
                return None, "A payment request is already pending review"

            request = await self.request_repo.create(
                member_id=member_id,
                payment_type=payment_type,
                amount=Decimal(str(amount)),
                transaction_id=transaction_id.strip(),
                screenshot_ref=screenshot_ref,
                status=RequestStatus.PENDING.value,
            )
            await self.member_repo.update(
                member_id, payment_status=PaymentStatus.PENDING.value
            )
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to submit payment request",
                extra={"member_id": member_id, "error": str(e)},
                exc_info=True,
            )
            return None, "Payment submission failed"

        self.logger.info(
            "Payment request submitted",
            extra={
                "request_id": request.id,
                "member_id": member_id,
                "payment_type": payment_type,
                "amount": str(request.amount),
            },
        )
        return request, None

    @log_operation
    async def approve(
        self, request_id: int, admin_id: int, notes: str | None = None
    ) -> tuple[PlacementResult | None, str | None]:
        """
        Approve a payment, assign a PIN and place the member.

        The approval is committed before placement. If placement fails the
        member stays approved and unplaced; retry_placement finishes it.

        Args:
            request_id: Payment request ID
            admin_id: Reviewing admin
            notes: Optional admin notes

        Returns:
            Tuple of (placement result, error_message)
        """
        try:
            request = await self.request_repo.get_for_update(request_id)
            if request is None:
                await self.rollback()
                return None, "Payment request not found"
            if request.status != RequestStatus.PENDING.value:
                await self.rollback()
                return None, f"Payment request is already {request.status}"

            pin = await self.pin_service.assign_next_unused(request.member_id)
            if pin is None:
                await self.rollback()
                return None, "No unused PINs available. Generate PINs first."

            await self.request_repo.update(
                request.id,
                status=RequestStatus.APPROVED.value,
                reviewed_by=admin_id,
                reviewed_at=datetime.now(UTC),
                admin_notes=notes,
            )
            await self.member_repo.update(
                request.member_id,
                payment_status=PaymentStatus.APPROVED.value,
                registration_fee=request.amount,
            )
            member_id = request.member_id
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to approve payment request",
                extra={"request_id": request_id, "error": str(e)},
                exc_info=True,
            )
            return None, "Payment approval failed"

        self.logger.success(
            "Payment approved",
            extra={
                "request_id": request_id,
                "member_id": member_id,
                "admin_id": admin_id,
            },
        )
        return await self.retry_placement(member_id)

    async def retry_placement(
        self, member_id: int
    ) -> tuple[PlacementResult | None, str | None]:
        """
        Place an approved member (no-op if already placed).

        Args:
            member_id: Approved member

        Returns:
            Tuple of (placement result, error_message)
        """
        try:
            member = await self.member_repo.refresh_by_id(member_id)
            if member is None:
                return None, "Member not found"
            if member.payment_status != PaymentStatus.APPROVED.value:
                return None, "Payment is not approved"

            sponsor_id = member.sponsor_id
            if sponsor_id is None:
                # Members who registered without a referral code join under the company root
                root = await self.member_repo.get_first_root()
                sponsor_id = (
                    root.id if root is not None and root.id != member_id else None
                )

            config = await load_binary_config(self.session)
            orchestrator = PlacementOrchestrator(self.session, config)
            result = await orchestrator.place_member(member_id, sponsor_id)
        except BinaryTreeError as e:
            self.logger.error(
                "Placement after payment approval failed",
                extra={"member_id": member_id, "error": str(e)},
            )
            return None, f"Payment approved but placement failed: {e}"
        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Database error while placing approved member",
                extra={"member_id": member_id, "error": str(e)},
                exc_info=True,
            )
            return None, "Payment approved but placement failed: database error"

        return result, None

    async def reject(
        self, request_id: int, admin_id: int, reason: str
    ) -> tuple[bool, str | None]:
        """
        Reject a pending payment.

        Args:
            request_id: Payment request ID
            admin_id: Reviewing admin
            reason: Rejection reason shown to the member

        Returns:
            Tuple of (success, error_message)
        """
        if not (reason or "").strip():
            return False, "Rejection reason is required"

        try:
            request = await self.request_repo.get_for_update(request_id)
            if request is None:
                await self.rollback()
                return False, "Payment request not found"
            if request.status != RequestStatus.PENDING.value:
                await self.rollback()
                return False, f"Payment request is already {request.status}"

            await self.request_repo.update(
                request.id,
                status=RequestStatus.REJECTED.value,
                reviewed_by=admin_id,
                reviewed_at=datetime.now(UTC),
                rejection_reason=reason.strip(),
            )
            await self.member_repo.update(
                request.member_id, payment_status=PaymentStatus.REJECTED.value
            )
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to reject payment request",
                extra={"request_id": request_id, "error": str(e)},
                exc_info=True,
            )
            return False, "Payment rejection failed"

        self.logger.info(
            "Payment rejected",
            extra={"request_id": request_id, "admin_id": admin_id},
        )
        return True, None

    async def list_requests(
        self, status: str | None = None
    ) -> list[PaymentRequest]:
        """List payment requests, optionally filtered by status."""
        return await self.request_repo.get_by_status(status)
