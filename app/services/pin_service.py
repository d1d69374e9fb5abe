"""
PIN service.

Admins generate PINs in bulk; each approved payment consumes one unused
PIN, which then gates the member's withdrawals.
"""

from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import MAX_PINS_PER_BATCH, PIN_CODE_LENGTH
from app.models.enums import PinStatus
from app.models.pin import Pin
from app.repositories.member_repository import MemberRepository
from app.repositories.pin_repository import PinRepository
from app.services.base_service import BaseService
from app.utils.db_decorators import with_auto_commit, with_rollback_on_error
from app.utils.security import generate_code, mask_pin
from app.utils.validation import is_valid_pin, normalize_code


class PinService(BaseService):
    """PIN generation, assignment and verification."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize PIN service."""
        super().__init__(session)
        self.pin_repo = PinRepository(session)
        self.member_repo = MemberRepository(session)

    @with_auto_commit
    async def generate_bulk(
        self, count: int, admin_id: int | None = None
    ) -> tuple[list[Pin], str | None]:
        """
        Generate unused PINs.

        Args:
            count: Number of PINs (1..MAX_PINS_PER_BATCH)
            admin_id: Admin who generated them

        Returns:
            Tuple of (pins, error_message)
        """
        if count < 1 or count > MAX_PINS_PER_BATCH:
            return [], f"Count must be between 1 and {MAX_PINS_PER_BATCH}"

        codes: set[str] = set()
        while len(codes) < count:
            candidates = {
                generate_code(PIN_CODE_LENGTH) for _ in range(count - len(codes))
            }
            existing = await self.pin_repo.get_existing_codes(list(candidates))
            codes |= candidates - existing

        pins = [
            await self.pin_repo.create(
                pin_code=code,
                status=PinStatus.UNUSED.value,
                generated_by=admin_id,
            )
            for code in sorted(codes)
        ]

        self.logger.info(
            "PINs generated",
            extra={"count": len(pins), "admin_id": admin_id},
        )
        return pins, None

    @with_rollback_on_error
    async def assign_next_unused(self, member_id: int) -> Pin | None:
        """
        Assign the oldest unused PIN to a member.

        Uses a conditional update so two approvals never share a PIN.
        Does not commit; the caller owns the transaction.

        Args:
            member_id: Member receiving the PIN

        Returns:
            Assigned Pin or None when no unused PIN is left
        """
        for pin in await self.pin_repo.get_unused(limit=10):
            claimed = await self.pin_repo.update_where(
                pin.id,
                {"status": PinStatus.UNUSED.value},
                status=PinStatus.ASSIGNED.value,
                assigned_to=member_id,
                assigned_at=datetime.now(UTC),
            )
            if not claimed:
                continue

            await self.member_repo.update(member_id, referral_pin=pin.pin_code)
            self.logger.info(
                "PIN assigned",
                extra={"member_id": member_id, "pin": mask_pin(pin.pin_code)},
            )
            return await self.pin_repo.get_by_id(pin.id)

        self.logger.warning(
            "No unused PIN available", extra={"member_id": member_id}
        )
        return None

    async def verify_member_pin(self, member_id: int, pin_code: str) -> bool:
        """
        Check that a PIN is assigned to the member.

        Args:
            member_id: Member ID
            pin_code: PIN entered by the member

        Returns:
            True if the PIN belongs to the member
        """
        code = normalize_code(pin_code)
        if not is_valid_pin(code):
            return False

        pin = await self.pin_repo.get_by_code(code)
        return (
            pin is not None
            and pin.status == PinStatus.ASSIGNED.value
            and pin.assigned_to == member_id
        )

    async def list_pins(
        self, status: str | None = None
    ) -> tuple[list[Pin], str | None]:
        """
        List PINs, optionally by status.

        Args:
            status: unused, assigned, or None for all

        Returns:
            Tuple of (pins, error_message)
        """
        try:
            if status:
                return await self.pin_repo.find_by(status=status), None
            return await self.pin_repo.find_all(), None
        except SQLAlchemyError as e:
            self.logger.error(
                "Failed to list PINs", extra={"error": str(e)}, exc_info=True
            )
            return [], "Failed to load PINs"
