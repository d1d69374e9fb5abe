"""
Member service.

Registration, root creation and dashboard statistics. Registered members
stay inactive and unplaced until their payment is approved.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import REFERRAL_CODE_LENGTH
from app.models.enums import PaymentStatus
from app.models.member import Member
from app.repositories.earning_repository import EarningRepository
from app.repositories.member_repository import MemberRepository
from app.repositories.withdrawal_request_repository import (
    WithdrawalRequestRepository,
)
from app.services.base_service import BaseService
from app.services.binary.config import load_binary_config
from app.utils.security import generate_code
from app.utils.validation import (
    is_valid_email,
    is_valid_referral_code,
    normalize_code,
)


# Attempts at drawing an unused referral code
REFERRAL_CODE_ATTEMPTS = 10


@dataclass
class MemberStats:
    """Dashboard statistics of a member."""

    member_id: int
    direct_referrals: int
    left_referrals: int
    right_referrals: int
    left_active_count: int
    right_active_count: int
    pairs_completed: int
    total_earnings: Decimal
    total_withdrawn: Decimal
    pending_withdrawals: Decimal
    available_balance: Decimal
    star_level: int
    next_star_level: int | None
    next_star_required_pairs: int | None
    star_progress_percent: float
    earnings_by_source: dict[str, Decimal] = field(default_factory=dict)


class MemberService(BaseService):
    """Member registration and statistics."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize member service."""
        super().__init__(session)
        self.member_repo = MemberRepository(session)
        self.earning_repo = EarningRepository(session)
        self.withdrawal_repo = WithdrawalRequestRepository(session)

    async def register_member(
        self,
        name: str,
        email: str,
        referral_code: str | None = None,
    ) -> tuple[Member | None, str | None]:
        """
        Register a member under the sponsor owning referral_code.

        Args:
            name: Display name
            email: Unique email
            referral_code: Sponsor's referral code (optional)

        Returns:
            Tuple of (member, error_message)
        """
        name = (name or "").strip()
        if not name:
            return None, "Name is required"
        if not is_valid_email(email):
            return None, "Invalid email address"

        email = email.strip().lower()

        try:
            if await self.member_repo.get_by_email(email):
                return None, "Email is already registered"

            sponsor_id = None
            if referral_code:
                if not is_valid_referral_code(referral_code):
                    return None, "Invalid referral code"
                sponsor = await self.member_repo.get_by_referral_code(
                    normalize_code(referral_code)
                )
                if sponsor is None:
                    return None, "Invalid referral code"
                sponsor_id = sponsor.id

            code = await self._new_referral_code()
            if code is None:
                return None, "Could not generate a referral code"

            member = await self.member_repo.create(
                name=name,
                email=email,
                referral_code=code,
                sponsor_id=sponsor_id,
                payment_status=PaymentStatus.NOT_SUBMITTED.value,
            )
            await self.commit()

        except IntegrityError:
            await self.rollback()
            return None, "Email or referral code is already taken"
        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to register member",
                extra={"email": email, "error": str(e)},
                exc_info=True,
            )
            return None, "Registration failed"

        self.logger.info(
            "Member registered",
            extra={"member_id": member.id, "sponsor_id": sponsor_id},
        )
        return member, None

    async def create_root_member(
        self, name: str, email: str
    ) -> tuple[Member | None, str | None]:
        """
        Create an active tree root (company account).

        Args:
            name: Display name
            email: Unique email

        Returns:
            Tuple of (member, error_message)
        """
        if not is_valid_email(email):
            return None, "Invalid email address"

        email = email.strip().lower()

        try:
            if await self.member_repo.get_by_email(email):
                return None, "Email is already registered"

            code = await self._new_referral_code()
            if code is None:
                return None, "Could not generate a referral code"

            member = await self.member_repo.create(
                name=name.strip(),
                email=email,
                referral_code=code,
                depth=0,
                path="/",
                is_active=True,
                payment_status=PaymentStatus.APPROVED.value,
                placed_at=datetime.now(UTC),
            )
            await self.commit()

        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                "Failed to create root member",
                extra={"email": email, "error": str(e)},
                exc_info=True,
            )
            return None, "Root creation failed"

        self.logger.success(
            "Root member created", extra={"member_id": member.id}
        )
        return member, None

    async def get_member_stats(self, member_id: int) -> MemberStats | None:
        """
        Dashboard statistics.

        Args:
            member_id: Member ID

        Returns:
            MemberStats or None if the member does not exist
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            return None

        referrals = await self.member_repo.get_direct_referrals(member_id)
        left_referrals = self._count_on_side(member, member.left_child_id, referrals)
        right_referrals = self._count_on_side(
            member, member.right_child_id, referrals
        )

        pending = await self.withdrawal_repo.get_pending_total(member_id)
        available = member.total_earnings - member.total_withdrawn - pending

        config = await load_binary_config(self.session)
        current = config.star_level_for(member.pairs_completed)
        next_rule = config.next_star_level(member.star_level)

        progress = 100.0
        if next_rule is not None:
            floor = current.required_pairs if current else 0
            span = next_rule.required_pairs - floor
            done = member.pairs_completed - floor
            progress = 0.0 if span <= 0 else min(100.0, max(0.0, done / span * 100))

        return MemberStats(
            member_id=member.id,
            direct_referrals=len(referrals),
            left_referrals=left_referrals,
            right_referrals=right_referrals,
            left_active_count=member.left_active_count,
            right_active_count=member.right_active_count,
            pairs_completed=member.pairs_completed,
            total_earnings=member.total_earnings,
            total_withdrawn=member.total_withdrawn,
            pending_withdrawals=pending,
            available_balance=available,
            star_level=member.star_level,
            next_star_level=next_rule.level if next_rule else None,
            next_star_required_pairs=(
                next_rule.required_pairs if next_rule else None
            ),
            star_progress_percent=round(progress, 1),
            earnings_by_source=await self.earning_repo.get_totals_by_source(
                member_id
            ),
        )

    async def get_downline(
        self, member_id: int, max_depth: int | None = None
    ) -> list[Member]:
        """
        Placed members under a member.

        Args:
            member_id: Subtree root
            max_depth: Levels below the member to include (None for all)

        Returns:
            Members ordered by depth, empty if the member is unplaced
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None or not member.is_placed:
            return []
        return await self.member_repo.get_downline(member, max_depth=max_depth)

    async def _new_referral_code(self) -> str | None:
        """Draw a referral code not used by any member."""
        for _ in range(REFERRAL_CODE_ATTEMPTS):
            code = generate_code(REFERRAL_CODE_LENGTH)
            if await self.member_repo.get_by_referral_code(code) is None:
                return code
        return None

    @staticmethod
    def _count_on_side(
        member: Member, child_id: int | None, referrals: list[Member]
    ) -> int:
        """Count referrals placed in the subtree rooted at child_id."""
        if child_id is None:
            return 0
        prefix = f"{member.subtree_path}{child_id}/"
        return sum(
            1
            for referral in referrals
            if referral.id == child_id
            or (referral.path is not None and referral.path.startswith(prefix))
        )
