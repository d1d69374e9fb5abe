"""
Integration tests for member workflows.

Tests cover:
- Registration and root creation
- Member statistics and downline
- PIN generation and verification
- Payment review and placement on approval
- Withdrawal requests
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from app.models.enums import PaymentStatus, PinStatus, RequestStatus
from app.repositories.member_repository import MemberRepository
from app.repositories.payment_request_repository import (
    PaymentRequestRepository,
)
from app.repositories.pin_repository import PinRepository
from app.repositories.withdrawal_request_repository import (
    WithdrawalRequestRepository,
)
from app.services.binary.ledger_writer import LedgerWriter
from app.services.binary.placement_orchestrator import PlacementOrchestrator
from app.services.member_service import MemberService
from app.services.payment_request_service import PaymentRequestService
from app.services.pin_service import PinService
from app.services.withdrawal_service import WithdrawalService
from app.utils.validation import is_valid_pin, is_valid_referral_code


ADMIN_ID = 1


@pytest_asyncio.fixture
async def company(session):
    """Company root created through the member service."""
    member, error = await MemberService(session).create_root_member(
        "Company", "company@example.com"
    )
    assert error is None
    return member


@pytest.fixture
def enroll(session):
    """Register, pay and approve a member; returns the placement result."""
    members = MemberService(session)
    payments = PaymentRequestService(session)
    pins = PinService(session)
    counter = iter(range(1, 1000))

    async def run(sponsor_code: str | None):
        n = next(counter)
        await pins.generate_bulk(1)
        member, error = await members.register_member(
            f"Member {n}", f"enrolled{n}@example.com", sponsor_code
        )
        assert error is None
        request, error = await payments.submit(
            member.id, "easypaisa", Decimal("850"), f"TX{n:06d}"
        )
        assert error is None
        result, error = await payments.approve(request.id, ADMIN_ID)
        assert error is None
        return result

    return run


class TestRegistration:
    """Tests for MemberService registration."""

    @pytest.mark.asyncio
    async def test_root_member(self, company):
        """Root is active, placed at the top and has a referral code."""
        assert company.path == "/"
        assert company.depth == 0
        assert company.is_active
        assert company.is_root
        assert company.payment_status == PaymentStatus.APPROVED.value
        assert is_valid_referral_code(company.referral_code)

    @pytest.mark.asyncio
    async def test_register_with_referral_code(self, session, company):
        """Sponsor is resolved from the referral code, case-insensitively."""
        member, error = await MemberService(session).register_member(
            "Ayesha", "Ayesha@Example.com", company.referral_code.lower()
        )

        assert error is None
        assert member.sponsor_id == company.id
        assert member.email == "ayesha@example.com"
        assert not member.is_active
        assert not member.is_placed
        assert member.payment_status == PaymentStatus.NOT_SUBMITTED.value

    @pytest.mark.asyncio
    async def test_invalid_referral_code(self, session, company):
        """Unknown referral codes are refused."""
        member, error = await MemberService(session).register_member(
            "Bilal", "bilal@example.com", "ZZZZ9999"
        )

        assert member is None
        assert error == "Invalid referral code"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, session, company):
        """Emails are unique regardless of case."""
        member, error = await MemberService(session).register_member(
            "Copy", "COMPANY@example.com"
        )

        assert member is None
        assert error == "Email is already registered"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name,email,message",
        [
            ("", "x@example.com", "Name is required"),
            ("X", "not-an-email", "Invalid email address"),
        ],
    )
    async def test_invalid_input(self, session, name, email, message):
        """Name and email are validated before touching the database."""
        member, error = await MemberService(session).register_member(name, email)

        assert member is None
        assert error == message


class TestMemberStats:
    """Tests for statistics and downline."""

    @pytest.mark.asyncio
    async def test_stats_after_first_pair(self, session, company, enroll):
        """Two direct referrals on both sides make one pair."""
        await enroll(company.referral_code)
        await enroll(company.referral_code)

        stats = await MemberService(session).get_member_stats(company.id)

        assert stats.direct_referrals == 2
        assert stats.left_referrals == 1
        assert stats.right_referrals == 1
        assert stats.pairs_completed == 1
        assert stats.total_earnings == Decimal("400")
        assert stats.available_balance == Decimal("400")
        assert stats.star_level == 0
        assert stats.next_star_level == 1
        assert stats.next_star_required_pairs == 10
        assert stats.star_progress_percent == 10.0
        assert stats.earnings_by_source == {"pair": Decimal("400")}

    @pytest.mark.asyncio
    async def test_stats_unknown_member(self, session):
        """Unknown member has no stats."""
        assert await MemberService(session).get_member_stats(999) is None

    @pytest.mark.asyncio
    async def test_downline_depth(self, session, company, enroll):
        """Downline is limited to the requested number of levels."""
        first = await enroll(company.referral_code)
        second = await enroll(company.referral_code)
        third = await enroll(company.referral_code)
        service = MemberService(session)

        direct = await service.get_downline(company.id, max_depth=1)
        everyone = await service.get_downline(company.id)

        assert [m.id for m in direct] == [first.member_id, second.member_id]
        assert [m.id for m in everyone] == [
            first.member_id,
            second.member_id,
            third.member_id,
        ]

    @pytest.mark.asyncio
    async def test_downline_of_unplaced_member(self, session, company):
        """Unplaced members have no downline."""
        member, _ = await MemberService(session).register_member(
            "Waiting", "waiting@example.com", company.referral_code
        )

        assert await MemberService(session).get_downline(member.id) == []


class TestPins:
    """Tests for PinService."""

    @pytest.mark.asyncio
    async def test_generate_bulk(self, session):
        """Generated PINs are unique, valid and unused."""
        pins, error = await PinService(session).generate_bulk(5, admin_id=ADMIN_ID)

        assert error is None
        assert len({pin.pin_code for pin in pins}) == 5
        assert all(is_valid_pin(pin.pin_code) for pin in pins)
        assert all(pin.status == PinStatus.UNUSED.value for pin in pins)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 501])
    async def test_generate_bulk_bounds(self, session, count):
        """Batch size is bounded."""
        pins, error = await PinService(session).generate_bulk(count)

        assert pins == []
        assert error is not None

    @pytest.mark.asyncio
    async def test_assign_and_verify(self, session, member_factory, reload):
        """Assigned PIN verifies only for its member."""
        service = PinService(session)
        await service.generate_bulk(2)
        owner = await member_factory()
        other = await member_factory()

        pin = await service.assign_next_unused(owner.id)
        await session.commit()

        assert pin.status == PinStatus.ASSIGNED.value
        assert pin.assigned_to == owner.id
        assert (await reload(owner.id)).referral_pin == pin.pin_code
        assert await service.verify_member_pin(owner.id, pin.pin_code.lower())
        assert not await service.verify_member_pin(other.id, pin.pin_code)
        assert not await service.verify_member_pin(owner.id, "bad")

        assigned, error = await service.list_pins(PinStatus.ASSIGNED.value)
        assert error is None
        assert [p.id for p in assigned] == [pin.id]

    @pytest.mark.asyncio
    async def test_no_unused_pin(self, session, member_factory):
        """Assignment returns None when the pool is empty."""
        member = await member_factory()

        assert await PinService(session).assign_next_unused(member.id) is None


class TestPaymentRequests:
    """Tests for PaymentRequestService."""

    @pytest_asyncio.fixture
    async def applicant(self, session, company):
        """Registered member sponsored by the company."""
        member, _ = await MemberService(session).register_member(
            "Applicant", "applicant@example.com", company.referral_code
        )
        return member

    @pytest.mark.asyncio
    async def test_submit(self, session, applicant, reload):
        """Submission marks the member's payment as pending."""
        request, error = await PaymentRequestService(session).submit(
            applicant.id, "jazzcash", Decimal("850"), " TX1 "
        )

        assert error is None
        assert request.status == RequestStatus.PENDING.value
        assert request.transaction_id == "TX1"
        assert (await reload(applicant.id)).payment_status == (
            PaymentStatus.PENDING.value
        )

    @pytest.mark.asyncio
    async def test_submit_below_fee(self, session, applicant):
        """Payments below the registration fee are refused."""
        request, error = await PaymentRequestService(session).submit(
            applicant.id, "easypaisa", Decimal("500"), "TX1"
        )

        assert request is None
        assert error == "Minimum payment is PKR 850"

    @pytest.mark.asyncio
    async def test_submit_unknown_type(self, session, applicant):
        """Only supported payment providers are accepted."""
        request, error = await PaymentRequestService(session).submit(
            applicant.id, "paypal", Decimal("850"), "TX1"
        )

        assert request is None
        assert "Unsupported payment type" in error

    @pytest.mark.asyncio
    async def test_one_pending_request(self, session, applicant):
        """A second request waits for the first review."""
        service = PaymentRequestService(session)
        await service.submit(applicant.id, "easypaisa", Decimal("850"), "TX1")

        request, error = await service.submit(
            applicant.id, "easypaisa", Decimal("850"), "TX2"
        )

        assert request is None
        assert error == "A payment request is already pending review"

    @pytest.mark.asyncio
    async def test_approve_assigns_pin_and_places(
        self, session, company, applicant, reload
    ):
        """Approval activates the member under the sponsor."""
        await PinService(session).generate_bulk(3)
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            applicant.id, "easypaisa", Decimal("850"), "TX1"
        )

        result, error = await service.approve(request.id, ADMIN_ID, "Verified")

        assert error is None
        assert result.placed
        assert result.parent_id == company.id

        member = await reload(applicant.id)
        assert member.is_active
        assert member.payment_status == PaymentStatus.APPROVED.value
        assert member.registration_fee == Decimal("850")

        pin = await PinRepository(session).get_by_code(member.referral_pin)
        assert pin.status == PinStatus.ASSIGNED.value
        assert pin.assigned_to == member.id

        stored = await PaymentRequestRepository(session).refresh_by_id(request.id)
        assert stored.status == RequestStatus.APPROVED.value
        assert stored.reviewed_by == ADMIN_ID
        assert stored.admin_notes == "Verified"

    @pytest.mark.asyncio
    async def test_approve_without_pins(self, session, applicant, reload):
        """Approval needs an unused PIN; nothing changes without one."""
        member_id = applicant.id
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            member_id, "easypaisa", Decimal("850"), "TX1"
        )
        request_id = request.id

        result, error = await service.approve(request_id, ADMIN_ID)

        assert result is None
        assert error == "No unused PINs available. Generate PINs first."
        stored = await PaymentRequestRepository(session).refresh_by_id(request_id)
        assert stored.status == RequestStatus.PENDING.value
        assert not (await reload(member_id)).is_active

    @pytest.mark.asyncio
    async def test_approve_twice(self, session, applicant):
        """A reviewed request cannot be approved again."""
        await PinService(session).generate_bulk(2)
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            applicant.id, "easypaisa", Decimal("850"), "TX1"
        )
        await service.approve(request.id, ADMIN_ID)

        result, error = await service.approve(request.id, ADMIN_ID)

        assert result is None
        assert error == "Payment request is already approved"
        assert not session.in_transaction()

    @pytest.mark.asyncio
    async def test_member_without_sponsor_joins_company(
        self, session, company, reload
    ):
        """Members registered without a code are placed under the root."""
        await PinService(session).generate_bulk(1)
        member, _ = await MemberService(session).register_member(
            "Walk In", "walkin@example.com"
        )
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            member.id, "easypaisa", Decimal("850"), "TX9"
        )

        result, error = await service.approve(request.id, ADMIN_ID)

        assert error is None
        assert result.parent_id == company.id
        assert (await reload(member.id)).sponsor_id == company.id

    @pytest.mark.asyncio
    async def test_retry_placement_is_idempotent(
        self, session, company, enroll
    ):
        """Retrying placement of a placed member does nothing."""
        placed = await enroll(company.referral_code)

        result, error = await PaymentRequestService(session).retry_placement(
            placed.member_id
        )

        assert error is None
        assert result.already_placed

    @pytest.mark.asyncio
    async def test_retry_placement_requires_approval(self, session, applicant):
        """Unapproved members are not placed."""
        result, error = await PaymentRequestService(session).retry_placement(
            applicant.id
        )

        assert result is None
        assert error == "Payment is not approved"

    @pytest.mark.asyncio
    async def test_database_error_during_placement(
        self, session, applicant, reload, monkeypatch
    ):
        """A database failure while placing keeps the approval and reports it."""
        applicant_id = applicant.id
        await PinService(session).generate_bulk(1)
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            applicant_id, "easypaisa", Decimal("850"), "TX5"
        )
        request_id = request.id

        async def broken(self, member_id, sponsor_id=None):
            raise IntegrityError("UPDATE members", {}, Exception("constraint"))

        monkeypatch.setattr(PlacementOrchestrator, "place_member", broken)

        result, error = await service.approve(request_id, ADMIN_ID)

        assert result is None
        assert error == "Payment approved but placement failed: database error"
        member = await reload(applicant_id)
        assert member.payment_status == PaymentStatus.APPROVED.value
        assert member.parent_id is None

    @pytest.mark.asyncio
    async def test_reject(self, session, applicant, reload):
        """Rejection records the reason and allows a new submission."""
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            applicant.id, "easypaisa", Decimal("850"), "TX1"
        )

        ok, error = await service.reject(request.id, ADMIN_ID, "Blurry screenshot")

        assert ok
        assert error is None
        assert (await reload(applicant.id)).payment_status == (
            PaymentStatus.REJECTED.value
        )
        pending = await service.list_requests(RequestStatus.PENDING.value)
        assert pending == []

        again, error = await service.submit(
            applicant.id, "easypaisa", Decimal("850"), "TX2"
        )
        assert error is None
        assert again.status == RequestStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_reject_needs_reason(self, session, applicant):
        """A reason is mandatory."""
        service = PaymentRequestService(session)
        request, _ = await service.submit(
            applicant.id, "easypaisa", Decimal("850"), "TX1"
        )

        ok, error = await service.reject(request.id, ADMIN_ID, "  ")

        assert not ok
        assert error == "Rejection reason is required"


class TestWithdrawals:
    """Tests for WithdrawalService."""

    @pytest_asyncio.fixture
    async def earner(self, session, member_factory):
        """Active member with 1000 earned and an assigned PIN."""
        member = await member_factory(path="/", is_active=True)
        member_id = member.id
        await LedgerWriter(session, "PKR").credit_manual(
            member_id, "opening-balance", Decimal("1000")
        )
        pins = PinService(session)
        await pins.generate_bulk(1)
        pin = await pins.assign_next_unused(member_id)
        await session.commit()
        return member_id, pin.pin_code

    @pytest.mark.asyncio
    async def test_submit_and_approve(self, session, earner, reload):
        """Approved withdrawal moves into total_withdrawn."""
        member_id, pin_code = earner
        service = WithdrawalService(session)

        request, error = await service.submit(
            member_id, Decimal("600"), pin_code, "easypaisa", "03001234567"
        )

        assert error is None
        assert request.status == RequestStatus.PENDING.value
        assert await service.get_available_balance(member_id) == Decimal("400")

        ok, error = await service.approve(request.id, ADMIN_ID)

        assert ok
        assert error is None
        member = await reload(member_id)
        assert member.total_withdrawn == Decimal("600")
        assert await service.get_available_balance(member_id) == Decimal("400")

        ok, error = await service.approve(request.id, ADMIN_ID)
        assert not ok
        assert error == "Withdrawal request is already approved"

    @pytest.mark.asyncio
    async def test_pending_requests_reserve_balance(self, session, earner):
        """Pending requests count against the available balance."""
        member_id, pin_code = earner
        service = WithdrawalService(session)
        await service.submit(member_id, Decimal("600"), pin_code, "bank", "PK00")

        request, error = await service.submit(
            member_id, Decimal("500"), pin_code, "bank", "PK00"
        )

        assert request is None
        assert error == "Insufficient balance: available PKR 400"
        assert not session.in_transaction()

    @pytest.mark.asyncio
    async def test_wrong_pin(self, session, earner):
        """Withdrawals require the member's own PIN."""
        member_id, _ = earner

        request, error = await WithdrawalService(session).submit(
            member_id, Decimal("600"), "ZZZZZZ", "easypaisa", "03001234567"
        )

        assert request is None
        assert error == "Invalid PIN"
        assert not session.in_transaction()

    @pytest.mark.asyncio
    async def test_below_minimum(self, session, earner):
        """Amounts below the minimum withdrawal are refused."""
        member_id, pin_code = earner

        request, error = await WithdrawalService(session).submit(
            member_id, Decimal("100"), pin_code, "easypaisa", "03001234567"
        )

        assert request is None
        assert error == "Amount must be at least 500"

    @pytest.mark.asyncio
    async def test_unsupported_method(self, session, earner):
        """Only configured payout methods are accepted."""
        member_id, pin_code = earner

        request, error = await WithdrawalService(session).submit(
            member_id, Decimal("600"), pin_code, "crypto", "0x00"
        )

        assert request is None
        assert "Unsupported withdrawal method" in error

    @pytest.mark.asyncio
    async def test_inactive_member(self, session, member_factory):
        """Unplaced members cannot withdraw."""
        member = await member_factory()

        request, error = await WithdrawalService(session).submit(
            member.id, Decimal("600"), "ABC123", "easypaisa", "03001234567"
        )

        assert request is None
        assert error == "Only active members can withdraw"

    @pytest.mark.asyncio
    async def test_reject_releases_balance(self, session, earner):
        """Rejected requests no longer reserve balance."""
        member_id, pin_code = earner
        service = WithdrawalService(session)
        request, _ = await service.submit(
            member_id, Decimal("600"), pin_code, "jazzcash", "03001234567"
        )

        ok, error = await service.reject(request.id, ADMIN_ID, "Account mismatch")

        assert ok
        assert await service.get_available_balance(member_id) == Decimal("1000")
        stored = await WithdrawalRequestRepository(session).refresh_by_id(
            request.id
        )
        assert stored.status == RequestStatus.REJECTED.value
        assert stored.rejection_reason == "Account mismatch"
        assert await service.list_requests(RequestStatus.PENDING.value) == []

    @pytest.mark.asyncio
    async def test_unknown_request(self, session):
        """Reviewing a missing request fails cleanly."""
        ok, error = await WithdrawalService(session).approve(999, ADMIN_ID)

        assert not ok
        assert error == "Withdrawal request not found"
        assert not session.in_transaction()


class TestRepositoryHelpers:
    """Queries used by the workflows."""

    @pytest.mark.asyncio
    async def test_first_root(self, session, company, member_factory):
        """The oldest root is the company account."""
        await member_factory(path="/", is_active=True)

        root = await MemberRepository(session).get_first_root()

        assert root.id == company.id
