"""
Ledger writer.

Idempotent creation of pair records and earnings. Every entry carries a
natural key; writing an entry whose key already exists returns the stored
entry instead of inserting a duplicate. Entries are never modified.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.earning import Earning
from app.models.enums import EarningSourceType
from app.models.pair_record import PairRecord
from app.repositories.earning_repository import EarningRepository
from app.repositories.member_repository import MemberRepository
from app.repositories.pair_record_repository import PairRecordRepository
from app.utils.exceptions import LedgerWriteConflict, MemberNotFoundError


EntryType = TypeVar("EntryType", PairRecord, Earning)


@dataclass
class LedgerWriteResult(Generic[EntryType]):
    """Stored entry and whether this call created it."""

    record: EntryType
    created: bool


class LedgerWriter:
    """
    Writes pair records and earnings exactly once per key.

    Does not commit; callers own the transaction. A unique violation from
    a concurrent writer surfaces as LedgerWriteConflict, and the caller
    rolls back and re-runs its step, which then finds the stored entry.
    """

    def __init__(self, session: AsyncSession, currency: str) -> None:
        """
        Initialize ledger writer.

        Args:
            session: Database session
            currency: Currency stamped on every entry
        """
        self.session = session
        self.currency = currency
        self.pair_repo = PairRecordRepository(session)
        self.earning_repo = EarningRepository(session)
        self.member_repo = MemberRepository(session)

    async def create_pair_record(
        self,
        member_id: int,
        pair_index: int,
        amount: Decimal,
        left_member_id: int | None = None,
        right_member_id: int | None = None,
    ) -> LedgerWriteResult[PairRecord]:
        """
        Record that member_id completed pair #pair_index.

        Args:
            member_id: Beneficiary
            pair_index: 1-based pair index
            amount: Amount for this index
            left_member_id: Matched left-side member
            right_member_id: Matched right-side member

        Returns:
            LedgerWriteResult with the stored pair record

        Raises:
            LedgerWriteConflict: If a concurrent writer inserted the key
        """
        existing = await self.pair_repo.get_by_key(member_id, pair_index)
        if existing is not None:
            logger.debug(
                "Pair record already exists",
                extra={"member_id": member_id, "pair_index": pair_index},
            )
            return LedgerWriteResult(record=existing, created=False)

        try:
            record = await self.pair_repo.create(
                member_id=member_id,
                pair_index=pair_index,
                left_member_id=left_member_id,
                right_member_id=right_member_id,
                amount=amount,
                currency=self.currency,
            )
        except IntegrityError as e:
            raise LedgerWriteConflict(("pair", member_id, pair_index)) from e

        return LedgerWriteResult(record=record, created=True)

    async def create_earning(
        self,
        member_id: int,
        source_type: EarningSourceType | str,
        source_id: str,
        amount: Decimal,
        balance_after: Decimal | None = None,
        note: str | None = None,
    ) -> LedgerWriteResult[Earning]:
        """
        Record an earning keyed by (member_id, source_type, source_id).

        Args:
            member_id: Member credited
            source_type: Earning source type
            source_id: Source reference (pair_{i}, star_{level}, ...)
            amount: Credited amount
            balance_after: Member total earnings after this credit
            note: Optional free text

        Returns:
            LedgerWriteResult with the stored earning

        Raises:
            LedgerWriteConflict: If a concurrent writer inserted the key
        """
        source_type = EarningSourceType(source_type)

        existing = await self.earning_repo.get_by_key(
            member_id, source_type.value, source_id
        )
        if existing is not None:
            logger.debug(
                "Earning already exists",
                extra={
                    "member_id": member_id,
                    "source_type": source_type.value,
                    "source_id": source_id,
                },
            )
            return LedgerWriteResult(record=existing, created=False)

        try:
            earning = await self.earning_repo.create(
                member_id=member_id,
                source_type=source_type.value,
                source_id=source_id,
                amount=amount,
                currency=self.currency,
                balance_after=balance_after,
                note=note,
            )
        except IntegrityError as e:
            raise LedgerWriteConflict(
                ("earning", member_id, source_type.value, source_id)
            ) from e

        return LedgerWriteResult(record=earning, created=True)

    async def credit_member(
        self,
        member_id: int,
        source_type: EarningSourceType | str,
        source_id: str,
        amount: Decimal,
        note: str | None = None,
    ) -> LedgerWriteResult[Earning]:
        """
        Create an earning and add it to the member's total earnings.

        The member row is locked first. The total only grows when the
        earning is new, so repeating a credit changes nothing.

        Args:
            member_id: Member credited
            source_type: Earning source type
            source_id: Source reference
            amount: Credited amount
            note: Optional free text

        Returns:
            LedgerWriteResult with the stored earning

        Raises:
            MemberNotFoundError: If the member does not exist
            LedgerWriteConflict: If a concurrent writer inserted the key
        """
        member = await self.member_repo.get_for_update(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)

        new_total = member.total_earnings + amount
        result = await self.create_earning(
            member_id,
            source_type,
            source_id,
            amount,
            balance_after=new_total,
            note=note,
        )

        if result.created:
            await self.member_repo.update(member_id, total_earnings=new_total)
            logger.info(
                "Member credited",
                extra={
                    "member_id": member_id,
                    "source_type": str(source_type),
                    "source_id": source_id,
                    "amount": str(amount),
                },
            )

        return result

    async def credit_manual(
        self,
        member_id: int,
        reference: str,
        amount: Decimal,
        note: str | None = None,
    ) -> tuple[bool, str | None]:
        """
        Admin manual credit, committed on success.

        Args:
            member_id: Member credited
            reference: Unique reference of the adjustment
            amount: Positive amount
            note: Optional reason

        Returns:
            Tuple of (created, error_message); created is False when the
            reference was already used
        """
        if amount <= 0:
            return False, "Amount must be positive"

        try:
            result = await self.credit_member(
                member_id, EarningSourceType.MANUAL, reference, amount, note
            )
        except MemberNotFoundError as e:
            await self.session.rollback()
            return False, str(e)
        except LedgerWriteConflict:
            await self.session.rollback()
            return False, f"Manual credit {reference} already recorded"

        await self.session.commit()

        if not result.created:
            return False, f"Manual credit {reference} already recorded"
        return True, None
