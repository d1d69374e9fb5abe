"""
Placement orchestrator.

Attaches a registered member to the tree under its sponsor and runs the
propagation walk. Placing an already placed member is a no-op.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import EarningSourceType, TreeSide
from app.repositories.member_repository import MemberRepository
from app.services.binary.balance_calculator import TreeBalanceCalculator
from app.services.binary.config import BinaryConfig
from app.services.binary.ledger_writer import LedgerWriter
from app.services.binary.placement_resolver import (
    PlacementResolver,
    Slot,
    SlotRepair,
)
from app.services.binary.propagation_engine import (
    PropagationCursor,
    PropagationEngine,
    PropagationResult,
)
from app.utils.exceptions import (
    AlreadyPlacedError,
    BinaryTreeError,
    ConcurrentPlacementConflict,
    MemberNotFoundError,
    NoSponsorError,
    StoreUnavailableError,
    is_transient,
)
from app.utils.retry import retry_transient


@dataclass
class PlacementResult:
    """Result of a placement request."""

    member_id: int
    placed: bool
    already_placed: bool = False
    parent_id: int | None = None
    side: TreeSide | None = None
    depth: int | None = None
    attempts: int = 0
    sponsor_bonus: Decimal = Decimal("0")
    propagation: PropagationResult | None = None


class PlacementOrchestrator:
    """
    Places members and propagates their placement.

    Flow:
    1. Resolve an open slot under the sponsor
    2. Claim the parent's child pointer with a conditional update; on a
       lost race resolve again (bounded by placement_max_attempts)
    3. Persist the member's position in the same transaction
    4. Walk the ancestors, retrying transient failures from the cursor
    """

    def __init__(self, session: AsyncSession, config: BinaryConfig) -> None:
        """
        Initialize orchestrator.

        Args:
            session: Database session
            config: Binary configuration
        """
        self.session = session
        self.config = config
        self.member_repo = MemberRepository(session)
        self.resolver = PlacementResolver(
            session,
            TreeBalanceCalculator(session),
            traversal_limit=config.traversal_limit,
        )
        self.engine = PropagationEngine(session, config)
        self.ledger = LedgerWriter(session, config.currency)

    async def place_member(
        self, member_id: int, sponsor_id: int | None = None
    ) -> PlacementResult:
        """
        Place a member under its sponsor and propagate.

        Args:
            member_id: Member to place
            sponsor_id: Tree root to place under (defaults to the member's
                sponsor)

        Returns:
            PlacementResult (already_placed=True when nothing was done)

        Raises:
            MemberNotFoundError: If the member or sponsor does not exist
            NoSponsorError: If no placed sponsor is available
            SlotNotFoundError: If the tree data is corrupted
            ConcurrentPlacementConflict: If every attempt lost the slot race
            StoreUnavailableError: If the store stayed unavailable; when
                raised during propagation its cursor can be passed to
                resume_propagation
        """
        try:
            slot, attempts, bonus = await self._place(member_id, sponsor_id)
        except AlreadyPlacedError:
            logger.info(
                "Member already placed, skipping",
                extra={"member_id": member_id},
            )
            return PlacementResult(
                member_id=member_id, placed=False, already_placed=True
            )

        logger.success(
            "Member placed",
            extra={
                "member_id": member_id,
                "parent_id": slot.parent_id,
                "side": slot.side.value,
                "depth": slot.depth,
                "attempts": attempts,
            },
        )

        propagation = await self.resume_propagation(
            member_id, PropagationCursor(slot.parent_id, slot.side)
        )

        return PlacementResult(
            member_id=member_id,
            placed=True,
            parent_id=slot.parent_id,
            side=slot.side,
            depth=slot.depth,
            attempts=attempts,
            sponsor_bonus=bonus,
            propagation=propagation,
        )

    async def resume_propagation(
        self, member_id: int, cursor: PropagationCursor
    ) -> PropagationResult:
        """
        Propagate a placement from cursor, retrying transient failures.

        Each retry continues from the cursor of the last failure.

        Args:
            member_id: Placed member
            cursor: First ancestor to settle

        Returns:
            PropagationResult of the last (successful) attempt
        """

        async def attempt(
            last_error: StoreUnavailableError | None,
        ) -> PropagationResult:
            if last_error is not None and last_error.cursor is not None:
                return await self.engine.resume(last_error.cursor, member_id)
            return await self.engine.resume(cursor, member_id)

        return await retry_transient(
            attempt,
            attempts=self.config.store_retry_attempts,
            base_delay=self.config.store_retry_base_delay,
            operation_name=f"Propagation for member {member_id}",
        )

    async def settle_member(self, member_id: int) -> PropagationResult:
        """
        Re-run the propagation of a placed member from its parent.

        Ancestors that already absorbed the placement are skipped, so this
        is safe to call when a failure cursor was lost.

        Args:
            member_id: Placed member

        Returns:
            PropagationResult (empty for roots and unplaced members)
        """
        member = await self.member_repo.refresh_by_id(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)

        if member.parent_id is None or member.side is None:
            return PropagationResult(placed_member_id=member_id)

        return await self.resume_propagation(
            member_id, PropagationCursor(member.parent_id, TreeSide(member.side))
        )

    async def _place(
        self, member_id: int, sponsor_id: int | None
    ) -> tuple[Slot, int, Decimal]:
        """
        Resolve and claim a slot, retrying lost races.

        Returns:
            Tuple of (slot, attempts used, sponsor bonus credited)
        """
        last_conflict: ConcurrentPlacementConflict | None = None

        for attempt in range(1, self.config.placement_max_attempts + 1):
            try:
                slot, bonus = await self._place_once(member_id, sponsor_id)
                return slot, attempt, bonus
            except ConcurrentPlacementConflict as e:
                await self._rollback()
                last_conflict = e
                logger.warning(
                    f"Slot taken concurrently on attempt {attempt}/"
                    f"{self.config.placement_max_attempts}, resolving again",
                    extra={
                        "member_id": member_id,
                        "parent_id": e.parent_id,
                        "side": e.side,
                    },
                )
            except BinaryTreeError:
                await self._rollback()
                raise
            except Exception as e:
                await self._rollback()
                if is_transient(e):
                    raise StoreUnavailableError(
                        f"Store unavailable while placing member {member_id}: {e}"
                    ) from e
                raise

        logger.error(
            "Placement gave up after repeated slot conflicts",
            extra={
                "member_id": member_id,
                "attempts": self.config.placement_max_attempts,
            },
        )
        assert last_conflict is not None
        raise last_conflict

    async def _place_once(
        self, member_id: int, sponsor_id: int | None
    ) -> tuple[Slot, Decimal]:
        """One resolve-and-claim attempt, committed on success."""
        member = await self.member_repo.refresh_by_id(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        if member.is_placed:
            raise AlreadyPlacedError(member_id)

        root_id = sponsor_id if sponsor_id is not None else member.sponsor_id
        if root_id is None:
            raise NoSponsorError(member_id)
        if root_id == member_id:
            raise NoSponsorError(
                member_id, f"Member {member_id} cannot be placed under itself"
            )

        root = await self.member_repo.get_by_id(root_id)
        if root is None:
            raise MemberNotFoundError(root_id)
        if not root.is_placed:
            raise NoSponsorError(
                member_id, f"Sponsor {root_id} is not placed in the tree"
            )

        bonus_sponsor_id = member.sponsor_id or root_id

        slot = await self.resolver.find_slot(
            root_id, self.config.placement_strategy
        )

        if slot.repairs:
            await self._apply_repairs(slot.repairs)
            await self.session.commit()

        if not await self.member_repo.claim_child_slot(
            slot.parent_id, slot.side, member_id
        ):
            raise ConcurrentPlacementConflict(slot.parent_id, slot.side)

        positioned = await self.member_repo.update_where(
            member_id,
            {"parent_id": None, "path": None},
            parent_id=slot.parent_id,
            side=slot.side.value,
            depth=slot.depth,
            path=slot.path,
            sponsor_id=bonus_sponsor_id,
            is_active=True,
            placed_at=datetime.now(UTC),
        )
        if not positioned:
            # Placed by a concurrent call; the slot claim is rolled back
            raise AlreadyPlacedError(member_id)

        bonus = await self._credit_sponsor_bonus(bonus_sponsor_id, member_id)

        await self.session.commit()
        return slot, bonus

    async def _apply_repairs(self, repairs: tuple[SlotRepair, ...]) -> None:
        """Fix pointers of half-written placements found by the resolver."""
        for repair in repairs:
            if repair.kind == "restore_pointer":
                fixed = await self.member_repo.claim_child_slot(
                    repair.parent_id, repair.side, repair.child_id
                )
            else:
                fixed = await self.member_repo.release_child_slot(
                    repair.parent_id, repair.side, repair.child_id
                )

            logger.warning(
                "Tree pointer repaired" if fixed else "Tree pointer already repaired",
                extra={
                    "repair": repair.kind,
                    "parent_id": repair.parent_id,
                    "side": repair.side.value,
                    "child_id": repair.child_id,
                },
            )

    async def _credit_sponsor_bonus(
        self, sponsor_id: int, member_id: int
    ) -> Decimal:
        """Credit the fixed sponsor bonus once per sponsored member."""
        amount = self.config.sponsor_bonus_amount
        if amount <= 0:
            return Decimal("0")

        result = await self.ledger.credit_member(
            sponsor_id,
            EarningSourceType.SPONSOR_BONUS,
            f"member_{member_id}",
            amount,
            note=f"Sponsor bonus for member {member_id}",
        )
        return amount if result.created else Decimal("0")

    async def _rollback(self) -> None:
        """Roll back, logging (not raising) a failure of the rollback itself."""
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.error("Rollback failed", extra={"error": str(e)})
