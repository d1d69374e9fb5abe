"""
Propagation engine.

After a member is placed, walks from the new member's parent up to the
tree root. At each ancestor it increments the active count on the side
the walk arrived from, creates pair records and earnings for newly
matched pairs, and awards star rewards.

Each ancestor is settled in its own transaction together with a
PropagationStep marker, so a retried walk never double-increments.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import EarningSourceType, TreeSide
from app.models.member import Member
from app.repositories.earning_repository import EarningRepository
from app.repositories.member_repository import MemberRepository
from app.repositories.propagation_step_repository import (
    PropagationStepRepository,
)
from app.services.binary.config import BinaryConfig
from app.services.binary.ledger_writer import LedgerWriter
from app.utils.exceptions import (
    BinaryTreeError,
    InvalidSideError,
    LedgerWriteConflict,
    MemberNotFoundError,
    StoreUnavailableError,
    TreeCycleError,
    is_transient,
)


T = TypeVar("T")

# Re-runs of one ancestor after a concurrent ledger insert
MAX_CONFLICT_RETRIES = 3


@dataclass(frozen=True)
class PropagationCursor:
    """First ancestor not yet settled and the side the walk arrives from."""

    ancestor_id: int
    originating_side: TreeSide


@dataclass
class AncestorUpdate:
    """Counters of one ancestor after a propagation or recalculation step."""

    ancestor_id: int
    left_active_count: int
    right_active_count: int
    pairs_before: int
    pairs_after: int
    star_before: int
    star_after: int
    credited: Decimal
    total_earnings: Decimal
    skipped: bool = False

    @property
    def new_pairs(self) -> int:
        """Pairs created by this step."""
        return self.pairs_after - self.pairs_before

    @property
    def star_awarded(self) -> bool:
        """Whether this step reached a new star level."""
        return self.star_after > self.star_before


@dataclass
class PropagationResult:
    """Outcome of one propagation walk."""

    placed_member_id: int
    updates: list[AncestorUpdate] = field(default_factory=list)

    @property
    def ancestors_settled(self) -> int:
        """Ancestors updated by this walk (already settled ones excluded)."""
        return sum(1 for update in self.updates if not update.skipped)

    @property
    def pairs_created(self) -> int:
        """Pair records created across all ancestors."""
        return sum(update.new_pairs for update in self.updates)

    @property
    def star_rewards(self) -> int:
        """Star rewards awarded across all ancestors."""
        return sum(1 for update in self.updates if update.star_awarded)

    @property
    def total_credited(self) -> Decimal:
        """Total amount credited across all ancestors."""
        return sum((update.credited for update in self.updates), Decimal("0"))


class PropagationEngine:
    """
    Ancestor walk that maintains counters, pairs and star levels.

    Counters only grow, pair indexes are contiguous from 1, and every
    ledger entry is keyed so replaying a walk credits nothing twice.
    """

    def __init__(self, session: AsyncSession, config: BinaryConfig) -> None:
        """
        Initialize propagation engine.

        Args:
            session: Database session (committed once per ancestor)
            config: Pair tiers, star table and currency
        """
        self.session = session
        self.config = config
        self.member_repo = MemberRepository(session)
        self.step_repo = PropagationStepRepository(session)
        self.earning_repo = EarningRepository(session)
        self.ledger = LedgerWriter(session, config.currency)

    async def propagate(
        self,
        start_parent_id: int,
        originating_side: TreeSide | str,
        placed_member_id: int,
    ) -> PropagationResult:
        """
        Walk from start_parent_id to the root, settling each ancestor.

        Args:
            start_parent_id: Parent of the newly placed member
            originating_side: Side of the parent the member was placed on
            placed_member_id: Newly placed member

        Returns:
            PropagationResult with one AncestorUpdate per ancestor visited

        Raises:
            InvalidSideError: If originating_side is not left or right
            MemberNotFoundError: If an ancestor is missing
            TreeCycleError: If the ancestor chain loops
            StoreUnavailableError: On transient failure; its cursor names
                the first ancestor that was not settled
        """
        try:
            side = TreeSide(originating_side)
        except ValueError as e:
            raise InvalidSideError(originating_side) from e

        result = PropagationResult(placed_member_id=placed_member_id)
        cursor: PropagationCursor | None = PropagationCursor(start_parent_id, side)
        visited: set[int] = set()

        logger.info(
            "Propagation started",
            extra={
                "placed_member_id": placed_member_id,
                "start_parent_id": start_parent_id,
                "side": side.value,
            },
        )

        while cursor is not None:
            if cursor.ancestor_id in visited:
                logger.critical(
                    "Cycle detected in ancestor chain",
                    extra={
                        "placed_member_id": placed_member_id,
                        "ancestor_id": cursor.ancestor_id,
                    },
                )
                raise TreeCycleError(cursor.ancestor_id)
            visited.add(cursor.ancestor_id)

            update, cursor = await self._settle_with_retry(
                cursor, placed_member_id
            )
            result.updates.append(update)

        logger.success(
            "Propagation completed",
            extra={
                "placed_member_id": placed_member_id,
                "ancestors": len(result.updates),
                "pairs_created": result.pairs_created,
                "star_rewards": result.star_rewards,
                "total_credited": str(result.total_credited),
            },
        )
        return result

    async def resume(
        self, cursor: PropagationCursor, placed_member_id: int
    ) -> PropagationResult:
        """
        Continue an interrupted walk from its cursor.

        Args:
            cursor: Cursor carried by StoreUnavailableError
            placed_member_id: Member whose placement is propagated

        Returns:
            PropagationResult for the remaining ancestors
        """
        logger.info(
            "Resuming propagation",
            extra={
                "placed_member_id": placed_member_id,
                "ancestor_id": cursor.ancestor_id,
                "side": cursor.originating_side.value,
            },
        )
        return await self.propagate(
            cursor.ancestor_id, cursor.originating_side, placed_member_id
        )

    async def recalculate_member(self, member_id: int) -> AncestorUpdate:
        """
        Rebuild one member's counters from the tree and the ledger.

        Active counts are recounted from the subtrees, missing pairs and
        star rewards are created, and total earnings is reset to the sum
        of the member's earnings. Counters never go below recorded pairs.

        Args:
            member_id: Member to recalculate

        Returns:
            AncestorUpdate with the recalculated counters

        Raises:
            MemberNotFoundError: If the member does not exist
            StoreUnavailableError: On transient failure
        """

        async def step() -> AncestorUpdate:
            member = await self.member_repo.get_for_update(member_id)
            if member is None:
                raise MemberNotFoundError(member_id)

            left = await self.member_repo.count_active_in_subtree(
                member.left_child_id
            )
            right = await self.member_repo.count_active_in_subtree(
                member.right_child_id
            )
            update = await self._apply_counts(member, left, right)

            ledger_total = await self.earning_repo.get_total(member_id)
            if ledger_total != update.total_earnings:
                logger.warning(
                    "Total earnings out of sync with ledger, resetting",
                    extra={
                        "member_id": member_id,
                        "stored": str(update.total_earnings),
                        "ledger": str(ledger_total),
                    },
                )
                await self.member_repo.update(
                    member_id, total_earnings=ledger_total
                )
                update.total_earnings = ledger_total
            return update

        update = await self._in_transaction(step, cursor=None)
        logger.info(
            "Member recalculated",
            extra={
                "member_id": member_id,
                "left": update.left_active_count,
                "right": update.right_active_count,
                "pairs": update.pairs_after,
                "star_level": update.star_after,
            },
        )
        return update

    async def _settle_with_retry(
        self, cursor: PropagationCursor, placed_member_id: int
    ) -> tuple[AncestorUpdate, PropagationCursor | None]:
        """Settle one ancestor, re-running it after a ledger insert race."""
        for attempt in range(MAX_CONFLICT_RETRIES):
            try:
                return await self._in_transaction(
                    lambda: self._settle_ancestor(cursor, placed_member_id),
                    cursor=cursor,
                )
            except LedgerWriteConflict as e:
                logger.warning(
                    f"Ledger conflict on attempt {attempt + 1}/{MAX_CONFLICT_RETRIES}, "
                    "re-running ancestor",
                    extra={
                        "ancestor_id": cursor.ancestor_id,
                        "placed_member_id": placed_member_id,
                        "key": e.key,
                    },
                )

        raise StoreUnavailableError(
            f"Ancestor {cursor.ancestor_id} kept conflicting after "
            f"{MAX_CONFLICT_RETRIES} attempts",
            cursor=cursor,
        )

    async def _in_transaction(
        self,
        step: Callable[[], Awaitable[T]],
        cursor: PropagationCursor | None,
    ) -> T:
        """
        Run step and commit, rolling back on any failure.

        Transient store errors are raised as StoreUnavailableError carrying
        cursor; everything else is re-raised unchanged.
        """
        try:
            outcome = await step()
            await self.session.commit()
            return outcome
        except BinaryTreeError:
            await self._rollback()
            raise
        except Exception as e:
            await self._rollback()
            if is_transient(e):
                logger.warning(
                    "Store unavailable during propagation",
                    extra={
                        "ancestor_id": cursor.ancestor_id if cursor else None,
                        "error": str(e),
                    },
                )
                raise StoreUnavailableError(
                    f"Store unavailable: {e}", cursor=cursor
                ) from e
            raise

    async def _rollback(self) -> None:
        """Roll back, logging (not raising) a failure of the rollback itself."""
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.error("Rollback failed", extra={"error": str(e)})

    async def _settle_ancestor(
        self, cursor: PropagationCursor, placed_member_id: int
    ) -> tuple[AncestorUpdate, PropagationCursor | None]:
        """Apply one placement to one ancestor (no commit)."""
        ancestor = await self.member_repo.get_for_update(cursor.ancestor_id)
        if ancestor is None:
            raise MemberNotFoundError(cursor.ancestor_id)

        next_cursor = self._next_cursor(ancestor)

        if await self.step_repo.is_settled(ancestor.id, placed_member_id):
            logger.debug(
                "Ancestor already settled, skipping",
                extra={
                    "ancestor_id": ancestor.id,
                    "placed_member_id": placed_member_id,
                },
            )
            return self._snapshot(ancestor), next_cursor

        left = ancestor.left_active_count
        right = ancestor.right_active_count
        if cursor.originating_side is TreeSide.LEFT:
            left += 1
        else:
            right += 1

        update = await self._apply_counts(ancestor, left, right)

        try:
            await self.step_repo.create(
                ancestor_id=ancestor.id,
                placed_member_id=placed_member_id,
                side=cursor.originating_side.value,
                pairs_after=update.pairs_after,
            )
        except IntegrityError as e:
            raise LedgerWriteConflict(
                ("step", ancestor.id, placed_member_id)
            ) from e

        return update, next_cursor

    async def _apply_counts(
        self, member: Member, left: int, right: int
    ) -> AncestorUpdate:
        """
        Write new active counts and credit whatever they unlock.

        Args:
            member: Locked member row
            left: New left active count
            right: New right active count

        Returns:
            AncestorUpdate describing the change
        """
        pairs_before = member.pairs_completed
        star_before = member.star_level
        total = member.total_earnings
        credited = Decimal("0")

        possible = min(left, right)
        if possible < pairs_before:
            logger.warning(
                "Active counts below recorded pairs, keeping recorded pairs",
                extra={
                    "member_id": member.id,
                    "possible": possible,
                    "pairs_completed": pairs_before,
                },
            )
        pairs_after = max(pairs_before, possible)

        for pair_index in range(pairs_before + 1, pairs_after + 1):
            amount = self.config.pair_tiers.amount_for(pair_index)
            left_member_id, right_member_id = await self._pair_partners(
                member, pair_index
            )
            await self.ledger.create_pair_record(
                member.id,
                pair_index,
                amount,
                left_member_id=left_member_id,
                right_member_id=right_member_id,
            )
            earning = await self.ledger.create_earning(
                member.id,
                EarningSourceType.PAIR,
                f"pair_{pair_index}",
                amount,
                balance_after=total + credited + amount,
            )
            if earning.created:
                credited += amount

        star_after = star_before
        rule = self.config.star_level_for(pairs_after)
        if rule is not None and rule.level > star_before:
            earning = await self.ledger.create_earning(
                member.id,
                EarningSourceType.STAR_REWARD,
                f"star_{rule.level}",
                rule.reward_amount,
                balance_after=total + credited + rule.reward_amount,
                note=f"{rule.title} reward",
            )
            if earning.created:
                credited += rule.reward_amount
            star_after = rule.level
            logger.success(
                "Star level reached",
                extra={
                    "member_id": member.id,
                    "star_level": rule.level,
                    "reward": str(rule.reward_amount),
                },
            )

        await self.member_repo.update(
            member.id,
            left_active_count=left,
            right_active_count=right,
            pairs_completed=pairs_after,
            star_level=star_after,
            total_earnings=total + credited,
        )

        if pairs_after > pairs_before:
            logger.info(
                "Pairs completed",
                extra={
                    "member_id": member.id,
                    "pairs_before": pairs_before,
                    "pairs_after": pairs_after,
                    "credited": str(credited),
                },
            )

        return AncestorUpdate(
            ancestor_id=member.id,
            left_active_count=left,
            right_active_count=right,
            pairs_before=pairs_before,
            pairs_after=pairs_after,
            star_before=star_before,
            star_after=star_after,
            credited=credited,
            total_earnings=total + credited,
        )

    async def _pair_partners(
        self, member: Member, pair_index: int
    ) -> tuple[int | None, int | None]:
        """The pair_index-th placed member of each child subtree."""
        partners: list[int | None] = []
        for side in (TreeSide.LEFT, TreeSide.RIGHT):
            child_id = member.child_id(side)
            child = (
                await self.member_repo.get_by_id(child_id)
                if child_id is not None
                else None
            )
            if child is None:
                partners.append(None)
                continue

            partner = await self.member_repo.get_nth_placed_in_subtree(
                child, pair_index
            )
            partners.append(partner.id if partner else None)

        return partners[0], partners[1]

    def _next_cursor(self, ancestor: Member) -> PropagationCursor | None:
        """Cursor for the ancestor's parent, None at the root."""
        if ancestor.parent_id is None:
            return None
        if ancestor.side not in (TreeSide.LEFT, TreeSide.RIGHT):
            logger.error(
                "Placed member has a parent but no valid side",
                extra={"member_id": ancestor.id, "side": ancestor.side},
            )
            raise InvalidSideError(ancestor.side)
        return PropagationCursor(ancestor.parent_id, TreeSide(ancestor.side))

    @staticmethod
    def _snapshot(member: Member) -> AncestorUpdate:
        """AncestorUpdate for an ancestor left untouched."""
        return AncestorUpdate(
            ancestor_id=member.id,
            left_active_count=member.left_active_count,
            right_active_count=member.right_active_count,
            pairs_before=member.pairs_completed,
            pairs_after=member.pairs_completed,
            star_before=member.star_level,
            star_after=member.star_level,
            credited=Decimal("0"),
            total_earnings=member.total_earnings,
            skipped=True,
        )
