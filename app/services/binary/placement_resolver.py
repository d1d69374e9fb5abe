"""
Placement resolver.

Finds the first open child slot under a tree root, breadth-first.
Read-only: inconsistencies found on the way (half-written placements)
are reported as repairs for the orchestrator to apply before claiming.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import PlacementStrategy, TreeSide
from app.models.member import Member
from app.repositories.member_repository import MemberRepository
from app.services.binary.balance_calculator import TreeBalanceCalculator
from app.utils.exceptions import MemberNotFoundError, SlotNotFoundError


RepairKind = Literal["restore_pointer", "clear_pointer"]


@dataclass(frozen=True)
class SlotRepair:
    """
    Pointer fix for a half-written placement.

    restore_pointer: child claims (parent, side) but the parent's pointer
    is empty. clear_pointer: the parent's pointer names a member that does
    not claim that position.
    """

    kind: RepairKind
    parent_id: int
    side: TreeSide
    child_id: int


@dataclass(frozen=True)
class Slot:
    """Open position in the tree."""

    parent_id: int
    side: TreeSide
    depth: int
    path: str
    repairs: tuple[SlotRepair, ...] = field(default_factory=tuple)


class PlacementResolver:
    """
    Breadth-first search for an open slot.

    Strategies:
    - leftmost: at each node the left slot, then the right slot
    - balanced: same, but children are visited lighter subtree first
      (left wins ties)
    """

    def __init__(
        self,
        session: AsyncSession,
        balance_calculator: TreeBalanceCalculator | None = None,
        traversal_limit: int = 1_000_000,
    ) -> None:
        """
        Initialize resolver.

        Args:
            session: Database session
            balance_calculator: Subtree counter for the balanced strategy
            traversal_limit: Max nodes visited before giving up
        """
        self.session = session
        self.member_repo = MemberRepository(session)
        self.balance_calculator = balance_calculator or TreeBalanceCalculator(
            session
        )
        self.traversal_limit = traversal_limit

    async def find_slot(
        self,
        root_id: int,
        strategy: PlacementStrategy | str = PlacementStrategy.LEFTMOST,
    ) -> Slot:
        """
        Find the first open slot under root_id.

        Args:
            root_id: Tree root to search under (usually the sponsor)
            strategy: leftmost or balanced

        Returns:
            Slot with parent, side, depth and path for the new member

        Raises:
            MemberNotFoundError: If root_id does not exist
            SlotNotFoundError: If no slot was found (corrupted data)
        """
        strategy = PlacementStrategy(strategy)

        root = await self.member_repo.get_by_id(root_id)
        if root is None:
            raise MemberNotFoundError(root_id)

        repairs: list[SlotRepair] = []
        sizes: dict[int, int] = {}
        visited: set[int] = set()
        queue: deque[int] = deque([root_id])

        while queue:
            node_id = queue.popleft()

            if node_id in visited:
                logger.warning(
                    "Cycle detected during slot search",
                    extra={"root_id": root_id, "node_id": node_id},
                )
                continue
            visited.add(node_id)

            if len(visited) > self.traversal_limit:
                logger.critical(
                    "Traversal limit reached during slot search",
                    extra={"root_id": root_id, "limit": self.traversal_limit},
                )
                break

            node = await self.member_repo.refresh_by_id(node_id)
            if node is None:
                continue

            children: list[int] = []
            for side in (TreeSide.LEFT, TreeSide.RIGHT):
                child_id = await self._inspect_slot(node, side, repairs)
                if child_id is None:
                    slot = Slot(
                        parent_id=node.id,
                        side=side,
                        depth=node.depth + 1,
                        path=node.subtree_path,
                        repairs=tuple(repairs),
                    )
                    logger.debug(
                        "Slot resolved",
                        extra={
                            "root_id": root_id,
                            "parent_id": slot.parent_id,
                            "side": slot.side.value,
                            "visited": len(visited),
                        },
                    )
                    return slot
                children.append(child_id)

            if strategy is PlacementStrategy.BALANCED:
                children = await self._order_by_weight(children, sizes)

            queue.extend(children)

        logger.critical(
            "No open slot found, tree data is corrupted",
            extra={"root_id": root_id, "visited": len(visited)},
        )
        raise SlotNotFoundError(root_id, len(visited))

    async def _inspect_slot(
        self,
        node: Member,
        side: TreeSide,
        repairs: list[SlotRepair],
    ) -> int | None:
        """
        Return the occupant of node's slot, or None if the slot is open.

        Args:
            node: Parent member
            side: Slot side
            repairs: Accumulator for detected inconsistencies

        Returns:
            Child ID occupying the slot, None when open
        """
        child_id = node.child_id(side)

        if child_id is None:
            claimant = await self.member_repo.get_child_claiming(node.id, side)
            if claimant is None:
                return None

            logger.warning(
                "Child claims slot but parent pointer is missing",
                extra={
                    "parent_id": node.id,
                    "side": side.value,
                    "child_id": claimant.id,
                },
            )
            repairs.append(
                SlotRepair("restore_pointer", node.id, side, claimant.id)
            )
            return claimant.id

        # Identity-map copies may predate a concurrent placement of the child
        child = await self.member_repo.refresh_by_id(child_id)
        if child is not None and child.parent_id == node.id and child.side == side:
            return child_id

        logger.warning(
            "Parent pointer names a member that does not claim the slot",
            extra={"parent_id": node.id, "side": side.value, "child_id": child_id},
        )
        repairs.append(SlotRepair("clear_pointer", node.id, side, child_id))
        return None

    async def _order_by_weight(
        self, children: list[int], sizes: dict[int, int]
    ) -> list[int]:
        """Sort children by subtree size, stable so left wins ties."""
        for child_id in children:
            if child_id not in sizes:
                sizes[child_id] = await self.balance_calculator.count_descendants(
                    child_id
                )
        return sorted(children, key=lambda child_id: sizes[child_id])
