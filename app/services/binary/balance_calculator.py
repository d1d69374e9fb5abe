"""
Tree balance calculator.

Counts the nodes of a subtree by following child pointers, used by the
balanced placement strategy to pick the lighter side.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.member_repository import MemberRepository
from app.utils.exceptions import MemberNotFoundError


# Deepest level followed when counting; deeper nodes are ignored
DEFAULT_MAX_DEPTH = 10_000


class TreeBalanceCalculator:
    """Subtree size by pointer traversal."""

    def __init__(
        self, session: AsyncSession, max_depth: int = DEFAULT_MAX_DEPTH
    ) -> None:
        """
        Initialize calculator.

        Args:
            session: Database session
            max_depth: Depth bound relative to the counted node
        """
        self.session = session
        self.member_repo = MemberRepository(session)
        self.max_depth = max_depth

    async def count_descendants(self, member_id: int) -> int:
        """
        Count members in the subtree rooted at member_id, root included.

        Iterative walk with a visited set: a cycle or a dangling pointer
        in corrupted data is skipped instead of looping or failing.

        Args:
            member_id: Subtree root

        Returns:
            Number of reachable members

        Raises:
            MemberNotFoundError: If member_id does not exist
        """
        root = await self.member_repo.get_by_id(member_id)
        if root is None:
            raise MemberNotFoundError(member_id)

        count = 0
        visited: set[int] = set()
        stack: list[tuple[int, int]] = [(member_id, 0)]

        while stack:
            node_id, depth = stack.pop()

            if node_id in visited:
                logger.warning(
                    "Cycle detected while counting subtree",
                    extra={"root_id": member_id, "node_id": node_id},
                )
                continue
            visited.add(node_id)

            node = await self.member_repo.refresh_by_id(node_id)
            if node is None:
                logger.warning(
                    "Dangling child pointer while counting subtree",
                    extra={"root_id": member_id, "node_id": node_id},
                )
                continue

            count += 1

            if depth >= self.max_depth:
                logger.warning(
                    "Depth bound reached while counting subtree",
                    extra={"root_id": member_id, "max_depth": self.max_depth},
                )
                continue

            for child_id in (node.right_child_id, node.left_child_id):
                if child_id is not None:
                    stack.append((child_id, depth + 1))

        return count
