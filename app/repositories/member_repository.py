"""
Member repository.

Data access layer for Member model, including tree-shaped queries.
"""

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.models.member import Member
from app.repositories.base import BaseRepository


class MemberRepository(BaseRepository[Member]):
    """Member repository with tree queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize member repository."""
        super().__init__(Member, session)

    async def get_by_referral_code(self, referral_code: str) -> Member | None:
        """
        Get member by referral code.

        Args:
            referral_code: Referral code (already normalized)

        Returns:
            Member or None
        """
        return await self.get_by(referral_code=referral_code)

    async def get_by_email(self, email: str) -> Member | None:
        """Get member by email (case-insensitive)."""
        stmt = select(Member).where(
            func.lower(Member.email) == email.strip().lower()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_child_claiming(
        self, parent_id: int, side: str
    ) -> Member | None:
        """
        Get the member that claims (parent_id, side) as its position.

        Used to detect half-written placements where the child was
        persisted but the parent's pointer was not.

        Args:
            parent_id: Parent member ID
            side: left or right

        Returns:
            Claiming member or None
        """
        stmt = (
            select(Member)
            .where(Member.parent_id == parent_id, Member.side == side)
            .order_by(Member.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def claim_child_slot(
        self, parent_id: int, side: str, child_id: int
    ) -> bool:
        """
        Point parent's child slot at child_id only if the slot is empty.

        Args:
            parent_id: Parent member ID
            side: left or right
            child_id: Child member ID

        Returns:
            True if the slot was claimed, False if it was already taken
        """
        field = f"{side}_child_id"
        return await self.update_where(
            parent_id, {field: None}, **{field: child_id}
        )

    async def release_child_slot(
        self, parent_id: int, side: str, child_id: int
    ) -> bool:
        """
        Clear parent's child slot if it points at a member not claiming it.

        Both conditions are checked by the UPDATE itself, so a child placed
        by a concurrent transaction keeps its slot.

        Args:
            parent_id: Parent member ID
            side: left or right
            child_id: Child member ID expected in the slot

        Returns:
            True if the slot was cleared
        """
        field = f"{side}_child_id"
        claimant = aliased(Member)
        child_claims_slot = (
            select(claimant.id)
            .where(
                claimant.id == child_id,
                claimant.parent_id == parent_id,
                claimant.side == side,
            )
            .exists()
        )
        stmt = (
            update(Member)
            .where(
                Member.id == parent_id,
                getattr(Member, field) == child_id,
                ~child_claims_slot,
            )
            .values(**{field: None})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()

        released = result.rowcount == 1
        if released:
            await self.refresh_by_id(parent_id)
        return released

    async def get_nth_placed_in_subtree(
        self, subtree_root: Member, n: int
    ) -> Member | None:
        """
        Get the n-th member (1-based) placed into a subtree.

        The subtree root itself counts; order is placement time, then ID.

        Args:
            subtree_root: Root of the subtree (a direct child of an ancestor)
            n: 1-based position

        Returns:
            Member or None if the subtree has fewer than n placed members
        """
        if n < 1:
            return None

        stmt = (
            select(Member)
            .where(
                Member.is_active.is_(True),
                or_(
                    Member.id == subtree_root.id,
                    Member.path.like(f"{subtree_root.subtree_path}%"),
                ),
            )
            .order_by(Member.placed_at, Member.id)
            .offset(n - 1)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_active_in_subtree(self, subtree_root_id: int | None) -> int:
        """
        Count active members in a subtree, root included.

        Args:
            subtree_root_id: Root of the subtree, or None for an empty slot

        Returns:
            Number of active members
        """
        if subtree_root_id is None:
            return 0

        root = await self.get_by_id(subtree_root_id)
        if root is None:
            return 0

        stmt = select(func.count(Member.id)).where(
            Member.is_active.is_(True),
            or_(
                Member.id == root.id,
                Member.path.like(f"{root.subtree_path}%"),
            ),
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_direct_referrals(self, sponsor_id: int) -> list[Member]:
        """
        Get members sponsored by a member.

        Args:
            sponsor_id: Sponsor member ID

        Returns:
            List of sponsored members
        """
        return await self.find_by(sponsor_id=sponsor_id)

    async def get_downline(
        self, member: Member, max_depth: int | None = None
    ) -> list[Member]:
        """
        Get placed descendants of a member ordered by depth.

        Args:
            member: Subtree root
            max_depth: Maximum depth relative to member (None for all)

        Returns:
            Descendants ordered by depth, then ID
        """
        stmt = select(Member).where(
            Member.path.like(f"{member.subtree_path}%")
        )
        if max_depth is not None:
            stmt = stmt.where(Member.depth <= member.depth + max_depth)

        stmt = stmt.order_by(Member.depth, Member.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_first_root(self) -> Member | None:
        """Get the oldest tree root (the company account)."""
        stmt = (
            select(Member)
            .where(Member.parent_id.is_(None), Member.path == "/")
            .order_by(Member.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
