"""
Exception handling utilities.

Defines the binary tree error hierarchy and categorized exception types
for proper error handling.
"""

from typing import TYPE_CHECKING

from sqlalchemy.exc import DBAPIError, OperationalError


if TYPE_CHECKING:
    from app.services.binary.propagation_engine import PropagationCursor


class BinaryTreeError(Exception):
    """Base class for placement, propagation and ledger errors."""
    pass


class MemberNotFoundError(BinaryTreeError):
    """Raised when a referenced member does not exist."""

    def __init__(self, member_id: int) -> None:
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class InvalidSideError(BinaryTreeError):
    """Raised when a side is neither 'left' nor 'right'."""

    def __init__(self, side: object) -> None:
        self.side = side
        super().__init__(f"Invalid tree side: {side!r}")


class AlreadyPlacedError(BinaryTreeError):
    """Member already has a tree position. Treated as a no-op."""

    def __init__(self, member_id: int) -> None:
        self.member_id = member_id
        super().__init__(f"Member {member_id} is already placed")


class NoSponsorError(BinaryTreeError):
    """No tree root is available to place the member under."""

    def __init__(self, member_id: int, reason: str | None = None) -> None:
        self.member_id = member_id
        super().__init__(
            reason or f"Member {member_id} has no sponsor and none was supplied"
        )


class SlotNotFoundError(BinaryTreeError):
    """
    Tree searched exhaustively without an open slot.

    A finite binary tree always has an open slot, so this means the data
    is corrupted (cycle, detached root or traversal limit hit).
    """

    def __init__(self, root_id: int, visited: int) -> None:
        self.root_id = root_id
        self.visited = visited
        super().__init__(
            f"No open slot under root {root_id} after visiting {visited} nodes"
        )


class TreeCycleError(BinaryTreeError):
    """Ancestor chain loops back on itself."""

    def __init__(self, member_id: int) -> None:
        self.member_id = member_id
        super().__init__(f"Cycle in ancestor chain at member {member_id}")


class ConcurrentPlacementConflict(BinaryTreeError):
    """Lost the race for a child slot; resolve the slot again."""

    def __init__(self, parent_id: int, side: str) -> None:
        self.parent_id = parent_id
        self.side = side
        super().__init__(
            f"Slot {side} of member {parent_id} was taken concurrently"
        )


class LedgerWriteConflict(BinaryTreeError):
    """Idempotence key already present. Treated as already applied."""

    def __init__(self, key: tuple) -> None:
        self.key = key
        super().__init__(f"Ledger entry already exists for key {key}")


class StoreUnavailableError(BinaryTreeError):
    """
    Transient record store failure.

    When raised by the propagation engine, cursor points at the first
    ancestor that has not been settled; retry by resuming from it.
    """

    def __init__(
        self,
        message: str,
        cursor: "PropagationCursor | None" = None,
    ) -> None:
        self.cursor = cursor
        super().__init__(message)


# Exception categories based on handling strategy

# Recoverable - treated as success or retried from the top by the caller
RECOVERABLE = (
    AlreadyPlacedError,
    ConcurrentPlacementConflict,
    LedgerWriteConflict,
)

# Transient - retried with backoff
TRANSIENT = (
    StoreUnavailableError,
    OperationalError,  # Connection drops, lock timeouts
    TimeoutError,
    OSError,
)

# Fatal - surfaced to the caller, never retried
FATAL = (
    MemberNotFoundError,
    NoSponsorError,
    SlotNotFoundError,
    InvalidSideError,
    TreeCycleError,
)


def is_recoverable(exc: Exception) -> bool:
    """
    Check if exception is a recoverable placement condition.

    Args:
        exc: Exception to check

    Returns:
        True if exception is recoverable
    """
    return isinstance(exc, RECOVERABLE)


def is_transient(exc: Exception) -> bool:
    """
    Check if exception is a transient store failure.

    DBAPIError with connection_invalidated set is transient as well.

    Args:
        exc: Exception to check

    Returns:
        True if the operation may succeed when retried
    """
    if isinstance(exc, TRANSIENT):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def is_fatal(exc: Exception) -> bool:
    """
    Check if exception must be surfaced without retry.

    Args:
        exc: Exception to check

    Returns:
        True if exception is fatal
    """
    return isinstance(exc, FATAL)
