"""
Abstract Keyed Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the same repositories on an in-process store or a SQL database
2. Use test doubles that fail on demand to prove atomicity
3. Keep business logic decoupled from storage implementation

The model is a partitioned key-value table: every item is addressed by
(owner key, sort key), queries scan one owner's partition by sort-key
range, and `atomic_multi_write` applies a batch all-or-nothing.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from trackmyexpense.errors import TrackerError
from trackmyexpense.models.store import (
    ItemKey,
    QueryPage,
    SortKeyCondition,
    WriteOp,
)


MAX_ATOMIC_OPS = 100


class KeyedStore(ABC):
    """
    Abstract interface for keyed store operations.

    Any backend must implement these methods with the semantics below.
    Items are JSON-compatible dicts carrying `ownerKey` and `sortKey`.
    """

    @abstractmethod
    async def get(self, owner_key: str, sort_key: str) -> Optional[dict[str, Any]]:
        """
        Retrieve one item.

        Returns:
            A copy of the item, or None if absent
        """
        pass

    @abstractmethod
    async def put(self, item: dict[str, Any]) -> None:
        """Insert or fully replace an item (idempotent upsert)."""
        pass

    @abstractmethod
    async def delete(self, owner_key: str, sort_key: str) -> None:
        """Remove an item. Deleting an absent item is not an error."""
        pass

    @abstractmethod
    async def update(
        self,
        owner_key: str,
        sort_key: str,
        assignments: dict[str, Any],
        *,
        must_exist: bool = False,
    ) -> Optional[dict[str, Any]]:
        """
        Merge attributes into an item, last writer wins.

        Args:
            assignments: Attributes to set; others are left untouched
            must_exist: If True and the item is absent, write nothing and
                return None. If False, an absent item is created.

        Returns:
            The item after the merge, or None (see must_exist)
        """
        pass

    @abstractmethod
    async def query(
        self,
        owner_key: str,
        condition: SortKeyCondition,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        descending: bool = False,
    ) -> QueryPage:
        """
        Scan one partition by sort-key range.

        At most `limit` items are evaluated, starting strictly after the
        cursor key. Equality `filters` are applied to the evaluated items
        afterwards, so a page can hold fewer than `limit` matches.

        Raises:
            InvalidInputError: if the cursor is malformed or foreign
        """
        pass

    @abstractmethod
    async def atomic_multi_write(self, ops: Sequence[WriteOp]) -> None:
        """
        Apply every operation, or none of them.

        Raises:
            InvalidBatchError: empty batch, too many ops, or two ops on one key
            AtomicWriteConflictError: a precondition failed; nothing applied
            ThroughputExceededError: transient capacity limit; nothing applied
            StoreUnavailableError: anything else; outcome unknown
        """
        pass


def validate_batch(ops: Sequence[WriteOp]) -> list[ItemKey]:
    """Check batch shape shared by every backend; returns the target keys."""
    if not ops:
        raise InvalidBatchError("Atomic batch must contain at least one operation")
    if len(ops) > MAX_ATOMIC_OPS:
        raise InvalidBatchError(
            f"Atomic batch holds {len(ops)} operations; the limit is {MAX_ATOMIC_OPS}"
        )
    keys = [op.key for op in ops]
    if len(set(keys)) != len(keys):
        raise InvalidBatchError("Atomic batch targets the same item more than once")
    return keys


class StorageError(TrackerError):
    """Base exception for storage operations."""
    pass


class AtomicWriteConflictError(StorageError):
    """
    A batch precondition failed and the whole batch was cancelled.

    `reasons` has one entry per operation: None when that operation was
    fine, otherwise a short reason code.
    """

    http_status = 409
    retryable = True

    def __init__(self, message: str, reasons: Optional[list[Optional[str]]] = None):
        super().__init__(message)
        self.reasons = reasons or []


class ThroughputExceededError(StorageError):
    """Transient capacity limit; nothing was applied."""

    http_status = 429
    retryable = True


class StoreUnavailableError(StorageError):
    """Backend failed; the outcome of a write is unknown."""
    pass


class InvalidBatchError(StorageError):
    """The batch itself is malformed (programming error)."""
    pass
