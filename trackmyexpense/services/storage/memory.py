"""
In-Memory Keyed Store

Holds every partition in a dict of dicts. Used for tests and local
development; it honours the full KeyedStore contract, including
all-or-nothing batches, so repositories behave identically on it and on
the SQL backend.

Every method works on copies: callers can never mutate stored items
through a returned dict.
"""

import asyncio
import copy
from typing import Any, Optional, Sequence

import structlog

from trackmyexpense.models.store import (
    DeleteOp,
    ItemKey,
    PutOp,
    QueryPage,
    SortKeyCondition,
    UpdateDeltaOp,
    WriteOp,
    apply_update_delta,
)
from trackmyexpense.services.storage.interface import (
    AtomicWriteConflictError,
    KeyedStore,
    validate_batch,
)


logger = structlog.get_logger(__name__)


class InMemoryKeyedStore(KeyedStore):
    """In-process implementation of the keyed store."""

    def __init__(self):
        self._partitions: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _read(self, owner_key: str, sort_key: str) -> Optional[dict[str, Any]]:
        return self._partitions.get(owner_key, {}).get(sort_key)

    def _write(self, item: dict[str, Any]) -> None:
        key = ItemKey.of(item)
        self._partitions.setdefault(key.owner_key, {})[key.sort_key] = copy.deepcopy(item)

    def _remove(self, owner_key: str, sort_key: str) -> None:
        partition = self._partitions.get(owner_key)
        if partition is not None:
            partition.pop(sort_key, None)

    async def get(self, owner_key: str, sort_key: str) -> Optional[dict[str, Any]]:
        async with self._lock:
            item = self._read(owner_key, sort_key)
            return copy.deepcopy(item) if item is not None else None

    async def put(self, item: dict[str, Any]) -> None:
        ItemKey.of(item)
        async with self._lock:
            self._write(item)

    async def delete(self, owner_key: str, sort_key: str) -> None:
        async with self._lock:
            self._remove(owner_key, sort_key)

    async def update(
        self,
        owner_key: str,
        sort_key: str,
        assignments: dict[str, Any],
        *,
        must_exist: bool = False,
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            current = self._read(owner_key, sort_key)
            if current is None:
                if must_exist:
                    return None
                current = {"ownerKey": owner_key, "sortKey": sort_key}
            merged = {**current, **assignments}
            self._write(merged)
            return copy.deepcopy(merged)

    async def query(
        self,
        owner_key: str,
        condition: SortKeyCondition,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        descending: bool = False,
    ) -> QueryPage:
        start_after = ItemKey.from_cursor(cursor, owner_key).sort_key if cursor else None

        async with self._lock:
            partition = self._partitions.get(owner_key, {})
            sort_keys = sorted(
                (sk for sk in partition if condition.matches(sk)),
                reverse=descending,
            )
            if start_after is not None:
                if descending:
                    sort_keys = [sk for sk in sort_keys if sk < start_after]
                else:
                    sort_keys = [sk for sk in sort_keys if sk > start_after]

            has_more = limit is not None and len(sort_keys) > limit
            if limit is not None:
                sort_keys = sort_keys[:limit]
            evaluated = [copy.deepcopy(partition[sk]) for sk in sort_keys]

        logger.debug(
            "store_query",
            owner_key=owner_key,
            operator=condition.operator,
            evaluated=len(evaluated),
            has_more=has_more,
        )
        return QueryPage.from_scan(evaluated, has_more, filters)

    async def atomic_multi_write(self, ops: Sequence[WriteOp]) -> None:
        validate_batch(ops)

        async with self._lock:
            # Check every precondition before touching anything
            reasons: list[Optional[str]] = []
            for op in ops:
                exists = self._read(op.key.owner_key, op.key.sort_key) is not None
                if isinstance(op, PutOp) and op.require_absent and exists:
                    reasons.append("ItemAlreadyExists")
                elif isinstance(op, (DeleteOp, UpdateDeltaOp)) and op.require_exists and not exists:
                    reasons.append("ItemNotFound")
                else:
                    reasons.append(None)

            if any(reasons):
                logger.warning("store_atomic_write_cancelled", reasons=reasons)
                raise AtomicWriteConflictError(
                    "Atomic write cancelled: precondition failed", reasons=reasons
                )

            # Stage the full result first so a bad delta cannot half-apply
            staged: list[tuple[ItemKey, Optional[dict[str, Any]]]] = []
            for op in ops:
                if isinstance(op, PutOp):
                    staged.append((op.key, op.item))
                elif isinstance(op, DeleteOp):
                    staged.append((op.key, None))
                else:
                    current = self._read(op.key.owner_key, op.key.sort_key) or {
                        "ownerKey": op.key.owner_key,
                        "sortKey": op.key.sort_key,
                    }
                    staged.append((op.key, apply_update_delta(current, op)))

            for key, item in staged:
                if item is None:
                    self._remove(key.owner_key, key.sort_key)
                else:
                    self._write(item)

        logger.debug("store_atomic_write", operations=len(ops))
