"""
Transaction Repository

Key pattern:
    ownerKey: USER#{userId}
    sortKey:  TX#{transactionDate}#{transactionId}

There is deliberately no `create` or `delete` here: transactions are only
written through the balance consistency workflows, which take the op
descriptors built below and submit them together with a balance delta.
"""

from typing import Optional

from trackmyexpense.models.finance import (
    TRANSACTION_PREFIX,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionPage,
    utc_now,
)
from trackmyexpense.models.store import DeleteOp, ItemKey, PutOp
from trackmyexpense.queries.transactions import TransactionQueryPlan
from trackmyexpense.repositories.keys import new_entity_id, owner_key, transaction_sort_key
from trackmyexpense.services.storage.interface import KeyedStore


class TransactionRepository:
    """Store-backed transaction reads and write-op builders."""

    def __init__(self, store: KeyedStore):
        self._store = store

    async def list(self, user_id: str, filters: TransactionFilters) -> TransactionPage:
        """
        One page of the user's transactions, newest first by default.

        See queries.transactions for range selection and the post-limit
        filtering quirk.
        """
        plan = TransactionQueryPlan.from_filters(filters)
        page = await self._store.query(
            owner_key(user_id),
            plan.condition,
            filters=plan.filters,
            limit=plan.limit,
            cursor=plan.cursor,
            descending=plan.descending,
        )
        return TransactionPage(
            items=[Transaction.from_item(item) for item in page.items],
            next_cursor=page.next_cursor,
        )

    async def get(self, user_id: str, sort_key: str) -> Optional[Transaction]:
        """
        Fetch by the full composite sort key (date + id).

        Keys of other entity kinds are treated as absent.
        """
        if not sort_key.startswith(TRANSACTION_PREFIX):
            return None
        item = await self._store.get(owner_key(user_id), sort_key)
        return Transaction.from_item(item) if item is not None else None

    def build_create_op(
        self, user_id: str, data: TransactionCreate
    ) -> tuple[Transaction, PutOp]:
        """
        Mint the transaction and its put op without writing anything.

        The returned entity is exactly what the op will store.
        """
        now = utc_now()
        transaction = Transaction.model_validate(
            {
                **data.model_dump(),
                "owner_key": owner_key(user_id),
                "sort_key": transaction_sort_key(data.transaction_date, new_entity_id()),
                "created_at": now,
                "updated_at": now,
            }
        )
        return transaction, PutOp(item=transaction.to_item(), require_absent=True)

    def build_delete_op(self, user_id: str, sort_key: str) -> DeleteOp:
        """Describe the removal; fails the batch if already gone."""
        return DeleteOp(
            key=ItemKey(owner_key=owner_key(user_id), sort_key=sort_key),
            require_exists=True,
        )
