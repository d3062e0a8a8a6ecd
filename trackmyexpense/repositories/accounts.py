"""
Account Repository

Key pattern:
    ownerKey: USER#{userId}
    sortKey:  ACCOUNT#{accountId}

CRUD is delegated to an OwnedEntityRepository. The one account-specific
capability is `build_balance_delta_op`, a pure builder that the balance
consistency workflows compose into an atomic batch.
"""

from decimal import Decimal
from typing import Optional

from trackmyexpense.models.finance import (
    ACCOUNT_PREFIX,
    Account,
    AccountCreate,
    AccountUpdate,
    utc_now,
)
from trackmyexpense.models.store import ItemKey, UpdateDeltaOp
from trackmyexpense.repositories.keys import owner_key
from trackmyexpense.repositories.owned import OwnedEntityRepository
from trackmyexpense.services.storage.interface import KeyedStore


class AccountRepository:
    """Store-backed account persistence."""

    def __init__(self, store: KeyedStore):
        self._records = OwnedEntityRepository(store, Account, ACCOUNT_PREFIX)

    async def list(self, user_id: str) -> list[Account]:
        return await self._records.list(user_id)

    async def get(self, user_id: str, account_id: str) -> Optional[Account]:
        return await self._records.get(user_id, account_id)

    async def create(self, user_id: str, data: AccountCreate) -> Account:
        """Create an account; balance defaults to 0 when not given."""
        return await self._records.create(user_id, data)

    async def update(
        self, user_id: str, account_id: str, changes: AccountUpdate
    ) -> Optional[Account]:
        return await self._records.update(user_id, account_id, changes)

    async def delete(self, user_id: str, account_id: str) -> None:
        await self._records.delete(user_id, account_id)

    def build_balance_delta_op(
        self, user_id: str, account_id: str, signed_amount: Decimal
    ) -> UpdateDeltaOp:
        """
        Describe `balance := balance + signed_amount` without executing it.

        The op requires the account to still exist when the batch runs, so
        a delta can never recreate a deleted account.
        """
        return UpdateDeltaOp(
            key=ItemKey(
                owner_key=owner_key(user_id),
                sort_key=self._records.sort_key(account_id),
            ),
            increments={"balance": signed_amount},
            assignments={"updatedAt": utc_now().isoformat()},
            require_exists=True,
        )
