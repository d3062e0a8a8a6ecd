"""
Repositories Package

Translate between entities and keyed-store items. Repositories never
decide business rules; they read, write, and build op descriptors.
"""

from trackmyexpense.repositories.accounts import AccountRepository
from trackmyexpense.repositories.keys import (
    entity_sort_key,
    new_entity_id,
    owner_key,
    transaction_sort_key,
)
from trackmyexpense.repositories.owned import EntityRepository, OwnedEntityRepository
from trackmyexpense.repositories.transactions import TransactionRepository

__all__ = [
    "AccountRepository",
    "EntityRepository",
    "OwnedEntityRepository",
    "TransactionRepository",
    "entity_sort_key",
    "new_entity_id",
    "owner_key",
    "transaction_sort_key",
]
