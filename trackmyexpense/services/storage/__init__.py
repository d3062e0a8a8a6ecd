"""
Storage Services Package

Provides the keyed store interface and its implementations: an in-process
store for tests and local runs, and a SQLAlchemy-backed durable store.
"""

from trackmyexpense.services.storage.interface import (
    MAX_ATOMIC_OPS,
    AtomicWriteConflictError,
    InvalidBatchError,
    KeyedStore,
    StorageError,
    StoreUnavailableError,
    ThroughputExceededError,
)
from trackmyexpense.services.storage.memory import InMemoryKeyedStore
from trackmyexpense.services.storage.sql import SqlKeyedStore, create_sql_engine

__all__ = [
    # Interface
    "KeyedStore",
    "MAX_ATOMIC_OPS",
    # Exceptions
    "AtomicWriteConflictError",
    "InvalidBatchError",
    "StorageError",
    "StoreUnavailableError",
    "ThroughputExceededError",
    # Implementations
    "InMemoryKeyedStore",
    "SqlKeyedStore",
    "create_sql_engine",
]
