"""
Services package.

Entity services live in services.entities and are imported from there;
re-exporting them here would make every storage import pull in the
repositories that depend on storage.
"""

from trackmyexpense.services.storage import (
    AtomicWriteConflictError,
    InMemoryKeyedStore,
    InvalidBatchError,
    KeyedStore,
    SqlKeyedStore,
    StorageError,
    StoreUnavailableError,
    ThroughputExceededError,
)

__all__ = [
    "AtomicWriteConflictError",
    "InMemoryKeyedStore",
    "InvalidBatchError",
    "KeyedStore",
    "SqlKeyedStore",
    "StorageError",
    "StoreUnavailableError",
    "ThroughputExceededError",
]
