"""Key construction for the single-table layout."""

from uuid import uuid4

from trackmyexpense.models.finance import TRANSACTION_PREFIX, USER_PREFIX


def owner_key(user_id: str) -> str:
    """Partition key for everything a user owns."""
    if not user_id:
        raise ValueError("user_id is required")
    return f"{USER_PREFIX}{user_id}"


def entity_sort_key(prefix: str, entity_id: str) -> str:
    return f"{prefix}{entity_id}"


def transaction_sort_key(transaction_date: str, transaction_id: str) -> str:
    # Date first so date ranges are key ranges; id breaks same-date ties
    return f"{TRANSACTION_PREFIX}{transaction_date}#{transaction_id}"


def new_entity_id() -> str:
    """Globally unique identifier for a new entity."""
    return str(uuid4())
