"""Transaction query package."""

from trackmyexpense.queries.transactions import (
    END_OF_DAY_SENTINEL,
    TransactionQueryPlan,
    non_key_filters,
    sort_key_condition,
)

__all__ = [
    "END_OF_DAY_SENTINEL",
    "TransactionQueryPlan",
    "non_key_filters",
    "sort_key_condition",
]
