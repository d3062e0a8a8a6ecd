"""
Transaction Query Engine

DESIGN DECISION: Transaction sort keys start with the transaction's own
date ("TX#2024-01-31T10:00:00.000Z#<id>"), so every date filter becomes a
single key-range scan. Only accountId, categoryId and type need a filter
predicate, and that predicate runs on each evaluated page.

Range selection:

| filters present  | condition                                  |
|------------------|--------------------------------------------|
| none             | begins_with "TX#"                          |
| startDate only   | >= "TX#" + startDate                       |
| endDate only     | "TX#" <= sk <= "TX#" + endDate + "Z"       |
| both             | BETWEEN "TX#" + startDate AND ... + "Z"    |

The trailing "Z" makes the end inclusive for the whole day: any date or
date-time starting with endDate sorts before endDate + "Z". Nothing sorts
after "TX#..." in a partition, so the startDate-only range needs no upper
bound; the endDate-only range does need the "TX#" lower bound, otherwise
ACCOUNT#, BUDGET# and CATEGORY# items would fall inside it.

Dates are compared exactly as callers wrote them. Ranges follow the
caller's own calendar day; date-times written with different UTC offsets
are ordered by their text, not by instant.

KNOWN QUIRK: non-key filters are applied after the page was cut at
`limit`, so a filtered page can hold fewer than `limit` items even though
more matches exist past the cursor. Clients must keep paging while a
cursor is returned.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from trackmyexpense.models.finance import END_OF_DAY_SENTINEL, TRANSACTION_PREFIX, TransactionFilters
from trackmyexpense.models.store import SortKeyCondition


def sort_key_condition(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> SortKeyCondition:
    """Pick the sort-key range for a date window."""
    if start_date and end_date:
        return SortKeyCondition.between(
            f"{TRANSACTION_PREFIX}{start_date}",
            f"{TRANSACTION_PREFIX}{end_date}{END_OF_DAY_SENTINEL}",
        )
    if start_date:
        return SortKeyCondition.at_least(f"{TRANSACTION_PREFIX}{start_date}")
    if end_date:
        return SortKeyCondition.between(
            TRANSACTION_PREFIX,
            f"{TRANSACTION_PREFIX}{end_date}{END_OF_DAY_SENTINEL}",
        )
    return SortKeyCondition.begins_with(TRANSACTION_PREFIX)


def non_key_filters(filters: TransactionFilters) -> dict[str, Any]:
    """Equality predicates on stored attribute names."""
    predicates: dict[str, Any] = {}
    if filters.account_id:
        predicates["accountId"] = filters.account_id
    if filters.category_id:
        predicates["categoryId"] = filters.category_id
    if filters.type:
        predicates["type"] = filters.type.value
    return predicates


class TransactionQueryPlan(BaseModel):
    """Everything the store needs to run one page of a transaction listing."""

    model_config = ConfigDict(frozen=True)

    condition: SortKeyCondition
    filters: dict[str, Any]
    limit: int
    cursor: Optional[str] = None
    descending: bool = True

    @classmethod
    def from_filters(cls, filters: TransactionFilters) -> "TransactionQueryPlan":
        return cls(
            condition=sort_key_condition(filters.start_date, filters.end_date),
            filters=non_key_filters(filters),
            limit=filters.limit,
            cursor=filters.cursor,
            descending=not filters.ascending,
        )
