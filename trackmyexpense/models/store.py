"""
Store-Level Value Objects

These are the only shapes that cross the boundary between repositories
and a keyed store backend:

- ItemKey: (owner key, sort key) address of one item
- SortKeyCondition: the range half of a query
- PutOp / DeleteOp / UpdateDeltaOp: write descriptors for atomic batches
- QueryPage: one page of query results plus the resume cursor

Repositories build these without touching the store, so several of them
can be composed into one atomic multi-write.
"""

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from trackmyexpense.errors import InvalidInputError


OWNER_KEY_ATTR = "ownerKey"
SORT_KEY_ATTR = "sortKey"


class ItemKey(BaseModel):
    """Primary key of a stored item."""

    model_config = ConfigDict(frozen=True)

    owner_key: str = Field(..., min_length=1)
    sort_key: str = Field(..., min_length=1)

    @classmethod
    def of(cls, item: dict[str, Any]) -> "ItemKey":
        return cls(owner_key=item[OWNER_KEY_ATTR], sort_key=item[SORT_KEY_ATTR])

    def to_cursor(self) -> str:
        """Encode as an opaque, url-safe pagination token."""
        raw = json.dumps({"pk": self.owner_key, "sk": self.sort_key}, separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    @classmethod
    def from_cursor(cls, cursor: str, owner_key: str) -> "ItemKey":
        """
        Decode a token produced by `to_cursor`.

        Raises:
            InvalidInputError: if the token is malformed or was issued for
                another owner's partition
        """
        try:
            decoded = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
            key = cls(owner_key=decoded["pk"], sort_key=decoded["sk"])
        except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError, ValidationError):
            raise InvalidInputError(
                "Malformed pagination cursor",
                issues=[{"field": "cursor", "message": "not a cursor issued by this service"}],
            )
        if key.owner_key != owner_key:
            raise InvalidInputError(
                "Pagination cursor does not belong to this user",
                issues=[{"field": "cursor", "message": "cursor issued for another partition"}],
            )
        return key


class SortKeyCondition(BaseModel):
    """
    Range condition on the sort key.

    Comparisons are plain lexicographic string comparisons, which is what
    makes date-prefixed sort keys range-scannable.
    """

    model_config = ConfigDict(frozen=True)

    operator: Literal["begins_with", "gte", "lte", "between"]
    value: str
    upper: Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "SortKeyCondition":
        if self.operator == "between":
            if self.upper is None:
                raise ValueError("between requires an upper bound")
            if self.upper < self.value:
                raise ValueError("between lower bound must not exceed upper bound")
        return self

    @classmethod
    def begins_with(cls, prefix: str) -> "SortKeyCondition":
        return cls(operator="begins_with", value=prefix)

    @classmethod
    def at_least(cls, lower: str) -> "SortKeyCondition":
        return cls(operator="gte", value=lower)

    @classmethod
    def at_most(cls, upper: str) -> "SortKeyCondition":
        return cls(operator="lte", value=upper)

    @classmethod
    def between(cls, lower: str, upper: str) -> "SortKeyCondition":
        return cls(operator="between", value=lower, upper=upper)

    def matches(self, sort_key: str) -> bool:
        if self.operator == "begins_with":
            return sort_key.startswith(self.value)
        if self.operator == "gte":
            return sort_key >= self.value
        if self.operator == "lte":
            return sort_key <= self.value
        return self.value <= sort_key <= self.upper


class PutOp(BaseModel):
    """Upsert a whole item."""

    kind: Literal["put"] = "put"
    item: dict[str, Any]
    require_absent: bool = False

    @model_validator(mode="after")
    def check_key(self) -> "PutOp":
        if not self.item.get(OWNER_KEY_ATTR) or not self.item.get(SORT_KEY_ATTR):
            raise ValueError("item must carry ownerKey and sortKey")
        return self

    @property
    def key(self) -> ItemKey:
        return ItemKey.of(self.item)


class DeleteOp(BaseModel):
    """Remove an item."""

    kind: Literal["delete"] = "delete"
    key: ItemKey
    require_exists: bool = False


class UpdateDeltaOp(BaseModel):
    """
    Relative update of numeric attributes plus plain assignments.

    `increments` are applied as `attr := attr + delta`, so concurrent
    deltas on one item commute. A missing numeric attribute counts as 0.
    """

    kind: Literal["update_delta"] = "update_delta"
    key: ItemKey
    increments: dict[str, Decimal] = Field(default_factory=dict)
    assignments: dict[str, Any] = Field(default_factory=dict)
    require_exists: bool = True

    @model_validator(mode="after")
    def check_fields(self) -> "UpdateDeltaOp":
        if not self.increments and not self.assignments:
            raise ValueError("update delta must change at least one attribute")
        overlap = set(self.increments) & set(self.assignments)
        if overlap:
            raise ValueError(f"attributes both incremented and assigned: {sorted(overlap)}")
        if {OWNER_KEY_ATTR, SORT_KEY_ATTR} & (set(self.increments) | set(self.assignments)):
            raise ValueError("key attributes cannot be updated")
        return self


WriteOp = Union[PutOp, DeleteOp, UpdateDeltaOp]


class QueryPage(BaseModel):
    """One page of a keyed query."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = None

    @classmethod
    def from_scan(
        cls,
        evaluated: list[dict[str, Any]],
        has_more: bool,
        filters: Optional[dict[str, Any]] = None,
    ) -> "QueryPage":
        """
        Build a page from the items a scan evaluated.

        Filters run after the scan was cut at the limit, so a page may
        hold fewer matching items than the limit even when more exist
        past the cursor.
        """
        next_cursor = ItemKey.of(evaluated[-1]).to_cursor() if has_more and evaluated else None
        items = [item for item in evaluated if matches_filters(item, filters)]
        return cls(items=items, next_cursor=next_cursor)


def matches_filters(item: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Equality predicate over non-key attributes."""
    if not filters:
        return True
    return all(item.get(attr) == expected for attr, expected in filters.items())


def apply_update_delta(item: dict[str, Any], op: UpdateDeltaOp) -> dict[str, Any]:
    """Return a new item with the delta applied. Decimals are stored as strings."""
    updated = dict(item)
    for attr, delta in op.increments.items():
        current = Decimal(str(updated.get(attr, 0)))
        updated[attr] = str(current + delta)
    updated.update(op.assignments)
    return updated
