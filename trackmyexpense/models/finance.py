"""
Core Data Models for TrackMyExpense

All entities live in one logical table, partitioned by owner:

- ownerKey = "USER#" + userId
- sortKey  = "<KIND>#" + identifier  (transactions: "TX#" + date + "#" + id)

Entities serialize to store items with camelCase attribute names.
Decimals travel as strings so no backend ever rounds a balance.

DESIGN DECISION: Inputs (…Create) and typed field deltas (…Update) are
separate models from the stored entities. An update model enumerates only
the fields that may change, so a partial update can never touch keys,
timestamps, or anything the caller did not name.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


USER_PREFIX = "USER#"
ACCOUNT_PREFIX = "ACCOUNT#"
TRANSACTION_PREFIX = "TX#"
CATEGORY_PREFIX = "CATEGORY#"
BUDGET_PREFIX = "BUDGET#"

# Sorts after every same-day date-time suffix, making an end date inclusive
END_OF_DAY_SENTINEL = "Z"


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Kinds of accounts a user can hold."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    """
    Direction of money flow.

    The sign of a transaction lives here, never in its amount.
    """
    EXPENSE = "expense"
    INCOME = "income"


class BudgetPeriod(str, Enum):
    """Budget recurrence period."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# HELPERS
# =============================================================================

def validate_iso_date(value: str) -> str:
    """
    Check that `value` is an ISO-8601 date or date-time and return it as given.

    The string is stored unchanged, so the sort key files a transaction under
    the caller's own calendar day.
    """
    text = value.strip()
    if len(text) == 10:
        date.fromisoformat(text)
        return text
    parsed = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    datetime.fromisoformat(parsed)
    return text


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    """Shared config: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# STORED ENTITIES
# =============================================================================

class OwnedEntity(_Model):
    """Base shape of every stored entity."""

    owner_key: str = Field(..., min_length=len(USER_PREFIX) + 1)
    sort_key: str = Field(..., min_length=1)
    created_at: datetime
    updated_at: datetime

    @property
    def user_id(self) -> str:
        return self.owner_key[len(USER_PREFIX):]

    def to_item(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible store item."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_item(cls, item: dict[str, Any]):
        return cls.model_validate(item)


class Account(OwnedEntity):
    """
    A money container owned by one user.

    `balance` is only ever moved by transaction workflows (as a delta) or
    by an explicit administrative correction.
    """

    account_name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType
    balance: Decimal = Decimal("0")
    currency: str = Field(..., min_length=3, max_length=3)
    is_active: bool = True

    @property
    def account_id(self) -> str:
        return self.sort_key[len(ACCOUNT_PREFIX):]


class Transaction(OwnedEntity):
    """
    A single income or expense applied to one account.

    Sort key: "TX#" + transactionDate + "#" + transactionId.
    """

    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str
    transaction_date: str
    receipt_url: Optional[str] = None

    @property
    def transaction_id(self) -> str:
        return self.sort_key.rsplit("#", 1)[1]

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on its account balance."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class Category(OwnedEntity):
    """A user-defined label for transactions."""

    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: str
    color: str
    is_default: bool = False

    @property
    def category_id(self) -> str:
        return self.sort_key[len(CATEGORY_PREFIX):]


class Budget(OwnedEntity):
    """A spending limit for one category over a period."""

    category_id: str
    amount: Decimal = Field(..., gt=0)
    period: BudgetPeriod
    start_date: str
    end_date: str

    @property
    def budget_id(self) -> str:
        return self.sort_key[len(BUDGET_PREFIX):]


# =============================================================================
# INPUTS AND TYPED FIELD DELTAS
# =============================================================================

class _Input(_Model):
    model_config = ConfigDict(extra="forbid")


class AccountCreate(_Input):
    account_name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType
    balance: Decimal = Field(default=Decimal("0"), decimal_places=2)
    currency: str = Field(default="INR", pattern=r"^[A-Za-z]{3}$")
    is_active: bool = True

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class AccountUpdate(_Input):
    """
    Mutable account fields.

    Setting `balance` here is an administrative correction, not part of
    the transaction flow.
    """

    account_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    account_type: Optional[AccountType] = None
    balance: Optional[Decimal] = Field(default=None, decimal_places=2)
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{3}$")
    is_active: Optional[bool] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class TransactionCreate(_Input):
    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: str
    receipt_url: Optional[str] = Field(default=None, pattern=r"^https?://\S+$")

    @field_validator("transaction_date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return validate_iso_date(v)


class CategoryCreate(_Input):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    is_default: bool = False


class CategoryUpdate(_Input):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    icon: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = Field(default=None, min_length=1)
    is_default: Optional[bool] = None


class BudgetCreate(_Input):
    category_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    period: BudgetPeriod
    start_date: str
    end_date: str

    @field_validator("start_date", "end_date")
    @classmethod
    def check_dates(cls, v: str) -> str:
        return validate_iso_date(v)

    @model_validator(mode="after")
    def validate_range(self) -> "BudgetCreate":
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class BudgetUpdate(_Input):
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def check_dates(cls, v: Optional[str]) -> Optional[str]:
        return validate_iso_date(v) if v else v


class TransactionFilters(_Input):
    """
    Query parameters for listing transactions.

    startDate/endDate select the sort-key range; accountId, categoryId and
    type are non-key filters applied to each evaluated page.
    """

    start_date: Optional[str] = None
    end_date: Optional[str] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    type: Optional[TransactionType] = None
    limit: int = Field(default=50, ge=1, le=1000)
    cursor: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cursor", "nextToken", "next_token"),
    )
    ascending: bool = False

    @field_validator("start_date", "end_date")
    @classmethod
    def check_dates(cls, v: Optional[str]) -> Optional[str]:
        return validate_iso_date(v) if v else None

    @model_validator(mode="after")
    def validate_range(self) -> "TransactionFilters":
        if (
            self.start_date
            and self.end_date
            and self.start_date > self.end_date + END_OF_DAY_SENTINEL
        ):
            raise ValueError("startDate must not be after endDate")
        return self


class TransactionPage(_Model):
    """One page of transactions plus the cursor to resume from."""

    items: list[Transaction] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class BalanceReconciliation(_Model):
    """Stored balance versus the balance recomputed from transactions."""

    account_id: str
    stored_balance: Decimal
    computed_balance: Decimal
    transaction_count: int = Field(ge=0)

    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.computed_balance
