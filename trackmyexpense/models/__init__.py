"""
Data Models Package

Pydantic models for stored entities, caller inputs, store-level write
descriptors and audit events.
"""

from trackmyexpense.models.finance import (
    Account,
    AccountCreate,
    AccountType,
    AccountUpdate,
    BalanceReconciliation,
    Budget,
    BudgetCreate,
    BudgetPeriod,
    BudgetUpdate,
    Category,
    CategoryCreate,
    CategoryUpdate,
    OwnedEntity,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionPage,
    TransactionType,
)
from trackmyexpense.models.store import (
    DeleteOp,
    ItemKey,
    PutOp,
    QueryPage,
    SortKeyCondition,
    UpdateDeltaOp,
    WriteOp,
)
from trackmyexpense.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountCreate",
    "AccountType",
    "AccountUpdate",
    "BalanceReconciliation",
    "Budget",
    "BudgetCreate",
    "BudgetPeriod",
    "BudgetUpdate",
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "OwnedEntity",
    "Transaction",
    "TransactionCreate",
    "TransactionFilters",
    "TransactionPage",
    "TransactionType",
    # Store models
    "DeleteOp",
    "ItemKey",
    "PutOp",
    "QueryPage",
    "SortKeyCondition",
    "UpdateDeltaOp",
    "WriteOp",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
