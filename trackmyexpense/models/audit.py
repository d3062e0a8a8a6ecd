"""
Audit Models for TrackMyExpense

Every balance-affecting action is logged for audit purposes.
This provides:
1. Traceability of every balance movement
2. Debugging information when an atomic write is cancelled
3. A correlation id to join all log lines of one request

DESIGN DECISION: Audit events are log records, not store items. They are
never part of an atomic multi-write, so auditing can never make a
transaction write fail.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts, categories, budgets
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"

    # Balance consistency workflows
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"
    ATOMIC_WRITE_FAILED = "atomic_write_failed"
    ATOMIC_WRITE_RETRIED = "atomic_write_retried"

    # Administrative checks
    BALANCE_RECONCILED = "balance_reconciled"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and what
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Identifier of the entity; the full sort key for transactions"
    )

    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(user_id, sort_key, ...)
    """

    @staticmethod
    def entity_created(
        user_id: str,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} created",
        )

    @staticmethod
    def entity_updated(
        user_id: str,
        entity_type: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_UPDATED,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
        )

    @staticmethod
    def entity_deleted(
        user_id: str,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_DELETED,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} deleted",
        )

    @staticmethod
    def transaction_created(
        user_id: str,
        sort_key: str,
        account_id: str,
        balance_delta: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=sort_key,
            correlation_id=correlation_id,
            description=f"Transaction created, balance delta {balance_delta}",
            details={
                "account_id": account_id,
                "balance_delta": str(balance_delta),
            },
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        sort_key: str,
        account_id: str,
        balance_delta: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=sort_key,
            correlation_id=correlation_id,
            description=f"Transaction deleted, balance reversal {balance_delta}",
            details={
                "account_id": account_id,
                "balance_delta": str(balance_delta),
            },
        )

    @staticmethod
    def atomic_write_failed(
        user_id: str,
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATOMIC_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Atomic write failed during {operation}; nothing was applied",
            error_code=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
        )

    @staticmethod
    def atomic_write_retried(
        user_id: str,
        operation: str,
        attempt: int,
        error: Exception,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATOMIC_WRITE_RETRIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Retrying {operation} after attempt {attempt}",
            error_code=type(error).__name__,
            error_message=str(error),
            details={"operation": operation, "attempt": attempt},
        )

    @staticmethod
    def balance_reconciled(
        user_id: str,
        account_id: str,
        stored: Decimal,
        computed: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        consistent = stored == computed
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECONCILED,
            severity=AuditSeverity.INFO if consistent else AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=(
                "Balance matches transactions"
                if consistent
                else f"Balance drift: stored {stored}, computed {computed}"
            ),
            details={"stored_balance": str(stored), "computed_balance": str(computed)},
        )
