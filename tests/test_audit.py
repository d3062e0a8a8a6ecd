"""
Tests for audit logging.

A structlog CapturingLogger is injected into AuditLogger so assertions
do not depend on the global logging configuration.
"""

import pytest
from uuid import uuid4

from structlog.testing import CapturingLogger

from trackmyexpense.audit import AuditLogger
from trackmyexpense.models.audit import AuditEvent, AuditEventType, AuditSeverity
from trackmyexpense.orchestrator import TransactionService
from trackmyexpense.repositories import AccountRepository, TransactionRepository
from trackmyexpense.services.storage import AtomicWriteConflictError, StoreUnavailableError


USER = "u1"


def audit_events(cap: CapturingLogger) -> list[tuple[str, dict]]:
    return [(call.method_name, call.kwargs) for call in cap.calls if call.args == ("audit_event",)]


@pytest.fixture
def cap():
    return CapturingLogger()


@pytest.fixture
def audited(settings, flaky_store, flaky_components, cap):
    """A transaction service on the flaky store that audits into `cap`."""
    return TransactionService(
        flaky_store,
        TransactionRepository(flaky_store),
        AccountRepository(flaky_store),
        retry_settings=settings.retry,
        app_settings=settings.app,
        audit_logger=AuditLogger(logger=cap),
    )


async def make_account(flaky_components):
    account = await flaky_components.accounts.create(
        USER, {"accountName": "Main", "accountType": "cash"}
    )
    return account.account_id


def tx(account_id, type_="expense", amount="10"):
    return {
        "accountId": account_id,
        "categoryId": "misc",
        "type": type_,
        "amount": amount,
        "description": "test",
        "transactionDate": "2024-01-01",
    }


class TestAuditLogger:
    """Severity routing and resilience."""

    async def test_routes_by_severity(self, cap):
        logger = AuditLogger(logger=cap)
        await logger.log(AuditEvent(event_type=AuditEventType.ENTITY_CREATED, description="x"))
        await logger.log(
            AuditEvent(
                event_type=AuditEventType.ATOMIC_WRITE_FAILED,
                severity=AuditSeverity.ERROR,
                description="y",
            )
        )
        assert [name for name, _ in audit_events(cap)] == ["info", "error"]

    async def test_broken_handler_returns_false(self):
        class Broken:
            def info(self, *args, **kwargs):
                raise OSError("disk full")

        logger = AuditLogger(logger=Broken())
        ok = await logger.log(AuditEvent(event_type=AuditEventType.ENTITY_CREATED, description="x"))
        assert ok is False


class TestWorkflowAuditing:
    """Events emitted by the balance consistency engine."""

    async def test_create_and_delete_are_audited(self, audited, flaky_components, cap):
        account_id = await make_account(flaky_components)
        correlation_id = uuid4()
        created = await audited.create_transaction(
            USER, tx(account_id, "income", "500"), correlation_id=correlation_id
        )
        await audited.delete_transaction(USER, created.sort_key)

        events = audit_events(cap)
        assert [kw["event_type"] for _, kw in events] == [
            "transaction_created",
            "transaction_deleted",
        ]
        created_event = events[0][1]
        assert created_event["entity_id"] == created.sort_key
        assert created_event["correlation_id"] == str(correlation_id)
        assert created_event["details"] == {"account_id": account_id, "balance_delta": "500"}
        assert events[1][1]["details"]["balance_delta"] == "-500"

    async def test_retry_then_success(self, audited, flaky_components, flaky_store, cap):
        account_id = await make_account(flaky_components)
        flaky_store.failures = [AtomicWriteConflictError("conflict", reasons=["ItemAlreadyExists", None])]
        await audited.create_transaction(USER, tx(account_id))

        events = audit_events(cap)
        assert [(name, kw["event_type"]) for name, kw in events] == [
            ("warning", "atomic_write_retried"),
            ("info", "transaction_created"),
        ]
        assert events[0][1]["details"] == {"operation": "create_transaction", "attempt": 1}

    async def test_final_failure_is_error(self, audited, flaky_components, flaky_store, cap):
        account_id = await make_account(flaky_components)
        flaky_store.failures = [StoreUnavailableError("gone")]
        with pytest.raises(StoreUnavailableError):
            await audited.create_transaction(USER, tx(account_id))

        events = audit_events(cap)
        assert len(events) == 1
        name, kw = events[0]
        assert name == "error"
        assert kw["event_type"] == "atomic_write_failed"
        assert kw["error_code"] == "StoreUnavailableError"

    async def test_not_found_is_not_an_atomic_failure(self, audited, cap):
        from trackmyexpense.errors import NotFoundError

        with pytest.raises(NotFoundError):
            await audited.create_transaction(USER, tx("missing"))
        assert audit_events(cap) == []

    async def test_reconciliation_is_audited(self, audited, flaky_components, cap):
        account_id = await make_account(flaky_components)
        await audited.create_transaction(USER, tx(account_id, "expense", "5"))
        result = await audited.reconcile_account(USER, account_id)
        assert result.is_consistent
        name, kw = audit_events(cap)[-1]
        assert (name, kw["event_type"]) == ("info", "balance_reconciled")
