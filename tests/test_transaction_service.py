"""
Tests for the balance consistency engine.

The invariant under test everywhere:

    account.balance == Σ(income) − Σ(expense) over the account's transactions
"""

import asyncio
import pytest
from decimal import Decimal

from trackmyexpense.errors import (
    InvalidInputError,
    MissingParameterError,
    NotFoundError,
    UnsupportedOperationError,
    http_status_for,
)
from trackmyexpense.models.store import DeleteOp, PutOp, UpdateDeltaOp
from trackmyexpense.services.storage import (
    AtomicWriteConflictError,
    InvalidBatchError,
    StoreUnavailableError,
    ThroughputExceededError,
)


USER = "u1"


async def open_account(components, user_id=USER, balance=None, name="Main"):
    data = {"accountName": name, "accountType": "savings"}
    if balance is not None:
        data["balance"] = balance
    return await components.accounts.create(user_id, data)


def tx_data(account_id, type_, amount, date="2024-01-15", **extra):
    return {
        "accountId": account_id,
        "categoryId": "general",
        "type": type_,
        "amount": amount,
        "description": f"{type_} {amount}",
        "transactionDate": date,
        **extra,
    }


async def balance_of(components, account_id, user_id=USER) -> Decimal:
    return (await components.accounts.get(user_id, account_id)).balance


async def assert_invariant(components, account_id, user_id=USER):
    reconciliation = await components.transactions.reconcile_account(user_id, account_id)
    assert reconciliation.is_consistent, reconciliation


class TestCreateTransaction:
    """create_transaction writes the row and the balance delta together."""

    async def test_income_and_expense_move_balance(self, components):
        account = await open_account(components)
        await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "income", "500")
        )
        assert await balance_of(components, account.account_id) == Decimal("500")
        await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "expense", "200")
        )
        assert await balance_of(components, account.account_id) == Decimal("300")
        await assert_invariant(components, account.account_id)

    async def test_returns_the_stored_transaction(self, components):
        account = await open_account(components)
        created = await components.transactions.create_transaction(
            USER,
            tx_data(
                account.account_id,
                "expense",
                "42.50",
                date="2024-01-15T10:00:00+05:30",
                receiptUrl="https://example.com/r.png",
            ),
        )
        assert created.sort_key.startswith("TX#2024-01-15T10:00:00+05:30#")
        assert created.transaction_date == "2024-01-15T10:00:00+05:30"
        assert created.owner_key == "USER#u1"
        fetched = await components.transactions.get_transaction(USER, created.sort_key)
        assert fetched == created

    async def test_unknown_account_is_not_found(self, components):
        with pytest.raises(NotFoundError) as exc_info:
            await components.transactions.create_transaction(
                USER, tx_data("missing", "expense", "10")
            )
        assert http_status_for(exc_info.value) == 404
        page = await components.transactions.list_transactions(USER)
        assert page.items == []

    async def test_invalid_input_never_reaches_store(self, flaky_components, flaky_store):
        with pytest.raises(InvalidInputError) as exc_info:
            await flaky_components.transactions.create_transaction(
                USER, tx_data("a1", "expense", "0")
            )
        assert http_status_for(exc_info.value) == 422
        assert exc_info.value.issues[0]["field"] == "amount"
        assert flaky_store.atomic_calls == 0

    async def test_not_idempotent(self, components):
        account = await open_account(components)
        data = tx_data(account.account_id, "expense", "25")
        first = await components.transactions.create_transaction(USER, data)
        second = await components.transactions.create_transaction(USER, data)
        assert first.sort_key != second.sort_key
        assert await balance_of(components, account.account_id) == Decimal("-50")
        await assert_invariant(components, account.account_id)

    async def test_submits_put_and_delta_in_one_batch(self, flaky_components, flaky_store):
        account = await open_account(flaky_components)
        await flaky_components.transactions.create_transaction(
            USER, tx_data(account.account_id, "income", "5")
        )
        assert len(flaky_store.submitted) == 1
        put_op, delta_op = flaky_store.submitted[0]
        assert isinstance(put_op, PutOp) and put_op.require_absent
        assert isinstance(delta_op, UpdateDeltaOp) and delta_op.require_exists
        assert delta_op.increments == {"balance": Decimal("5")}

    async def test_concurrent_creates_keep_invariant(self, components):
        account = await open_account(components)
        await asyncio.gather(
            *[
                components.transactions.create_transaction(
                    USER, tx_data(account.account_id, "expense", "1")
                )
                for _ in range(10)
            ]
        )
        assert await balance_of(components, account.account_id) == Decimal("-10")
        await assert_invariant(components, account.account_id)


class TestDeleteTransaction:
    """delete_transaction removes the row and reverses its effect."""

    async def test_reversal_scenario(self, components):
        """INR account: +500 income, −200 expense, then delete both."""
        account = await open_account(components)
        assert account.currency == "INR"
        income = await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "income", "500")
        )
        expense = await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "expense", "200")
        )
        assert await balance_of(components, account.account_id) == Decimal("300")

        await components.transactions.delete_transaction(USER, income.sort_key)
        assert await balance_of(components, account.account_id) == Decimal("-200")
        await assert_invariant(components, account.account_id)

        await components.transactions.delete_transaction(USER, expense.sort_key)
        assert await balance_of(components, account.account_id) == Decimal("0")
        await assert_invariant(components, account.account_id)

    async def test_reversal_targets_own_account(self, components):
        first = await open_account(components, name="First")
        second = await open_account(components, name="Second")
        tx = await components.transactions.create_transaction(
            USER, tx_data(first.account_id, "expense", "70")
        )
        await components.transactions.create_transaction(
            USER, tx_data(second.account_id, "expense", "30")
        )
        await components.transactions.delete_transaction(USER, tx.sort_key)
        assert await balance_of(components, first.account_id) == Decimal("0")
        assert await balance_of(components, second.account_id) == Decimal("-30")

    async def test_missing_transaction(self, components):
        with pytest.raises(NotFoundError):
            await components.transactions.delete_transaction(USER, "TX#2024-01-01#nope")

    async def test_empty_sort_key(self, components):
        with pytest.raises(MissingParameterError) as exc_info:
            await components.transactions.delete_transaction(USER, "  ")
        assert http_status_for(exc_info.value) == 400

    async def test_second_delete_is_not_found(self, components):
        account = await open_account(components)
        tx = await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "income", "10")
        )
        await components.transactions.delete_transaction(USER, tx.sort_key)
        with pytest.raises(NotFoundError):
            await components.transactions.delete_transaction(USER, tx.sort_key)
        assert await balance_of(components, account.account_id) == Decimal("0")

    async def test_non_transaction_key_is_not_found(self, components):
        account = await open_account(components)
        with pytest.raises(NotFoundError):
            await components.transactions.delete_transaction(USER, account.sort_key)
        assert await components.accounts.get(USER, account.account_id) == account


class TestOwnership:
    """Users only ever see and move their own data."""

    async def test_cannot_use_another_users_account(self, components):
        account = await open_account(components, user_id="alice")
        with pytest.raises(NotFoundError):
            await components.transactions.create_transaction(
                "bob", tx_data(account.account_id, "expense", "10")
            )
        assert await balance_of(components, account.account_id, "alice") == Decimal("0")

    async def test_cannot_read_or_delete_another_users_transaction(self, components):
        account = await open_account(components, user_id="alice")
        tx = await components.transactions.create_transaction(
            "alice", tx_data(account.account_id, "expense", "10")
        )
        with pytest.raises(NotFoundError):
            await components.transactions.get_transaction("bob", tx.sort_key)
        with pytest.raises(NotFoundError):
            await components.transactions.delete_transaction("bob", tx.sort_key)
        assert (await components.transactions.list_transactions("bob")).items == []
        assert await balance_of(components, account.account_id, "alice") == Decimal("-10")


class TestAtomicityAndRetries:
    """Failures of the atomic write leave no partial state."""

    async def test_unavailable_store_is_not_retried(self, flaky_components, flaky_store):
        account = await open_account(flaky_components)
        flaky_store.failures = [StoreUnavailableError("connection reset")]
        with pytest.raises(StoreUnavailableError):
            await flaky_components.transactions.create_transaction(
                USER, tx_data(account.account_id, "expense", "10")
            )
        assert flaky_store.atomic_calls == 1
        assert await balance_of(flaky_components, account.account_id) == Decimal("0")
        assert (await flaky_components.transactions.list_transactions(USER)).items == []

    async def test_retryable_errors_rerun_the_workflow(self, flaky_components, flaky_store):
        account = await open_account(flaky_components)
        flaky_store.failures = [
            AtomicWriteConflictError("conflict"),
            ThroughputExceededError("slow down"),
        ]
        created = await flaky_components.transactions.create_transaction(
            USER, tx_data(account.account_id, "income", "10")
        )
        assert flaky_store.atomic_calls == 3
        # Each attempt builds a fresh transaction
        put_keys = {ops[0].item["sortKey"] for ops in flaky_store.submitted}
        assert len(put_keys) == 3
        assert created.sort_key in put_keys
        page = await flaky_components.transactions.list_transactions(USER)
        assert [t.sort_key for t in page.items] == [created.sort_key]
        assert await balance_of(flaky_components, account.account_id) == Decimal("10")

    async def test_retries_exhausted(self, flaky_components, flaky_store):
        account = await open_account(flaky_components)
        flaky_store.failures = [AtomicWriteConflictError("conflict") for _ in range(3)]
        with pytest.raises(AtomicWriteConflictError) as exc_info:
            await flaky_components.transactions.create_transaction(
                USER, tx_data(account.account_id, "expense", "10")
            )
        assert http_status_for(exc_info.value) == 409
        assert flaky_store.atomic_calls == 3
        assert await balance_of(flaky_components, account.account_id) == Decimal("0")

    async def test_failed_delete_keeps_transaction(self, flaky_components, flaky_store):
        account = await open_account(flaky_components)
        tx = await flaky_components.transactions.create_transaction(
            USER, tx_data(account.account_id, "expense", "10")
        )
        flaky_store.failures = [StoreUnavailableError("down")]
        with pytest.raises(StoreUnavailableError):
            await flaky_components.transactions.delete_transaction(USER, tx.sort_key)
        assert await flaky_components.transactions.get_transaction(USER, tx.sort_key) == tx
        assert await balance_of(flaky_components, account.account_id) == Decimal("-10")

    async def test_delete_submits_guarded_delete(self, flaky_components, flaky_store):
        account = await open_account(flaky_components)
        tx = await flaky_components.transactions.create_transaction(
            USER, tx_data(account.account_id, "income", "8")
        )
        await flaky_components.transactions.delete_transaction(USER, tx.sort_key)
        delete_op, delta_op = flaky_store.submitted[-1]
        assert isinstance(delete_op, DeleteOp) and delete_op.require_exists
        assert delta_op.increments == {"balance": Decimal("-8")}

    async def test_deleted_account_blocks_balance_delta(self, components):
        account = await open_account(components)
        tx = await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "expense", "10")
        )
        await components.accounts.delete(USER, account.account_id)
        with pytest.raises(AtomicWriteConflictError):
            await components.transactions.delete_transaction(USER, tx.sort_key)
        assert await components.transactions.get_transaction(USER, tx.sort_key) == tx


class TestUnsupportedAndReads:
    """update_transaction, get_transaction and reconciliation."""

    async def test_update_is_unsupported(self, components):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            await components.transactions.update_transaction(USER, "TX#x#y", {"amount": "1"})
        assert http_status_for(exc_info.value) == 501

    async def test_get_requires_sort_key(self, components):
        with pytest.raises(MissingParameterError):
            await components.transactions.get_transaction(USER, "")

    async def test_reconcile_reports_opening_balance_as_drift(self, components):
        account = await open_account(components, balance="100")
        await components.transactions.create_transaction(
            USER, tx_data(account.account_id, "expense", "40")
        )
        reconciliation = await components.transactions.reconcile_account(USER, account.account_id)
        assert reconciliation.stored_balance == Decimal("60")
        assert reconciliation.computed_balance == Decimal("-40")
        assert reconciliation.transaction_count == 1
        assert not reconciliation.is_consistent

    async def test_reconcile_unknown_account(self, components):
        with pytest.raises(NotFoundError):
            await components.transactions.reconcile_account(USER, "missing")


class TestErrorStatuses:
    """HTTP status mapping for every error type."""

    def test_statuses(self):
        assert http_status_for(ThroughputExceededError("x")) == 429
        assert http_status_for(StoreUnavailableError("x")) == 500
        assert http_status_for(InvalidBatchError("x")) == 500
        assert http_status_for(RuntimeError("x")) == 500

    def test_retryable_flags(self):
        assert AtomicWriteConflictError("x").retryable
        assert ThroughputExceededError("x").retryable
        assert not StoreUnavailableError("x").retryable
