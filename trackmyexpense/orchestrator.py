"""
Main Orchestrator for TrackMyExpense

This module ties together all the components and defines the
balance-affecting flows:
1. Create transaction (validate → load account → build ops → atomic write)
2. Delete transaction (load transaction → build reversal → atomic write)

DESIGN DECISION: The orchestrator enforces the one invariant of the system:

    account.balance == Σ(income amounts) − Σ(expense amounts)

over the account's transactions. A transaction row and its balance effect
are always submitted as ONE atomic multi-write, so no reader can ever see
one without the other. Transactions are never edited in place; an edit is
a delete followed by a create.

Retries re-run the whole flow from the read, because a cancelled batch
means the state it was built from may have changed.
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog
from sqlalchemy.engine import make_url
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from trackmyexpense.audit import AuditLogger, configure_logging, create_correlation_id
from trackmyexpense.config import AppSettings, RetrySettings, Settings, StoreSettings, get_settings
from trackmyexpense.errors import MissingParameterError, NotFoundError, UnsupportedOperationError
from trackmyexpense.models.audit import AuditEventBuilder
from trackmyexpense.models.finance import (
    BUDGET_PREFIX,
    CATEGORY_PREFIX,
    BalanceReconciliation,
    Budget,
    Category,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionPage,
)
from trackmyexpense.models.store import WriteOp
from trackmyexpense.repositories import (
    AccountRepository,
    OwnedEntityRepository,
    TransactionRepository,
)
from trackmyexpense.services.entities import (
    AccountService,
    EntityService,
    budget_service,
    category_service,
)
from trackmyexpense.services.storage import (
    AtomicWriteConflictError,
    InMemoryKeyedStore,
    KeyedStore,
    SqlKeyedStore,
    StorageError,
    ThroughputExceededError,
    create_sql_engine,
)
from trackmyexpense.validation import validate_input


logger = structlog.get_logger(__name__)

RETRYABLE_ERRORS = (AtomicWriteConflictError, ThroughputExceededError)

# Largest page the store accepts; reconciliation scans with it
_SCAN_PAGE_LIMIT = 1000


class TransactionService:
    """
    The Balance Consistency Engine.

    Every operation that moves money goes through here. Reads are plain
    repository calls; writes compose a transaction op and a balance delta
    into one atomic batch.
    """

    def __init__(
        self,
        store: KeyedStore,
        transaction_repository: TransactionRepository,
        account_repository: AccountRepository,
        retry_settings: Optional[RetrySettings] = None,
        app_settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._transactions = transaction_repository
        self._accounts = account_repository
        self._retry = retry_settings or RetrySettings()
        self._default_page_limit = (app_settings or AppSettings()).default_page_limit
        self._audit_logger = audit_logger

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        user_id: str,
        filters: Union[TransactionFilters, dict[str, Any], None] = None,
    ) -> TransactionPage:
        """
        One page of transactions.

        A page may hold fewer than `limit` items while a cursor is still
        returned; keep paging until no cursor comes back.
        """
        if not isinstance(filters, TransactionFilters):
            raw = dict(filters or {})
            raw.setdefault("limit", self._default_page_limit)
            filters = validate_input(TransactionFilters, raw)
        return await self._transactions.list(user_id, filters)

    async def get_transaction(self, user_id: str, sort_key: str) -> Transaction:
        """Fetch by full sort key (TX#<date>#<id>)."""
        if not sort_key or not sort_key.strip():
            raise MissingParameterError("Transaction sort key is required")
        transaction = await self._transactions.get(user_id, sort_key)
        if transaction is None:
            raise NotFoundError("transaction", sort_key)
        return transaction

    # -------------------------------------------------------------------------
    # Balance-affecting writes
    # -------------------------------------------------------------------------

    async def create_transaction(
        self,
        user_id: str,
        data: Union[TransactionCreate, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a transaction and apply its signed amount to the account.

        Not idempotent: calling twice with the same data records two
        transactions and moves the balance twice.

        Raises:
            InvalidInputError: data failed validation (nothing read)
            NotFoundError: the account is not in the caller's partition
            AtomicWriteConflictError / ThroughputExceededError: still
                failing after all retries; nothing was applied
            StoreUnavailableError: outcome unknown, never retried
        """
        payload = validate_input(TransactionCreate, data)
        correlation_id = correlation_id or create_correlation_id()

        async def attempt(attempt_number: int) -> Transaction:
            account = await self._accounts.get(user_id, payload.account_id)
            if account is None:
                raise NotFoundError("account", payload.account_id)

            transaction, put_op = self._transactions.build_create_op(user_id, payload)
            delta = transaction.signed_amount
            delta_op = self._accounts.build_balance_delta_op(
                user_id, payload.account_id, delta
            )
            await self._commit(
                [put_op, delta_op], user_id, "create_transaction", attempt_number, correlation_id
            )
            logger.info(
                "transaction_created",
                user_id=user_id,
                sort_key=transaction.sort_key,
                account_id=payload.account_id,
                balance_delta=str(delta),
            )
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.transaction_created(
                        user_id, transaction.sort_key, payload.account_id, delta, correlation_id
                    )
                )
            return transaction

        return await self._with_retries(attempt)

    async def delete_transaction(
        self,
        user_id: str,
        sort_key: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Remove a transaction and reverse its effect on its own account.

        The reversal always targets the accountId stored on the
        transaction, never one supplied by the caller.
        """
        if not sort_key or not sort_key.strip():
            raise MissingParameterError("Transaction sort key is required")
        correlation_id = correlation_id or create_correlation_id()

        async def attempt(attempt_number: int) -> None:
            transaction = await self._transactions.get(user_id, sort_key)
            if transaction is None:
                raise NotFoundError("transaction", sort_key)

            reversal = -transaction.signed_amount
            delete_op = self._transactions.build_delete_op(user_id, transaction.sort_key)
            delta_op = self._accounts.build_balance_delta_op(
                user_id, transaction.account_id, reversal
            )
            await self._commit(
                [delete_op, delta_op], user_id, "delete_transaction", attempt_number, correlation_id
            )
            logger.info(
                "transaction_deleted",
                user_id=user_id,
                sort_key=transaction.sort_key,
                account_id=transaction.account_id,
                balance_delta=str(reversal),
            )
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.transaction_deleted(
                        user_id, transaction.sort_key, transaction.account_id, reversal, correlation_id
                    )
                )

        await self._with_retries(attempt)

    async def update_transaction(self, user_id: str, sort_key: str, changes: Any) -> Transaction:
        """Not supported: delete the transaction and create a new one."""
        raise UnsupportedOperationError(
            "Transactions cannot be edited; delete and re-create instead"
        )

    # -------------------------------------------------------------------------
    # Administrative checks
    # -------------------------------------------------------------------------

    async def reconcile_account(
        self,
        user_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> BalanceReconciliation:
        """
        Recompute an account's balance from its transactions.

        Read-only. The computed figure is Σincome − Σexpense, so an account
        opened with a non-zero balance (or corrected through an account
        update) reports the opening amount as drift.
        """
        account = await self._accounts.get(user_id, account_id)
        if account is None:
            raise NotFoundError("account", account_id)

        computed = Decimal("0")
        count = 0
        cursor = None
        while True:
            filters = TransactionFilters(
                account_id=account_id,
                limit=_SCAN_PAGE_LIMIT,
                ascending=True,
                cursor=cursor,
            )
            page = await self._transactions.list(user_id, filters)
            for transaction in page.items:
                computed += transaction.signed_amount
                count += 1
            if not page.next_cursor:
                break
            cursor = page.next_cursor

        reconciliation = BalanceReconciliation(
            account_id=account_id,
            stored_balance=account.balance,
            computed_balance=computed,
            transaction_count=count,
        )
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.balance_reconciled(
                    user_id, account_id, account.balance, computed, correlation_id
                )
            )
        return reconciliation

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._retry.max_attempts),
            wait=wait_exponential(
                multiplier=self._retry.wait_multiplier,
                min=self._retry.wait_min,
                max=self._retry.wait_max,
            ),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    async def _with_retries(self, flow: Callable[[int], Any]) -> Any:
        result = None
        async for attempt in self._retrying():
            with attempt:
                result = await flow(attempt.retry_state.attempt_number)
        return result

    async def _commit(
        self,
        ops: list[WriteOp],
        user_id: str,
        operation: str,
        attempt_number: int,
        correlation_id: UUID,
    ) -> None:
        """Submit one atomic batch, auditing a cancelled or failed write."""
        try:
            await self._store.atomic_multi_write(ops)
        except StorageError as e:
            will_retry = e.retryable and attempt_number < self._retry.max_attempts
            logger.warning(
                "atomic_write_rejected",
                operation=operation,
                attempt=attempt_number,
                will_retry=will_retry,
                error=str(e),
            )
            if self._audit_logger:
                event = (
                    AuditEventBuilder.atomic_write_retried(
                        user_id, operation, attempt_number, e, correlation_id
                    )
                    if will_retry
                    else AuditEventBuilder.atomic_write_failed(user_id, operation, e, correlation_id)
                )
                await self._audit_logger.log(event)
            raise


# =============================================================================
# FACTORY
# =============================================================================

@dataclass
class AppComponents:
    """Everything a caller (HTTP layer, script, test) needs, wired once."""

    settings: Settings
    store: KeyedStore
    audit_logger: AuditLogger
    account_repository: AccountRepository
    transaction_repository: TransactionRepository
    accounts: AccountService
    categories: EntityService[Category]
    budgets: EntityService[Budget]
    transactions: TransactionService


def build_store(settings: StoreSettings) -> KeyedStore:
    """Create the configured keyed store, creating its schema if needed."""
    if settings.backend == "memory":
        return InMemoryKeyedStore()

    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    store = SqlKeyedStore(create_sql_engine(settings))
    store.create_schema()
    return store


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[KeyedStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Configuration; defaults to the cached process settings.
        store: Inject a ready store (tests); otherwise built from settings.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level, settings.app.json_logs)

    if store is None:
        store = build_store(settings.store)
    audit_logger = AuditLogger()

    account_repository = AccountRepository(store)
    transaction_repository = TransactionRepository(store)

    return AppComponents(
        settings=settings,
        store=store,
        audit_logger=audit_logger,
        account_repository=account_repository,
        transaction_repository=transaction_repository,
        accounts=AccountService(account_repository, settings.app, audit_logger),
        categories=category_service(
            OwnedEntityRepository(store, Category, CATEGORY_PREFIX), audit_logger
        ),
        budgets=budget_service(
            OwnedEntityRepository(store, Budget, BUDGET_PREFIX), audit_logger
        ),
        transactions=TransactionService(
            store,
            transaction_repository,
            account_repository,
            retry_settings=settings.retry,
            app_settings=settings.app,
            audit_logger=audit_logger,
        ),
    )
