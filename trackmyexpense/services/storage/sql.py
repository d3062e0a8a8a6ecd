"""
SQL Keyed Store Implementation

DESIGN DECISION: The keyed table is one SQL table with a composite primary
key (owner_key, sort_key) and a JSON attribute column. This gives us:
1. Real all-or-nothing batches (one database transaction per batch)
2. Sort-key range scans on the primary key index
3. Any SQLAlchemy-supported database (SQLite locally)

TRADEOFFS:
- Non-key filters are evaluated in Python after the scan, matching the
  store contract (filters never change what a page evaluates)
- SQLAlchemy here is synchronous; each call runs on a worker thread so the
  event loop is never blocked

Sort keys must compare byte-wise. SQLite does this by default; on other
databases use a binary/"C" collation for the sort_key column.
"""

import asyncio
import json
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import structlog
from sqlalchemy import JSON, String, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from trackmyexpense.config.settings import StoreSettings
from trackmyexpense.models.store import (
    DeleteOp,
    ItemKey,
    PutOp,
    QueryPage,
    SortKeyCondition,
    UpdateDeltaOp,
    WriteOp,
    apply_update_delta,
)
from trackmyexpense.services.storage.interface import (
    AtomicWriteConflictError,
    KeyedStore,
    StoreUnavailableError,
    ThroughputExceededError,
    validate_batch,
)


logger = structlog.get_logger(__name__)

# Execution option naming the SQLite BEGIN mode of a session
SQLITE_BEGIN_OPTION = "sqlite_begin"


class Base(DeclarativeBase):
    pass


class StoreItem(Base):
    """One row per keyed item."""

    __tablename__ = "store_items"

    owner_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    sort_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False)


def create_sql_engine(settings: StoreSettings) -> Engine:
    """Build an engine for the configured database URL."""
    connect_args: dict[str, object] = {}
    is_sqlite = settings.database_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
    engine = create_engine(
        settings.database_url,
        connect_args=connect_args,
        echo=settings.echo_sql,
        json_serializer=lambda obj: json.dumps(obj, default=str),
    )
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_pragmas)
        event.listen(engine, "begin", _begin_transaction)
    return engine


def _enable_sqlite_pragmas(dbapi_conn, _record):
    # Transactions are begun explicitly in _begin_transaction
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


def _begin_transaction(conn):
    # Writers take the lock up front so read-modify-write batches serialize;
    # readers stay deferred and never wait on a writer under WAL
    mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "DEFERRED")
    conn.exec_driver_sql(f"BEGIN {mode}")


def _translate(exc: SQLAlchemyError, operation: str) -> Exception:
    """Map driver failures onto the storage error taxonomy."""
    if isinstance(exc, IntegrityError):
        return AtomicWriteConflictError(
            f"{operation} cancelled: concurrent write on the same key"
        )
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
        if "locked" in message or "busy" in message:
            return ThroughputExceededError(f"{operation} throttled: {exc.orig}")
    if isinstance(exc, DBAPIError):
        return StoreUnavailableError(f"{operation} failed: {exc.orig}")
    return StoreUnavailableError(f"{operation} failed: {exc}")


class SqlKeyedStore(KeyedStore):
    """
    SQLAlchemy implementation of the keyed store.

    The engine is injected; call `create_schema()` once at startup.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._write_sessions = sessionmaker(
            bind=engine.execution_options(**{SQLITE_BEGIN_OPTION: "IMMEDIATE"}),
            autoflush=False,
            expire_on_commit=False,
        )

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    @contextmanager
    def _session_scope(self, write_lock: bool = False) -> Iterator[Session]:
        factory = self._write_sessions if write_lock else self._sessions
        session: Session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def _run(self, operation: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise _translate(e, operation) from e

    # -------------------------------------------------------------------------
    # Single-item operations
    # -------------------------------------------------------------------------

    def _get_sync(self, owner_key: str, sort_key: str) -> Optional[dict[str, Any]]:
        with self._session_scope() as session:
            row = session.get(StoreItem, (owner_key, sort_key))
            return dict(row.attributes) if row is not None else None

    async def get(self, owner_key: str, sort_key: str) -> Optional[dict[str, Any]]:
        return await self._run("get", self._get_sync, owner_key, sort_key)

    def _put_sync(self, item: dict[str, Any]) -> None:
        key = ItemKey.of(item)
        with self._session_scope() as session:
            session.merge(
                StoreItem(owner_key=key.owner_key, sort_key=key.sort_key, attributes=dict(item))
            )

    async def put(self, item: dict[str, Any]) -> None:
        await self._run("put", self._put_sync, item)

    def _delete_sync(self, owner_key: str, sort_key: str) -> None:
        with self._session_scope() as session:
            row = session.get(StoreItem, (owner_key, sort_key))
            if row is not None:
                session.delete(row)

    async def delete(self, owner_key: str, sort_key: str) -> None:
        await self._run("delete", self._delete_sync, owner_key, sort_key)

    def _update_sync(
        self,
        owner_key: str,
        sort_key: str,
        assignments: dict[str, Any],
        must_exist: bool,
    ) -> Optional[dict[str, Any]]:
        with self._session_scope(write_lock=True) as session:
            row = session.get(StoreItem, (owner_key, sort_key), with_for_update=True)
            if row is None:
                if must_exist:
                    return None
                row = StoreItem(
                    owner_key=owner_key,
                    sort_key=sort_key,
                    attributes={"ownerKey": owner_key, "sortKey": sort_key},
                )
                session.add(row)
            # Assign a new dict so the JSON column is flagged dirty
            row.attributes = {**row.attributes, **assignments}
            return dict(row.attributes)

    async def update(
        self,
        owner_key: str,
        sort_key: str,
        assignments: dict[str, Any],
        *,
        must_exist: bool = False,
    ) -> Optional[dict[str, Any]]:
        return await self._run(
            "update", self._update_sync, owner_key, sort_key, assignments, must_exist
        )

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    @staticmethod
    def _condition_clause(condition: SortKeyCondition):
        column = StoreItem.sort_key
        if condition.operator == "begins_with":
            return column.startswith(condition.value, autoescape=True)
        if condition.operator == "gte":
            return column >= condition.value
        if condition.operator == "lte":
            return column <= condition.value
        return column.between(condition.value, condition.upper)

    def _query_sync(
        self,
        owner_key: str,
        condition: SortKeyCondition,
        limit: Optional[int],
        start_after: Optional[str],
        descending: bool,
    ) -> tuple[list[dict[str, Any]], bool]:
        stmt = select(StoreItem).where(
            StoreItem.owner_key == owner_key,
            self._condition_clause(condition),
        )
        if start_after is not None:
            stmt = stmt.where(
                StoreItem.sort_key < start_after if descending else StoreItem.sort_key > start_after
            )
        stmt = stmt.order_by(
            StoreItem.sort_key.desc() if descending else StoreItem.sort_key.asc()
        )
        if limit is not None:
            # One extra row tells us whether the range continues
            stmt = stmt.limit(limit + 1)

        with self._session_scope() as session:
            rows = session.scalars(stmt).all()
            evaluated = [dict(row.attributes) for row in rows]

        has_more = limit is not None and len(evaluated) > limit
        if has_more:
            evaluated = evaluated[:limit]
        return evaluated, has_more

    async def query(
        self,
        owner_key: str,
        condition: SortKeyCondition,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        descending: bool = False,
    ) -> QueryPage:
        start_after = ItemKey.from_cursor(cursor, owner_key).sort_key if cursor else None
        evaluated, has_more = await self._run(
            "query", self._query_sync, owner_key, condition, limit, start_after, descending
        )
        logger.debug(
            "store_query",
            owner_key=owner_key,
            operator=condition.operator,
            evaluated=len(evaluated),
            has_more=has_more,
        )
        return QueryPage.from_scan(evaluated, has_more, filters)

    # -------------------------------------------------------------------------
    # Atomic multi-write
    # -------------------------------------------------------------------------

    def _atomic_multi_write_sync(self, ops: Sequence[WriteOp]) -> None:
        with self._session_scope(write_lock=True) as session:
            rows = [
                session.get(
                    StoreItem, (op.key.owner_key, op.key.sort_key), with_for_update=True
                )
                for op in ops
            ]

            reasons: list[Optional[str]] = []
            for op, row in zip(ops, rows):
                if isinstance(op, PutOp) and op.require_absent and row is not None:
                    reasons.append("ItemAlreadyExists")
                elif isinstance(op, (DeleteOp, UpdateDeltaOp)) and op.require_exists and row is None:
                    reasons.append("ItemNotFound")
                else:
                    reasons.append(None)
            if any(reasons):
                logger.warning("store_atomic_write_cancelled", reasons=reasons)
                raise AtomicWriteConflictError(
                    "Atomic write cancelled: precondition failed", reasons=reasons
                )

            for op, row in zip(ops, rows):
                if isinstance(op, PutOp):
                    if row is None:
                        session.add(
                            StoreItem(
                                owner_key=op.key.owner_key,
                                sort_key=op.key.sort_key,
                                attributes=dict(op.item),
                            )
                        )
                    else:
                        row.attributes = dict(op.item)
                elif isinstance(op, DeleteOp):
                    if row is not None:
                        session.delete(row)
                else:
                    current = row.attributes if row is not None else {
                        "ownerKey": op.key.owner_key,
                        "sortKey": op.key.sort_key,
                    }
                    updated = apply_update_delta(current, op)
                    if row is None:
                        session.add(
                            StoreItem(
                                owner_key=op.key.owner_key,
                                sort_key=op.key.sort_key,
                                attributes=updated,
                            )
                        )
                    else:
                        row.attributes = updated

    async def atomic_multi_write(self, ops: Sequence[WriteOp]) -> None:
        validate_batch(ops)
        await self._run("atomic_multi_write", self._atomic_multi_write_sync, list(ops))
        logger.debug("store_atomic_write", operations=len(ops))
