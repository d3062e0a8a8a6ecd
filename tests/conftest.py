"""
Shared fixtures.

Store-backed tests run against both keyed store backends: the in-process
store and the SQLAlchemy store on a SQLite file.
"""

from typing import Sequence

import pytest

from trackmyexpense.config import AppSettings, RetrySettings, Settings, StoreSettings
from trackmyexpense.models.store import WriteOp
from trackmyexpense.orchestrator import create_app_components
from trackmyexpense.services.storage import InMemoryKeyedStore, SqlKeyedStore, create_sql_engine


class FlakyStore(InMemoryKeyedStore):
    """In-memory store whose atomic writes fail on demand."""

    def __init__(self):
        super().__init__()
        self.failures: list[Exception] = []
        self.atomic_calls = 0
        self.submitted: list[list[WriteOp]] = []

    async def atomic_multi_write(self, ops: Sequence[WriteOp]) -> None:
        self.atomic_calls += 1
        self.submitted.append(list(ops))
        if self.failures:
            raise self.failures.pop(0)
        await super().atomic_multi_write(ops)


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryKeyedStore()
        return
    engine = create_sql_engine(
        StoreSettings(backend="sql", database_url=f"sqlite:///{tmp_path / 'store.db'}")
    )
    sql_store = SqlKeyedStore(engine)
    sql_store.create_schema()
    yield sql_store
    engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        app=AppSettings(json_logs=False, log_level="WARNING"),
        store=StoreSettings(backend="memory"),
        retry=RetrySettings(max_attempts=3, wait_multiplier=0, wait_min=0, wait_max=0),
    )


@pytest.fixture
def components(settings, store):
    return create_app_components(settings=settings, store=store)


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def flaky_components(settings, flaky_store):
    return create_app_components(settings=settings, store=flaky_store)
