import sqlite3

import pytest

from db_setup import create_tables
from fakes import InMemoryContactStore, SeedableSqliteStore, TickingClock
from reconciler import Reconciler


@pytest.fixture
def sqlite_store(tmp_path):
    conn = sqlite3.connect(str(tmp_path / "contacts.db"))
    create_tables(conn)
    store = SeedableSqliteStore(conn, clock=TickingClock())
    try:
        yield store
    finally:
        conn.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        return InMemoryContactStore()
    return request.getfixturevalue("sqlite_store")


@pytest.fixture
def reconciler(store):
    return Reconciler(store)
