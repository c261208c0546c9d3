import sqlite3

import pytest

from ebookledger import BookRegistry, CallContext, MemEngine, Principal, SqliteEngine


@pytest.fixture()
def mem_engine():
    yield MemEngine()


@pytest.fixture()
def sqlite_engine():
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    eng = SqliteEngine(conn)
    yield eng
    eng.close()


@pytest.fixture(params=["mem_engine", "sqlite_engine"])
def engine(request: pytest.FixtureRequest):
    yield request.getfixturevalue(request.param)


@pytest.fixture()
def registry(engine):
    yield BookRegistry(engine, system_principal="ledger", admin_principal="root")


def as_(name: str, height: int = 10) -> CallContext:
    return CallContext(caller=Principal(name), height=height)


alice = as_("alice")
bob = as_("bob")
carol = as_("carol")


def upload_dune(registry: BookRegistry, ctx: CallContext = alice) -> int:
    return registry.upload(ctx, "Dune", 500000, "A sci-fi epic", ["fiction", "scifi"])
