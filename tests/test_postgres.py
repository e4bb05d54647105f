import gc
from dataclasses import dataclass, field

import pytest

from poolbackends.errors import ConnectionFailedError, RecycleError
from poolbackends.postgres import (
    ClientWrapper,
    Manager,
    StatementCache,
    StatementCaches,
    Transaction,
    TransactionBuilder,
)


@dataclass(frozen=True)
class FakeStatement:
    query: str
    types: tuple
    serial: int


class FakeTxn:
    def __init__(self, client):
        self.client = client
        self.committed = False
        self.rolled_back = False
        self.savepoints = []

    async def prepare_typed(self, query, types):
        return await self.client.prepare_typed(query, types)

    async def query(self, statement, params):
        return await self.client.query(statement, params)

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True

    async def transaction(self):
        return FakeTxn(self.client)

    async def savepoint(self, name):
        self.savepoints.append(name)
        return FakeTxn(self.client)


@dataclass
class FakeBuilder:
    client: "FakeClient"
    settings: dict = field(default_factory=dict)

    def isolation_level(self, level):
        return FakeBuilder(self.client, {**self.settings, "isolation_level": level})

    def read_only(self, value):
        return FakeBuilder(self.client, {**self.settings, "read_only": value})

    def deferrable(self, value):
        return FakeBuilder(self.client, {**self.settings, "deferrable": value})

    async def start(self):
        self.client.started_with = self.settings
        return FakeTxn(self.client)


class FakeClient:
    def __init__(self, fail_query=False):
        self.prepared = 0
        self.closed = False
        self.simple_queries = []
        self.fail_query = fail_query
        self.started_with = None

    async def prepare_typed(self, query, types):
        self.prepared += 1
        return FakeStatement(query, tuple(types), self.prepared)

    async def query(self, statement, params):
        if statement.query == "SELECT 1 + 2":
            return [[3]]
        return [[1 + params[0]]]

    async def simple_query(self, sql):
        if self.fail_query:
            raise RuntimeError("server gone")
        self.simple_queries.append(sql)
        return []

    def is_closed(self):
        return self.closed

    async def transaction(self):
        return FakeTxn(self)

    def build_transaction(self):
        return FakeBuilder(self)


def make_manager(recycle_query=None, **client_kwargs):
    clients = []

    async def connect():
        client = FakeClient(**client_kwargs)
        clients.append(client)
        return client

    return Manager(connect, recycle_query), clients


@pytest.mark.asyncio
async def test_basic():
    manager, _ = make_manager()
    client = await manager.create()
    stmt = await client.prepare_cached("SELECT 1 + 2")
    rows = await client.query(stmt, [])
    assert rows[0][0] == 3
    assert client.statement_cache.size == 1


@pytest.mark.asyncio
async def test_prepare_cached_reuses_statement():
    manager, clients = make_manager()
    client = await manager.create()
    first = await client.prepare_cached("SELECT 1")
    second = await client.prepare_cached("SELECT 1")
    assert first is second
    assert clients[0].prepared == 1


@pytest.mark.asyncio
async def test_prepare_typed_cached():
    manager, _ = make_manager()
    client = await manager.create()
    stmt = await client.prepare_typed_cached("SELECT 1 + $1", ["INT2"])
    assert stmt.types == ("INT2",)
    rows = await client.query(stmt, [42])
    assert rows[0][0] == 43


@pytest.mark.asyncio
async def test_types_are_part_of_key():
    manager, clients = make_manager()
    client = await manager.create()
    a = await client.prepare_typed_cached("SELECT $1", ["INT2"])
    b = await client.prepare_typed_cached("SELECT $1", ["INT4"])
    assert a != b
    assert client.statement_cache.size == 2
    assert clients[0].prepared == 2


@pytest.mark.asyncio
async def test_transaction_1():
    manager, _ = make_manager()
    client = await manager.create()
    txn = await client.transaction()
    stmt = await txn.prepare_cached("SELECT 1 + 2")
    rows = await txn.query(stmt, [])
    await txn.commit()
    assert rows[0][0] == 3
    assert txn.committed is True
    assert client.statement_cache.size == 1


@pytest.mark.asyncio
async def test_transaction_2():
    manager, clients = make_manager()
    client = await manager.create()
    stmt = await client.prepare_cached("SELECT 1 + 2")
    txn = await client.transaction()
    again = await txn.prepare_cached("SELECT 1 + 2")
    await txn.commit()
    assert again is stmt
    assert clients[0].prepared == 1
    assert client.statement_cache.size == 1


@pytest.mark.asyncio
async def test_transaction_rollback_and_nesting():
    manager, _ = make_manager()
    client = await manager.create()
    txn = await client.transaction()
    nested = await txn.transaction()
    savepoint = await txn.savepoint("sp1")
    assert nested.statement_cache is client.statement_cache
    assert savepoint.statement_cache is client.statement_cache
    assert txn.savepoints == ["sp1"]
    await txn.rollback()
    assert txn.rolled_back is True


@pytest.mark.asyncio
async def test_transaction_builder():
    manager, clients = make_manager()
    client = await manager.create()
    txn = await (
        client.build_transaction()
        .isolation_level("READ UNCOMMITTED")
        .read_only(True)
        .deferrable(True)
        .start()
    )
    assert isinstance(txn, Transaction)
    assert clients[0].started_with == {
        "isolation_level": "READ UNCOMMITTED",
        "read_only": True,
        "deferrable": True,
    }
    assert txn.statement_cache is client.statement_cache


def test_builder_keeps_cache():
    cache = StatementCache()
    builder = TransactionBuilder(FakeBuilder(FakeClient()), cache)
    assert builder.read_only(False).statement_cache is cache


@pytest.mark.asyncio
async def test_statement_cache_clear():
    manager, _ = make_manager()
    client = await manager.create()
    assert client.statement_cache.size == 0
    await client.prepare_cached("SELECT 1;")
    assert client.statement_cache.size == 1
    client.statement_cache.clear()
    assert client.statement_cache.size == 0


@pytest.mark.asyncio
async def test_statement_caches_clear():
    manager, _ = make_manager()
    client0 = await manager.create()
    await client0.prepare_cached("SELECT 1;")
    client1 = await manager.create()
    assert client1.statement_cache.size == 0
    await client1.prepare_cached("SELECT 1;")
    assert client1.statement_cache.size == 1
    manager.statement_caches.clear()
    assert client0.statement_cache.size == 0
    assert client1.statement_cache.size == 0


@pytest.mark.asyncio
async def test_statement_caches_remove():
    manager, _ = make_manager()
    client0 = await manager.create()
    client1 = await manager.create()
    for client in (client0, client1):
        await client.prepare_cached("SELECT 1;")
        await client.prepare_cached("SELECT 2;")
    manager.statement_caches.remove("SELECT 1;", [])
    assert client0.statement_cache.size == 1
    assert client1.statement_cache.get("SELECT 1;", []) is None
    assert client1.statement_cache.get("SELECT 2;", []) is not None


def test_cache_remove_returns_statement():
    cache = StatementCache()
    cache.insert("SELECT 1", [], "stmt")
    assert cache.remove("SELECT 1", []) == "stmt"
    assert cache.remove("SELECT 1", []) is None
    assert cache.size == 0


def test_cache_insert_same_key_keeps_size():
    cache = StatementCache()
    cache.insert("SELECT 1", ["INT4"], "a")
    cache.insert("SELECT 1", ["INT4"], "b")
    assert cache.size == 1
    assert cache.get("SELECT 1", ["INT4"]) == "b"


@pytest.mark.asyncio
async def test_detach_stops_tracking():
    manager, _ = make_manager()
    client = await manager.create()
    await client.prepare_cached("SELECT 1;")
    manager.detach(client)
    manager.statement_caches.clear()
    assert client.statement_cache.size == 1


def test_dropped_cache_is_ignored():
    caches = StatementCaches()
    kept = StatementCache()
    dropped = StatementCache()
    caches.attach(kept)
    caches.attach(dropped)
    kept.insert("q", [], "s")
    del dropped
    gc.collect()
    caches.clear()
    assert kept.size == 0


@pytest.mark.asyncio
async def test_recycle_closed_connection():
    manager, clients = make_manager()
    client = await manager.create()
    clients[0].closed = True
    with pytest.raises(RecycleError, match="Connection closed"):
        await manager.recycle(client)


@pytest.mark.asyncio
@pytest.mark.parametrize("query", [None, "SELECT 1", "DISCARD ALL;"])
async def test_recycling_methods(query):
    manager, clients = make_manager(recycle_query=query)
    client = await manager.create()
    for _ in range(20):
        await manager.recycle(client)
    expected = [] if query is None else [query] * 20
    assert clients[0].simple_queries == expected


@pytest.mark.asyncio
async def test_recycle_query_failure():
    manager, _ = make_manager(recycle_query="SELECT 1", fail_query=True)
    client = await manager.create()
    with pytest.raises(RecycleError, match="server gone"):
        await manager.recycle(client)


@pytest.mark.asyncio
async def test_create_failure():
    async def connect():
        raise OSError("refused")

    manager = Manager(connect)
    with pytest.raises(ConnectionFailedError, match="refused"):
        await manager.create()


def test_wrapper_delegates_to_client():
    inner = FakeClient()
    wrapper = ClientWrapper(inner)
    inner.closed = True
    assert wrapper.is_closed() is True
    assert wrapper.client is inner