"""Pooled PostgreSQL clients with per-connection prepared statement caches.

The module does not depend on a particular PostgreSQL driver.  A client is
any object offering the coroutine methods ``prepare_typed(query, types)``,
``simple_query(sql)`` and ``transaction()``, the method
``build_transaction()`` and the predicate ``is_closed()``.  Transactions
offer ``prepare_typed``, ``commit``, ``rollback``, ``transaction`` and
``savepoint``.  Transaction builders offer ``isolation_level``,
``read_only`` and ``deferrable`` returning a builder, and the coroutine
``start()``.
"""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Any, Awaitable, Callable, Hashable, Iterable, Optional, Sequence

from .errors import BackendError, ConnectionFailedError, RecycleError

logger = logging.getLogger("poolbackends.postgres")

Connector = Callable[[], Awaitable[Any]]


def _key(query: str, types: Iterable[Hashable]) -> tuple[str, tuple]:
    return query, tuple(types)


class StatementCache:
    """Cache of prepared statements bound to a single client.

    Statements prepared by one client must not be used with another.
    """

    def __init__(self) -> None:
        self._map: dict[tuple[str, tuple], Any] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"StatementCache(size={self.size})"

    def __len__(self) -> int:
        return self.size

    @property
    def size(self) -> int:
        """Number of cached statements."""
        with self._lock:
            return len(self._map)

    def clear(self) -> None:
        """Remove every statement from this cache only."""
        with self._lock:
            self._map.clear()

    def remove(self, query: str, types: Sequence[Hashable] = ()) -> Optional[Any]:
        """Remove and return the statement for ``query`` and ``types``, if cached."""
        with self._lock:
            return self._map.pop(_key(query, types), None)

    def get(self, query: str, types: Sequence[Hashable] = ()) -> Optional[Any]:
        """Return the cached statement for ``query`` and ``types``, or ``None``."""
        with self._lock:
            return self._map.get(_key(query, types))

    def insert(self, query: str, types: Sequence[Hashable], statement: Any) -> None:
        """Store ``statement`` under ``query`` and ``types``."""
        with self._lock:
            self._map[_key(query, types)] = statement

    async def prepare(self, client: Any, query: str) -> Any:
        """Return a cached statement for ``query`` or prepare it with ``client``."""
        return await self.prepare_typed(client, query, ())

    async def prepare_typed(self, client: Any, query: str, types: Sequence[Hashable]) -> Any:
        """Like :meth:`prepare`, with the parameter types given explicitly."""
        statement = self.get(query, types)
        if statement is not None:
            return statement
        statement = await client.prepare_typed(query, list(types))
        self.insert(query, types, statement)
        return statement


class StatementCaches:
    """Weak references to the statement caches of all clients of a manager."""

    def __init__(self) -> None:
        self._caches: list[weakref.ReferenceType[StatementCache]] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"StatementCaches(caches={len(self._live())})"

    def _live(self) -> list[StatementCache]:
        with self._lock:
            refs = list(self._caches)
        return [cache for cache in (ref() for ref in refs) if cache is not None]

    def attach(self, cache: StatementCache) -> None:
        """Start tracking ``cache``."""
        with self._lock:
            self._caches.append(weakref.ref(cache))

    def detach(self, cache: StatementCache) -> None:
        """Stop tracking ``cache``."""
        with self._lock:
            self._caches = [ref for ref in self._caches if ref() is not cache]

    def clear(self) -> None:
        """Clear the caches of every client handed out by the manager."""
        for cache in self._live():
            cache.clear()

    def remove(self, query: str, types: Sequence[Hashable] = ()) -> None:
        """Remove a statement from the caches of every client."""
        for cache in self._live():
            cache.remove(query, types)


class TransactionBuilder:
    """Transaction builder sharing the statement cache of its client."""

    def __init__(self, builder: Any, statement_cache: StatementCache) -> None:
        self._builder = builder
        self.statement_cache = statement_cache

    def __repr__(self) -> str:
        return f"TransactionBuilder(statement_cache={self.statement_cache!r})"

    def __getattr__(self, name: str) -> Any:
        return getattr(self._builder, name)

    def isolation_level(self, level: Any) -> "TransactionBuilder":
        """Set the isolation level of the transaction."""
        return TransactionBuilder(self._builder.isolation_level(level), self.statement_cache)

    def read_only(self, read_only: bool) -> "TransactionBuilder":
        """Set the access mode of the transaction."""
        return TransactionBuilder(self._builder.read_only(read_only), self.statement_cache)

    def deferrable(self, deferrable: bool) -> "TransactionBuilder":
        """Set the deferrability of the transaction."""
        return TransactionBuilder(self._builder.deferrable(deferrable), self.statement_cache)

    async def start(self) -> "Transaction":
        """Begin the transaction; it rolls back unless committed."""
        return Transaction(await self._builder.start(), self.statement_cache)


class Transaction:
    """Transaction sharing the statement cache of the client that opened it."""

    def __init__(self, txn: Any, statement_cache: StatementCache) -> None:
        self._txn = txn
        self.statement_cache = statement_cache

    def __repr__(self) -> str:
        return f"Transaction(statement_cache={self.statement_cache!r})"

    def __getattr__(self, name: str) -> Any:
        return getattr(self._txn, name)

    async def prepare_cached(self, query: str) -> Any:
        """Prepare ``query``, reusing a cached statement when possible."""
        return await self.statement_cache.prepare(self._txn, query)

    async def prepare_typed_cached(self, query: str, types: Sequence[Hashable]) -> Any:
        """Prepare ``query`` with explicit types, reusing a cached statement when possible."""
        return await self.statement_cache.prepare_typed(self._txn, query, types)

    async def commit(self) -> None:
        """Commit the transaction."""
        await self._txn.commit()

    async def rollback(self) -> None:
        """Roll the transaction back."""
        await self._txn.rollback()

    async def transaction(self) -> "Transaction":
        """Open a nested transaction sharing this statement cache."""
        return Transaction(await self._txn.transaction(), self.statement_cache)

    async def savepoint(self, name: str) -> "Transaction":
        """Open a named savepoint sharing this statement cache."""
        return Transaction(await self._txn.savepoint(name), self.statement_cache)


class ClientWrapper:
    """Client together with its own :class:`StatementCache`."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self.statement_cache = StatementCache()

    def __repr__(self) -> str:
        return f"ClientWrapper(client={self._client!r}, statement_cache={self.statement_cache!r})"

    def __getattr__(self, name: str) -> Any:
        return getattr(self._client, name)

    @property
    def client(self) -> Any:
        """The wrapped client."""
        return self._client

    async def prepare_cached(self, query: str) -> Any:
        """Prepare ``query``, reusing a cached statement when possible."""
        return await self.statement_cache.prepare(self._client, query)

    async def prepare_typed_cached(self, query: str, types: Sequence[Hashable]) -> Any:
        """Prepare ``query`` with explicit types, reusing a cached statement when possible."""
        return await self.statement_cache.prepare_typed(self._client, query, types)

    async def transaction(self) -> Transaction:
        """Begin a transaction sharing this client's statement cache."""
        return Transaction(await self._client.transaction(), self.statement_cache)

    def build_transaction(self) -> TransactionBuilder:
        """Return a builder for a transaction sharing this client's statement cache."""
        return TransactionBuilder(self._client.build_transaction(), self.statement_cache)


class Manager:
    """Creates and recycles PostgreSQL clients.

    ``connect`` is a coroutine function returning a new client.
    ``recycle_query`` is run on a client before it is reused; ``None`` only
    checks that the client is still open.
    """

    def __init__(self, connect: Connector, recycle_query: Optional[str] = None) -> None:
        self._connect = connect
        self.recycle_query = recycle_query
        self.statement_caches = StatementCaches()

    def __repr__(self) -> str:
        return (
            f"Manager(recycle_query={self.recycle_query!r}, "
            f"statement_caches={self.statement_caches!r})"
        )

    async def create(self) -> ClientWrapper:
        try:
            client = await self._connect()
        except BackendError:
            raise
        except Exception as exc:
            raise ConnectionFailedError(exc) from exc
        wrapper = ClientWrapper(client)
        self.statement_caches.attach(wrapper.statement_cache)
        return wrapper

    async def recycle(self, client: ClientWrapper) -> None:
        if client.is_closed():
            logger.info("Connection could not be recycled: Connection closed")
            raise RecycleError("Connection closed")
        if self.recycle_query is None:
            return
        try:
            await client.simple_query(self.recycle_query)
        except Exception as exc:
            logger.info("Connection could not be recycled: %s", exc)
            raise RecycleError(str(exc), cause=exc) from exc

    def detach(self, client: ClientWrapper) -> None:
        self.statement_caches.detach(client.statement_cache)