# poolbackends

Connection managers for asynchronous object pools. Each manager knows two
things about one kind of connection: how to **create** a new one
(`await manager.create()`) and how to **recycle** one that comes back to the
pool (`await manager.recycle(conn)`), deciding whether it may be handed out
again. A manager that cannot recycle a connection raises
`poolbackends.errors.RecycleError`; the pool should then discard that
connection. A connection that cannot be opened raises
`poolbackends.errors.ConnectionFailedError`.

The package needs Python 3.10 or later and depends on `redis`.

## What is included

| Module | Purpose |
| --- | --- |
| `poolbackends.runtime` | `Runtime` (one member, `Runtime.ASYNCIO`): timeouts and running blocking callables off the event loop; `SpawnBlockingError` when such a callable raises. |
| `poolbackends.errors` | `BackendError` and its subclasses `ConnectionFailedError`, `PingError` and `RecycleError`. |
| `poolbackends.redis_config` | `Config`, `ConnectionInfo`, `RedisConnectionInfo`, the address types `TcpAddr`, `TcpTlsAddr`, `UnixAddr`, and `ConfigError` / `UrlAndConnectionSpecifiedError`. |
| `poolbackends.redis_manager` | `Manager` for Redis connections; recycling sends a numbered `PING` and checks the echo. |
| `poolbackends.postgres` | `Manager` for PostgreSQL clients, with a per-client `StatementCache` tracked by `StatementCaches`. |
| `poolbackends.amqp` | `Config`, `ConnectionProperties`, `ConnectionState` and a `Manager` for AMQP connections. |
| `poolbackends.memcached` | `Manager` for Memcached connections over TCP; recycling asks the server for its version. |
| `poolbackends.sync_manager` | `Manager` that adapts a blocking `SyncConnectionManager` to the async interface. |

## Runtime

`Runtime.ASYNCIO.timeout(duration, awaitable)` awaits `awaitable` for at most
`duration` (seconds or a `timedelta`) and returns its result, or `None` if the
time ran out, cancelling the awaitable. `spawn_blocking(func)` runs `func` in
the event loop's default executor and returns its result; if `func` raises,
`SpawnBlockingError` is raised with the original exception in `payload`.
`spawn_blocking_background(func)` starts `func` on a daemon thread and does not
wait for it.

## Redis

A `Config` holds either a URL or a `ConnectionInfo`. `Config()` uses a default
`ConnectionInfo` (`127.0.0.1:6379`, database 0); `Config.from_url(url)` uses
only the URL. `Config.manager()` raises `UrlAndConnectionSpecifiedError` when
both are set, and `ConfigError` when the URL is not a valid Redis URL.

```python
from poolbackends.redis_config import Config

manager = Config.from_url("redis://127.0.0.1:6379").manager()

conn = await manager.create()   # a redis.asyncio.Redis with a single connection
await manager.recycle(conn)     # raises RecycleError if the PING reply is wrong
```

`ConnectionInfo.to_url()` turns a structured description back into a URL:
`redis://` for `TcpAddr`, `rediss://` for `TcpTlsAddr` (with certificate
checks switched off when `insecure=True`), and `unix://` for `UnixAddr`.
`redis_manager.Manager` accepts either a URL string or any object with a
`to_url()` method.

## PostgreSQL

`poolbackends.postgres` works with any client object; it brings no driver of
its own. A client must offer the coroutines `prepare_typed(query, types)`,
`simple_query(sql)` and `transaction()`, the method `build_transaction()` and
the predicate `is_closed()`.

```python
from poolbackends.postgres import Manager

manager = Manager(connect=open_client, recycle_query="SELECT 1")
client = await manager.create()          # a ClientWrapper
stmt = await client.prepare_cached("SELECT 1 + 2")
```

`connect` is a coroutine function returning a new client. On recycle the
manager rejects a closed client and, if `recycle_query` is set, runs it with
`simple_query`; any failure becomes a `RecycleError`.

Every `ClientWrapper` has its own `StatementCache` (`size`, `get`, `insert`,
`remove`, `clear`). `prepare_cached()` and `prepare_typed_cached()` reuse a
statement prepared earlier for the same query and parameter types. Other
attributes are passed through to the wrapped client, which is also available
as `client.client`. Transactions from `transaction()` or from
`build_transaction()` (`isolation_level()`, `read_only()`, `deferrable()`,
`start()`) share the cache of the client they came from, as do nested
transactions and savepoints.

The manager's `statement_caches` holds weak references to the caches of all
clients it created, so one call to `clear()` or `remove(query, types)` reaches
every live client. `Manager.detach(client)` stops tracking a client.

## AMQP

`Config.get_url()` returns the configured URL, or `amqp://127.0.0.1:5672/%2f`
when none is set, and `Config.manager()` builds a `Manager` from it. The
connection itself is opened by `ConnectionProperties.connector`, a coroutine
function called with the address and the properties; without one,
`create()` raises `ConnectionFailedError`. A connection is recycled only while
its `state` is `ConnectionState.CONNECTED`; otherwise recycling raises
`RecycleError` naming the state.

## Memcached

`memcached.Manager("127.0.0.1:11211")` opens a TCP connection speaking the
memcached text protocol. The returned client offers the coroutines
`version()`, `get(key)`, `set(key, value, ttl=0, flags=0)`, `delete(key)` and
`close()`.

## Blocking drivers

Implement `SyncConnectionManager` with `connect()`, `is_valid(conn)` (raise if
unusable) and `has_broken(conn)`, and wrap it in
`poolbackends.sync_manager.Manager(sync_manager, runtime=Runtime.ASYNCIO)`.
The blocking calls run through the runtime, off the event loop. A connection
that reports itself broken, or that fails `is_valid`, is not recycled.

## What this package does not do

It provides managers only, not the pool that holds connections, limits their
number and hands them out; a pool calls `create()` and `recycle()` itself.
Apart from Redis and Memcached it opens no connections on its own: the
PostgreSQL and AMQP managers rely on a connector function that you supply.