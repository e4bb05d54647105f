"""Connection managers for asynchronous object pools: Redis, PostgreSQL, AMQP, Memcached and blocking drivers."""

__version__ = "0.1.0"