"""Manager for asynchronous redis connections."""

from __future__ import annotations

import itertools
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.connection import parse_url
from redis.exceptions import RedisError

from .errors import ConnectionFailedError, RecycleError


def _as_url(params: Any) -> str:
    if isinstance(params, str):
        return params
    to_url = getattr(params, "to_url", None)
    if to_url is None:
        raise TypeError(f"cannot build a redis URL from {params!r}")
    return to_url()


class Manager:
    """Creates and recycles redis connections.

    ``params`` is a redis URL or an object with a ``to_url()`` method.
    Raises :class:`ValueError` if the URL is not a valid redis URL.
    """

    def __init__(self, params: Any) -> None:
        self.url = _as_url(params)
        self.connection_kwargs = parse_url(self.url)
        self._ping_numbers = itertools.count()

    def __repr__(self) -> str:
        return f"Manager(url={self.url!r})"

    async def create(self) -> Redis:
        client = Redis.from_url(self.url, single_connection_client=True)
        try:
            await client.initialize()
        except (RedisError, OSError) as exc:
            await client.connection_pool.disconnect()
            raise ConnectionFailedError(exc) from exc
        return client

    async def recycle(self, conn: Redis) -> None:
        connection = conn.connection
        if connection is None:
            raise RecycleError("Connection closed")
        ping_number = str(next(self._ping_numbers))
        try:
            await connection.send_command("PING", ping_number)
            response = await connection.read_response()
        except (RedisError, OSError) as exc:
            raise RecycleError(str(exc), cause=exc) from exc
        if isinstance(response, bytes):
            response = response.decode(errors="replace")
        if response != ping_number:
            raise RecycleError("Invalid PING response")