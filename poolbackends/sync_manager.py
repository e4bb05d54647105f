"""Adapter that pools connections created by a blocking connection manager."""

from __future__ import annotations

import abc
from typing import Any

from .errors import ConnectionFailedError, RecycleError
from .runtime import Runtime, SpawnBlockingError


class SyncConnectionManager(abc.ABC):
    """Blocking connection manager whose connections are to be pooled."""

    @abc.abstractmethod
    def connect(self) -> Any:
        """Open and return a new connection."""

    @abc.abstractmethod
    def is_valid(self, conn: Any) -> None:
        """Check the connection; raise if it cannot be used."""

    @abc.abstractmethod
    def has_broken(self, conn: Any) -> bool:
        """Cheaply tell whether the connection is known to be broken."""


class Manager:
    """Creates and recycles connections of a :class:`SyncConnectionManager`.

    All blocking calls run on threads picked by the runtime.
    """

    def __init__(self, sync_manager: SyncConnectionManager, runtime: Runtime = Runtime.ASYNCIO) -> None:
        self.sync_manager = sync_manager
        self.runtime = runtime

    def __repr__(self) -> str:
        return f"Manager(sync_manager={self.sync_manager!r}, runtime={self.runtime!r})"

    async def create(self) -> Any:
        try:
            return await self.runtime.spawn_blocking(self.sync_manager.connect)
        except SpawnBlockingError as exc:
            raise ConnectionFailedError(exc.payload) from exc.payload

    async def recycle(self, conn: Any) -> None:
        sync_manager = self.sync_manager

        def check() -> None:
            if sync_manager.has_broken(conn):
                raise RecycleError("Connection is broken")
            try:
                sync_manager.is_valid(conn)
            except Exception as exc:
                raise RecycleError(str(exc), cause=exc) from exc

        try:
            await self.runtime.spawn_blocking(check)
        except SpawnBlockingError as exc:
            if isinstance(exc.payload, RecycleError):
                raise exc.payload from None
            raise RecycleError(f"Interaction failed: {exc}", cause=exc) from exc