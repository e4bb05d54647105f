"""Configuration and manager for AMQP connections."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from .errors import BackendError, ConnectionFailedError, RecycleError

DEFAULT_URL = "amqp://127.0.0.1:5672/%2f"

Connector = Callable[[str, "ConnectionProperties"], Awaitable[Any]]


class ConnectionState(enum.Enum):
    """State of an AMQP connection."""

    INITIAL = "Initial"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    CLOSING = "Closing"
    CLOSED = "Closed"
    ERROR = "Error"


@dataclass
class ConnectionProperties:
    """Properties used when opening a connection.

    ``connector`` is the coroutine function that opens the connection; it is
    called with the address and these properties.
    """

    locale: str = "en_US"
    client_properties: dict = field(default_factory=dict)
    connector: Optional[Connector] = field(default=None, repr=False, compare=False)


@dataclass
class Config:
    """AMQP connection configuration."""

    url: Optional[str] = None
    connection_properties: ConnectionProperties = field(default_factory=ConnectionProperties)

    def get_url(self) -> str:
        """Return the URL to connect to."""
        return self.url if self.url is not None else DEFAULT_URL

    def manager(self) -> "Manager":
        """Return a manager built from this configuration."""
        return Manager(self.get_url(), self.connection_properties)


@dataclass
class Manager:
    """Creates and recycles AMQP connections."""

    addr: str
    connection_properties: ConnectionProperties = field(default_factory=ConnectionProperties)

    async def create(self) -> Any:
        connector = self.connection_properties.connector
        if connector is None:
            raise ConnectionFailedError("no connector configured")
        try:
            return await connector(self.addr, self.connection_properties)
        except BackendError:
            raise
        except Exception as exc:
            raise ConnectionFailedError(exc) from exc

    async def recycle(self, conn: Any) -> None:
        state = conn.state
        if state is ConnectionState.CONNECTED:
            return
        name = state.value if isinstance(state, ConnectionState) else state
        raise RecycleError(f"AMQP connection is in state: {name}")