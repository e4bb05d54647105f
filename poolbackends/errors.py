"""Errors raised by the connection managers."""

from __future__ import annotations

from typing import Any


class BackendError(Exception):
    """Base class of all errors raised by the managers."""


class ConnectionFailedError(BackendError):
    """A new connection could not be established."""

    def __init__(self, cause: Any) -> None:
        self.cause = cause
        super().__init__(f"Failed to establish connection: {cause}")


class PingError(BackendError):
    """The database did not answer a ping."""

    def __init__(self, cause: Any) -> None:
        self.cause = cause
        super().__init__(f"Failed to ping database: {cause}")


class RecycleError(BackendError):
    """A pooled connection could not be recycled and must be discarded."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)