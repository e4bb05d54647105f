"""Manager for memcached connections over TCP."""

from __future__ import annotations

import asyncio

from .errors import BackendError, ConnectionFailedError, RecycleError

_CRLF = b"\r\n"


def _split_address(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"invalid memcached address: {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class _MemcachedClient:
    """Small client for the memcached text protocol."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._lock = asyncio.Lock()

    async def _read_line(self) -> bytes:
        line = await self._reader.readline()
        if not line.endswith(_CRLF):
            raise BackendError("connection closed by server")
        line = line[:-2]
        if line == b"ERROR" or line.startswith((b"CLIENT_ERROR", b"SERVER_ERROR")):
            raise BackendError(line.decode(errors="replace"))
        return line

    async def _send(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    async def version(self) -> str:
        async with self._lock:
            await self._send(b"version" + _CRLF)
            line = await self._read_line()
        if not line.startswith(b"VERSION "):
            raise BackendError(f"unexpected response: {line!r}")
        return line[len(b"VERSION "):].decode()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            await self._send(b"get " + key.encode() + _CRLF)
            line = await self._read_line()
            if line == b"END":
                return None
            parts = line.split()
            if len(parts) < 4 or parts[0] != b"VALUE":
                raise BackendError(f"unexpected response: {line!r}")
            size = int(parts[3])
            data = await self._reader.readexactly(size + 2)
            if await self._read_line() != b"END":
                raise BackendError("missing END marker")
        return data[:-2]

    async def set(self, key: str, value: bytes, ttl: int = 0, flags: int = 0) -> None:
        header = f"set {key} {flags} {ttl} {len(value)}".encode()
        async with self._lock:
            await self._send(header + _CRLF + value + _CRLF)
            line = await self._read_line()
        if line != b"STORED":
            raise BackendError(f"value not stored: {line.decode(errors='replace')}")

    async def delete(self, key: str) -> bool:
        async with self._lock:
            await self._send(b"delete " + key.encode() + _CRLF)
            line = await self._read_line()
        if line == b"DELETED":
            return True
        if line == b"NOT_FOUND":
            return False
        raise BackendError(f"unexpected response: {line!r}")

    async def close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            pass


class Manager:
    """Creates and recycles memcached connections to ``addr`` (``host:port``)."""

    def __init__(self, addr: str) -> None:
        self.addr = addr

    def __repr__(self) -> str:
        return f"Manager(addr={self.addr!r})"

    async def create(self) -> _MemcachedClient:
        host, port = _split_address(self.addr)
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as exc:
            raise ConnectionFailedError(exc) from exc
        return _MemcachedClient(reader, writer)

    async def recycle(self, conn: _MemcachedClient) -> None:
        try:
            await conn.version()
        except (BackendError, OSError, asyncio.IncompleteReadError) as exc:
            raise RecycleError(str(exc), cause=exc) from exc