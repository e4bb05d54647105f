"""Configuration of redis connections and pools."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Optional, Union
from urllib.parse import quote, urlencode

from .errors import BackendError
from .redis_manager import Manager

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6379


@dataclass(frozen=True)
class TcpAddr:
    """Plain TCP address."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass(frozen=True)
class TcpTlsAddr:
    """TCP address secured with TLS.

    ``insecure`` disables certificate and hostname verification, which
    exposes the connection to man-in-the-middle attacks.
    """

    host: str
    port: int
    insecure: bool = False


@dataclass(frozen=True)
class UnixAddr:
    """Path of a unix socket."""

    path: Union[str, PurePath]


ConnectionAddr = Union[TcpAddr, TcpTlsAddr, UnixAddr]


@dataclass
class RedisConnectionInfo:
    """Database selection and credentials."""

    db: int = 0
    username: Optional[str] = None
    password: Optional[str] = None


def _host_part(host: str) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


@dataclass
class ConnectionInfo:
    """Where and how to connect to a redis server."""

    addr: ConnectionAddr = field(default_factory=TcpAddr)
    redis: RedisConnectionInfo = field(default_factory=RedisConnectionInfo)

    def to_url(self) -> str:
        """Return the connection URL describing this information."""
        info = self.redis
        addr = self.addr
        if isinstance(addr, UnixAddr):
            query = {"db": str(info.db)}
            if info.username is not None:
                query["username"] = info.username
            if info.password is not None:
                query["password"] = info.password
            return f"unix://{quote(str(addr.path), safe='/')}?{urlencode(query)}"

        userinfo = ""
        if info.password is not None:
            userinfo = f"{quote(info.username or '', safe='')}:{quote(info.password, safe='')}@"
        elif info.username is not None:
            userinfo = f"{quote(info.username, safe='')}@"

        scheme = "rediss" if isinstance(addr, TcpTlsAddr) else "redis"
        url = f"{scheme}://{userinfo}{_host_part(addr.host)}:{addr.port}/{info.db}"
        if isinstance(addr, TcpTlsAddr) and addr.insecure:
            url += "?" + urlencode({"ssl_cert_reqs": "none", "ssl_check_hostname": "false"})
        return url


class ConfigError(BackendError):
    """The configuration cannot be turned into a manager."""


class UrlAndConnectionSpecifiedError(ConfigError):
    """Both ``url`` and ``connection`` were given."""

    def __init__(self) -> None:
        super().__init__("url and connection must not be specified at the same time.")


@dataclass
class Config:
    """Redis configuration: either a URL or a :class:`ConnectionInfo`."""

    url: Optional[str] = None
    connection: Optional[ConnectionInfo] = field(default_factory=ConnectionInfo)

    @classmethod
    def from_url(cls, url: str) -> "Config":
        """Create a configuration from a redis URL such as ``redis://127.0.0.1``."""
        return cls(url=url, connection=None)

    def manager(self) -> Manager:
        """Return a manager built from this configuration."""
        if self.url is not None and self.connection is not None:
            raise UrlAndConnectionSpecifiedError()
        if self.url is not None:
            params: Union[str, ConnectionInfo] = self.url
        elif self.connection is not None:
            params = self.connection
        else:
            params = ConnectionInfo()
        try:
            return Manager(params)
        except ValueError as exc:
            raise ConfigError(f"Redis: {exc}") from exc