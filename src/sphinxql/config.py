"""
Connection configuration for sphinxql.

Addresses and socket timeouts can be given explicitly or parsed from a
``sphinxql://`` URL:

    sphinxql://127.0.0.1:9306?read_timeout=5
    sphinxql:///?unix_socket=/var/run/sphinx.s&protocol=socket
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigurationError


DEFAULT_PORT = 9306
URL_SCHEMES = ("sphinxql", "sphinx", "manticore")


class TransportProtocol(Enum):
    """Low-level transport hint, mirrors MySQL's ``MYSQL_OPT_PROTOCOL``."""

    DEFAULT = "default"
    TCP = "tcp"
    SOCKET = "socket"


@dataclass(frozen=True)
class Address:
    """Endpoint of a search daemon.

    A ``port`` of zero selects local socket mode, ``host`` is then the
    socket path.
    """

    host: str
    port: int = 0

    @property
    def is_socket(self) -> bool:
        return self.port == 0

    def __str__(self) -> str:
        if self.is_socket:
            return self.host
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ConnectionConfig:
    """Options applied to every connection (timeouts in seconds)."""

    connect_timeout: float = 1
    write_timeout: float = 3
    read_timeout: float = 3
    protocol: TransportProtocol = TransportProtocol.DEFAULT
    charset: str = "utf8"

    def __post_init__(self) -> None:
        for name in ("connect_timeout", "write_timeout", "read_timeout"):
            value = getattr(self, name)
            if value is None or value <= 0:
                raise ConfigurationError(f"{name} must be a positive number of seconds")
        if not isinstance(self.protocol, TransportProtocol):
            raise ConfigurationError(f"Unknown transport protocol: {self.protocol!r}")

    @property
    def request_timeout(self) -> float:
        """Budget for sending a batch and reading its first result."""
        return self.write_timeout + self.read_timeout

    def check_address(self, address: Address) -> None:
        """Raise if the protocol hint contradicts the address form."""
        if self.protocol is TransportProtocol.TCP and address.is_socket:
            raise ConfigurationError(
                f"TCP protocol requested but {address} is a socket path"
            )
        if self.protocol is TransportProtocol.SOCKET and not address.is_socket:
            raise ConfigurationError(
                f"Socket protocol requested but {address} is a TCP endpoint"
            )


def _parse_timeout(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {name}: {value!r}") from e


def parse_url(
    dsn: str, config: ConnectionConfig | None = None
) -> tuple[Address, ConnectionConfig]:
    """Parse a ``sphinxql://`` URL into an address and a configuration.

    Args:
        dsn: Connection URL. ``unix_socket`` in the query selects socket mode.
        config: Base configuration, overridden by options found in the URL.

    Returns:
        Tuple of (address, config).

    Raises:
        ConfigurationError: If the URL is malformed or has unknown options.
    """
    try:
        url = make_url(dsn)
    except (ArgumentError, ValueError) as e:
        raise ConfigurationError(f"Invalid connection URL: {dsn!r}") from e

    if url.get_backend_name() not in URL_SCHEMES:
        raise ConfigurationError(
            f"Invalid scheme '{url.drivername}'. Expected one of {', '.join(URL_SCHEMES)}."
        )

    query = dict(url.query)
    options: dict[str, object] = {}
    for name in ("connect_timeout", "write_timeout", "read_timeout"):
        if name in query:
            options[name] = _parse_timeout(name, query.pop(name))
    if "protocol" in query:
        raw = query.pop("protocol")
        try:
            options["protocol"] = TransportProtocol(raw.lower())
        except ValueError as e:
            raise ConfigurationError(f"Unknown transport protocol: {raw!r}") from e
    if "charset" in query:
        options["charset"] = query.pop("charset")

    unix_socket = query.pop("unix_socket", None)
    if query:
        raise ConfigurationError(f"Unknown URL options: {', '.join(sorted(query))}")

    if unix_socket:
        address = Address(unix_socket)
    else:
        if not url.host:
            raise ConfigurationError("Connection URL must include a host or unix_socket.")
        address = Address(url.host, url.port or DEFAULT_PORT)

    config = replace(config or ConnectionConfig(), **options)
    return address, config
