"""
MySQL protocol transport for SphinxQL, built on aiomysql.

searchd speaks the MySQL text protocol, so the wire work is delegated to
aiomysql/PyMySQL. This module adapts one aiomysql connection to the small
surface the batching layer needs (execute a multi-statement request, store
the current result, step to the next one) and translates driver exceptions
into sphinxql errors.

Process-wide state is explicit: call ``init()`` once before connections are
opened from concurrent tasks and ``unload()`` after every connection is
closed.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence

import aiomysql
import pymysql
from pymysql.constants import CLIENT, CR
from pymysql.converters import conversions as _default_conversions

from .config import Address, ConnectionConfig
from .errors import (
    ProtocolStateError,
    SphinxConnectionError,
    SphinxQLError,
    SphinxQueryError,
    SphinxTimeoutError,
)

logger = logging.getLogger(__name__)

# Client-side error codes meaning the daemon is gone for this connection.
_SERVER_GONE_CODES = frozenset({CR.CR_SERVER_GONE_ERROR, CR.CR_SERVER_LOST})
# Client-side errors are numbered 2000-2999, everything else came from searchd.
_CLIENT_ERROR_RANGE = range(2000, 3000)


@dataclass
class FieldDescription:
    """Metadata for a single column in a result set."""

    name: str
    type_code: int | None = None


@dataclass
class RawResultSet:
    """One materialized result set as delivered by the transport.

    ``fields`` is ``None`` when the server sent no field descriptors (for
    example the answer to a ``SET`` statement).
    """

    fields: list[FieldDescription] | None
    rows: list[tuple[str | None, ...]] = field(default_factory=list)


class TransportConnection(Protocol):
    """Surface of a transport connection used by ``QueryBatch``."""

    @property
    def closed(self) -> bool: ...

    async def execute(self, sql: str) -> None: ...

    async def store_result(self) -> RawResultSet: ...

    async def next_result(self) -> bool: ...

    async def close(self) -> None: ...

    def abort(self) -> None: ...


Connector = Callable[[Address, ConnectionConfig], Awaitable[TransportConnection]]


# ---------------------------------------------------------------------------
# Process-wide state
# ---------------------------------------------------------------------------


class _TransportState:
    def __init__(self) -> None:
        self.initialized = False
        self.conversions: dict[Any, Any] | None = None
        self.connections: weakref.WeakSet[MySQLConnection] = weakref.WeakSet()


_state = _TransportState()


def _build_conversions() -> dict[Any, Any]:
    # Keep the encoders, drop every decoder so cells arrive as raw text.
    return {k: v for k, v in _default_conversions.items() if not isinstance(k, int)}


def init() -> None:
    """Prepare process-wide transport state.

    Must be called before connections are opened from concurrent tasks and
    never concurrently with open connections.
    """
    if _state.initialized:
        logger.debug("Transport already initialized")
        return
    _state.conversions = _build_conversions()
    _state.initialized = True
    logger.debug("Transport initialized")


def unload() -> None:
    """Release process-wide transport state.

    Raises:
        ProtocolStateError: If connections are still open.
    """
    live = [conn for conn in _state.connections if not conn.closed]
    if live:
        raise ProtocolStateError(
            f"Cannot unload transport: {len(live)} connection(s) still open"
        )
    _state.connections = weakref.WeakSet()
    _state.conversions = None
    _state.initialized = False
    logger.debug("Transport unloaded")


def is_initialized() -> bool:
    return _state.initialized


def _conversions() -> dict[Any, Any]:
    if _state.conversions is not None:
        return _state.conversions
    return _build_conversions()


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def translate_error(exc: BaseException, context: str) -> SphinxQLError:
    """Map a driver or socket exception to a sphinxql exception."""
    if isinstance(exc, SphinxQLError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return SphinxTimeoutError(f"{context}: timed out")
    if isinstance(exc, pymysql.err.MySQLError):
        code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
        message = exc.args[1] if len(exc.args) > 1 else str(exc)
        if code in _SERVER_GONE_CODES:
            return SphinxTimeoutError(f"{context}: {message}", code=code)
        if isinstance(exc, pymysql.err.InterfaceError) or (
            code is not None and code in _CLIENT_ERROR_RANGE
        ):
            return SphinxConnectionError(f"{context}: {message}", code=code)
        return SphinxQueryError(f"{context}: {message}", code=code)
    if isinstance(exc, (OSError, EOFError)):
        return SphinxConnectionError(f"{context}: {exc}")
    return SphinxConnectionError(f"{context}: {exc!r}")


_TRANSPORT_ERRORS = (pymysql.err.MySQLError, OSError, EOFError, asyncio.TimeoutError)


def _text(cell: Any) -> str | None:
    if cell is None or isinstance(cell, str):
        return cell
    if isinstance(cell, (bytes, bytearray)):
        return bytes(cell).decode("utf-8", errors="replace")
    return str(cell)


# ---------------------------------------------------------------------------
# aiomysql adapter
# ---------------------------------------------------------------------------


class MySQLConnection:
    """One aiomysql connection to searchd with multi-statement support."""

    def __init__(self, connection: aiomysql.Connection, address: Address, config: ConnectionConfig) -> None:
        self._connection = connection
        self._address = address
        self._config = config
        self._cursor: aiomysql.Cursor | None = None

    @classmethod
    async def open(cls, address: Address, config: ConnectionConfig) -> "MySQLConnection":
        """Connect to searchd at ``address``.

        Raises:
            ConfigurationError: If the protocol hint contradicts the address.
            SphinxConnectionError: If the daemon cannot be reached.
        """
        config.check_address(address)
        kwargs: dict[str, Any] = {
            "connect_timeout": config.connect_timeout,
            "charset": config.charset,
            "conv": _conversions(),
            "client_flag": CLIENT.MULTI_STATEMENTS | CLIENT.MULTI_RESULTS,
            "autocommit": None,
        }
        if address.is_socket:
            kwargs["unix_socket"] = address.host
        else:
            kwargs["host"] = address.host
            kwargs["port"] = address.port

        try:
            connection = await aiomysql.connect(**kwargs)
        except _TRANSPORT_ERRORS as e:
            raise translate_error(e, f"Cannot connect to {address}") from e

        conn = cls(connection, address, config)
        _state.connections.add(conn)
        logger.debug("Connected to %s", address)
        return conn

    @property
    def address(self) -> Address:
        return self._address

    @property
    def closed(self) -> bool:
        return self._connection.closed

    async def execute(self, sql: str) -> None:
        """Send ``sql`` and read the first result of the batch."""
        try:
            if self._cursor is None:
                self._cursor = await self._connection.cursor()
            await asyncio.wait_for(
                self._cursor.execute(sql), timeout=self._config.request_timeout
            )
        except _TRANSPORT_ERRORS as e:
            raise translate_error(e, f"Query to {self._address} failed") from e

    async def store_result(self) -> RawResultSet:
        """Snapshot the current result set of the batch."""
        if self._cursor is None:
            raise ProtocolStateError("No query executed on this connection")
        description: Sequence[Sequence[Any]] | None = self._cursor.description
        rows = await self._cursor.fetchall()
        if description is None:
            return RawResultSet(fields=None, rows=[])
        fields = [FieldDescription(name=col[0], type_code=col[1]) for col in description]
        return RawResultSet(
            fields=fields,
            rows=[tuple(_text(cell) for cell in row) for row in rows],
        )

    async def next_result(self) -> bool:
        """Step to the next result of the batch, ``False`` if there is none."""
        if self._cursor is None:
            return False
        try:
            more = await asyncio.wait_for(
                self._cursor.nextset(), timeout=self._config.read_timeout
            )
        except _TRANSPORT_ERRORS as e:
            raise translate_error(e, f"Reading result from {self._address} failed") from e
        return bool(more)

    def abort(self) -> None:
        """Drop the socket without a goodbye, for poisoned connections."""
        self._cursor = None
        self._connection.close()

    async def close(self) -> None:
        if self._connection.closed:
            return
        self._cursor = None
        try:
            await asyncio.wait_for(
                self._connection.ensure_closed(), timeout=self._config.write_timeout
            )
        except _TRANSPORT_ERRORS as e:
            logger.warning("Error closing connection to %s: %s", self._address, e)
            self._connection.close()


async def connect_mysql(address: Address, config: ConnectionConfig) -> MySQLConnection:
    """Default ``Connector``: open an aiomysql connection."""
    return await MySQLConnection.open(address, config)
