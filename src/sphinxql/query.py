"""
Statement batching over one searchd connection.

Statements queued on a ``QueryBatch`` are concatenated and sent as a single
multi-statement request; searchd may optimize them into one multi-query.
Statements asking for metadata are followed by ``SHOW META`` and the two
results are folded together when the Response is filled.

Usage:
    async with QueryBatch() as batch:
        await batch.connect("127.0.0.1", 9306)
        batch.add_query("SELECT id FROM idx WHERE MATCH('hello');")
        batch.add_query("SELECT COUNT(*) FROM idx;", meta=False)
        response = await batch.execute()
        first = response.next()
        print(first.get_meta("total_found"))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from .config import Address, ConnectionConfig, parse_url
from .errors import ProtocolStateError, SphinxTimeoutError, StatementError
from .response import Response
from .result import Result
from .transport import Connector, TransportConnection, connect_mysql

logger = logging.getLogger(__name__)

META_STATEMENT = "SHOW META; "


@dataclass(frozen=True)
class Statement:
    """One semicolon-terminated statement and whether it wants SHOW META."""

    text: str
    wants_meta: bool = True

    def __post_init__(self) -> None:
        if not self.text.rstrip().endswith(";"):
            raise StatementError(f"Statement must be terminated by a semicolon: {self.text!r}")

    def render(self) -> str:
        if self.wants_meta:
            return self.text + META_STATEMENT
        return self.text


class BatchState(Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    EXECUTED = "executed"


class QueryBatch:
    """Statements sent together over one owned connection.

    The connection is kept across ``clear()``/``add_query()`` cycles, so one
    instance can execute many batches without reconnecting.
    """

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        *,
        connector: Connector | None = None,
    ) -> None:
        self._config = config or ConnectionConfig()
        self._connector = connector or connect_mysql
        self._connection: TransportConnection | None = None
        self._address: Address | None = None
        self._statements: list[Statement] = []
        self._pending: asyncio.Task[None] | None = None
        self._executed = False
        self._first_to_retrieve = True

    def __repr__(self) -> str:
        return f"<QueryBatch {self._address or '-'} state={self.state.value} statements={len(self._statements)}>"

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def address(self) -> Address | None:
        return self._address

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.closed

    @property
    def state(self) -> BatchState:
        if not self.is_connected:
            return BatchState.UNCONNECTED
        if self._executed:
            return BatchState.EXECUTED
        return BatchState.CONNECTED

    @property
    def statements(self) -> tuple[Statement, ...]:
        return tuple(self._statements)

    def empty(self) -> bool:
        return not self._statements

    def __len__(self) -> int:
        return len(self._statements)

    async def connect(self, host: str, port: int = 0) -> None:
        """Connect to searchd at ``host:port``.

        With ``port == 0`` ``host`` is the path of a local socket.

        Raises:
            ProtocolStateError: If the batch is already connected.
            SphinxConnectionError: If the daemon cannot be reached.
        """
        await self._connect(Address(host, port))

    async def connect_url(self, dsn: str) -> None:
        """Connect using a ``sphinxql://`` URL; URL options override the config."""
        address, self._config = parse_url(dsn, self._config)
        await self._connect(address)

    async def _connect(self, address: Address) -> None:
        if self.is_connected:
            raise ProtocolStateError(f"Already connected to {self._address}")
        self._connection = await self._connector(address, self._config)
        self._address = address

    def add_query(self, statement: str, meta: bool = True) -> None:
        """Queue ``statement``; ``meta`` requests its SHOW META variables.

        Raises:
            StatementError: If the statement is not semicolon terminated.
        """
        self._statements.append(Statement(statement, meta))

    def clear(self) -> None:
        """Drop queued statements, keeping the connection for reuse.

        A request still in flight leaves the stream mid-response, so the
        connection is aborted instead and the batch becomes unconnected.
        """
        self._statements.clear()
        if self._pending is not None and not self._pending.done():
            self.abort()
            return
        self._executed = False
        self._first_to_retrieve = True
        self._discard_pending()

    def _query_string(self) -> str:
        return "".join(statement.render() for statement in self._statements)

    def _require_connection(self) -> TransportConnection:
        if self._connection is None or self._connection.closed:
            raise ProtocolStateError("No connection established!")
        return self._connection

    async def execute(self) -> Response:
        """Send the queued statements and collect their results.

        The queue is cleared afterwards, even when reading fails.

        Raises:
            ProtocolStateError: If not connected or a request is in flight.
            SphinxTimeoutError: If the server went away; the connection is closed.
            SphinxQueryError: If searchd rejected a statement.
        """
        self._require_connection()
        if self._pending is not None:
            raise ProtocolStateError("A request is already in flight")
        if not self._statements:
            logger.debug("Nothing to execute on %s", self._address)
            return Response()
        try:
            self.send_request()
            await self.await_response()
            response = Response()
            await response.fill(self)
            return response
        except asyncio.CancelledError:
            self.abort()
            raise
        finally:
            self.clear()

    def send_request(self) -> None:
        """Start sending the batch without waiting for the answer.

        Must be called from a running event loop; ``await_response()``
        completes the cycle.
        """
        connection = self._require_connection()
        if self._pending is not None:
            raise ProtocolStateError("A request is already in flight")
        self._executed = False
        self._first_to_retrieve = True
        sql = self._query_string()
        logger.debug("Sending %d statement(s) to %s", len(self._statements), self._address)
        self._pending = asyncio.get_running_loop().create_task(connection.execute(sql))

    async def await_response(self) -> None:
        """Wait until the server answered the request sent by ``send_request()``."""
        pending, self._pending = self._pending, None
        if pending is None:
            raise ProtocolStateError("No request was sent")
        try:
            await pending
        except SphinxTimeoutError:
            self.abort()
            raise
        self._executed = True

    async def next_result(self) -> Result:
        """Materialize the next result of the executed batch.

        Raises:
            ProtocolStateError: If nothing was executed or no result is left.
        """
        if not self._executed:
            raise ProtocolStateError("No query executed")
        connection = self._require_connection()
        try:
            if self._first_to_retrieve:
                self._first_to_retrieve = False
                return Result(await connection.store_result())
            if await connection.next_result():
                return Result(await connection.store_result())
        except SphinxTimeoutError:
            self.abort()
            raise
        raise ProtocolStateError("No result returned")

    def _discard_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        if not pending.done():
            pending.cancel()
        elif not pending.cancelled():
            # mark the exception as retrieved
            pending.exception()

    def abort(self) -> None:
        """Drop the connection without a goodbye. The batch becomes unconnected."""
        in_flight = self._pending is not None
        self._discard_pending()
        connection, self._connection = self._connection, None
        self._executed = False
        self._first_to_retrieve = True
        if connection is not None:
            logger.debug(
                "Aborting connection to %s%s", self._address, " with request in flight" if in_flight else ""
            )
            connection.abort()

    async def close(self) -> None:
        """Close the connection. Queued statements are kept."""
        if self._pending is not None and not self._pending.done():
            self.abort()
            return
        self._discard_pending()
        connection, self._connection = self._connection, None
        self._executed = False
        if connection is not None:
            await connection.close()

    async def __aenter__(self) -> "QueryBatch":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


Query = QueryBatch
