"""
Parallel statement execution over a set of searchd connections.

Statements that searchd cannot batch into one multi-query can still run in
parallel: each one gets its own worker (a ``QueryBatch`` with its own
connection), all requests are sent before any answer is awaited, and the
results are gathered back in submission order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque

from .config import Address, ConnectionConfig, parse_url
from .query import QueryBatch
from .response import Response
from .transport import Connector

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Workers connected to one search daemon, reused between launches.

    Beware of adding ``QueryBatch`` objects connected to a different daemon:
    they would be recycled as workers for this pool's endpoint.
    """

    def __init__(
        self,
        host: str,
        port: int = 0,
        config: ConnectionConfig | None = None,
        *,
        connector: Connector | None = None,
    ) -> None:
        self._address = Address(host, port)
        self._config = config or ConnectionConfig()
        self._connector = connector
        self._idle: deque[QueryBatch] = deque()
        self._active: list[QueryBatch] = []

    @classmethod
    def from_url(
        cls,
        dsn: str,
        config: ConnectionConfig | None = None,
        *,
        connector: Connector | None = None,
    ) -> "ConnectionPool":
        address, config = parse_url(dsn, config)
        return cls(address.host, address.port, config, connector=connector)

    def __repr__(self) -> str:
        return f"<ConnectionPool {self._address} idle={len(self._idle)} active={len(self._active)}>"

    @property
    def address(self) -> Address:
        return self._address

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def _new_worker(self) -> QueryBatch:
        worker = QueryBatch(self._config, connector=self._connector)
        await worker.connect(self._address.host, self._address.port)
        return worker

    async def add(self, query: str | QueryBatch, meta: bool = True) -> None:
        """Schedule a statement, or adopt a ``QueryBatch``, for the next launch.

        A statement runs on an idle worker when one is available, otherwise on
        a newly connected one. An adopted batch is connected first if needed;
        if it has no statements it only becomes an idle worker.

        Raises:
            SphinxConnectionError: If a new worker cannot connect.
        """
        if isinstance(query, QueryBatch):
            await self._add_batch(query)
            return

        worker = self._idle.popleft() if self._idle else await self._new_worker()
        try:
            worker.add_query(query, meta)
        except Exception:
            self._idle.appendleft(worker)
            raise
        self._active.append(worker)

    async def _add_batch(self, batch: QueryBatch) -> None:
        if not batch.is_connected:
            await batch.connect(self._address.host, self._address.port)
        if batch.empty():
            self._idle.append(batch)
        else:
            self._active.append(batch)

    async def _drop(self, workers: list[QueryBatch]) -> None:
        results = await asyncio.gather(
            *(worker.close() for worker in workers), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Error closing pooled connection: %s", result)

    async def launch(self) -> Response:
        """Run all scheduled statements in parallel and collect the results.

        Requests are sent to every worker first, then answers are awaited in
        registration order. Results keep the order statements were added.

        On any failure every worker of this launch is closed and discarded,
        none is reused, and the exception propagates.
        """
        idle = list(self._idle)
        self._idle.clear()
        if idle:
            await self._drop(idle)

        workers, self._active = self._active, []
        response = Response()
        if not workers:
            return response

        logger.debug("Launching %d worker(s) on %s", len(workers), self._address)
        try:
            for worker in workers:
                worker.send_request()
            for worker in workers:
                await worker.await_response()
            for worker in workers:
                await response.fill(worker)
        except BaseException as e:
            logger.warning("Launch on %s failed, discarding %d worker(s): %s", self._address, len(workers), e)
            for worker in workers:
                worker.abort()
            raise

        for worker in workers:
            worker.clear()
            self._idle.append(worker)
        return response

    async def close(self) -> None:
        """Close every idle and scheduled worker."""
        workers = list(self._idle) + self._active
        self._idle.clear()
        self._active = []
        await self._drop(workers)

    async def __aenter__(self) -> "ConnectionPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


AsyncQuery = ConnectionPool
