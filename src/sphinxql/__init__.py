"""
Async SphinxQL client for Sphinx / Manticore search daemons.

This package sends SphinxQL statements to searchd over the MySQL protocol,
batching several statements into one round trip or running them in parallel
over a pool of connections, and decodes the typed results together with
their optional ``SHOW META`` statistics.

Usage:
    import sphinxql

    # One connection, statements batched into a single request
    async with sphinxql.QueryBatch() as batch:
        await batch.connect("127.0.0.1", 9306)
        batch.add_query("SELECT id, price FROM products WHERE MATCH('phone');")
        batch.add_query("SELECT id FROM shops WHERE MATCH('phone');", meta=False)
        response = await batch.execute()

        products = response.next()
        print(products.get_meta("total_found"))
        row = sphinxql.Row()
        while products.next_row(row):
            print(row.get("id", int), row.get("price", float))

    # Several connections, statements run in parallel
    async with sphinxql.ConnectionPool("/var/run/sphinx.s") as pool:
        await pool.add("SELECT * FROM idx_a WHERE MATCH('x');")
        await pool.add("SELECT * FROM idx_b WHERE MATCH('x');", meta=False)
        response = await pool.launch()

Features:
    - Multi-statement batches with SHOW META merged into each result
    - Parallel fan-out over reusable connections with all-or-nothing failure
    - Permissive typed decoding (NULL and malformed numbers give defaults)
    - Name-based, positional and streaming row access

Limitations:
    - No statement building or validation; statements are opaque text
    - No automatic retries
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Address, ConnectionConfig, TransportProtocol, parse_url
from .errors import (
    ConfigurationError,
    DatabaseError,
    Error,
    ErrorKind,
    FieldNotFoundError,
    IndexOutOfRangeError,
    InterfaceError,
    InternalError,
    MetaNotAttachedError,
    OperationalError,
    ProgrammingError,
    ProtocolStateError,
    ResultError,
    SphinxConnectionError,
    SphinxQLError,
    SphinxQueryError,
    SphinxTimeoutError,
    StatementError,
)
from .pool import AsyncQuery, ConnectionPool
from .query import BatchState, Query, QueryBatch, Statement
from .response import Response
from .result import ColumnIndex, MetaMap, Result, Row
from .transport import (
    Connector,
    FieldDescription,
    MySQLConnection,
    RawResultSet,
    init,
    is_initialized,
    unload,
)
from .types import decode, register_decoder

__all__ = [
    # Version
    "__version__",
    # Process-wide transport state
    "init",
    "unload",
    "is_initialized",
    # Configuration
    "Address",
    "ConnectionConfig",
    "TransportProtocol",
    "parse_url",
    # Batching and pooling
    "QueryBatch",
    "Query",
    "BatchState",
    "Statement",
    "ConnectionPool",
    "AsyncQuery",
    "Response",
    # Results
    "Result",
    "Row",
    "ColumnIndex",
    "MetaMap",
    "decode",
    "register_decoder",
    # Transport
    "Connector",
    "MySQLConnection",
    "FieldDescription",
    "RawResultSet",
    # PEP 249 exceptions
    "Error",
    "InterfaceError",
    "DatabaseError",
    "OperationalError",
    "InternalError",
    "ProgrammingError",
    # sphinxql exceptions
    "ErrorKind",
    "SphinxQLError",
    "SphinxConnectionError",
    "SphinxTimeoutError",
    "SphinxQueryError",
    "FieldNotFoundError",
    "IndexOutOfRangeError",
    "ProtocolStateError",
    "MetaNotAttachedError",
    "ResultError",
    "ConfigurationError",
    "StatementError",
]
