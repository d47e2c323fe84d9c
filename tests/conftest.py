"""Pytest configuration and fixtures for sphinxql tests."""

from __future__ import annotations

import asyncio
import logging
import os

import logfire
import pytest

from sphinxql.config import Address, ConnectionConfig
from sphinxql.errors import SphinxConnectionError
from sphinxql.transport import FieldDescription, RawResultSet


logfire.configure(send_to_logfire="if-token-present", service_name="sphinxql", console=False)


def pytest_configure(config):
    logging.getLogger("sphinxql").setLevel(logging.DEBUG)


DEFAULT_META = [("total", "1"), ("total_found", "1"), ("time", "0.001")]


def result_set(columns: list[str], rows: list[tuple]) -> RawResultSet:
    return RawResultSet(
        fields=[FieldDescription(name=name) for name in columns],
        rows=[tuple(row) for row in rows],
    )


class FakeConnection:
    """In-memory stand-in for an aiomysql connection to searchd."""

    def __init__(self, server: "FakeServer", address: Address):
        self.server = server
        self.address = address
        self.closed = False
        self.aborted = False
        self.executions: list[str] = []
        self._results: list[RawResultSet] = []
        self._position = 0

    async def execute(self, sql: str) -> None:
        if self.closed:
            raise SphinxConnectionError("connection closed")
        self.executions.append(sql)
        self.server.sent.append(sql)
        statements = [part.strip() + ";" for part in sql.split(";") if part.strip()]

        delay = max((self.server.delays.get(s, 0.0) for s in statements), default=0.0)
        if delay:
            await asyncio.sleep(delay)
        for statement in statements:
            if statement in self.server.failures:
                raise self.server.failures[statement]

        results = []
        for statement in statements:
            if statement == "SHOW META;":
                results.append(result_set(["Variable_name", "Value"], self.server.meta))
            else:
                results.append(self.server.results.get(statement, result_set([], [])))
        self._results = results
        self._position = 0
        self.server.completed.append(statements[0] if statements else "")

    async def store_result(self) -> RawResultSet:
        return self._results[self._position]

    async def next_result(self) -> bool:
        if self._position + 1 < len(self._results):
            self._position += 1
            return True
        return False

    async def close(self) -> None:
        self.closed = True

    def abort(self) -> None:
        self.aborted = True
        self.closed = True


class FakeServer:
    """Scripted searchd answering statements with canned result sets."""

    def __init__(self):
        self.results: dict[str, RawResultSet] = {}
        self.failures: dict[str, BaseException] = {}
        self.delays: dict[str, float] = {}
        self.meta: list[tuple] = list(DEFAULT_META)
        self.connections: list[FakeConnection] = []
        self.sent: list[str] = []
        self.completed: list[str] = []
        self.refuse_connect = False

    def on(self, statement: str, columns: list[str], rows: list[tuple]) -> None:
        self.results[statement] = result_set(columns, rows)

    @property
    def connects(self) -> int:
        return len(self.connections)

    async def connector(self, address: Address, config: ConnectionConfig) -> FakeConnection:
        if self.refuse_connect:
            raise SphinxConnectionError(f"Cannot connect to {address}")
        connection = FakeConnection(self, address)
        self.connections.append(connection)
        return connection


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def config() -> ConnectionConfig:
    return ConnectionConfig(connect_timeout=1, write_timeout=1, read_timeout=1)


@pytest.fixture(scope="session")
def sphinxql_test_url() -> str | None:
    """Provide a live searchd URL from environment.

    Returns None if SPHINXQL_TEST_URL is not set.
    """
    return os.environ.get("SPHINXQL_TEST_URL")


@pytest.fixture(scope="session")
def require_searchd(sphinxql_test_url: str | None):
    """Skip test if a live searchd is not available."""
    if sphinxql_test_url is None:
        pytest.skip("SPHINXQL_TEST_URL environment variable not set")
    return sphinxql_test_url
