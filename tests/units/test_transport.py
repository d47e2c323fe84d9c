"""Tests for the aiomysql transport adapter."""

from __future__ import annotations

import asyncio
import weakref

import aiomysql
import pymysql
import pytest
from pymysql.constants import CLIENT

from sphinxql import transport
from sphinxql.config import Address, ConnectionConfig, TransportProtocol
from sphinxql.errors import (
    ConfigurationError,
    ErrorKind,
    ProtocolStateError,
    SphinxConnectionError,
    SphinxQueryError,
    SphinxTimeoutError,
)
from sphinxql.transport import MySQLConnection, translate_error


class FakeCursor:
    """Cursor over a list of (description, rows) result sets."""

    def __init__(self, results, execute_delay=0.0, error=None):
        self._results = results
        self._position = 0
        self._execute_delay = execute_delay
        self._error = error
        self.executed: list[str] = []

    @property
    def description(self):
        return self._results[self._position][0]

    async def execute(self, sql):
        if self._execute_delay:
            await asyncio.sleep(self._execute_delay)
        if self._error is not None:
            raise self._error
        self.executed.append(sql)
        self._position = 0

    async def fetchall(self):
        return self._results[self._position][1]

    async def nextset(self):
        if self._position + 1 < len(self._results):
            self._position += 1
            return True
        return None


class FakeAiomysqlConnection:
    def __init__(self, cursor, close_error=None):
        self._cursor = cursor
        self._close_error = close_error
        self.closed = False
        self.graceful = False

    async def cursor(self):
        return self._cursor

    async def ensure_closed(self):
        if self._close_error is not None:
            raise self._close_error
        self.graceful = True
        self.closed = True

    def close(self):
        self.closed = True


RESULTS = [
    ((("id", 8), ("title", 253)), ((b"1", b"hello"), (b"2", None))),
    ((("Variable_name", 253), ("Value", 253)), (("total", "2"),)),
]


@pytest.fixture
def fake_connect(monkeypatch):
    calls = []
    state = {"connection": None, "error": None, "cursor": FakeCursor(RESULTS)}

    async def connect(**kwargs):
        calls.append(kwargs)
        if state["error"] is not None:
            raise state["error"]
        state["connection"] = FakeAiomysqlConnection(state["cursor"])
        return state["connection"]

    monkeypatch.setattr(aiomysql, "connect", connect)
    state["calls"] = calls
    return state


@pytest.fixture
def clean_state():
    yield
    transport._state.connections = weakref.WeakSet()
    transport.unload()


class TestTranslateError:
    def test_server_lost_is_timeout(self):
        error = translate_error(pymysql.err.OperationalError(2013, "Lost connection"), "Query failed")
        assert isinstance(error, SphinxTimeoutError)
        assert error.kind is ErrorKind.TIMEOUT
        assert error.code == 2013
        assert str(error) == "Query failed: Lost connection"

    def test_server_gone_is_timeout(self):
        error = translate_error(pymysql.err.OperationalError(2006, "MySQL server has gone away"), "x")
        assert isinstance(error, SphinxTimeoutError)

    def test_client_error_is_connection(self):
        error = translate_error(pymysql.err.OperationalError(2003, "Can't connect"), "x")
        assert type(error) is SphinxConnectionError
        assert error.kind is ErrorKind.CONNECTION

    def test_interface_error_is_connection(self):
        error = translate_error(pymysql.err.InterfaceError(0, ""), "x")
        assert type(error) is SphinxConnectionError

    def test_server_error_is_query(self):
        error = translate_error(pymysql.err.ProgrammingError(1064, "sphinxql: syntax error"), "x")
        assert isinstance(error, SphinxQueryError)
        assert error.kind is ErrorKind.QUERY
        assert error.code == 1064

    def test_asyncio_timeout(self):
        error = translate_error(asyncio.TimeoutError(), "Query to localhost:9306 failed")
        assert isinstance(error, SphinxTimeoutError)
        assert "timed out" in str(error)

    def test_socket_error(self):
        error = translate_error(ConnectionRefusedError(111, "Connection refused"), "x")
        assert type(error) is SphinxConnectionError

    def test_library_error_passes_through(self):
        original = SphinxQueryError("bad", code=1)
        assert translate_error(original, "x") is original


class TestProcessState:
    def test_init_and_unload(self, clean_state):
        transport.init()
        assert transport.is_initialized()
        transport.init()
        assert transport.is_initialized()
        transport.unload()
        assert not transport.is_initialized()

    def test_conversions_have_no_decoders(self, clean_state):
        transport.init()
        assert not any(isinstance(key, int) for key in transport._conversions())

    @pytest.mark.asyncio
    async def test_unload_refuses_open_connections(self, fake_connect, clean_state):
        transport.init()
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())

        with pytest.raises(ProtocolStateError, match="still open"):
            transport.unload()
        assert transport.is_initialized()

        await conn.close()
        transport.unload()
        assert not transport.is_initialized()


class TestMySQLConnection:
    @pytest.mark.asyncio
    async def test_open_socket(self, fake_connect, clean_state):
        conn = await MySQLConnection.open(Address("/tmp/test-sphinxql.s"), ConnectionConfig())
        kwargs = fake_connect["calls"][0]

        assert kwargs["unix_socket"] == "/tmp/test-sphinxql.s"
        assert "host" not in kwargs
        assert kwargs["client_flag"] & CLIENT.MULTI_STATEMENTS
        assert kwargs["client_flag"] & CLIENT.MULTI_RESULTS
        assert kwargs["connect_timeout"] == 1
        assert conn.address.is_socket
        assert not conn.closed

    @pytest.mark.asyncio
    async def test_open_tcp(self, fake_connect, clean_state):
        await MySQLConnection.open(Address("127.0.0.1", 9306), ConnectionConfig(charset="utf8mb4"))
        kwargs = fake_connect["calls"][0]

        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9306
        assert kwargs["charset"] == "utf8mb4"
        assert "unix_socket" not in kwargs

    @pytest.mark.asyncio
    async def test_open_checks_protocol_hint(self, fake_connect, clean_state):
        config = ConnectionConfig(protocol=TransportProtocol.SOCKET)
        with pytest.raises(ConfigurationError):
            await MySQLConnection.open(Address("127.0.0.1", 9306), config)
        assert fake_connect["calls"] == []

    @pytest.mark.asyncio
    async def test_open_failure(self, fake_connect, clean_state):
        fake_connect["error"] = pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        with pytest.raises(SphinxConnectionError, match="Cannot connect to 127.0.0.1:9306") as exc_info:
            await MySQLConnection.open(Address("127.0.0.1", 9306), ConnectionConfig())
        assert exc_info.value.kind is ErrorKind.CONNECTION
        assert isinstance(exc_info.value.__cause__, pymysql.err.OperationalError)

    @pytest.mark.asyncio
    async def test_execute_and_walk_results(self, fake_connect, clean_state):
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())
        await conn.execute("SELECT id, title FROM idx;SHOW META; ")

        first = await conn.store_result()
        assert [f.name for f in first.fields] == ["id", "title"]
        assert first.fields[0].type_code == 8
        assert first.rows == [("1", "hello"), ("2", None)]

        assert await conn.next_result()
        meta = await conn.store_result()
        assert meta.rows == [("total", "2")]

        assert not await conn.next_result()
        assert fake_connect["cursor"].executed == ["SELECT id, title FROM idx;SHOW META; "]

    @pytest.mark.asyncio
    async def test_result_without_fields(self, fake_connect, clean_state):
        fake_connect["cursor"] = FakeCursor([(None, ())])
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())
        await conn.execute("SET autocommit=1;")

        raw = await conn.store_result()
        assert raw.fields is None
        assert raw.rows == []

    @pytest.mark.asyncio
    async def test_store_result_before_execute(self, fake_connect, clean_state):
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())
        with pytest.raises(ProtocolStateError):
            await conn.store_result()
        assert not await conn.next_result()

    @pytest.mark.asyncio
    async def test_execute_timeout(self, fake_connect, clean_state):
        fake_connect["cursor"] = FakeCursor(RESULTS, execute_delay=1.0)
        config = ConnectionConfig(write_timeout=0.01, read_timeout=0.01)
        conn = await MySQLConnection.open(Address("/tmp/s"), config)

        with pytest.raises(SphinxTimeoutError):
            await conn.execute("SELECT 1;")

    @pytest.mark.asyncio
    async def test_execute_query_error(self, fake_connect, clean_state):
        fake_connect["cursor"] = FakeCursor(
            RESULTS, error=pymysql.err.ProgrammingError(1064, "unknown local index 'nope'")
        )
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())

        with pytest.raises(SphinxQueryError, match="unknown local index") as exc_info:
            await conn.execute("SELECT * FROM nope;")
        assert exc_info.value.code == 1064

    @pytest.mark.asyncio
    async def test_close_is_graceful(self, fake_connect, clean_state):
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())
        await conn.close()
        assert conn.closed
        assert fake_connect["connection"].graceful
        await conn.close()

    @pytest.mark.asyncio
    async def test_close_falls_back_to_abort(self, fake_connect, clean_state, caplog):
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())
        fake_connect["connection"]._close_error = ConnectionResetError("reset by peer")

        with caplog.at_level("WARNING", logger="sphinxql.transport"):
            await conn.close()

        assert conn.closed
        assert not fake_connect["connection"].graceful
        assert "Error closing connection to /tmp/s" in caplog.text

    @pytest.mark.asyncio
    async def test_abort(self, fake_connect, clean_state):
        conn = await MySQLConnection.open(Address("/tmp/s"), ConnectionConfig())
        conn.abort()
        assert conn.closed
        assert not fake_connect["connection"].graceful
