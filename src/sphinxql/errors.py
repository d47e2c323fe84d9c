"""
Exception hierarchy for sphinxql.

Follows the PEP 249 Database API Specification v2.0 exception hierarchy.
Every library exception also carries an ``ErrorKind`` discriminant so callers
can branch on ``error.kind`` instead of on the class tree.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Discriminant carried by every sphinxql exception."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    QUERY = "query"
    FIELD_NOT_FOUND = "field_not_found"
    INDEX_OUT_OF_RANGE = "index_out_of_range"
    PROTOCOL_STATE = "protocol_state"
    META_NOT_ATTACHED = "meta_not_attached"
    INITIALIZATION = "initialization"
    CONFIGURATION = "configuration"
    STATEMENT = "statement"


class Error(Exception):
    """Root of every exception raised by sphinxql.

    Catch it to handle any failure coming out of a batch, a pool launch or
    result decoding in one place.
    """

    pass


class InterfaceError(Error):
    """Misuse of the client itself, detected before searchd is involved.

    Bad configuration and calls made in the wrong batch state land here.
    """

    pass


class DatabaseError(Error):
    """Exception raised for errors related to the search daemon."""

    pass


class OperationalError(DatabaseError):
    """searchd could not be reached or dropped the connection.

    The statement itself may be fine; retrying on a fresh connection can
    succeed.
    """

    pass


class InternalError(DatabaseError):
    """Exception raised when the client meets an inconsistent result state."""

    pass


class ProgrammingError(DatabaseError):
    """The caller asked a result for something it does not hold.

    An unknown column name, a column ordinal past the row width, SHOW META
    variables on a statement queued without meta, or a statement missing its
    terminating semicolon.
    """

    pass


# SphinxQL-specific exceptions


class SphinxQLError(Error):
    """Base exception for sphinxql errors."""

    kind: ErrorKind = ErrorKind.CONNECTION

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class SphinxConnectionError(SphinxQLError, OperationalError):
    """Exception raised when connecting or talking to searchd fails."""

    kind = ErrorKind.CONNECTION

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class SphinxTimeoutError(SphinxConnectionError):
    """Exception raised when the server went away or a socket timeout expired.

    The caller may retry on a fresh connection; the current one is closed.
    """

    kind = ErrorKind.TIMEOUT


class SphinxQueryError(SphinxQLError, DatabaseError):
    """Exception raised when searchd rejects a statement of the batch."""

    kind = ErrorKind.QUERY

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class FieldNotFoundError(SphinxQLError, ProgrammingError, KeyError):
    """Exception raised when a result set has no column of the given name."""

    kind = ErrorKind.FIELD_NOT_FOUND

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"No such field in result set: {field}")


class IndexOutOfRangeError(SphinxQLError, ProgrammingError, IndexError):
    """Exception raised for positional access beyond the row width."""

    kind = ErrorKind.INDEX_OUT_OF_RANGE

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Row column out of range: {index}")


class ProtocolStateError(SphinxQLError, InterfaceError):
    """Exception raised when an operation is invoked in an invalid state."""

    kind = ErrorKind.PROTOCOL_STATE


class MetaNotAttachedError(SphinxQLError, ProgrammingError):
    """Exception raised by ``Result.get_meta`` when no SHOW META was merged."""

    kind = ErrorKind.META_NOT_ATTACHED

    def __init__(self, message: str = "No SHOW META result."):
        super().__init__(message)


class ResultError(SphinxQLError, InternalError):
    """Exception raised when a result set cannot be initialized."""

    kind = ErrorKind.INITIALIZATION


class ConfigurationError(SphinxQLError, InterfaceError):
    """Exception raised for configuration errors."""

    kind = ErrorKind.CONFIGURATION


class StatementError(SphinxQLError, ProgrammingError):
    """Exception raised for statements that cannot be framed into a batch."""

    kind = ErrorKind.STATEMENT
