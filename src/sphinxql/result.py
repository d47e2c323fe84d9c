"""
Result sets and rows of SphinxQL responses.

A ``Result`` owns the rows of one statement, materialized by the transport.
A ``Row`` is a light, reusable view bound to whichever Result most recently
filled it; it does not copy cells and becomes invalid once that Result is
closed.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterator, Mapping, Sequence, TypeVar

from .errors import (
    FieldNotFoundError,
    IndexOutOfRangeError,
    MetaNotAttachedError,
    ProtocolStateError,
    ResultError,
)
from .transport import FieldDescription, RawResultSet
from .types import decode, zero_value

T = TypeVar("T")


class ColumnIndex:
    """Column name to ordinal mapping of one result set."""

    __slots__ = ("_index",)

    def __init__(self) -> None:
        self._index: dict[str, int] = {}

    @property
    def built(self) -> bool:
        return bool(self._index)

    def build(self, fields: Sequence[FieldDescription] | None) -> None:
        if fields is None:
            raise ResultError("Cannot initialize result index from null field result")
        for position, field in enumerate(fields):
            self._index[field.name] = position

    def lookup(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise FieldNotFoundError(name) from None


class MetaMap:
    """Variables of a ``SHOW META`` result, read once and kept immutable."""

    __slots__ = ("_values",)

    def __init__(self, result: Result) -> None:
        values: dict[str, str] = {}
        row = Row()
        while result.next_row(row):
            key, value = row.unpack("", "")
            if key:
                values[key] = value
        self._values = MappingProxyType(values)

    def get(self, variable: str) -> str:
        return self._values.get(variable, "")

    def as_mapping(self) -> Mapping[str, str]:
        return self._values

    def __len__(self) -> int:
        return len(self._values)


class Result:
    """Result set of one SphinxQL statement.

    Rows are fetched into a ``Row`` with ``next_row()``; iterating the Result
    yields a fresh Row per remaining record instead.
    """

    __slots__ = ("_fields", "_rows", "_cursor", "_column_index", "_meta", "_closed")

    def __init__(self, data: RawResultSet) -> None:
        self._fields = data.fields
        self._rows = data.rows
        self._cursor = 0
        self._column_index = ColumnIndex()
        self._meta: MetaMap | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"<Result columns={self.columns!r} rows={len(self._rows)} meta={self.has_meta}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def row_count(self) -> int:
        return len(self._rows)

    def size(self) -> int:
        """Return number of rows in the result set."""
        return len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def columns(self) -> tuple[str, ...]:
        if not self._fields:
            return ()
        return tuple(field.name for field in self._fields)

    @property
    def fields(self) -> tuple[FieldDescription, ...]:
        return tuple(self._fields or ())

    def column_index(self, name: str) -> int:
        """Return position of column ``name``, building the index on first use.

        Raises:
            FieldNotFoundError: If the result has no such column.
            ResultError: If the transport sent no field descriptors.
        """
        if not self._column_index.built:
            self._column_index.build(self._fields)
        return self._column_index.lookup(name)

    def next_row(self, row: Row) -> bool:
        """Bind ``row`` to the next record. Return ``False`` at end of set."""
        self._check_open()
        if self._cursor < len(self._rows):
            row._bind(self, self._rows[self._cursor])
            self._cursor += 1
            return True
        row._unbind()
        return False

    def rewind(self) -> None:
        """Restart row iteration from the first record."""
        self._cursor = 0

    def __iter__(self) -> Iterator[Row]:
        while True:
            row = Row()
            if not self.next_row(row):
                return
            yield row

    @property
    def has_meta(self) -> bool:
        return self._meta is not None

    def attach_meta(self, meta_result: Result | None) -> None:
        """Merge a ``SHOW META`` result into this one. ``None`` is ignored."""
        if meta_result is None:
            return
        self._meta = MetaMap(meta_result)
        meta_result.close()

    def get_meta(self, variable: str) -> str:
        """Return value of SHOW META ``variable``, empty string if unknown.

        Raises:
            MetaNotAttachedError: If no SHOW META result was attached.
        """
        if self._meta is None:
            raise MetaNotAttachedError()
        return self._meta.get(variable)

    @property
    def meta(self) -> Mapping[str, str]:
        if self._meta is None:
            raise MetaNotAttachedError()
        return self._meta.as_mapping()

    def close(self) -> None:
        """Release the rows. Rows bound to this result become unusable."""
        self._closed = True
        self._rows = []
        self._cursor = 0

    def _check_open(self) -> None:
        if self._closed:
            raise ProtocolStateError("Result is closed")


class Row:
    """Non-owning view of one record of a ``Result``.

    Supports positional access (``row[i]``), typed access by column name
    (``row.get("id", int)``) and streaming extraction of successive fields
    (``row.next_field(0)`` / ``row.unpack(0, 0.0, "")``).
    """

    __slots__ = ("_origin", "_cells", "_field_iter")

    def __init__(self) -> None:
        self._origin: Result | None = None
        self._cells: tuple[str | None, ...] = ()
        self._field_iter = 0

    def __repr__(self) -> str:
        return f"<Row {self._cells!r}>"

    def _bind(self, origin: Result, cells: tuple[str | None, ...]) -> None:
        self._origin = origin
        self._cells = cells
        self._field_iter = 0

    def _unbind(self) -> None:
        self._origin = None
        self._cells = ()
        self._field_iter = 0

    def _check_alive(self) -> None:
        if self._origin is not None and self._origin.closed:
            raise ProtocolStateError("Row used after its result was closed")

    @property
    def bound(self) -> bool:
        return self._origin is not None

    def size(self) -> int:
        """Return number of columns, zero if not bound."""
        return len(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def _check_bounds(self, index: int) -> None:
        if index < 0 or index >= len(self._cells):
            raise IndexOutOfRangeError(index)

    def __getitem__(self, index: int) -> str | None:
        """Raw cell text at ``index``, ``None`` for SQL NULL."""
        self._check_alive()
        self._check_bounds(index)
        return self._cells[index]

    def get(self, field: str, type_: type[T] = str) -> T:  # type: ignore[assignment]
        """Return column ``field`` converted to ``type_``.

        NULL and unparsable numbers give the zero value of ``type_``.

        Raises:
            ProtocolStateError: If the row is not bound to a result.
            FieldNotFoundError: If the result has no such column.
        """
        if self._origin is None:
            raise ProtocolStateError("Row is probably not initialized!")
        self._check_alive()
        index = self._origin.column_index(field)
        return decode(self[index], type_, zero_value(type_))

    def next_field(self, current: T, type_: type | None = None) -> T:
        """Decode the next field as ``type_`` (default ``type(current)``) and advance.

        ``current`` is kept when the cell is NULL or cannot be converted.
        Pass ``type_`` when ``current`` is ``None``.

        Raises:
            TypeError: If neither ``type_`` nor a typed ``current`` is given.
        """
        if type_ is None:
            if current is None:
                raise TypeError("next_field() needs a typed current value or type_")
            type_ = type(current)
        self._check_alive()
        self._check_bounds(self._field_iter)
        raw = self._cells[self._field_iter]
        self._field_iter += 1
        return decode(raw, type_, current)

    def unpack(self, *currents: Any) -> tuple[Any, ...]:
        """Read ``len(currents)`` successive fields, see ``next_field``."""
        return tuple(self.next_field(current) for current in currents)

    def rewind_fields(self) -> None:
        self._field_iter = 0

    def as_dict(self) -> dict[str, str | None]:
        """Return ``{column: raw cell}`` for the bound record."""
        if self._origin is None:
            return {}
        self._check_alive()
        return dict(zip(self._origin.columns, self._cells))
