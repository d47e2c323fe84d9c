"""
Typed decoding of raw SphinxQL cell values.

searchd sends every cell as text over the MySQL text protocol. Values are
converted on access with a caller supplied default: NULL and malformed
numeric text both resolve to that default instead of raising.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Prefix grammars of C strtol/strtod in the "C" locale.
_INT_PREFIX = re.compile(r"\s*([+-]?\d+)", re.ASCII)
_FLOAT_PREFIX = re.compile(
    r"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan))",
    re.IGNORECASE | re.ASCII,
)


def parse_int(text: str) -> int | None:
    """Parse the leading integer of ``text``, ``None`` if there is none."""
    match = _INT_PREFIX.match(text)
    if match is None:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        # more digits than sys.get_int_max_str_digits() allows
        return None


def parse_float(text: str) -> float | None:
    """Parse the leading floating point number of ``text``."""
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        return None
    return float(match.group(1))


def parse_bool(text: str) -> bool | None:
    value = parse_int(text)
    if value is None:
        return None
    return bool(value)


_DECODERS: dict[type, Callable[[str], Any]] = {
    int: parse_int,
    float: parse_float,
    bool: parse_bool,
    str: lambda text: text,
    bytes: lambda text: text.encode("utf-8"),
}

# Types whose malformed text is reported in debug logs.
_NUMERIC = (int, float, bool)


def register_decoder(type_: type[T], decoder: Callable[[str], T | None]) -> None:
    """Register a text decoder for ``type_``.

    The decoder returns ``None`` when the text cannot be converted, in which
    case the caller's default is used.
    """
    _DECODERS[type_] = decoder


def zero_value(type_: type[T]) -> T:
    """Return the zero value of ``type_`` (``0``, ``0.0``, ``""``...)."""
    return type_()


def decode(raw: str | None, type_: type[T], default: T) -> T:
    """Convert a raw cell to ``type_``.

    Args:
        raw: Cell text, or ``None`` for SQL NULL.
        type_: Requested Python type.
        default: Value returned for NULL or text that cannot be converted.

    Returns:
        Converted value or ``default``.

    Raises:
        TypeError: If no decoder is registered for ``type_``.
    """
    if raw is None:
        return default

    try:
        decoder = _DECODERS[type_]
    except KeyError:
        raise TypeError(f"No decoder registered for {type_.__name__}") from None

    value = decoder(raw)
    if value is None:
        if type_ in _NUMERIC:
            logger.debug("Malformed %s cell %r, using default %r", type_.__name__, raw, default)
        return default
    return value
