"""JSON serialization utilities using orjson for speed and correctness.

orjson handles datetime, date, time, UUID, dataclasses and pydantic models
natively. The default handler below covers the remaining types that show up
in database rows and statement parameters.
"""

import base64
import datetime
import decimal
import ipaddress
from typing import Any, Mapping

import orjson


def _default_handler(obj: Any) -> Any:
    """
    Custom default handler for types orjson doesn't handle natively.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation

    Raises:
        TypeError: If object cannot be serialized
    """
    # Decimal - keep precision by going through str
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    # timedelta - convert to total seconds
    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    # bytes/bytearray/memoryview - try UTF-8 decode, fall back to base64
    if isinstance(obj, (bytes, bytearray, memoryview)):
        data = bytes(obj)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(data).decode("ascii")

    # Sets - convert to sorted list so equal sets serialize equally
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=repr)

    # IP address types
    if isinstance(obj, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return str(obj)
    if isinstance(obj, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return str(obj)

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _key_handler(obj: Any) -> Any:
    try:
        return _default_handler(obj)
    except TypeError:
        # Keys only need to be deterministic, not reversible
        return f"{type(obj).__name__}:{obj!r}"


def dumps(obj: Any) -> str:
    """
    Serialize object to JSON string using orjson.

    Args:
        obj: Object to serialize

    Returns:
        JSON string
    """
    return orjson.dumps(obj, default=_default_handler).decode("utf-8")


def cache_key(sql: str, params: Mapping[str, Any]) -> str:
    """Cache key for a statement: its text plus its serialized parameters."""
    serialized = orjson.dumps(
        dict(params), default=_key_handler, option=orjson.OPT_SORT_KEYS
    ).decode("utf-8")
    return f"{sql}:{serialized}"
