"""
ModelCache — Result payload serializers.

A cached result must come back equal to the result the executor
returned. Pickle does that for any Python object and is the default.
The JSON and msgpack serializers share a tagged record encoding, so the
column types query rows commonly carry (dates, decimals, UUIDs, bytes,
tuples and sets) survive a round trip through a store shared with other
languages.

A value the tagged encoding cannot restore raises ``TypeError`` on
serialize; ResultCache then returns the result without caching it.
"""

from __future__ import annotations

import datetime
import decimal
import json
import logging
import pickle
import uuid
from typing import Any, Callable, Dict, Protocol, Type, runtime_checkable

from .faults import CacheConfigFault

logger = logging.getLogger("modelcache.serializers")

# Marker key for tagged values inside encoded records
TYPE_KEY = "__mc__"


@runtime_checkable
class CacheSerializer(Protocol):
    """Turns query results into store payloads and back."""

    def serialize(self, value: Any) -> bytes:
        ...

    def deserialize(self, data: bytes) -> Any:
        ...


# ============================================================================
# Tagged record encoding
# ============================================================================

def _tagged(tag: str, value: Any) -> Dict[str, Any]:
    return {TYPE_KEY: tag, "v": value}


def encode_record(value: Any) -> Any:
    """
    Encode a query result into plain JSON/msgpack types.

    Raises:
        TypeError: ``value`` holds a type that cannot be restored
    """
    if value is None or isinstance(value, (bool, str, int, float)):
        return value
    if isinstance(value, list):
        return [encode_record(v) for v in value]
    if isinstance(value, dict):
        if all(isinstance(k, str) for k in value) and TYPE_KEY not in value:
            return {k: encode_record(v) for k, v in value.items()}
        return _tagged("map", [[encode_record(k), encode_record(v)] for k, v in value.items()])
    if isinstance(value, tuple):
        return _tagged("tuple", [encode_record(v) for v in value])
    if isinstance(value, frozenset):
        return _tagged("frozenset", [encode_record(v) for v in value])
    if isinstance(value, set):
        return _tagged("set", [encode_record(v) for v in value])
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime.datetime):
        return _tagged("datetime", value.isoformat())
    if isinstance(value, datetime.date):
        return _tagged("date", value.isoformat())
    if isinstance(value, datetime.time):
        return _tagged("time", value.isoformat())
    if isinstance(value, datetime.timedelta):
        return _tagged("timedelta", [value.days, value.seconds, value.microseconds])
    if isinstance(value, decimal.Decimal):
        return _tagged("decimal", str(value))
    if isinstance(value, uuid.UUID):
        return _tagged("uuid", str(value))
    if isinstance(value, (bytes, bytearray)):
        return _tagged("bytes", bytes(value).hex())
    raise TypeError(f"Cannot encode {type(value).__qualname__} into a cache record")


_DECODERS: Dict[str, Callable[[Any], Any]] = {
    "map": lambda pairs: {decode_record(k): decode_record(v) for k, v in pairs},
    "tuple": lambda items: tuple(decode_record(v) for v in items),
    "frozenset": lambda items: frozenset(decode_record(v) for v in items),
    "set": lambda items: {decode_record(v) for v in items},
    "datetime": datetime.datetime.fromisoformat,
    "date": datetime.date.fromisoformat,
    "time": datetime.time.fromisoformat,
    "timedelta": lambda parts: datetime.timedelta(days=parts[0], seconds=parts[1], microseconds=parts[2]),
    "decimal": decimal.Decimal,
    "uuid": uuid.UUID,
    "bytes": bytes.fromhex,
}


def decode_record(value: Any) -> Any:
    """Inverse of :func:`encode_record`."""
    if isinstance(value, list):
        return [decode_record(v) for v in value]
    if isinstance(value, dict):
        tag = value.get(TYPE_KEY)
        if tag is None:
            return {k: decode_record(v) for k, v in value.items()}
        decoder = _DECODERS.get(tag)
        if decoder is None:
            raise ValueError(f"Unknown cache record tag: {tag!r}")
        return decoder(value["v"])
    return value


# ============================================================================
# Serializers
# ============================================================================

class PickleCacheSerializer:
    """
    Pickle serializer. Restores arbitrary Python objects, model
    instances included.

    Only point it at stores nothing untrusted can write to: unpickling
    runs code named by the payload.
    """

    def serialize(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def deserialize(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
            logger.debug(f"Unreadable pickle payload: {e}")
            raise


class JsonCacheSerializer:
    """UTF-8 JSON over the tagged record encoding."""

    def serialize(self, value: Any) -> bytes:
        return json.dumps(
            encode_record(value),
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        try:
            return decode_record(json.loads(data.decode("utf-8")))
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Unreadable JSON payload: {e}")
            raise


class MsgpackCacheSerializer:
    """
    MessagePack over the tagged record encoding.

    Requires `msgpack` package: pip install modelcache[msgpack]
    """

    def __init__(self):
        try:
            import msgpack
        except ImportError:
            raise ImportError(
                "MsgpackCacheSerializer requires 'msgpack' package. "
                "Install with: pip install modelcache[msgpack]"
            )
        self._msgpack = msgpack

    def serialize(self, value: Any) -> bytes:
        try:
            return self._msgpack.packb(encode_record(value), use_bin_type=True)
        except OverflowError as e:
            raise TypeError(f"Integer out of msgpack range: {e}") from e

    def deserialize(self, data: bytes) -> Any:
        try:
            return decode_record(self._msgpack.unpackb(data, raw=False))
        except (ValueError, KeyError, TypeError, self._msgpack.ExtraData) as e:
            logger.debug(f"Unreadable msgpack payload: {e}")
            raise


SERIALIZERS: Dict[str, Type[Any]] = {
    "pickle": PickleCacheSerializer,
    "json": JsonCacheSerializer,
    "msgpack": MsgpackCacheSerializer,
}


def get_serializer(name: str = "pickle") -> CacheSerializer:
    """Create the serializer registered under ``name``."""
    cls = SERIALIZERS.get(name)
    if cls is None:
        raise CacheConfigFault(
            f"Unknown serializer '{name}'. Options: {', '.join(SERIALIZERS)}",
            key="serializer",
        )
    return cls()
