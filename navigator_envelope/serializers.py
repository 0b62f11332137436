"""
Value Serializers — Convert Python values to plaintext bytes and back.

The crypto core only sees bytes; any object with ``dumps``/``loads``
can be plugged into the vaults.
"""
import base64
import binascii
from typing import Any, Protocol

import orjson
import jsonpickle

from .exceptions import SerializationError

_BYTES_WRAPPER_KEY = "__envelope_bytes_b64__"
_ESCAPE_KEY = "__envelope_escaped__"


def _is_marker(value: Any) -> bool:
    """True for a single-key dict keyed by the bytes wrapper or escape marker."""
    return (
        isinstance(value, dict)
        and len(value) == 1
        and (_BYTES_WRAPPER_KEY in value or _ESCAPE_KEY in value)
    )


class Serializer(Protocol):
    """Byte-serialization capability for plaintext values."""

    name: str

    def dumps(self, value: Any) -> bytes:
        ...

    def loads(self, data: bytes) -> Any:
        ...


class OrjsonSerializer:
    """JSON serializer backed by orjson.

    Supports: str, int, float, dict, list, bool, None and top-level bytes.
    bytes values are wrapped as {"__envelope_bytes_b64__": "<base64>"} for
    a safe JSON round-trip. A top-level dict that would read back as one of
    the single-key markers is nested under {"__envelope_escaped__": ...}.
    """

    name = "orjson"

    def dumps(self, value: Any) -> bytes:
        if isinstance(value, bytes):
            value = {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
        elif _is_marker(value):
            value = {_ESCAPE_KEY: value}
        try:
            return orjson.dumps(value)
        except orjson.JSONEncodeError as err:
            raise SerializationError(f"Value is not JSON serializable: {err}") from err

    def loads(self, data: bytes) -> Any:
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise SerializationError(f"Plaintext is not valid JSON: {err}") from err
        if not _is_marker(parsed):
            return parsed
        if _ESCAPE_KEY in parsed:
            return parsed[_ESCAPE_KEY]
        encoded = parsed[_BYTES_WRAPPER_KEY]
        if not isinstance(encoded, str):
            raise SerializationError("Wrapped bytes value must be a base64 string")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise SerializationError("Wrapped bytes value is not valid base64") from None


class JsonPickleSerializer:
    """jsonpickle serializer for richer Python objects (datetime, sets, classes).

    Only decrypt envelopes from trusted writers: decoding can instantiate
    arbitrary importable classes.
    """

    name = "jsonpickle"

    def dumps(self, value: Any) -> bytes:
        try:
            return jsonpickle.encode(value).encode("utf-8")
        except Exception as err:
            raise SerializationError(err) from err

    def loads(self, data: bytes) -> Any:
        try:
            return jsonpickle.decode(data.decode("utf-8"))
        except Exception as err:
            raise SerializationError(err) from err


_SERIALIZERS = {
    OrjsonSerializer.name: OrjsonSerializer,
    JsonPickleSerializer.name: JsonPickleSerializer,
}


def get_serializer(name: str) -> Serializer:
    """Return a serializer instance by name ("orjson" or "jsonpickle")."""
    try:
        return _SERIALIZERS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unsupported serializer: {name}") from None
