"""
Hex Codec — Bytes to/from "0x"-prefixed hex text for text-only storage.
"""
import string
from typing import Iterable, Union

from .exceptions import EncodingError

HEX_PREFIX = "0x"
_HEX_DIGITS = frozenset(string.hexdigits)

BytesLike = Union[bytes, bytearray, memoryview, Iterable[int]]


def bytes_to_hex(data: BytesLike) -> str:
    """Convert bytes into "0x"-prefixed lowercase hex, two chars per byte.

    Args:
        data: bytes-like object or iterable of ints in 0..255.

    Raises:
        EncodingError: If data cannot be interpreted as bytes.
    """
    if isinstance(data, (int, str)):
        raise EncodingError(f"Cannot convert {type(data).__name__} to bytes")
    try:
        raw = bytes(data)
    except (TypeError, ValueError) as err:
        raise EncodingError(f"Cannot convert {type(data).__name__} to bytes: {err}") from err
    return HEX_PREFIX + raw.hex()


def hex_to_bytes(text: str) -> bytes:
    """Convert hex text (with or without "0x" prefix) into bytes.

    Raises:
        EncodingError: If the digits have odd length or contain a non-hex
            character.
    """
    if not isinstance(text, str):
        raise EncodingError(f"Hex input must be str, got {type(text).__name__}")
    digits = text[2:] if text.startswith(HEX_PREFIX) else text
    if len(digits) % 2:
        raise EncodingError(
            f"Hex string must have an even number of digits, got {len(digits)}"
        )
    for pos, char in enumerate(digits):
        if char not in _HEX_DIGITS:
            raise EncodingError(
                f"Invalid hex character {char!r} at position {pos}"
            )
    return bytes.fromhex(digits)
