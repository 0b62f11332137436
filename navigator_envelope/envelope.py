"""
Envelope Codec — Pack ciphertext, nonce and salt into portable JSON text.

Wire format:
    {"data": <base64 ciphertext+tag>, "iv": <base64 nonce>, "salt": <base64>?}

Unknown fields are ignored so newer writers stay readable.
"""
import base64
from typing import Any, Optional, Union
from collections.abc import Mapping
from dataclasses import dataclass

import orjson

from .crypto import decode_b64
from .exceptions import FormatError

DATA_FIELD = "data"
IV_FIELD = "iv"
SALT_FIELD = "salt"


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


@dataclass(frozen=True)
class Envelope:
    """Ciphertext (tag appended), nonce and optional KDF salt."""
    ciphertext: bytes
    nonce: bytes
    salt: Optional[bytes] = None

    def to_dict(self) -> dict[str, str]:
        """Convert to JSON-serializable dictionary."""
        payload = {
            DATA_FIELD: _b64(self.ciphertext),
            IV_FIELD: _b64(self.nonce),
        }
        if self.salt is not None:
            payload[SALT_FIELD] = _b64(self.salt)
        return payload

    @classmethod
    def from_dict(
        cls, payload: Mapping[str, Any], require_salt: bool = False
    ) -> "Envelope":
        """Reconstruct from dictionary, validating every field.

        Args:
            payload: Mapping with ``data``, ``iv`` and optionally ``salt``.
            require_salt: Reject payloads without a salt.

        Raises:
            FormatError: If a required field is missing, empty or not base64.
        """
        if not isinstance(payload, Mapping):
            raise FormatError(
                f"Envelope must be an object, got {type(payload).__name__}"
            )
        fields = {}
        for name in (DATA_FIELD, IV_FIELD):
            if name not in payload:
                raise FormatError(f"Envelope is missing required field '{name}'")
            fields[name] = decode_b64(payload[name], name)
            if not fields[name]:
                raise FormatError(f"Field '{name}' is empty")
        salt = None
        if SALT_FIELD in payload and payload[SALT_FIELD] is not None:
            salt = decode_b64(payload[SALT_FIELD], SALT_FIELD)
            if not salt:
                raise FormatError(f"Field '{SALT_FIELD}' is empty")
        elif require_salt:
            raise FormatError(f"Envelope is missing required field '{SALT_FIELD}'")
        return cls(
            ciphertext=fields[DATA_FIELD],
            nonce=fields[IV_FIELD],
            salt=salt,
        )


def encode_envelope(envelope: Envelope) -> str:
    """Serialize an Envelope to JSON text."""
    return orjson.dumps(envelope.to_dict()).decode("utf-8")


def decode_envelope(
    text: Union[str, bytes], require_salt: bool = False
) -> Envelope:
    """Parse and validate envelope JSON text.

    Args:
        text: Envelope text produced by encode_envelope().
        require_salt: Reject envelopes without a salt (password path).

    Returns:
        Validated Envelope.

    Raises:
        FormatError: If the text is not JSON or any field is invalid.
    """
    try:
        payload = orjson.loads(text)
    except (orjson.JSONDecodeError, TypeError):
        raise FormatError("Envelope is not valid JSON") from None
    return Envelope.from_dict(payload, require_salt=require_salt)
