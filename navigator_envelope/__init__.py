"""Navigator Envelope — Password-based encryption envelopes.

Seals any serializable value with a password into JSON text of the form
``{"data": <base64>, "iv": <base64>, "salt": <base64>}`` using
PBKDF2-HMAC-SHA256 and AES-256-GCM.

Security Note:
    The derived key only lives for the duration of a call; nothing is
    cached between envelopes. Defaults (10000 iterations, 16-byte nonce)
    favor compatibility with existing envelopes, see ``conf``.
"""

from .version import __version__
from .conf import EnvelopeConfig
from .crypto import DerivedKey, generate_salt
from .envelope import Envelope, encode_envelope, decode_envelope
from .hexcodec import bytes_to_hex, hex_to_bytes
from .serializers import OrjsonSerializer, JsonPickleSerializer, get_serializer
from .exceptions import (
    EnvelopeError,
    FormatError,
    EncodingError,
    SerializationError,
    RandomnessUnavailable,
    AuthenticationFailure,
    IncorrectPassword,
)
from .vault import (
    PasswordVault,
    KeyVault,
    encrypt,
    decrypt,
    derive_key,
    encrypt_with_key,
    decrypt_with_key,
)

__all__ = [
    "__version__",
    "EnvelopeConfig",
    "DerivedKey",
    "generate_salt",
    "Envelope",
    "encode_envelope",
    "decode_envelope",
    "bytes_to_hex",
    "hex_to_bytes",
    "OrjsonSerializer",
    "JsonPickleSerializer",
    "get_serializer",
    "EnvelopeError",
    "FormatError",
    "EncodingError",
    "SerializationError",
    "RandomnessUnavailable",
    "AuthenticationFailure",
    "IncorrectPassword",
    "PasswordVault",
    "KeyVault",
    "encrypt",
    "decrypt",
    "derive_key",
    "encrypt_with_key",
    "decrypt_with_key",
]
