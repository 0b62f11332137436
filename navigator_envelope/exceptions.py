"""
Envelope Exceptions.

Input validation failures (FormatError, EncodingError, SerializationError)
derive from ValueError so callers may catch them generically. Cryptographic
failures never carry the underlying primitive's diagnostics.
"""


class EnvelopeError(Exception):
    """Base class for every error raised by navigator_envelope."""


class FormatError(EnvelopeError, ValueError):
    """Envelope text or one of its fields (data, iv, salt) is malformed."""


class EncodingError(EnvelopeError, ValueError):
    """Hex text or byte input cannot be converted."""


class SerializationError(EnvelopeError, ValueError):
    """A value cannot be converted to or from plaintext bytes."""


class RandomnessUnavailable(EnvelopeError, RuntimeError):
    """The operating system cannot supply secure random bytes."""


class AuthenticationFailure(EnvelopeError):
    """AEAD tag verification failed (wrong key, wrong nonce or tampered data)."""


class IncorrectPassword(AuthenticationFailure):
    """Password-based decryption failed.

    Raised for both a wrong password and corrupted data; the two cases are
    intentionally indistinguishable.
    """

    def __init__(self, message: str = "Incorrect password"):
        super().__init__(message)
