"""
Envelope Vaults — Async password and key interfaces over the crypto core.

Provides two interfaces:
- ``PasswordVault`` — ``encrypt(password, value)`` / ``decrypt(password, text)``
  for the common one-password-in, one-blob-out use case.
- ``KeyVault`` — ``derive_key`` / ``encrypt_with_key`` / ``decrypt_with_key``
  to reuse a single derived key across many values.

Module-level coroutines of the same names build a fresh vault per call.

Key derivation and AEAD work run in the event loop's default executor so
many calls can proceed concurrently. Vaults hold only immutable settings;
no keys, salts or plaintext are cached between calls.

Security Note:
    Never log passwords, plaintext or ciphertext values. Only log sizes
    and outcomes.
"""
import asyncio
import logging
import dataclasses
from functools import partial
from typing import Any, Callable, Optional, Union
from collections.abc import Mapping

from .conf import EnvelopeConfig
from .crypto import (
    DerivedKey,
    derive_key as _derive_key,
    encrypt_bytes,
    decrypt_bytes,
    generate_salt,
)
from .envelope import Envelope, decode_envelope, encode_envelope
from .exceptions import AuthenticationFailure, FormatError, IncorrectPassword
from .serializers import Serializer, get_serializer

logger = logging.getLogger("navigator.envelope")

Payload = Union[Envelope, Mapping[str, Any], str, bytes]


async def _run_blocking(func: Callable, *args) -> Any:
    """Run a CPU-bound primitive in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


class KeyVault:
    """Encrypt and decrypt values with an explicitly derived key.

    Envelopes produced here carry no salt; the caller owns the key.
    """

    def __init__(
        self,
        config: Optional[EnvelopeConfig] = None,
        serializer: Optional[Serializer] = None,
    ):
        self._config = config or EnvelopeConfig()
        self._serializer = serializer or get_serializer(self._config.serializer)

    @property
    def config(self) -> EnvelopeConfig:
        return self._config

    # ------------------------------------------------------------------
    # Envelope helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_envelope(payload: Payload, require_salt: bool = False) -> Envelope:
        """Normalize an Envelope, mapping or envelope text into an Envelope.

        Raises:
            FormatError: If the payload is malformed.
        """
        if isinstance(payload, Envelope):
            if require_salt and payload.salt is None:
                raise FormatError("Envelope is missing required field 'salt'")
            return payload
        if isinstance(payload, (str, bytes)):
            return decode_envelope(payload, require_salt=require_salt)
        return Envelope.from_dict(payload, require_salt=require_salt)

    async def seal(self, key: DerivedKey, value: Any) -> Envelope:
        """Serialize and encrypt a value into an Envelope (no salt)."""
        plaintext = self._serializer.dumps(value)
        ciphertext, nonce = await _run_blocking(
            encrypt_bytes, key, plaintext, self._config.nonce_size,
        )
        return Envelope(ciphertext=ciphertext, nonce=nonce)

    async def unseal(self, key: DerivedKey, envelope: Envelope) -> Any:
        """Decrypt an Envelope and deserialize its value.

        Raises:
            AuthenticationFailure: If the tag does not verify.
        """
        plaintext = await _run_blocking(
            decrypt_bytes, key, envelope.ciphertext, envelope.nonce,
        )
        return self._serializer.loads(plaintext)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def derive_key(self, password: str, salt: Union[str, bytes]) -> DerivedKey:
        """Derive an AES-256-GCM key from password and base64 salt.

        Raises:
            FormatError: If salt is not valid base64.
        """
        return await _run_blocking(
            _derive_key, password, salt, self._config.iterations,
        )

    async def encrypt_with_key(self, key: DerivedKey, value: Any) -> dict[str, str]:
        """Encrypt a value, returning ``{"data": <base64>, "iv": <base64>}``."""
        envelope = await self.seal(key, value)
        return envelope.to_dict()

    async def decrypt_with_key(self, key: DerivedKey, payload: Payload) -> Any:
        """Decrypt a payload produced by encrypt_with_key().

        Args:
            key: DerivedKey used for encryption.
            payload: Envelope, ``{"data", "iv"}`` mapping or envelope text.

        Raises:
            FormatError: If the payload is malformed (checked first).
            AuthenticationFailure: If the tag does not verify.
        """
        envelope = self._to_envelope(payload)
        return await self.unseal(key, envelope)


class PasswordVault:
    """Seal values with a password into self-contained envelope text.

    Each encrypt draws a fresh salt and nonce; each decrypt re-derives the
    key from the salt stored in the envelope.
    """

    def __init__(
        self,
        config: Optional[EnvelopeConfig] = None,
        serializer: Optional[Serializer] = None,
    ):
        self._keys = KeyVault(config=config, serializer=serializer)

    @property
    def config(self) -> EnvelopeConfig:
        return self._keys.config

    async def encrypt(self, password: str, value: Any) -> str:
        """Encrypt a value with a password.

        Args:
            password: Password to derive the key from.
            value: Any value supported by the serializer.

        Returns:
            Envelope JSON text including the salt.
        """
        salt = generate_salt(self.config.salt_size)
        key = await self._keys.derive_key(password, salt)
        envelope = await self._keys.seal(key, value)
        envelope = dataclasses.replace(envelope, salt=key.salt)
        logger.debug(
            "Envelope sealed: data=%dB", len(envelope.ciphertext),
        )
        return encode_envelope(envelope)

    async def decrypt(self, password: str, text: Union[str, bytes]) -> Any:
        """Decrypt envelope text with a password.

        Raises:
            FormatError: If the envelope is malformed or has no salt.
            IncorrectPassword: If the password is wrong or the data was
                tampered with. The two cases are not distinguished.
        """
        envelope = decode_envelope(text, require_salt=True)
        key = await self._keys.derive_key(password, envelope.salt)
        try:
            return await self._keys.unseal(key, envelope)
        except AuthenticationFailure:
            logger.warning("Envelope authentication failed")
            raise IncorrectPassword() from None


# ---------------------------------------------------------------------------
# Module-level convenience coroutines
# ---------------------------------------------------------------------------

async def encrypt(
    password: str, value: Any, config: Optional[EnvelopeConfig] = None
) -> str:
    """Encrypt a value with a password into envelope text."""
    return await PasswordVault(config).encrypt(password, value)


async def decrypt(
    password: str, text: Union[str, bytes], config: Optional[EnvelopeConfig] = None
) -> Any:
    """Decrypt envelope text with a password."""
    return await PasswordVault(config).decrypt(password, text)


async def derive_key(
    password: str, salt: Union[str, bytes], config: Optional[EnvelopeConfig] = None
) -> DerivedKey:
    """Derive a reusable key from a password and base64 salt."""
    return await KeyVault(config).derive_key(password, salt)


async def encrypt_with_key(
    key: DerivedKey, value: Any, config: Optional[EnvelopeConfig] = None
) -> dict[str, str]:
    """Encrypt a value with a derived key into ``{"data", "iv"}``."""
    return await KeyVault(config).encrypt_with_key(key, value)


async def decrypt_with_key(
    key: DerivedKey, payload: Payload, config: Optional[EnvelopeConfig] = None
) -> Any:
    """Decrypt a ``{"data", "iv"}`` payload with a derived key."""
    return await KeyVault(config).decrypt_with_key(key, payload)
