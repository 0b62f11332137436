"""
Envelope Crypto Core — Salt generation, key derivation and AEAD.

- Salt: os.urandom, base64 text so it drops straight into the envelope.
- Key: PBKDF2-HMAC-SHA256(password, salt) → 256-bit AES-GCM key.
- Cipher: AES-256-GCM, random nonce per call, tag appended to ciphertext.

Security Note:
    Never log passwords, key material, plaintext or ciphertext values.
    Raw key bytes only exist inside derive_key(); callers get an opaque
    DerivedKey that cannot be exported, pickled or copied.
"""
import os
import base64
import binascii
import logging
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .conf import DEFAULT_ITERATIONS, DEFAULT_NONCE_SIZE, DEFAULT_SALT_SIZE
from .exceptions import AuthenticationFailure, FormatError, RandomnessUnavailable

logger = logging.getLogger("navigator.envelope")

KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16  # GCM tag appended by AESGCM.encrypt


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------

def random_bytes(size: int) -> bytes:
    """Return ``size`` bytes from the OS secure random source.

    Raises:
        RandomnessUnavailable: If the OS cannot supply random bytes.
    """
    try:
        return os.urandom(size)
    except (NotImplementedError, OSError) as err:
        raise RandomnessUnavailable(
            f"Secure random source unavailable: {err}"
        ) from err


def generate_salt(byte_count: int = DEFAULT_SALT_SIZE) -> str:
    """Generate a random salt for key derivation.

    Args:
        byte_count: Number of random bytes (default 32).

    Returns:
        Base64-encoded salt string.
    """
    if byte_count < 1:
        raise ValueError(f"Salt size must be positive, got {byte_count}")
    return base64.b64encode(random_bytes(byte_count)).decode("ascii")


def decode_b64(value: str, field: str) -> bytes:
    """Strictly decode a base64 text field, raising FormatError on failure."""
    if not isinstance(value, str):
        raise FormatError(
            f"Field '{field}' must be a base64 string, got {type(value).__name__}"
        )
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise FormatError(f"Field '{field}' is not valid base64") from None


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def password_bytes(password: str) -> bytes:
    """UTF-8 encode a password, replacing lone surrogates with U+FFFD.

    Surrogate pairs split across two code points are joined first, so the
    bytes match what other UTF-8 encoders feed to PBKDF2.
    """
    try:
        return password.encode("utf-8")
    except UnicodeEncodeError:
        return (
            password.encode("utf-16-le", "surrogatepass")
            .decode("utf-16-le", "replace")
            .encode("utf-8")
        )


class DerivedKey:
    """Opaque AES-256-GCM key handle derived from a password.

    Only usable for encrypt/decrypt through this module. The raw key bytes
    are not kept; the handle refuses pickling and copying.
    """

    __slots__ = ("_cipher", "salt", "iterations")

    def __init__(self, cipher: AESGCM, salt: bytes, iterations: int):
        self._cipher = cipher
        self.salt = salt
        self.iterations = iterations

    def __repr__(self) -> str:
        return f"<DerivedKey AES-256-GCM iterations={self.iterations}>"

    def __reduce_ex__(self, protocol):
        raise TypeError("DerivedKey cannot be serialized or copied")


def derive_key(
    password: str,
    salt: Union[str, bytes],
    iterations: int = DEFAULT_ITERATIONS,
) -> DerivedKey:
    """Derive an AES-256-GCM key from a password using PBKDF2-HMAC-SHA256.

    The same (password, salt, iterations) always derives the same key.

    Args:
        password: Human-chosen password (UTF-8 encoded before hashing).
        salt: Base64 salt text (as produced by generate_salt) or raw bytes.
        iterations: PBKDF2 iteration count.

    Returns:
        DerivedKey bound to AES-GCM.

    Raises:
        FormatError: If salt is not valid base64 or empty.
    """
    if isinstance(salt, (bytes, bytearray)):
        salt_bytes = bytes(salt)
    else:
        salt_bytes = decode_b64(salt, "salt")
    if not salt_bytes:
        raise FormatError("Field 'salt' is empty")
    if iterations < 1:
        raise ValueError(f"Iterations must be positive, got {iterations}")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt_bytes,
        iterations=iterations,
    )
    cipher = AESGCM(kdf.derive(password_bytes(password)))
    logger.debug(
        "Derived key: salt=%dB iterations=%d", len(salt_bytes), iterations,
    )
    return DerivedKey(cipher, salt_bytes, iterations)


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

def encrypt_bytes(
    key: DerivedKey,
    plaintext: bytes,
    nonce_size: int = DEFAULT_NONCE_SIZE,
) -> tuple[bytes, bytes]:
    """Encrypt plaintext with AES-256-GCM under a fresh random nonce.

    Args:
        key: DerivedKey from derive_key().
        plaintext: Bytes to encrypt.
        nonce_size: Nonce length in bytes (12 recommended, 16 compatible).

    Returns:
        Tuple of (ciphertext with 16-byte tag appended, nonce).
    """
    nonce = random_bytes(nonce_size)
    ct = key._cipher.encrypt(nonce, plaintext, None)
    logger.debug("Encrypted %d byte(s), nonce=%dB", len(plaintext), nonce_size)
    return ct, nonce


def decrypt_bytes(key: DerivedKey, ciphertext: bytes, nonce: bytes) -> bytes:
    """Decrypt and authenticate AES-256-GCM ciphertext.

    Args:
        key: DerivedKey from derive_key().
        ciphertext: Ciphertext with tag appended.
        nonce: Nonce used for encryption.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        AuthenticationFailure: On wrong key, wrong nonce or tampered data.
            No plaintext is released.
    """
    try:
        plaintext = key._cipher.decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError):
        raise AuthenticationFailure(
            "Unable to authenticate ciphertext"
        ) from None
    logger.debug("Decrypted %d byte(s)", len(plaintext))
    return plaintext
