"""
Envelope Configuration — Validated KDF and cipher settings.

Reads optional overrides from environment variables:
    ENVELOPE_KDF_ITERATIONS = <integer, default 10000>
    ENVELOPE_SALT_SIZE = <integer bytes, default 32>
    ENVELOPE_NONCE_SIZE = <integer bytes, default 16>
    ENVELOPE_SERIALIZER = orjson | jsonpickle

Compatibility Note:
    The defaults reproduce envelopes readable by existing stored blobs.
    10000 PBKDF2 iterations is low by current guidance; production
    deployments should raise ENVELOPE_KDF_ITERATIONS substantially.
    NIST recommends 12-byte (96-bit) nonces for AES-GCM; the 16-byte default
    is kept for wire compatibility, use 12 for new data that must
    interoperate with other AES-GCM implementations.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("navigator.envelope")

DEFAULT_ITERATIONS = 10000
DEFAULT_SALT_SIZE = 32
DEFAULT_NONCE_SIZE = 16
RECOMMENDED_NONCE_SIZE = 12

# AESGCM accepts nonces between 8 and 128 bytes.
MIN_NONCE_SIZE = 8
MAX_NONCE_SIZE = 128

SERIALIZERS = ("orjson", "jsonpickle")


class EnvelopeConfig(BaseModel):
    """Validated envelope configuration."""

    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)
    salt_size: int = Field(default=DEFAULT_SALT_SIZE, ge=1)
    nonce_size: int = Field(
        default=DEFAULT_NONCE_SIZE, ge=MIN_NONCE_SIZE, le=MAX_NONCE_SIZE
    )
    serializer: str = Field(default="orjson")

    model_config = {"frozen": True}

    @field_validator("serializer")
    @classmethod
    def validate_serializer(cls, v: str) -> str:
        """Validate serializer name is supported."""
        v = v.lower()
        if v not in SERIALIZERS:
            raise ValueError(f"Unsupported serializer: {v}")
        return v

    @classmethod
    def from_env(cls) -> "EnvelopeConfig":
        """Create EnvelopeConfig from ENVELOPE_* environment variables.

        Unset variables fall back to the field defaults.

        Returns:
            Populated EnvelopeConfig instance.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        overrides = {}
        for field, env_name in (
            ("iterations", "ENVELOPE_KDF_ITERATIONS"),
            ("salt_size", "ENVELOPE_SALT_SIZE"),
            ("nonce_size", "ENVELOPE_NONCE_SIZE"),
            ("serializer", "ENVELOPE_SERIALIZER"),
        ):
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field] = value
        config = cls(**overrides)
        logger.debug(
            "Envelope config loaded: iterations=%d salt_size=%d nonce_size=%d serializer=%s",
            config.iterations, config.salt_size, config.nonce_size, config.serializer,
        )
        return config
