"""
Tests for PasswordVault, KeyVault and the module-level coroutines.

Tests cover:
- Password round-trip for JSON values, bytes and jsonpickle objects
- Wrong password and tamper detection (IncorrectPassword)
- Ciphertext non-determinism
- Malformed envelopes rejected before any key derivation
- Key reuse through the low-level interface
- Compatibility with envelopes produced by the reference format
- Concurrent calls
"""
import json
import base64
import asyncio
import hashlib
import logging
from datetime import datetime, timezone

import orjson
import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

import navigator_envelope
from navigator_envelope import (
    EnvelopeConfig,
    Envelope,
    PasswordVault,
    KeyVault,
    JsonPickleSerializer,
    generate_salt,
)
from navigator_envelope.exceptions import (
    AuthenticationFailure,
    FormatError,
    IncorrectPassword,
    SerializationError,
)


def run(coro):
    return asyncio.run(coro)


def _flip_bit(b64_text: str, bit: int) -> str:
    raw = bytearray(base64.b64decode(b64_text))
    raw[bit // 8] ^= 1 << (bit % 8)
    return base64.b64encode(bytes(raw)).decode("ascii")


@pytest.fixture
def vault():
    return PasswordVault()


@pytest.fixture
def key_vault():
    return KeyVault()


# --- Test Password Round Trip ---

class TestPasswordRoundTrip:
    """decrypt(p, encrypt(p, v)) == v."""

    @pytest.mark.parametrize("value", [
        {"a": 1},
        {"nested": {"list": [1, 2.5, "three", None, True]}},
        [1, 2, 3],
        "plain string",
        "unicode ✓ ñ 漢字",
        42,
        3.14,
        True,
        None,
        {},
        [],
    ])
    def test_round_trip(self, vault, value):
        text = run(vault.encrypt("pw", value))
        assert run(vault.decrypt("pw", text)) == value

    def test_bytes_value(self, vault):
        text = run(vault.encrypt("pw", b"\x00\xffraw"))
        assert run(vault.decrypt("pw", text)) == b"\x00\xffraw"

    def test_empty_password(self, vault):
        text = run(vault.encrypt("", {"a": 1}))
        assert run(vault.decrypt("", text)) == {"a": 1}

    def test_decrypt_accepts_bytes(self, vault):
        text = run(vault.encrypt("pw", {"a": 1}))
        assert run(vault.decrypt("pw", text.encode("utf-8"))) == {"a": 1}

    def test_hunter2_scenario(self):
        """Module-level encrypt/decrypt with the classic password."""
        text = run(navigator_envelope.encrypt("hunter2", {"a": 1}))
        assert run(navigator_envelope.decrypt("hunter2", text)) == {"a": 1}
        with pytest.raises(IncorrectPassword, match="Incorrect password"):
            run(navigator_envelope.decrypt("wrong", text))

    def test_jsonpickle_serializer(self):
        vault = PasswordVault(EnvelopeConfig(serializer="jsonpickle"))
        now = datetime.now(timezone.utc)
        value = {"when": now, "tags": {"x", "y"}}
        text = run(vault.encrypt("pw", value))
        assert run(vault.decrypt("pw", text)) == value

    def test_explicit_serializer_instance(self):
        vault = PasswordVault(serializer=JsonPickleSerializer())
        text = run(vault.encrypt("pw", (1, 2)))
        assert run(vault.decrypt("pw", text)) == (1, 2)

    @pytest.mark.parametrize("value", [
        {"__envelope_bytes_b64__": "aGk="},
        {"__envelope_bytes_b64__": 5},
        {"__envelope_escaped__": "x"},
    ])
    def test_marker_shaped_dict_round_trip(self, vault, value):
        """Dicts shaped like internal serializer markers are returned as-is."""
        text = run(vault.encrypt("pw", value))
        assert run(vault.decrypt("pw", text)) == value

    def test_surrogate_password(self, vault):
        text = run(vault.encrypt("pw\ud800", {"a": 1}))
        assert run(vault.decrypt("pw\ud800", text)) == {"a": 1}

    def test_unserializable_value(self, vault):
        with pytest.raises(SerializationError):
            run(vault.encrypt("pw", {"obj": object()}))


# --- Test Envelope Shape ---

class TestEnvelopeShape:
    """Envelope text produced by the password vault."""

    def test_fields(self, vault):
        payload = json.loads(run(vault.encrypt("pw", {"a": 1})))
        assert set(payload) == {"data", "iv", "salt"}
        assert len(base64.b64decode(payload["salt"])) == 32
        assert len(base64.b64decode(payload["iv"])) == 16
        # b'{"a":1}' (7 bytes) + 16-byte tag
        assert len(base64.b64decode(payload["data"])) == 7 + 16

    def test_config_sizes(self):
        vault = PasswordVault(EnvelopeConfig(salt_size=16, nonce_size=12))
        payload = json.loads(run(vault.encrypt("pw", "x")))
        assert len(base64.b64decode(payload["salt"])) == 16
        assert len(base64.b64decode(payload["iv"])) == 12
        assert run(vault.decrypt("pw", json.dumps(payload))) == "x"

    def test_non_deterministic(self, vault):
        """Same password and value yield different salt, iv and data."""
        first = json.loads(run(vault.encrypt("pw", {"a": 1})))
        second = json.loads(run(vault.encrypt("pw", {"a": 1})))
        assert first["salt"] != second["salt"]
        assert first["iv"] != second["iv"]
        assert first["data"] != second["data"]


# --- Test Failures ---

class TestPasswordFailures:
    """Wrong password, tampering and malformed envelopes."""

    def test_wrong_password(self, vault):
        text = run(vault.encrypt("p1", {"a": 1}))
        with pytest.raises(IncorrectPassword):
            run(vault.decrypt("p2", text))

    def test_incorrect_password_is_authentication_failure(self, vault):
        text = run(vault.encrypt("p1", {"a": 1}))
        with pytest.raises(AuthenticationFailure):
            run(vault.decrypt("p2", text))

    def test_wrong_iterations(self):
        text = run(PasswordVault(EnvelopeConfig(iterations=1000)).encrypt("pw", 1))
        with pytest.raises(IncorrectPassword):
            run(PasswordVault(EnvelopeConfig(iterations=2000)).decrypt("pw", text))

    @pytest.mark.parametrize("field", ["data", "iv"])
    def test_single_bit_flip(self, vault, field):
        """Flipping any bit of data or iv fails with IncorrectPassword."""
        text = run(vault.encrypt("pw", {"a": 1}))
        payload = json.loads(text)
        nbits = len(base64.b64decode(payload[field])) * 8

        async def _check_all():
            failures = 0
            for bit in range(nbits):
                tampered = dict(payload)
                tampered[field] = _flip_bit(payload[field], bit)
                try:
                    await vault.decrypt("pw", json.dumps(tampered))
                except IncorrectPassword:
                    failures += 1
            return failures

        assert run(_check_all()) == nbits

    def test_swapped_salt(self, vault):
        payload = json.loads(run(vault.encrypt("pw", {"a": 1})))
        payload["salt"] = generate_salt()
        with pytest.raises(IncorrectPassword):
            run(vault.decrypt("pw", json.dumps(payload)))

    def test_not_json(self, vault):
        """Malformed text is a FormatError, not an authentication failure."""
        with pytest.raises(FormatError):
            run(vault.decrypt("pw", "{not json"))

    def test_missing_salt(self, vault, key_vault):
        key = run(key_vault.derive_key("pw", generate_salt()))
        payload = run(key_vault.encrypt_with_key(key, {"a": 1}))
        with pytest.raises(FormatError, match="salt"):
            run(vault.decrypt("pw", json.dumps(payload)))

    def test_format_checked_before_derivation(self, vault, monkeypatch):
        """No key is derived for a malformed envelope."""
        calls = []

        def _spy(*args):
            calls.append(args)
            raise AssertionError("derive_key must not be called")

        monkeypatch.setattr("navigator_envelope.vault._derive_key", _spy)
        with pytest.raises(FormatError):
            run(vault.decrypt("pw", '{"data": "AAAA"}'))
        assert calls == []

    def test_failure_logged_without_secrets(self, vault, caplog):
        text = run(vault.encrypt("s3cret-pass", {"a": 1}))
        with caplog.at_level(logging.DEBUG, logger="navigator.envelope"):
            with pytest.raises(IncorrectPassword):
                run(vault.decrypt("wrong-pass", text))
        assert "Envelope authentication failed" in caplog.text
        assert "wrong-pass" not in caplog.text
        assert json.loads(text)["data"] not in caplog.text


# --- Test Key Vault ---

class TestKeyVault:
    """Low-level derive_key / encrypt_with_key / decrypt_with_key."""

    def test_reuse_key_across_values(self, key_vault):
        salt = generate_salt()
        key = run(key_vault.derive_key("pw", salt))
        values = [{"i": i} for i in range(5)]
        payloads = [run(key_vault.encrypt_with_key(key, v)) for v in values]
        assert all(set(p) == {"data", "iv"} for p in payloads)
        assert [run(key_vault.decrypt_with_key(key, p)) for p in payloads] == values

    def test_rederived_key_decrypts(self, key_vault):
        salt = generate_salt()
        key1 = run(key_vault.derive_key("pw", salt))
        key2 = run(key_vault.derive_key("pw", salt))
        payload = run(key_vault.encrypt_with_key(key1, [1, 2]))
        assert run(key_vault.decrypt_with_key(key2, payload)) == [1, 2]

    def test_decrypt_accepts_text_and_envelope(self, key_vault):
        key = run(key_vault.derive_key("pw", generate_salt()))
        payload = run(key_vault.encrypt_with_key(key, "v"))
        assert run(key_vault.decrypt_with_key(key, json.dumps(payload))) == "v"
        envelope = Envelope.from_dict(payload)
        assert run(key_vault.decrypt_with_key(key, envelope)) == "v"

    def test_wrong_key(self, key_vault):
        key1 = run(key_vault.derive_key("pw", generate_salt()))
        key2 = run(key_vault.derive_key("other", generate_salt()))
        payload = run(key_vault.encrypt_with_key(key1, "v"))
        with pytest.raises(AuthenticationFailure):
            run(key_vault.decrypt_with_key(key2, payload))

    def test_malformed_payload(self, key_vault):
        key = run(key_vault.derive_key("pw", generate_salt()))
        with pytest.raises(FormatError):
            run(key_vault.decrypt_with_key(key, {"data": "AAAA"}))

    def test_invalid_salt(self, key_vault):
        with pytest.raises(FormatError):
            run(key_vault.derive_key("pw", "***"))

    def test_module_level_functions(self):
        salt = generate_salt()
        key = run(navigator_envelope.derive_key("pw", salt))
        payload = run(navigator_envelope.encrypt_with_key(key, {"k": "v"}))
        assert run(navigator_envelope.decrypt_with_key(key, payload)) == {"k": "v"}

    def test_password_decrypts_key_envelope_with_salt(self, vault, key_vault):
        """A key-based payload plus its salt is a valid password envelope."""
        salt = generate_salt()
        key = run(key_vault.derive_key("pw", salt))
        payload = run(key_vault.encrypt_with_key(key, {"a": 1}))
        payload["salt"] = salt
        assert run(vault.decrypt("pw", json.dumps(payload))) == {"a": 1}


# --- Test Compatibility ---

class TestCompatibility:
    """Envelopes built independently in the stored wire format decrypt."""

    def test_decrypts_reference_envelope(self, vault):
        salt = bytes(range(32))
        nonce = bytes(range(100, 116))
        raw_key = hashlib.pbkdf2_hmac("sha256", b"hunter2", salt, 10000, dklen=32)
        data = AESGCM(raw_key).encrypt(nonce, b'{"a":1,"b":[true,null]}', None)
        text = json.dumps({
            "data": base64.b64encode(data).decode(),
            "iv": base64.b64encode(nonce).decode(),
            "salt": base64.b64encode(salt).decode(),
        })
        assert run(vault.decrypt("hunter2", text)) == {"a": 1, "b": [True, None]}

    def test_output_readable_independently(self, vault):
        text = run(vault.encrypt("hunter2", {"a": 1}))
        payload = orjson.loads(text)
        salt = base64.b64decode(payload["salt"])
        raw_key = hashlib.pbkdf2_hmac("sha256", b"hunter2", salt, 10000, dklen=32)
        plaintext = AESGCM(raw_key).decrypt(
            base64.b64decode(payload["iv"]), base64.b64decode(payload["data"]), None,
        )
        assert orjson.loads(plaintext) == {"a": 1}


# --- Test Concurrency ---

class TestConcurrency:
    """Independent calls need no coordination."""

    def test_gather_many(self, vault):
        async def _many():
            texts = await asyncio.gather(
                *(vault.encrypt(f"pw{i}", {"i": i}) for i in range(16))
            )
            return await asyncio.gather(
                *(vault.decrypt(f"pw{i}", t) for i, t in enumerate(texts))
            ), texts

        values, texts = run(_many())
        assert values == [{"i": i} for i in range(16)]
        assert len({orjson.loads(t)["salt"] for t in texts}) == 16
