"""Tests for the inner random stream."""

import base64
import hashlib

import pytest
from conftest import EXAMPLE_PROTECTED_STREAM_KEY

from tresor.exceptions import UnsupportedStreamError
from tresor.security.stream import (
    SALSA20_NONCE,
    InnerRandomStreamType,
    NullStream,
    Salsa20Stream,
    create_protected_stream,
)


def _mask(stream: Salsa20Stream, text: str) -> str:
    return base64.b64encode(stream.transform(text.encode("utf-8"))).decode("ascii")


class TestSalsa20Stream:
    """Tests for Salsa20Stream."""

    def test_known_vector(self) -> None:
        """Test key 0..31 with the KeePass nonce."""
        stream = Salsa20Stream(bytes(range(32)))
        assert _mask(stream, "I love capybaras") == "EXPgIU5fBPZ+HyP+4Dg+1A=="

    def test_nonce(self) -> None:
        assert SALSA20_NONCE == bytes.fromhex("e830094b97205d2a")

    def test_key_from_protected_stream_key(self) -> None:
        """Test that the header value is hashed before use."""
        direct = Salsa20Stream(hashlib.sha256(EXAMPLE_PROTECTED_STREAM_KEY).digest())
        derived = Salsa20Stream.from_protected_stream_key(EXAMPLE_PROTECTED_STREAM_KEY)
        data = b"some protected value"
        assert direct.transform(data) == derived.transform(data)

    def test_position_shared_across_calls(self) -> None:
        """Test that consecutive values consume one continuous keystream."""
        stream = Salsa20Stream.from_protected_stream_key(EXAMPLE_PROTECTED_STREAM_KEY)
        assert _mask(stream, "Password") == "02E+MJE3Az0="
        assert _mask(stream, "OldPassword") == "y/IFMrvkGRfnOfo="
        assert _mask(stream, "hunter2") == "I7TWJ7s9gw=="

    def test_order_matters(self) -> None:
        """Test that the same values in another order mask differently."""
        stream = Salsa20Stream.from_protected_stream_key(EXAMPLE_PROTECTED_STREAM_KEY)
        assert _mask(stream, "hunter2") == "63UjN4MqQw=="
        assert _mask(stream, "Password") == "CeXtEhW15Q4="
        assert _mask(stream, "OldPassword") == "L+QvziqyyySxPdU="

    def test_split_calls_equal_single_call(self) -> None:
        one = Salsa20Stream(bytes(32))
        two = Salsa20Stream(bytes(32))
        data = bytes(range(100))
        assert one.transform(data) == two.transform(data[:37]) + two.transform(data[37:])

    def test_encrypt_decrypt_aliases(self) -> None:
        key = bytes(range(32))
        ciphertext = Salsa20Stream(key).encrypt(b"hunter2")
        assert Salsa20Stream(key).decrypt(ciphertext) == b"hunter2"

    def test_empty_value_does_not_advance(self) -> None:
        stream = Salsa20Stream(bytes(range(32)))
        assert stream.transform(b"") == b""
        assert _mask(stream, "I love capybaras") == "EXPgIU5fBPZ+HyP+4Dg+1A=="

    def test_bad_key_length(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            Salsa20Stream(b"short")


class TestCreateProtectedStream:
    """Tests for the stream factory."""

    def test_salsa20(self) -> None:
        stream = create_protected_stream(InnerRandomStreamType.SALSA20, bytes(32))
        assert isinstance(stream, Salsa20Stream)

    def test_none(self) -> None:
        stream = create_protected_stream(InnerRandomStreamType.NONE, bytes(32))
        assert isinstance(stream, NullStream)
        assert stream.transform(b"plain") == b"plain"

    def test_arc4_rejected(self) -> None:
        with pytest.raises(UnsupportedStreamError, match="1"):
            create_protected_stream(InnerRandomStreamType.ARC4, bytes(32))

    def test_unknown_rejected(self) -> None:
        with pytest.raises(UnsupportedStreamError):
            create_protected_stream(7, bytes(32))
