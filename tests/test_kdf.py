"""Tests for the password key schedule and SecureBytes."""

import pytest

from tresor.security import (
    DEFAULT_TRANSFORM_ROUNDS,
    AesKdfConfig,
    SecureBytes,
    derive_composite_key,
    derive_key_aes_kdf,
    derive_master_key,
    generate_master_key,
)

SEED = bytes(range(32))
FOO_COMPOSITE = bytes.fromhex("c7ade88fc7a21498a6a5e5c385e1f68bed822b72aa63c4a9a48a02c2466ee29e")
FOO_TRANSFORMED = bytes.fromhex("43520ccaf5d461a0d42234fda4917194289d594dbc60ade7e4f17b1cec5c1578")
FOO_MASTER_KEY = bytes.fromhex("45613862c8595f4e9b853d10dcad69313a9e698e9d5a291dda5d8284e0c78f6c")


class TestAesKdfConfig:
    """Tests for AesKdfConfig validation."""

    def test_valid(self) -> None:
        config = AesKdfConfig(rounds=10, salt=SEED)
        assert config.rounds == 10
        assert config.salt == SEED

    def test_short_salt(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            AesKdfConfig(rounds=10, salt=b"short")

    def test_zero_rounds(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            AesKdfConfig(rounds=0, salt=SEED)

    def test_frozen(self) -> None:
        config = AesKdfConfig(rounds=10, salt=SEED)
        with pytest.raises(AttributeError):
            config.rounds = 20  # type: ignore[misc]

    def test_default_rounds(self) -> None:
        assert DEFAULT_TRANSFORM_ROUNDS == 60000


class TestKeySchedule:
    """Tests for the composite, transformed and master keys."""

    def test_composite_key(self) -> None:
        """Test that the composite key is SHA-256 applied twice."""
        with derive_composite_key("foo") as composite:
            assert composite.data == FOO_COMPOSITE

    def test_composite_key_utf8(self) -> None:
        assert derive_composite_key("pässwörd").data != derive_composite_key("passwort").data

    def test_transformed_key(self) -> None:
        result = derive_key_aes_kdf(FOO_COMPOSITE, AesKdfConfig(rounds=10, salt=SEED))
        assert result.data == FOO_TRANSFORMED

    def test_transformed_key_bad_input(self) -> None:
        with pytest.raises(ValueError, match="32-byte"):
            derive_key_aes_kdf(b"x" * 16, AesKdfConfig(rounds=10, salt=SEED))

    def test_master_key_vector(self) -> None:
        """Test password foo, both seeds 0..31 and 10 rounds."""
        master_key = generate_master_key("foo", master_seed=SEED, transform_seed=SEED, rounds=10)
        assert master_key.data == FOO_MASTER_KEY

    def test_master_key_from_composite(self) -> None:
        composite = SecureBytes(FOO_COMPOSITE)
        master_key = derive_master_key(composite, SEED, AesKdfConfig(rounds=10, salt=SEED))
        assert master_key.data == FOO_MASTER_KEY
        assert not composite.is_zeroized

    def test_rounds_change_key(self) -> None:
        a = generate_master_key("foo", SEED, SEED, rounds=10)
        b = generate_master_key("foo", SEED, SEED, rounds=11)
        assert a != b

    def test_master_seed_changes_key(self) -> None:
        a = generate_master_key("foo", SEED, SEED, rounds=10)
        b = generate_master_key("foo", bytes(32), SEED, rounds=10)
        assert a != b


class TestSecureBytes:
    """Tests for SecureBytes."""

    def test_data(self) -> None:
        buf = SecureBytes(b"secret")
        assert buf.data == b"secret"
        assert len(buf) == 6

    def test_zeroize(self) -> None:
        buf = SecureBytes(b"secret")
        buf.zeroize()
        assert buf.is_zeroized
        with pytest.raises(ValueError, match="zeroized"):
            _ = buf.data

    def test_context_manager_zeroizes(self) -> None:
        with SecureBytes(b"secret") as buf:
            assert buf.data == b"secret"
        assert buf.is_zeroized

    def test_repr_hides_contents(self) -> None:
        buf = SecureBytes(b"secret")
        assert "secret" not in repr(buf)
        assert "6 bytes" in repr(buf)

    def test_equality(self) -> None:
        assert SecureBytes(b"abc") == SecureBytes(b"abc")
        assert SecureBytes(b"abc") != SecureBytes(b"abd")

    def test_zeroized_never_equal(self) -> None:
        a = SecureBytes(b"abc")
        b = SecureBytes(b"abc")
        a.zeroize()
        assert a != b

    def test_unhashable(self) -> None:
        with pytest.raises(TypeError):
            hash(SecureBytes(b"abc"))
