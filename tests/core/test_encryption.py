import pytest

from app.core.encryption import SecretCodec, decrypt_coupon_code, derive_key, encrypt_coupon_code
from app.core.errors import ConfigurationError, TamperedOrCorrupt

SECRET = "k" * 32


def _flip_last_hex(value: str) -> str:
    return value[:-1] + ("0" if value[-1] != "0" else "1")


class TestSecretCodec:
    """Test cases for the AES-256-GCM coupon code envelope"""

    @pytest.fixture
    def codec(self):
        return SecretCodec(SECRET)

    @pytest.mark.parametrize("plaintext", ["SAVE20", "", "x" * 4096, "código-ÉTÉ-2024"])
    def test_round_trip(self, codec, plaintext):
        """decrypt(encrypt(p)) == p for empty, multi-KB and non-ASCII codes"""
        assert codec.decrypt(codec.encrypt(plaintext)) == plaintext

    def test_envelope_format(self, codec):
        """iv:tag:ciphertext, all lowercase hex, 16-byte iv and tag"""
        iv, tag, ciphertext = codec.encrypt("SAVE20").split(":")

        assert len(iv) == 32
        assert len(tag) == 32
        assert len(ciphertext) == len("SAVE20") * 2
        int(iv + tag + ciphertext, 16)

    def test_fresh_iv_per_call(self, codec):
        """Encrypting the same code twice never yields the same envelope"""
        assert codec.encrypt("SAVE20") != codec.encrypt("SAVE20")

    def test_tampered_ciphertext(self, codec):
        envelope = codec.encrypt("SAVE20")

        with pytest.raises(TamperedOrCorrupt):
            codec.decrypt(_flip_last_hex(envelope))

    def test_tampered_tag(self, codec):
        iv, tag, ciphertext = codec.encrypt("SAVE20").split(":")

        with pytest.raises(TamperedOrCorrupt):
            codec.decrypt(":".join((iv, _flip_last_hex(tag), ciphertext)))

    @pytest.mark.parametrize(
        "envelope",
        [
            "",
            "aa:bb",
            "aa:bb:cc:dd",
            "zz" * 16 + ":" + "00" * 16 + ":00",
            "00" * 12 + ":" + "00" * 16 + ":00",
        ],
    )
    def test_malformed_envelope(self, codec, envelope):
        """Wrong segment count, bad hex or bad iv length never decrypt"""
        with pytest.raises(TamperedOrCorrupt):
            codec.decrypt(envelope)

    def test_wrong_key(self, codec):
        envelope = codec.encrypt("SAVE20")

        with pytest.raises(TamperedOrCorrupt):
            SecretCodec("q" * 32).decrypt(envelope)

    def test_only_first_32_bytes_are_key_material(self, codec):
        envelope = codec.encrypt("SAVE20")

        assert SecretCodec(SECRET + "ignored-tail").decrypt(envelope) == "SAVE20"

    def test_short_secret_is_configuration_error(self):
        """A 16-character secret is refused, not padded"""
        codec = SecretCodec("s" * 16)

        with pytest.raises(ConfigurationError):
            codec.encrypt("SAVE20")
        with pytest.raises(ConfigurationError):
            codec.check_key()

    def test_missing_secret_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            SecretCodec(None).check_key()

    def test_derive_key(self):
        assert derive_key("a" * 40) == b"a" * 32
        with pytest.raises(ConfigurationError):
            derive_key("a" * 31)

    def test_module_helpers_use_configured_secret(self):
        assert decrypt_coupon_code(encrypt_coupon_code("WELCOME10")) == "WELCOME10"
