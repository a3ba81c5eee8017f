"""
Coupon Code Encryption

Coupon codes are stored encrypted at rest with AES-256-GCM and only decrypted
on the paid release path (and for the buyer's own purchased list).

Envelope format:
    <iv hex>:<auth tag hex>:<ciphertext hex>

Each call to encrypt() draws a fresh 16-byte IV, so encrypting the same code
twice yields different envelopes. The key is taken from ENCRYPTION_SECRET,
which must be at least 32 bytes; a shorter secret is a configuration error
raised the first time the key is needed.
"""

import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.config import settings
from app.core.errors import ConfigurationError, TamperedOrCorrupt

KEY_NUM_BYTES = 32
IV_NUM_BYTES = 16
TAG_NUM_BYTES = 16
SEPARATOR = ":"


class SecretCodec:
    """AES-256-GCM codec bound to one long-lived secret."""

    def __init__(self, secret: Optional[str]):
        self._secret = secret
        self._aead: Optional[AESGCM] = None

    def _cipher(self) -> AESGCM:
        if self._aead is None:
            self._aead = AESGCM(derive_key(self._secret))
        return self._aead

    def check_key(self) -> None:
        """Derive the key now; raises ConfigurationError when the secret is unusable."""
        self._cipher()

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_NUM_BYTES)
        sealed = self._cipher().encrypt(iv, plaintext.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_NUM_BYTES], sealed[-TAG_NUM_BYTES:]
        return SEPARATOR.join((iv.hex(), tag.hex(), ciphertext.hex()))

    def decrypt(self, envelope: str) -> str:
        aead = self._cipher()
        iv, tag, ciphertext = _split_envelope(envelope)
        try:
            plaintext = aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            raise TamperedOrCorrupt("authentication tag mismatch")
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise TamperedOrCorrupt("plaintext is not valid UTF-8")


def derive_key(secret: Optional[str]) -> bytes:
    """Return the 32-byte AES key for a secret, refusing short secrets."""
    raw = (secret or "").encode("utf-8")
    if len(raw) < KEY_NUM_BYTES:
        raise ConfigurationError(f"ENCRYPTION_SECRET must be at least {KEY_NUM_BYTES} characters")
    return raw[:KEY_NUM_BYTES]


def _split_envelope(envelope: str) -> tuple[bytes, bytes, bytes]:
    if not isinstance(envelope, str):
        raise TamperedOrCorrupt("envelope must be a string")
    parts = envelope.split(SEPARATOR)
    if len(parts) != 3:
        raise TamperedOrCorrupt("invalid encrypted format")
    try:
        iv, tag, ciphertext = (binascii.unhexlify(part) for part in parts)
    except (binascii.Error, ValueError):
        raise TamperedOrCorrupt("envelope segments must be hex encoded")
    if len(iv) != IV_NUM_BYTES or len(tag) != TAG_NUM_BYTES:
        raise TamperedOrCorrupt("invalid iv or tag length")
    return iv, tag, ciphertext


secret_codec = SecretCodec(settings.ENCRYPTION_SECRET)


def encrypt_coupon_code(code: str) -> str:
    return secret_codec.encrypt(code)


def decrypt_coupon_code(envelope: str) -> str:
    return secret_codec.decrypt(envelope)
