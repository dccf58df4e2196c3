"""At-rest envelope for stored HTML bodies.

Envelopes are self-describing text:

- ``enc:<nonce hex>:<tag hex>:<ciphertext hex>``: AES-256-GCM
- ``plain:<text>``: stored without a key configured
- anything else: legacy untagged text, returned as-is

``decrypt`` never raises for bad input; it returns one of the sentinels
below so a listing can carry on past a record it cannot read.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from html2png.core.config import get_settings

logger = structlog.get_logger()

ENC_PREFIX = "enc:"
PLAIN_PREFIX = "plain:"
NONCE_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32

DECRYPTION_FAILED = "[Decryption failed]"
KEY_UNAVAILABLE = "[Encrypted content - key not available]"


def derive_key(secret: str) -> bytes:
    """Turn an operator-supplied secret into a 32-byte AES key.

    A 64-char hex string or a 44-char base64 string is used directly when it
    decodes to exactly 32 bytes; anything else is treated as a passphrase and
    hashed with SHA-256.
    """
    if len(secret) == 64:
        try:
            return bytes.fromhex(secret)
        except ValueError:
            pass
    if len(secret) == 44:
        try:
            raw = base64.b64decode(secret, validate=True)
        except (binascii.Error, ValueError):
            raw = b""
        if len(raw) == KEY_LENGTH:
            return raw
    return hashlib.sha256(secret.encode("utf-8")).digest()


class EnvelopeCodec:
    def __init__(self, key: bytes | None):
        if key is not None and len(key) != KEY_LENGTH:
            raise ValueError(f"encryption key must be {KEY_LENGTH} bytes")
        self._aead = AESGCM(key) if key else None

    @classmethod
    def from_secret(cls, secret: str | None) -> "EnvelopeCodec":
        return cls(derive_key(secret) if secret else None)

    @property
    def enabled(self) -> bool:
        return self._aead is not None

    def encrypt(self, text: str) -> str:
        if self._aead is None:
            return f"{PLAIN_PREFIX}{text}"

        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, text.encode("utf-8"), None)
        # AESGCM appends the tag; keep it as its own envelope field.
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{ENC_PREFIX}{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> str:
        if envelope.startswith(PLAIN_PREFIX):
            return envelope[len(PLAIN_PREFIX):]
        if not envelope.startswith(ENC_PREFIX):
            return envelope

        if self._aead is None:
            logger.warning("crypto.decrypt.key_unavailable")
            return KEY_UNAVAILABLE

        parts = envelope[len(ENC_PREFIX):].split(":")
        if len(parts) != 3:
            logger.warning("crypto.decrypt.malformed", reason="field_count", fields=len(parts))
            return DECRYPTION_FAILED

        try:
            nonce = bytes.fromhex(parts[0])
            tag = bytes.fromhex(parts[1])
            ciphertext = bytes.fromhex(parts[2])
            if len(tag) != TAG_LENGTH or not nonce:
                raise ValueError("bad nonce or tag length")
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError) as e:
            logger.warning("crypto.decrypt.failed", error_type=type(e).__name__)
            return DECRYPTION_FAILED


def codec_from_settings() -> EnvelopeCodec:
    return EnvelopeCodec.from_secret(get_settings().ENCRYPTION_KEY)
