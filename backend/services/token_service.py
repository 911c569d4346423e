"""Access-token decryption for stored Plaid credentials.

Tokens are stored as ``base64(nonce || AES-256-GCM ciphertext)``.  Many
rows predate the encryption-key rollout and hold a plain base64 token, and
a few hold the raw token, so decryption is an ordered list of strategies:

1. ``aes-gcm``: authenticated decryption with the configured key
2. ``base64``: plain base64, accepted only if it decodes to an ``access-`` token
3. ``passthrough``: hand the blob back unchanged and let Plaid reject it

Every attempt is logged.  The decryptor never raises for a bad blob; the
caller validates the token prefix and records a per-institution error.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config import settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_PREFIX = "access-"
NONCE_BYTES = 12
KEY_BYTES = 32

STRATEGY_AES_GCM = "aes-gcm"
STRATEGY_BASE64 = "base64"
STRATEGY_PASSTHROUGH = "passthrough"


class TokenDecryptionError(Exception):
    """A single strategy could not produce a token."""

    pass


@dataclass(frozen=True)
class DecryptionResult:
    """Plaintext token plus the strategy that produced it."""

    token: str
    strategy: str

    @property
    def is_valid(self) -> bool:
        return looks_like_access_token(self.token)


def looks_like_access_token(token: str | None) -> bool:
    """Return True if ``token`` follows Plaid's ``access-<env>-<id>`` format."""
    return bool(token) and token.startswith(ACCESS_TOKEN_PREFIX)


def derive_key(secret: str) -> bytes:
    """Turn the configured secret into a 256-bit key.

    The secret is right-padded with ``"0"`` and truncated to 32 bytes, the
    same derivation the link flow uses when it encrypts tokens.
    """
    return secret.encode("utf-8").ljust(KEY_BYTES, b"0")[:KEY_BYTES]


def _b64decode(blob: str) -> bytes:
    try:
        return base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as e:
        raise TokenDecryptionError(f"not valid base64: {e}") from e


class TokenDecryptor:
    """Decrypts (and encrypts) stored Plaid access tokens."""

    def __init__(self, encryption_key: str | None = None):
        self._encryption_key = (
            encryption_key if encryption_key is not None else settings.PLAID_ENCRYPTION_KEY
        )

    @property
    def has_key(self) -> bool:
        return bool(self._encryption_key)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _decrypt_aes_gcm(self, blob: str) -> str:
        if not self.has_key:
            raise TokenDecryptionError("no encryption key configured")
        combined = _b64decode(blob)
        if len(combined) <= NONCE_BYTES:
            raise TokenDecryptionError("ciphertext too short")
        nonce, ciphertext = combined[:NONCE_BYTES], combined[NONCE_BYTES:]
        try:
            plaintext = AESGCM(derive_key(self._encryption_key)).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise TokenDecryptionError("authentication tag mismatch") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenDecryptionError("plaintext is not UTF-8") from e

    def _decode_base64(self, blob: str) -> str:
        try:
            decoded = _b64decode(blob).decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenDecryptionError("decoded bytes are not UTF-8") from e
        if not looks_like_access_token(decoded):
            raise TokenDecryptionError(
                f"decoded value does not start with {ACCESS_TOKEN_PREFIX!r}"
            )
        return decoded

    def strategies(self) -> list[tuple[str, Callable[[str], str]]]:
        """The ordered decryption attempts."""
        return [
            (STRATEGY_AES_GCM, self._decrypt_aes_gcm),
            (STRATEGY_BASE64, self._decode_base64),
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def decrypt_with_strategy(self, blob: str) -> DecryptionResult:
        """Run the strategies in order and report which one succeeded."""
        if not self.has_key:
            logger.warning("No token encryption key configured; skipping AES-GCM")

        for name, strategy in self.strategies():
            if name == STRATEGY_AES_GCM and not self.has_key:
                continue
            try:
                token = strategy(blob)
            except TokenDecryptionError as e:
                logger.info("Token decryption via %s failed: %s", name, e)
                continue
            logger.debug("Token decrypted via %s (%s...)", name, token[:14])
            return DecryptionResult(token=token, strategy=name)

        logger.error(
            "All token decryption strategies failed; passing stored value through"
        )
        return DecryptionResult(token=blob, strategy=STRATEGY_PASSTHROUGH)

    def decrypt(self, blob: str) -> str:
        """Return the plaintext access token for a stored blob."""
        return self.decrypt_with_strategy(blob).token

    def encrypt(self, token: str) -> str:
        """Encrypt a token for storage (plain base64 when no key is configured)."""
        if not self.has_key:
            logger.warning("No token encryption key configured; storing base64 only")
            return base64.b64encode(token.encode("utf-8")).decode("ascii")

        nonce = os.urandom(NONCE_BYTES)
        ciphertext = AESGCM(derive_key(self._encryption_key)).encrypt(
            nonce, token.encode("utf-8"), None
        )
        return base64.b64encode(nonce + ciphertext).decode("ascii")
