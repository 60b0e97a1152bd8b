"""Single-use SIWE challenge nonces backed by Redis."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Final

import redis

from beefunded.core.settings import settings

logger = logging.getLogger(__name__)

NONCE_KEY_PREFIX: Final[str] = "nonce:"
NONCE_VALID_MARKER: Final[str] = "valid"
# EIP-4361 asks for at least 8 alphanumeric characters.
NONCE_LENGTH: Final[int] = 17
_ALPHABET: Final[str] = string.ascii_letters + string.digits


def generate_nonce(length: int = NONCE_LENGTH) -> str:
    """Return a cryptographically random alphanumeric nonce."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


class NonceStore:
    """Issues and consumes short-lived, single-use nonces."""

    def __init__(self, client: redis.Redis, ttl_seconds: int | None = None) -> None:
        self._redis = client
        self._ttl_seconds = ttl_seconds or settings.nonce_ttl_seconds

    @staticmethod
    def _key(nonce: str) -> str:
        return f"{NONCE_KEY_PREFIX}{nonce}"

    def issue(self) -> str:
        """Create a new nonce and mark it valid until it expires."""
        nonce = generate_nonce()
        self._redis.set(self._key(nonce), NONCE_VALID_MARKER, ex=self._ttl_seconds)
        return nonce

    def consume(self, nonce: str) -> bool:
        """Invalidate ``nonce`` and report whether it was still valid.

        GETDEL makes check-and-delete a single server-side step, so two
        concurrent sign-ins presenting the same nonce cannot both succeed.
        """
        if not nonce:
            return False
        value = self._redis.getdel(self._key(nonce))
        if value != NONCE_VALID_MARKER:
            logger.info("Rejected unknown or already consumed nonce")
            return False
        return True
