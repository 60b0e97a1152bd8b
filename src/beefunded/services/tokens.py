"""Access/refresh credential issuance, verification and revocation."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

import redis
from jose import JWTError, jwt

from beefunded.core.settings import settings
from beefunded.models import User
from beefunded.services import siwe

logger = logging.getLogger(__name__)

REFRESH_KEY_PREFIX: Final[str] = "refresh_token:"
DENYLIST_KEY_PREFIX: Final[str] = "blacklisted_access_token:"

TOKEN_TYPE_ACCESS: Final[str] = "access"
TOKEN_TYPE_REFRESH: Final[str] = "refresh"


class TokenError(Exception):
    """Base class for credential verification failures."""


class InvalidTokenError(TokenError):
    """Signature, expiry, claims or token type are not acceptable."""


class RevokedTokenError(TokenError):
    """The token was explicitly revoked (denylisted or removed from the allow-set)."""


@dataclass(frozen=True)
class AccessTokenPayload:
    sub: str
    jti: str
    username: str | None
    email: str | None
    exp: int


@dataclass(frozen=True)
class RefreshTokenPayload:
    sub: str
    jti: str
    iat: int
    exp: int


@dataclass(frozen=True)
class RefreshResult:
    """A new access token, plus the replacement refresh token when one was rotated in."""

    access_token: str
    refresh_token: str | None = None


def _now() -> int:
    return int(time.time())


class CredentialIssuer:
    """Mints and validates the two independent session credentials.

    Access tokens are verified statelessly and revoked through a denylist whose
    entries expire with the token. Refresh tokens are only honoured while their
    ``jti`` is present in the server-side allow-set.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client
        self.access_ttl = settings.access_token_ttl_seconds
        self.refresh_ttl = settings.refresh_token_ttl_seconds
        self.rotation_threshold = settings.refresh_rotation_threshold_seconds

    # --- SIWE -------------------------------------------------------------------
    def verify_siwe(self, message: str, signature: str, expected_nonce: str) -> str:
        """Return the wallet address proven by a signed SIWE message.

        Raises:
            siwe.NonceMismatchError: The message was issued for another nonce.
            siwe.InvalidSignatureError: The signature cannot be trusted.
        """
        return siwe.verify_siwe(
            message,
            signature,
            expected_nonce,
            domain=settings.siwe_domain,
        )

    # --- Encoding helpers ------------------------------------------------------
    def _encode(self, claims: dict[str, Any]) -> str:
        token: str = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        return token

    def _decode(self, token: str, expected_type: str) -> dict[str, Any]:
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm],
            )
        except JWTError as err:
            raise InvalidTokenError(str(err)) from err
        if claims.get("typ") != expected_type:
            raise InvalidTokenError("Unexpected token type")
        for claim in ("sub", "jti", "exp"):
            if not claims.get(claim):
                raise InvalidTokenError(f"Missing {claim} claim")
        return claims

    # --- Access tokens ---------------------------------------------------------
    def issue_access_token(self, user: User) -> str:
        """Sign a short-lived access token for ``user`` with a fresh ``jti``."""
        now = _now()
        return self._encode(
            {
                "sub": user.id,
                "username": user.username,
                "email": user.email,
                "jti": str(uuid.uuid4()),
                "typ": TOKEN_TYPE_ACCESS,
                "iat": now,
                "exp": now + self.access_ttl,
            }
        )

    def decode_access_token(self, token: str) -> AccessTokenPayload:
        """Verify signature and expiry of an access token.

        Denylist membership is checked separately by :meth:`is_access_token_revoked`.
        """
        claims = self._decode(token, TOKEN_TYPE_ACCESS)
        return AccessTokenPayload(
            sub=str(claims["sub"]),
            jti=str(claims["jti"]),
            username=claims.get("username"),
            email=claims.get("email"),
            exp=int(claims["exp"]),
        )

    def revoke_access_token(self, jti: str, remaining_ttl_seconds: int) -> bool:
        """Denylist ``jti`` for exactly as long as the token could still be used."""
        if remaining_ttl_seconds <= 0:
            return False
        self._redis.set(f"{DENYLIST_KEY_PREFIX}{jti}", "1", ex=int(remaining_ttl_seconds))
        return True

    def is_access_token_revoked(self, jti: str) -> bool:
        return bool(self._redis.exists(f"{DENYLIST_KEY_PREFIX}{jti}"))

    # --- Refresh tokens --------------------------------------------------------
    def issue_refresh_token(self, user: User) -> str:
        """Record a new refresh ``jti`` for ``user`` and return the signed token.

        The allow-set entry is written before the token leaves this method so a
        refresh call can never arrive ahead of its record.
        """
        now = _now()
        jti = str(uuid.uuid4())
        self._redis.set(f"{REFRESH_KEY_PREFIX}{jti}", user.id, ex=self.refresh_ttl)
        return self._encode(
            {
                "sub": user.id,
                "jti": jti,
                "typ": TOKEN_TYPE_REFRESH,
                "iat": now,
                "exp": now + self.refresh_ttl,
            }
        )

    def _decode_refresh_claims(self, token: str) -> RefreshTokenPayload:
        claims = self._decode(token, TOKEN_TYPE_REFRESH)
        return RefreshTokenPayload(
            sub=str(claims["sub"]),
            jti=str(claims["jti"]),
            iat=int(claims.get("iat", 0)),
            exp=int(claims["exp"]),
        )

    def decode_refresh_token(self, token: str) -> RefreshTokenPayload:
        """Verify a refresh token and require its ``jti`` to still be allowed.

        Raises:
            InvalidTokenError: Bad signature, expired, or wrong token type.
            RevokedTokenError: The ``jti`` record was deleted or belongs to someone else.
        """
        payload = self._decode_refresh_claims(token)
        owner = self._redis.get(f"{REFRESH_KEY_PREFIX}{payload.jti}")
        if owner is None or owner != payload.sub:
            raise RevokedTokenError("Refresh token is no longer valid")
        return payload

    def delete_refresh_record(self, jti: str) -> bool:
        return bool(self._redis.delete(f"{REFRESH_KEY_PREFIX}{jti}"))

    def rotate_if_near_expiry(
        self,
        payload: RefreshTokenPayload,
        user: User,
        *,
        now: int | None = None,
    ) -> str | None:
        """Replace the refresh token when less than the threshold lifetime remains.

        Returns the new token, or None when the current one is kept.

        Raises:
            RevokedTokenError: A concurrent rotation or sign-out removed the record first.
        """
        current = _now() if now is None else now
        if payload.exp - current >= self.rotation_threshold:
            return None
        if not self.delete_refresh_record(payload.jti):
            raise RevokedTokenError("Refresh token was already rotated")
        logger.info("Rotating refresh token %s for user %s", payload.jti, user.id)
        return self.issue_refresh_token(user)

    def refresh(
        self,
        refresh_token: str,
        load_user: Callable[[str], User | None],
    ) -> RefreshResult:
        """Exchange a valid refresh token for a new access token.

        ``load_user`` resolves the token subject; an unknown subject is treated
        like a revoked token.

        Raises:
            InvalidTokenError: The refresh token fails verification.
            RevokedTokenError: The token left the allow-set or its user is gone.
        """
        payload = self.decode_refresh_token(refresh_token)
        user = load_user(payload.sub)
        if user is None:
            raise RevokedTokenError("Unknown token subject")
        rotated = self.rotate_if_near_expiry(payload, user)
        return RefreshResult(access_token=self.issue_access_token(user), refresh_token=rotated)

    # --- Sign-out --------------------------------------------------------------
    def sign_out(self, refresh_token: str | None, access_token: str | None) -> None:
        """Invalidate whatever credentials were presented, best effort.

        Each token is handled independently; failures are logged and never raised.
        """
        if refresh_token:
            try:
                refresh_payload = self._decode_refresh_claims(refresh_token)
                self.delete_refresh_record(refresh_payload.jti)
            except TokenError as err:
                logger.warning("Attempted to sign out with invalid refresh token: %s", err)
            except redis.RedisError as err:
                logger.warning("Could not delete refresh token record on sign-out: %s", err)

        if access_token:
            try:
                access_payload = self.decode_access_token(access_token)
                self.revoke_access_token(access_payload.jti, access_payload.exp - _now())
            except TokenError as err:
                logger.warning(
                    "Attempted to sign out with invalid access token (for blacklisting): %s",
                    err,
                )
            except redis.RedisError as err:
                logger.warning("Could not denylist access token on sign-out: %s", err)
