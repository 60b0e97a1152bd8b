# tests/test_tokens.py
"""Tests for access/refresh credential handling."""

from __future__ import annotations

import time

import pytest
import redis
from jose import jwt

from beefunded.core.settings import settings
from beefunded.services.tokens import (
    DENYLIST_KEY_PREFIX,
    REFRESH_KEY_PREFIX,
    CredentialIssuer,
    InvalidTokenError,
    RefreshTokenPayload,
    RevokedTokenError,
)


def test_access_token_round_trip(issuer: CredentialIssuer, test_user) -> None:
    token = issuer.issue_access_token(test_user)

    payload = issuer.decode_access_token(token)

    assert payload.sub == test_user.id
    assert payload.username == "alice"
    assert payload.email == "alice@example.com"
    assert payload.exp - int(time.time()) <= settings.access_token_ttl_seconds


def test_access_tokens_get_distinct_jti(issuer: CredentialIssuer, test_user) -> None:
    first = issuer.decode_access_token(issuer.issue_access_token(test_user))
    second = issuer.decode_access_token(issuer.issue_access_token(test_user))

    assert first.jti != second.jti


def test_refresh_token_is_not_an_access_token(issuer: CredentialIssuer, test_user) -> None:
    refresh = issuer.issue_refresh_token(test_user)

    with pytest.raises(InvalidTokenError):
        issuer.decode_access_token(refresh)


def test_expired_access_token_is_rejected(issuer: CredentialIssuer, test_user) -> None:
    now = int(time.time())
    token = jwt.encode(
        {"sub": test_user.id, "jti": "j1", "typ": "access", "iat": now - 120, "exp": now - 60},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )

    with pytest.raises(InvalidTokenError):
        issuer.decode_access_token(token)


def test_tampered_access_token_is_rejected(issuer: CredentialIssuer, test_user) -> None:
    token = jwt.encode(
        {"sub": test_user.id, "jti": "j1", "typ": "access", "exp": int(time.time()) + 60},
        "some-other-secret",
        algorithm=settings.jwt_algorithm,
    )

    with pytest.raises(InvalidTokenError):
        issuer.decode_access_token(token)


def test_refresh_token_is_recorded_in_allow_set(issuer, redis_client, test_user) -> None:
    token = issuer.issue_refresh_token(test_user)

    payload = issuer.decode_refresh_token(token)

    assert redis_client.get(f"{REFRESH_KEY_PREFIX}{payload.jti}") == test_user.id
    ttl = redis_client.ttl(f"{REFRESH_KEY_PREFIX}{payload.jti}")
    assert 0 < ttl <= settings.refresh_token_ttl_seconds


def test_deleted_refresh_record_revokes_token(issuer, test_user) -> None:
    token = issuer.issue_refresh_token(test_user)
    payload = issuer.decode_refresh_token(token)

    issuer.delete_refresh_record(payload.jti)

    with pytest.raises(RevokedTokenError):
        issuer.decode_refresh_token(token)


def test_revoke_access_token_uses_remaining_lifetime(issuer, redis_client) -> None:
    assert issuer.revoke_access_token("abc", 120) is True

    assert issuer.is_access_token_revoked("abc") is True
    assert 0 < redis_client.ttl(f"{DENYLIST_KEY_PREFIX}abc") <= 120


def test_revoke_expired_access_token_is_a_no_op(issuer) -> None:
    assert issuer.revoke_access_token("abc", 0) is False
    assert issuer.is_access_token_revoked("abc") is False


class TestRotation:
    """Refresh tokens are only replaced inside the last day of their lifetime."""

    def _payload(self, issuer: CredentialIssuer, user, seconds_left: int, now: int):
        token = issuer.issue_refresh_token(user)
        payload = issuer.decode_refresh_token(token)
        return RefreshTokenPayload(
            sub=payload.sub,
            jti=payload.jti,
            iat=payload.iat,
            exp=now + seconds_left,
        )

    def test_keeps_token_with_a_day_left(self, issuer, redis_client, test_user) -> None:
        now = int(time.time())
        payload = self._payload(issuer, test_user, 86400, now)

        assert issuer.rotate_if_near_expiry(payload, test_user, now=now) is None
        assert redis_client.get(f"{REFRESH_KEY_PREFIX}{payload.jti}") == test_user.id

    def test_rotates_token_just_under_a_day_left(self, issuer, redis_client, test_user) -> None:
        now = int(time.time())
        payload = self._payload(issuer, test_user, 86399, now)

        new_token = issuer.rotate_if_near_expiry(payload, test_user, now=now)

        assert new_token is not None
        assert redis_client.get(f"{REFRESH_KEY_PREFIX}{payload.jti}") is None
        assert issuer.decode_refresh_token(new_token).sub == test_user.id

    def test_second_rotation_of_same_token_fails(self, issuer, test_user) -> None:
        now = int(time.time())
        payload = self._payload(issuer, test_user, 60, now)

        assert issuer.rotate_if_near_expiry(payload, test_user, now=now) is not None
        with pytest.raises(RevokedTokenError):
            issuer.rotate_if_near_expiry(payload, test_user, now=now)


class TestSignOut:
    def test_revokes_both_credentials(self, issuer, test_user) -> None:
        access = issuer.issue_access_token(test_user)
        refresh = issuer.issue_refresh_token(test_user)

        issuer.sign_out(refresh, access)

        assert issuer.is_access_token_revoked(issuer.decode_access_token(access).jti)
        with pytest.raises(RevokedTokenError):
            issuer.decode_refresh_token(refresh)

    def test_invalid_tokens_are_ignored(self, issuer) -> None:
        issuer.sign_out("garbage", "also-garbage")
        issuer.sign_out(None, None)

    def test_redis_failures_are_swallowed(self, issuer, test_user, mocker) -> None:
        access = issuer.issue_access_token(test_user)
        refresh = issuer.issue_refresh_token(test_user)
        mocker.patch.object(issuer._redis, "delete", side_effect=redis.ConnectionError("down"))
        mocker.patch.object(issuer._redis, "set", side_effect=redis.ConnectionError("down"))

        issuer.sign_out(refresh, access)


class TestRefresh:
    def test_returns_access_token_without_rotation(self, issuer, test_user) -> None:
        refresh = issuer.issue_refresh_token(test_user)

        result = issuer.refresh(refresh, lambda user_id: test_user)

        assert result.refresh_token is None
        assert issuer.decode_access_token(result.access_token).sub == test_user.id

    def test_unknown_subject_is_revoked(self, issuer, test_user) -> None:
        refresh = issuer.issue_refresh_token(test_user)

        with pytest.raises(RevokedTokenError):
            issuer.refresh(refresh, lambda user_id: None)
