"""Shared API dependencies for authentication and common functionality."""

import logging
from typing import Annotated

import redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from beefunded.db.session import get_db
from beefunded.models import User
from beefunded.services.nonce import NonceStore
from beefunded.services.notifications import (
    NotificationService,
    NotificationStreamRegistry,
    get_notification_registry,
)
from beefunded.services.redis_client import get_redis
from beefunded.services.tokens import CredentialIssuer, TokenError

logger = logging.getLogger(__name__)

# Clients that lost their token sometimes send these literally.
PLACEHOLDER_TOKENS = frozenset({"", "undefined", "null"})

# HTTP Bearer scheme for JWT authentication; missing headers are handled below
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
RedisDep = Annotated[redis.Redis, Depends(get_redis)]


def get_nonce_store(client: RedisDep) -> NonceStore:
    return NonceStore(client)


def get_credential_issuer(client: RedisDep) -> CredentialIssuer:
    return CredentialIssuer(client)


def get_notification_service(db: SessionDep) -> NotificationService:
    return NotificationService(db)


NonceStoreDep = Annotated[NonceStore, Depends(get_nonce_store)]
CredentialIssuerDep = Annotated[CredentialIssuer, Depends(get_credential_issuer)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
NotificationRegistryDep = Annotated[
    NotificationStreamRegistry, Depends(get_notification_registry)
]


def clean_token(token: str | None) -> str | None:
    """Return ``token`` unless it is missing or a placeholder literal."""
    if token is None:
        return None
    token = token.strip()
    if token in PLACEHOLDER_TOKENS:
        return None
    return token


def _unauthenticated() -> HTTPException:
    # Same response for every failed check.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
    issuer: CredentialIssuerDep,
) -> User:
    """Get the current authenticated user from the bearer access token.

    Args:
        request: Incoming request; the user is attached to ``request.state.user``
        credentials: HTTP Bearer token credentials, if any
        db: Database session
        issuer: Credential issuer used to verify and check revocation

    Returns:
        User object for the authenticated user

    Raises:
        HTTPException: 401 Unauthenticated if any check fails
    """
    token = clean_token(credentials.credentials if credentials else None)
    if token is None:
        raise _unauthenticated()

    try:
        payload = issuer.decode_access_token(token)
    except TokenError as err:
        raise _unauthenticated() from err

    try:
        revoked = issuer.is_access_token_revoked(payload.jti)
    except redis.RedisError as err:
        logger.warning("Could not check access token denylist: %s", err)
        raise _unauthenticated() from err
    if revoked:
        raise _unauthenticated()

    user = db.get(User, payload.sub)
    if user is None:
        raise _unauthenticated()

    request.state.user = user
    return user


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]
