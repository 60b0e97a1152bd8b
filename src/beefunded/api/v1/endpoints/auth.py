# src/beefunded/api/v1/endpoints/auth.py
"""Authentication endpoints for the BeeFunded API."""

from __future__ import annotations

import logging
from typing import Annotated

import redis
from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.exc import IntegrityError

from beefunded.api.v1.dependencies import (
    CredentialIssuerDep,
    CurrentUserDep,
    NonceStoreDep,
    SessionDep,
    bearer_scheme,
    clean_token,
)
from beefunded.core.settings import settings
from beefunded.models import User
from beefunded.schemas.auth import (
    AccessTokenResponse,
    ExistsRequest,
    ExistsResponse,
    NonceResponse,
    SignInRequest,
    SignUpRequest,
)
from beefunded.schemas.user import UserResponse
from beefunded.services import users as user_service
from beefunded.services.siwe import InvalidSignatureError, NonceMismatchError
from beefunded.services.tokens import CredentialIssuer, TokenError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

REFRESH_COOKIE = "refresh_token"

RefreshCookie = Annotated[str | None, Cookie(alias=REFRESH_COOKIE)]
BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=settings.refresh_token_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        REFRESH_COOKIE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _consume_nonce(nonce_store: NonceStoreDep, nonce: str) -> None:
    if not nonce_store.consume(nonce):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid nonce",
        )


def _verify_wallet(
    issuer: CredentialIssuer,
    payload: SignInRequest | SignUpRequest,
) -> str:
    """Verify the signed SIWE message and return the proven wallet address."""
    try:
        address = issuer.verify_siwe(payload.message, payload.signature, payload.nonce)
    except NonceMismatchError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid nonce",
        ) from err
    except InvalidSignatureError as err:
        logger.info("Rejected SIWE signature for %s: %s", payload.address, err)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from err

    if address.lower() != payload.address.lower():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )
    return address


def _start_session(
    response: Response,
    issuer: CredentialIssuer,
    user: User,
) -> AccessTokenResponse:
    """Issue both credentials; the refresh token is only ever sent as a cookie."""
    access_token = issuer.issue_access_token(user)
    refresh_token = issuer.issue_refresh_token(user)
    _set_refresh_cookie(response, refresh_token)
    return AccessTokenResponse(access_token=access_token)


@router.get("/nonce", summary="Issue a single-use SIWE nonce", response_model=NonceResponse)
def get_nonce(nonce_store: NonceStoreDep) -> NonceResponse:
    return NonceResponse(nonce=nonce_store.issue())


@router.post(
    "/exists",
    summary="Check whether an address, email or username is taken",
    response_model=ExistsResponse,
)
def exists(payload: ExistsRequest, db: SessionDep) -> ExistsResponse:
    return ExistsResponse(
        exists=user_service.identity_exists(
            db,
            address=payload.address,
            email=payload.email,
            username=payload.username,
        )
    )


@router.post(
    "/signup",
    summary="Create an account from a signed SIWE message",
    status_code=status.HTTP_201_CREATED,
    response_model=AccessTokenResponse,
)
def sign_up(
    payload: SignUpRequest,
    response: Response,
    db: SessionDep,
    nonce_store: NonceStoreDep,
    issuer: CredentialIssuerDep,
) -> AccessTokenResponse:
    """Register a wallet and open a session.

    The nonce is consumed before anything else so a failed attempt still burns it.
    """
    _consume_nonce(nonce_store, payload.nonce)

    if user_service.find_user_by_address(db, payload.address) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        )

    address = _verify_wallet(issuer, payload)

    if user_service.identity_exists(db, email=payload.email, username=payload.username):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already taken",
        )

    try:
        user = user_service.register_user(
            db,
            address=address,
            username=payload.username,
            email=payload.email,
            display_name=payload.display_name,
            bio=payload.bio,
            accepted_terms=payload.accepted_terms,
        )
    except IntegrityError as err:
        db.rollback()
        logger.info("Concurrent sign-up lost the race for %s: %s", address, err.orig)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already taken",
        ) from err
    logger.info("Registered user %s for %s", user.id, address)
    return _start_session(response, issuer, user)


@router.post(
    "/signin",
    summary="Authenticate with a signed SIWE message",
    status_code=status.HTTP_200_OK,
    response_model=AccessTokenResponse,
)
def sign_in(
    payload: SignInRequest,
    response: Response,
    db: SessionDep,
    nonce_store: NonceStoreDep,
    issuer: CredentialIssuerDep,
) -> AccessTokenResponse:
    _consume_nonce(nonce_store, payload.nonce)

    user = user_service.find_user_by_address(db, payload.address)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    _verify_wallet(issuer, payload)
    return _start_session(response, issuer, user)


@router.post(
    "/signout",
    summary="End the current session",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def sign_out(
    issuer: CredentialIssuerDep,
    credentials: BearerCredentials,
    refresh_token: RefreshCookie = None,
) -> Response:
    """Revoke whatever credentials were presented. Always succeeds."""
    issuer.sign_out(
        clean_token(refresh_token),
        clean_token(credentials.credentials if credentials else None),
    )
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_refresh_cookie(response)
    return response


@router.get("/me", summary="Return the authenticated user", response_model=UserResponse)
def me(current_user: CurrentUserDep) -> User:
    return current_user


@router.get(
    "/refresh-token",
    summary="Exchange the refresh cookie for a new access token",
    response_model=AccessTokenResponse,
)
def refresh_access_token(
    response: Response,
    db: SessionDep,
    issuer: CredentialIssuerDep,
    refresh_token: RefreshCookie = None,
) -> AccessTokenResponse:
    """Mint a new access token; the refresh cookie is rotated when close to expiry."""
    token = clean_token(refresh_token)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing refresh token",
        )

    try:
        result = issuer.refresh(token, lambda user_id: user_service.get_user(db, user_id))
    except (TokenError, redis.RedisError) as err:
        logger.info("Refresh rejected: %s", err)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        ) from err

    if result.refresh_token is not None:
        _set_refresh_cookie(response, result.refresh_token)
    return AccessTokenResponse(access_token=result.access_token)
