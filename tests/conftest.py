# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import fakeredis
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-beefunded-tests")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("CHAIN_LISTENER_ENABLED", "false")

from beefunded.db.session import Base, engine_options
from beefunded.db.session import get_db as app_get_session
from beefunded.main import app as fastapi_app
from beefunded.models import User
from beefunded.services.notifications import NotificationStreamRegistry
from beefunded.services.redis_client import get_redis
from beefunded.services.tokens import CredentialIssuer
from beefunded.services.users import register_user

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(TEST_DB_URL, **engine_options(TEST_DB_URL))
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def session_factory(db_session: Session) -> Callable[[], Any]:
    """Hand the test session to code that opens its own sessions."""

    @contextmanager
    def _factory() -> Iterator[Session]:
        yield db_session

    return _factory


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def override_session_dependency(
    app: FastAPI,
    db_session: Session,
    redis_client: fakeredis.FakeRedis,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_redis] = lambda: redis_client
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_redis, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def issuer(redis_client: fakeredis.FakeRedis) -> CredentialIssuer:
    return CredentialIssuer(redis_client)


@pytest.fixture()
def registry() -> NotificationStreamRegistry:
    return NotificationStreamRegistry()


@pytest.fixture()
def wallet() -> LocalAccount:
    """A throwaway Ethereum account used to sign SIWE messages."""
    return Account.create()


@pytest.fixture()
def other_wallet() -> LocalAccount:
    return Account.create()


def rfc3339(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_siwe_message(
    address: str,
    nonce: str,
    *,
    domain: str = "localhost:5173",
    chain_id: int = 1,
    issued_at: datetime | None = None,
    expiration_time: datetime | None = None,
    not_before: datetime | None = None,
) -> str:
    """Render an EIP-4361 message the way wallets present it."""
    issued = issued_at or datetime.now(UTC)
    lines = [
        f"{domain} wants you to sign in with your Ethereum account:",
        address,
        "",
        "Sign in to BeeFunded",
        "",
        f"URI: http://{domain}",
        "Version: 1",
        f"Chain ID: {chain_id}",
        f"Nonce: {nonce}",
        f"Issued At: {rfc3339(issued)}",
    ]
    if expiration_time is not None:
        lines.append(f"Expiration Time: {rfc3339(expiration_time)}")
    if not_before is not None:
        lines.append(f"Not Before: {rfc3339(not_before)}")
    return "\n".join(lines)


def sign_message(account: LocalAccount, message: str) -> str:
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


def build_siwe_proof(account: LocalAccount, nonce: str, **message_options: Any) -> dict[str, str]:
    """Return the address/message/signature/nonce fields for sign-in and sign-up."""
    message = build_siwe_message(account.address, nonce, **message_options)
    return {
        "address": account.address,
        "message": message,
        "signature": sign_message(account, message),
        "nonce": nonce,
    }


def one_hour_ago() -> datetime:
    return datetime.now(UTC) - timedelta(hours=1)


@pytest.fixture()
def test_user(db_session: Session, wallet: LocalAccount) -> User:
    """Create and return a persisted, fully onboarded user."""
    return register_user(
        db_session,
        address=wallet.address,
        username="alice",
        email="alice@example.com",
        display_name="Alice",
        accepted_terms=True,
    )


@pytest.fixture()
def other_user(db_session: Session, other_wallet: LocalAccount) -> User:
    return register_user(
        db_session,
        address=other_wallet.address,
        username="bob",
        email="bob@example.com",
        display_name="Bob",
        accepted_terms=True,
    )


@pytest.fixture()
def auth_token(issuer: CredentialIssuer, test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    token = issuer.issue_access_token(test_user)
    return {"Authorization": f"Bearer {token}"}
