# tests/test_siwe.py
"""Tests for nonce issuance and SIWE message verification."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from beefunded.services.nonce import NONCE_LENGTH, NonceStore
from beefunded.services.siwe import (
    InvalidSignatureError,
    MalformedMessageError,
    NonceMismatchError,
    parse_siwe_message,
    verify_siwe,
)
from tests.conftest import build_siwe_message, one_hour_ago, sign_message

NONCE = "abc12345"


def test_issued_nonce_is_alphanumeric(redis_client) -> None:
    store = NonceStore(redis_client)
    nonce = store.issue()

    assert len(nonce) == NONCE_LENGTH
    assert nonce.isalnum()
    assert redis_client.get(f"nonce:{nonce}") == "valid"
    assert 0 < redis_client.ttl(f"nonce:{nonce}") <= 300


def test_nonce_can_only_be_consumed_once(redis_client) -> None:
    store = NonceStore(redis_client)
    nonce = store.issue()

    assert store.consume(nonce) is True
    assert store.consume(nonce) is False


def test_unknown_or_empty_nonce_is_rejected(redis_client) -> None:
    store = NonceStore(redis_client)

    assert store.consume("neverissued") is False
    assert store.consume("") is False


def test_parse_siwe_message_fields(wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE, chain_id=11155111)

    parsed = parse_siwe_message(message)

    assert parsed.domain == "localhost:5173"
    assert parsed.address == wallet.address
    assert parsed.statement == "Sign in to BeeFunded"
    assert parsed.chain_id == 11155111
    assert parsed.nonce == NONCE
    assert parsed.expiration_time is None


@pytest.mark.parametrize(
    "message",
    [
        "",
        "not a siwe message",
        "example.com wants you to sign in with your Ethereum account:\nnot-an-address\n",
    ],
)
def test_parse_rejects_malformed_messages(message: str) -> None:
    with pytest.raises(MalformedMessageError):
        parse_siwe_message(message)


def test_parse_requires_nonce(wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE).replace(f"Nonce: {NONCE}\n", "")

    with pytest.raises(MalformedMessageError):
        parse_siwe_message(message)


def test_parse_rejects_short_nonce(wallet) -> None:
    with pytest.raises(MalformedMessageError):
        parse_siwe_message(build_siwe_message(wallet.address, "abc123"))


class TestMessageGrammar:
    """Signed messages that bend the EIP-4361 layout are never trusted."""

    def test_lowercase_address_is_rejected(self, wallet) -> None:
        message = build_siwe_message(wallet.address.lower(), NONCE)
        signature = sign_message(wallet, message)

        with pytest.raises(InvalidSignatureError):
            verify_siwe(message, signature, NONCE)

    def test_reordered_fields_are_rejected(self, wallet) -> None:
        header, fields = build_siwe_message(wallet.address, NONCE).split("\n\nURI: ", 1)
        lines = f"URI: {fields}".split("\n")
        message = header + "\n\n" + "\n".join(reversed(lines))
        signature = sign_message(wallet, message)

        with pytest.raises(InvalidSignatureError):
            verify_siwe(message, signature, NONCE)

    def test_duplicated_nonce_is_rejected(self, wallet) -> None:
        server_nonce = "servernonce123456"
        message = build_siwe_message(wallet.address, server_nonce).replace(
            f"Nonce: {server_nonce}", f"Nonce: attackerchosen1\nNonce: {server_nonce}"
        )
        signature = sign_message(wallet, message)

        with pytest.raises(InvalidSignatureError):
            verify_siwe(message, signature, server_nonce)


def test_verify_returns_checksummed_signer(wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE)
    signature = sign_message(wallet, message)

    assert verify_siwe(message, signature, NONCE) == wallet.address


def test_verify_rejects_other_nonce(wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE)
    signature = sign_message(wallet, message)

    with pytest.raises(NonceMismatchError):
        verify_siwe(message, signature, "zzz99999")


def test_verify_rejects_signature_from_other_wallet(wallet, other_wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE)
    signature = sign_message(other_wallet, message)

    with pytest.raises(InvalidSignatureError):
        verify_siwe(message, signature, NONCE)


def test_verify_rejects_garbage_signature(wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE)

    with pytest.raises(InvalidSignatureError):
        verify_siwe(message, "0xdeadbeef", NONCE)


def test_verify_rejects_expired_message(wallet) -> None:
    message = build_siwe_message(
        wallet.address,
        NONCE,
        issued_at=one_hour_ago() - timedelta(minutes=5),
        expiration_time=one_hour_ago(),
    )
    signature = sign_message(wallet, message)

    with pytest.raises(InvalidSignatureError):
        verify_siwe(message, signature, NONCE)


def test_verify_checks_domain_when_configured(wallet) -> None:
    message = build_siwe_message(wallet.address, NONCE, domain="evil.example")
    signature = sign_message(wallet, message)

    with pytest.raises(InvalidSignatureError):
        verify_siwe(message, signature, NONCE, domain="localhost:5173")


def test_verify_honours_not_before(wallet) -> None:
    message = build_siwe_message(
        wallet.address, NONCE, not_before=datetime.now(UTC) + timedelta(hours=1)
    )
    signature = sign_message(wallet, message)

    with pytest.raises(InvalidSignatureError):
        verify_siwe(message, signature, NONCE)
