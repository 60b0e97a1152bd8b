# tests/test_donation_pools.py
"""Tests for donation pool endpoints."""

from __future__ import annotations

from fastapi import status

from beefunded.services.donation_pools import compute_id_hash, find_pool_by_id_hash


def test_create_requires_authentication(client) -> None:
    response = client.post("/api/v1/donation-pool", json={"title": "Bees"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_create_pool_starts_publishing(client, auth_token, db_session, test_user) -> None:
    response = client.post(
        "/api/v1/donation-pool",
        json={"title": "Save the bees", "kind": "objective", "cap": 1000, "tags": ["nature"]},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["status"] == "publishing"
    assert body["profile_id"] == test_user.profile.id
    assert body["on_chain_id"] is None
    assert body["id_hash"] == compute_id_hash(body["id"])
    # Lookups tolerate upper-cased hex from clients.
    assert find_pool_by_id_hash(db_session, body["id_hash"].upper()).id == body["id"]


def test_create_pool_rejects_unknown_kind(client, auth_token) -> None:
    response = client.post("/api/v1/donation-pool", json={"kind": "other"}, headers=auth_token)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_get_pool(client, auth_token) -> None:
    created = client.post("/api/v1/donation-pool", json={"title": "Bees"}, headers=auth_token)

    response = client.get(f"/api/v1/donation-pool/{created.json()['id']}")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["title"] == "Bees"


def test_get_missing_pool_returns_404(client) -> None:
    response = client.get("/api/v1/donation-pool/does-not-exist")

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_id_hash_is_keccak_of_pool_id() -> None:
    assert compute_id_hash("abc") == (
        "0x4e03657aea45a94fc7d47ba826c8d667c0d1e6e33a64a036ec44f58fa12d6c45"
    )
