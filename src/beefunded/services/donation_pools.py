"""Donation pool creation and lookup."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session
from web3 import Web3

from beefunded.models import DonationPool
from beefunded.models.base import new_uuid
from beefunded.models.donation_pool import POOL_STATUS_PUBLISHING


def compute_id_hash(pool_id: str) -> str:
    """Return the keccak256 of ``pool_id``; the contract receives it as ``metadataId``."""
    return Web3.to_hex(Web3.keccak(text=pool_id))


def create_pool(db: Session, profile_id: str, **fields: Any) -> DonationPool:
    """Create a pool in ``publishing`` state, ready for the on-chain call."""
    pool_id = new_uuid()
    pool = DonationPool(
        id=pool_id,
        id_hash=compute_id_hash(pool_id),
        profile_id=profile_id,
        status=POOL_STATUS_PUBLISHING,
        **fields,
    )
    db.add(pool)
    db.commit()
    db.refresh(pool)
    return pool


def get_pool(db: Session, pool_id: str) -> DonationPool | None:
    return db.get(DonationPool, pool_id)


def find_pool_by_id_hash(db: Session, id_hash: str) -> DonationPool | None:
    return db.scalar(select(DonationPool).where(DonationPool.id_hash == id_hash.lower()))


def find_pool_by_chain_id(db: Session, chain_id: int, on_chain_id: int) -> DonationPool | None:
    return db.scalar(
        select(DonationPool).where(
            DonationPool.chain_id == chain_id,
            DonationPool.on_chain_id == on_chain_id,
        )
    )
