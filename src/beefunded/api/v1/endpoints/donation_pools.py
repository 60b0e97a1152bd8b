"""Donation pool endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from beefunded.api.v1.dependencies import CurrentUserDep, SessionDep
from beefunded.models import DonationPool
from beefunded.schemas.donation_pool import DonationPoolCreate, DonationPoolResponse
from beefunded.services import donation_pools as pool_service

router = APIRouter(prefix="/donation-pool", tags=["donation-pools"])


@router.post(
    "",
    summary="Create a pool ahead of its on-chain creation",
    status_code=status.HTTP_201_CREATED,
    response_model=DonationPoolResponse,
)
def create_donation_pool(
    payload: DonationPoolCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> DonationPool:
    """Store the pool as ``publishing``.

    The client passes the returned ``id_hash`` to the contract; the pool is
    published once the matching DonationPoolCreated log is reconciled.
    """
    return pool_service.create_pool(db, current_user.profile.id, **payload.model_dump())


@router.get("/{pool_id}", summary="Get a donation pool", response_model=DonationPoolResponse)
def get_donation_pool(pool_id: str, db: SessionDep) -> DonationPool:
    pool = pool_service.get_pool(db, pool_id)
    if pool is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Donation pool not found",
        )
    return pool
