# src/beefunded/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .auth import router as auth_router
from .donation_pools import router as donation_pools_router
from .notifications import router as notifications_router

__all__ = [
    "auth_router",
    "donation_pools_router",
    "notifications_router",
]
