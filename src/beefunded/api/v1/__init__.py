# src/beefunded/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    auth_router,
    donation_pools_router,
    notifications_router,
)

__all__ = [
    "auth_router",
    "donation_pools_router",
    "notifications_router",
]
