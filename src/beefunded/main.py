# src/beefunded/main.py
"""Main entry point for the BeeFunded backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from beefunded.api.v1 import auth_router, donation_pools_router, notifications_router
from beefunded.chain.listener import ChainSubscriptionManager
from beefunded.core.settings import settings
from beefunded.db.session import create_tables
from beefunded.services.reconciler import EventReconciler

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
EVENT_STREAM_PATHS = (f"{API_PREFIX}/notification/sse",)


class StreamingGZipMiddleware(GZipMiddleware):
    """GZip compression that passes server-sent event streams through untouched.

    Compressing an event stream buffers it, which delays events and keep-alives.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        uncompressed_paths: tuple[str, ...] = EVENT_STREAM_PATHS,
        **options: int,
    ) -> None:
        super().__init__(app, **options)
        self.uncompressed_paths = uncompressed_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.uncompressed_paths:
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Wallet sessions and on-chain donation reconciliation for BeeFunded",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression, except on event streams
app.add_middleware(StreamingGZipMiddleware)

# Include API routers
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(notifications_router, prefix=API_PREFIX)
app.include_router(donation_pools_router, prefix=API_PREFIX)


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    app.state.chain_manager = None
    if not settings.chain_listener_enabled:
        return
    if not settings.chains:
        logger.warning("Chain listener enabled but no chains are configured")
        return

    manager = ChainSubscriptionManager(settings.chains, EventReconciler().handle)
    # A failed initial subscription aborts startup.
    await manager.start()
    app.state.chain_manager = manager


@app.on_event("shutdown")
async def on_shutdown() -> None:
    manager: ChainSubscriptionManager | None = getattr(app.state, "chain_manager", None)
    if manager:
        await manager.stop()


@app.get("/health")
async def health_check() -> dict[str, object]:
    """Health check endpoint to verify the service is running."""
    manager: ChainSubscriptionManager | None = getattr(app.state, "chain_manager", None)
    chains: dict[str, str] = {}
    if manager:
        chains = {str(chain_id): state.value for chain_id, state in manager.states.items()}
    return {"status": "ok", "chains": chains}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("beefunded.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
