"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from aspos_sync.api.v1 import health, logs, sync

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    sync.router,
    prefix="/sync",
    tags=["Sync"],
)

api_router.include_router(
    logs.router,
    prefix="/logs",
    tags=["Logs"],
)
