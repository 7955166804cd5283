from __future__ import annotations
"""Master API router — mounts all sub-routers."""

from fastapi import APIRouter

from clipforge.api.account import router as account_router
from clipforge.api.tasks import router as tasks_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(tasks_router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(account_router, prefix="/account", tags=["Account"])
