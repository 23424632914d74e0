from fastapi import APIRouter

from .notifications import router as notifications_router

v1_router = APIRouter()
v1_router.include_router(notifications_router)

__all__ = ["v1_router"]
