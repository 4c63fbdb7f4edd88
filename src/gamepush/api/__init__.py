"""API route aggregation.

All routers registered here get mounted in main.py. There is no auth:
the surface is a liveness string, a health report and the admin test
push, same as the server this replaces.
"""

from fastapi import APIRouter

from gamepush.api.health import router as health_router
from gamepush.api.notifications import router as notifications_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(notifications_router, tags=["notifications"])
