"""API route aggregation.

All routers registered here get mounted in main.py. The realtime core
only exposes health; domain CRUD routes live in the REST service.
"""

from fastapi import APIRouter

from agenthq.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
