"""API routes."""

from fastapi import APIRouter

from printbridge.api.routes import bridge

api_router = APIRouter()

# The POS calls these paths at the root of the bridge (no version prefix)
api_router.include_router(bridge.router, tags=["print-bridge"])
