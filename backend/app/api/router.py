"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from app.api.routes import activities, events, occupancy, rsvps, tracks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(tracks.router)
api_router.include_router(rsvps.router)
api_router.include_router(activities.router)
api_router.include_router(occupancy.router)
