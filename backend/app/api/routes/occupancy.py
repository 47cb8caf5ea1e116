"""
Occupancy snapshots for display. Served from the Redis cache when fresh.
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_orchestrator
from app.core.security import get_current_user_id
from app.schemas.rsvp import OccupancyResponse
from app.services.admission_service import AdmissionOrchestrator
from app.services.cache_service import get_cached_occupancy, set_cached_occupancy

router = APIRouter(prefix="/occupancy", tags=["Occupancy"])


def _to_response(occupancy) -> OccupancyResponse:
    return OccupancyResponse(
        unit_id=occupancy.unit_id,
        current=occupancy.current,
        max=occupancy.max,
        available=occupancy.available,
        is_full=occupancy.is_full,
    )


@router.get("/{unit_id}", response_model=OccupancyResponse)
async def get_occupancy_endpoint(
    unit_id: str,
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    cached = await get_cached_occupancy(unit_id)
    if cached is not None:
        return OccupancyResponse(**cached, cached=True)

    response = _to_response(await orchestrator.get_occupancy(unit_id))
    await set_cached_occupancy(unit_id, response.model_dump(exclude={"cached"}))
    return response


@router.post("/{unit_id}/recount", response_model=OccupancyResponse)
async def recount_occupancy_endpoint(
    unit_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    """Rebuild the counter from live reservations. Drops the cached snapshot."""
    return _to_response(await orchestrator.recount_unit(unit_id))
