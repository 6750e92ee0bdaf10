"""Emergency REST API endpoints."""

from fastapi import APIRouter, Depends

from radio.service import RadioService

from gateway.dependencies import get_service
from gateway.models import ActiveEmergenciesResponse, HelpersResponse

router = APIRouter(prefix="/api/emergencies", tags=["emergencies"])


@router.get("/active", response_model=ActiveEmergenciesResponse)
async def list_active(service: RadioService = Depends(get_service)) -> ActiveEmergenciesResponse:
    """List active alerts with their helper counts."""
    emergencies = service.active_emergencies()
    return ActiveEmergenciesResponse(total=len(emergencies), emergencies=emergencies)


@router.get("/{user_id}/helpers", response_model=HelpersResponse)
async def list_helpers(user_id: str, service: RadioService = Depends(get_service)) -> HelpersResponse:
    """Online helpers answering a user's alert. Empty when there is no alert."""
    helpers = service.emergency_helpers(user_id)
    return HelpersResponse(count=len(helpers), helpers=helpers)
