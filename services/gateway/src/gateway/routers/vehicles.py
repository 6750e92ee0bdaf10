"""Vehicle REST API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from radio.errors import InvalidRequest, PersistenceError, VehicleNotFound
from radio.service import RadioService

from gateway.dependencies import get_service
from gateway.models import (
    SaveVehicleRequest,
    VehiclePhotoRequest,
    VehiclePhotoResponse,
    VehicleResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])


@router.post("", response_model=VehicleResponse)
async def save_vehicle(
    request: SaveVehicleRequest,
    service: RadioService = Depends(get_service),
) -> VehicleResponse:
    """Create or replace a user's vehicle.

    Photo URIs left empty keep the ones already stored.
    """
    try:
        vehicle = await service.save_vehicle(
            request.user_id,
            brand=request.brand,
            model=request.model,
            plate=request.plate,
            color=request.color,
            vehicle_photo_uri=request.vehicle_photo_uri,
            helmet_photo_uri=request.helmet_photo_uri,
        )
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=e.message)
    except PersistenceError as e:
        logger.error("Saving vehicle failed: %s", e.message)
        raise HTTPException(status_code=500, detail=e.message)
    return VehicleResponse(message="Vehicle saved", vehicle=vehicle)


@router.post("/photo", response_model=VehiclePhotoResponse)
async def upload_photo(
    request: VehiclePhotoRequest,
    service: RadioService = Depends(get_service),
) -> VehiclePhotoResponse:
    """Upload a vehicle or helmet photo sent as a data URL."""
    try:
        result = await service.upload_vehicle_photo(request.user_id, request.image_data, request.kind)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=e.message)
    except PersistenceError as e:
        logger.error("Vehicle photo upload failed: %s", e.message)
        raise HTTPException(status_code=500, detail=e.message)
    return VehiclePhotoResponse(**result)


@router.get("/{user_id}", response_model=VehicleResponse)
async def get_vehicle(user_id: str, service: RadioService = Depends(get_service)) -> VehicleResponse:
    try:
        vehicle = await service.get_vehicle(user_id)
    except VehicleNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except PersistenceError as e:
        logger.error("Loading vehicle failed: %s", e.message)
        raise HTTPException(status_code=500, detail=e.message)
    return VehicleResponse(vehicle=vehicle)
