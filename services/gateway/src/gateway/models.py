"""Pydantic models for REST responses."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from radio.events import EmergencyPayload, Helper, OnlineUser, RoomInfo, Speaker


class CamelModel(BaseModel):
    """Serializes with the same camelCase keys as the WebSocket events."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Room models
# ---------------------------------------------------------------------------


class ListRoomsResponse(CamelModel):
    """Fixed room catalog with live member counts."""

    rooms: List[RoomInfo]


class GetRoomResponse(CamelModel):
    """One room with its current members and speaker."""

    room: RoomInfo
    users: List[OnlineUser] = Field(default_factory=list)
    current_speaker: Optional[Speaker] = None


# ---------------------------------------------------------------------------
# User models
# ---------------------------------------------------------------------------


class ListUsersResponse(CamelModel):
    """Users currently online."""

    count: int
    users: List[OnlineUser]


# ---------------------------------------------------------------------------
# Emergency models
# ---------------------------------------------------------------------------


class ActiveEmergenciesResponse(CamelModel):
    """Alerts currently active, with their helper counts."""

    total: int
    emergencies: List[EmergencyPayload]


class HelpersResponse(CamelModel):
    """Online helpers who confirmed they are answering an alert."""

    count: int
    helpers: List[Helper]


# ---------------------------------------------------------------------------
# Vehicle models
# ---------------------------------------------------------------------------


class SaveVehicleRequest(CamelModel):
    """Request to create or replace a user's vehicle."""

    user_id: str = ""
    brand: str = ""
    model: str = ""
    plate: str = ""
    color: str = ""
    vehicle_photo_uri: str = ""
    helmet_photo_uri: str = ""


class VehicleResponse(CamelModel):
    """A stored vehicle record."""

    message: Optional[str] = None
    vehicle: Dict[str, Any]


class VehiclePhotoRequest(CamelModel):
    """Request to upload a vehicle or helmet photo as a data URL."""

    user_id: str = ""
    image_data: str = ""
    kind: str = "vehicle"


class VehiclePhotoResponse(CamelModel):
    """Public URL of an uploaded vehicle photo."""

    url: str
    kind: str
    vehicle: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Health/Root models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class RootResponse(BaseModel):
    """Root endpoint response."""

    service: str
    status: str
    endpoints: Dict[str, str]
