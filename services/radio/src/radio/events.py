"""Server → client events and client → server requests.

Events serialize with camelCase keys (``roomId``, ``userCount``) because that
is what the mobile clients read; Python code uses snake_case attributes.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from radio.models import EmergencyAlert, Held, Message, MessageKind, Room, TokenState, User


class Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Event(Payload):
    type: str


# ---------------------------------------------------------------------------
# Payload building blocks
# ---------------------------------------------------------------------------


class OnlineUser(Payload):
    id: str
    username: str
    avatar_uri: str = ""
    is_online: bool = True
    room_id: Optional[str] = None

    @classmethod
    def from_user(cls, user: User, room_id: Optional[str] = None) -> OnlineUser:
        return cls(
            id=user.user_id,
            username=user.username,
            avatar_uri=user.avatar_uri,
            is_online=user.is_online,
            room_id=room_id,
        )


class RoomInfo(Payload):
    id: str
    name: str
    description: str = ""
    room_type: str
    private: bool = False
    user_count: int = 0
    max_capacity: int = 0

    @classmethod
    def from_room(cls, room: Room) -> RoomInfo:
        return cls(
            id=room.room_id,
            name=room.name,
            description=room.description,
            room_type=room.type.value,
            private=room.private,
            user_count=room.user_count,
            max_capacity=room.max_capacity,
        )


class Speaker(Payload):
    user_id: str
    username: str
    since: int

    @classmethod
    def from_state(cls, state: TokenState) -> Optional[Speaker]:
        if isinstance(state, Held):
            return cls(user_id=state.holder_id, username=state.holder_name, since=state.since)
        return None


class MessagePayload(Payload):
    id: str
    user_id: str
    username: str
    room_id: str
    kind: str
    text: Optional[str] = None
    audio_url: Optional[str] = None
    timestamp: int

    @classmethod
    def from_message(cls, msg: Message) -> MessagePayload:
        return cls(
            id=msg.message_id,
            user_id=msg.sender_id,
            username=msg.sender_name,
            room_id=msg.room_id,
            kind=msg.kind.value,
            text=msg.payload if msg.kind is MessageKind.TEXT else None,
            audio_url=msg.payload if msg.kind is MessageKind.AUDIO else None,
            timestamp=msg.timestamp,
        )


class VehicleInfo(Payload):
    brand: str = ""
    model: str = ""
    plate: str = ""
    color: str = ""
    vehicle_photo_uri: str = ""

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> VehicleInfo:
        return cls(
            brand=record.get("brand") or "",
            model=record.get("model") or "",
            plate=record.get("plate") or "",
            color=record.get("color") or "",
            vehicle_photo_uri=record.get("vehiclePhotoUri") or "",
        )


class EmergencyPayload(Payload):
    user_id: str
    username: str
    avatar_url: str = ""
    latitude: float
    longitude: float
    timestamp: int
    emergency_type: str = "general"
    status: str = "active"
    vehicle_info: Optional[VehicleInfo] = None
    helpers_count: int = 0

    @classmethod
    def from_alert(cls, alert: EmergencyAlert) -> EmergencyPayload:
        return cls(
            user_id=alert.user_id,
            username=alert.username,
            avatar_url=alert.avatar_url,
            latitude=alert.latitude,
            longitude=alert.longitude,
            timestamp=alert.timestamp,
            emergency_type=alert.emergency_type,
            vehicle_info=VehicleInfo.from_record(alert.vehicle) if alert.vehicle else None,
            helpers_count=len(alert.helpers),
        )


class Helper(Payload):
    user_id: str
    username: str
    is_online: bool = True


# ---------------------------------------------------------------------------
# Broadcast / unicast events
# ---------------------------------------------------------------------------


class ConnectedUsers(Event):
    type: Literal["connected_users"] = "connected_users"
    users: list[OnlineUser]


class RoomsSnapshot(Event):
    type: Literal["rooms"] = "rooms"
    rooms: list[RoomInfo]


class RoomUsers(Event):
    type: Literal["room_users"] = "room_users"
    room_id: str
    count: int
    users: list[OnlineUser]


class JoinSuccess(Event):
    type: Literal["join_success"] = "join_success"
    room_id: str
    user_count: int
    room: RoomInfo
    current_speaker: Optional[Speaker] = None


class JoinError(Event):
    type: Literal["join_error"] = "join_error"
    room_id: str
    code: str
    message: str


class UserJoined(Event):
    type: Literal["user_joined"] = "user_joined"
    room_id: str
    user_id: str
    username: str
    user_count: int


class UserLeft(Event):
    type: Literal["user_left"] = "user_left"
    room_id: str
    user_id: str
    username: str
    user_count: int


class NewMessage(Event):
    type: Literal["new_message"] = "new_message"
    message: MessagePayload


class MessageSent(Event):
    type: Literal["message_sent"] = "message_sent"
    message: MessagePayload


class PttGranted(Event):
    type: Literal["ptt_granted"] = "ptt_granted"
    room_id: str
    since: int


class PttDenied(Event):
    type: Literal["ptt_denied"] = "ptt_denied"
    room_id: str
    current_speaker: Speaker


class CurrentSpeaker(Event):
    type: Literal["current_speaker"] = "current_speaker"
    room_id: str
    speaker: Optional[Speaker] = None


class PttReleased(Event):
    type: Literal["ptt_released"] = "ptt_released"
    room_id: str
    user_id: str
    username: str


class UserUpdated(Event):
    type: Literal["user_updated"] = "user_updated"
    user: dict[str, Any]


class EmergencyRaised(Event):
    type: Literal["emergency_alert"] = "emergency_alert"
    emergency: EmergencyPayload


class HelperLocationUpdate(Event):
    type: Literal["helper_location_update"] = "helper_location_update"
    emergency_user_id: str
    user_id: str
    username: str
    latitude: float
    longitude: float
    timestamp: int


class HelpConfirmed(Event):
    type: Literal["help_confirmed"] = "help_confirmed"
    emergency_user_id: str
    helper_id: str
    helper_name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: int


class HelperConfirmedNotification(Event):
    """Tells every client an alert has a helper, so pending prompts can close."""

    type: Literal["helper_confirmed_notification"] = "helper_confirmed_notification"
    emergency_user_id: str
    helper_id: str
    helper_name: str
    timestamp: int


class HelpRejected(Event):
    type: Literal["help_rejected"] = "help_rejected"
    emergency_user_id: str
    helper_id: str
    helper_name: str


class EmergencyCancelled(Event):
    type: Literal["emergency_cancelled"] = "emergency_cancelled"
    user_id: str


class AvailableHelpers(Event):
    type: Literal["available_helpers"] = "available_helpers"
    emergency_user_id: str
    helpers: list[Helper]


class ErrorEvent(Event):
    type: Literal["error"] = "error"
    code: str
    message: str


class Pong(Event):
    type: Literal["pong"] = "pong"


class Ack(Event):
    """Acknowledgment for a request frame that carried an ``ack_id``.

    Extra fields are the operation's result payload, given in snake_case and
    camelCased on the way out.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: Literal["ack"] = "ack"
    ack_id: Optional[str] = None
    success: bool

    def to_json(self) -> dict[str, Any]:
        extra = self.model_extra or {}
        return {
            (to_camel(key) if key in extra else key): value
            for key, value in self.model_dump(mode="json", by_alias=True).items()
        }


# ---------------------------------------------------------------------------
# Client requests
# ---------------------------------------------------------------------------


class Request(BaseModel):
    """Base for client frames. Required fields default to empty strings so that
    emptiness is reported as InvalidRequest by the operation itself."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: str
    ack_id: Optional[str] = None


class RegisterRequest(Request):
    type: Literal["register"] = "register"
    user_id: str = ""
    username: str = ""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    avatar_uri: str = ""


class JoinRoomRequest(Request):
    type: Literal["join_room"] = "join_room"
    room_id: str = ""
    user_id: str = ""
    username: str = ""


class SendMessageRequest(Request):
    type: Literal["send_message"] = "send_message"
    user_id: str = ""
    username: str = ""
    room_id: str = ""
    text: str = ""


class SendAudioRequest(Request):
    type: Literal["send_audio"] = "send_audio"
    user_id: str = ""
    username: str = ""
    room_id: str = ""
    audio: str = ""


class RequestTalkRequest(Request):
    type: Literal["request_talk"] = "request_talk"
    room_id: str = ""
    user_id: str = ""
    username: str = ""


class ReleaseTalkRequest(Request):
    type: Literal["release_talk"] = "release_talk"
    room_id: str = ""
    user_id: str = ""


class GetRoomsRequest(Request):
    type: Literal["get_rooms"] = "get_rooms"


class GetUsersRequest(Request):
    type: Literal["get_users"] = "get_users"
    room_id: Optional[str] = None


class GetProfileRequest(Request):
    type: Literal["get_profile"] = "get_profile"
    user_id: str = ""


class UpdateProfileRequest(Request):
    type: Literal["update_profile"] = "update_profile"
    user_id: str = ""
    username: str = ""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    avatar: str = Field("", description="data URL, http(s) URL, or empty to keep the current avatar")


class EmergencyAlertRequest(Request):
    type: Literal["emergency_alert"] = "emergency_alert"
    user_id: str = ""
    username: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: Optional[int] = None
    emergency_type: str = "general"


class UpdateEmergencyLocationRequest(Request):
    type: Literal["update_emergency_location"] = "update_emergency_location"
    user_id: str = ""
    username: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: Optional[int] = None


class ConfirmHelpRequest(Request):
    type: Literal["confirm_help"] = "confirm_help"
    emergency_user_id: str = ""
    helper_id: str = ""
    helper_name: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: Optional[int] = None


class RejectHelpRequest(Request):
    type: Literal["reject_help"] = "reject_help"
    emergency_user_id: str = ""
    helper_id: str = ""
    helper_name: str = ""


class CancelEmergencyRequest(Request):
    type: Literal["cancel_emergency"] = "cancel_emergency"
    user_id: str = ""


class RequestHelpersRequest(Request):
    type: Literal["request_helpers"] = "request_helpers"
    emergency_user_id: str = ""


class PingRequest(Request):
    type: Literal["ping"] = "ping"


REQUEST_TYPES: dict[str, type[Request]] = {
    model.model_fields["type"].default: model
    for model in (
        RegisterRequest,
        JoinRoomRequest,
        SendMessageRequest,
        SendAudioRequest,
        RequestTalkRequest,
        ReleaseTalkRequest,
        GetRoomsRequest,
        GetUsersRequest,
        GetProfileRequest,
        UpdateProfileRequest,
        EmergencyAlertRequest,
        UpdateEmergencyLocationRequest,
        ConfirmHelpRequest,
        RejectHelpRequest,
        CancelEmergencyRequest,
        RequestHelpersRequest,
        PingRequest,
    )
}
