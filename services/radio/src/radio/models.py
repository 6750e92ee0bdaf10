"""Domain records held by the radio service."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Union


class RoomType(str, enum.Enum):
    LOBBY = "lobby"
    GENERAL = "general"
    PTT_RADIO = "ptt-radio"
    OTHER = "other"


class MessageKind(str, enum.Enum):
    TEXT = "text"
    AUDIO = "audio"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class User:
    user_id: str
    username: str
    connection_id: Optional[str] = None
    is_online: bool = False
    full_name: str = ""
    email: str = ""
    phone: str = ""
    avatar_uri: str = ""
    last_seen: int = field(default_factory=now_ms)

    def to_profile(self) -> dict:
        """Fields mirrored into the document store."""
        return {
            "id": self.user_id,
            "username": self.username,
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "avatarUri": self.avatar_uri,
            "isOnline": self.is_online,
            "lastSeen": self.last_seen,
        }


@dataclass
class Room:
    room_id: str
    name: str
    description: str
    type: RoomType
    private: bool = False
    max_capacity: int = 50
    members: set[str] = field(default_factory=set)

    @property
    def user_count(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class Message:
    message_id: str
    sender_id: str
    sender_name: str
    room_id: str
    kind: MessageKind
    # inline text, or the public URL of the uploaded audio blob
    payload: str
    timestamp: int

    @classmethod
    def create(
        cls,
        sender_id: str,
        sender_name: str,
        room_id: str,
        kind: MessageKind,
        payload: str,
    ) -> Message:
        return cls(
            message_id=new_id(),
            sender_id=sender_id,
            sender_name=sender_name,
            room_id=room_id,
            kind=kind,
            payload=payload,
            timestamp=now_ms(),
        )

    def to_record(self) -> dict:
        record = {
            "id": self.message_id,
            "userId": self.sender_id,
            "username": self.sender_name,
            "roomId": self.room_id,
            "type": self.kind.value,
            "timestamp": self.timestamp,
        }
        if self.kind is MessageKind.TEXT:
            record["text"] = self.payload
        else:
            record["audioUrl"] = self.payload
        return record


# ---------------------------------------------------------------------------
# Talk token state: a room is either Idle or Held by exactly one speaker.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Held:
    holder_id: str
    holder_name: str
    since: int = field(default_factory=now_ms)


TokenState = Union[Idle, Held]


# ---------------------------------------------------------------------------
# Emergency alerts: at most one active alert per user.
# ---------------------------------------------------------------------------


@dataclass
class EmergencyAlert:
    user_id: str
    username: str
    latitude: float
    longitude: float
    # connection that raised the alert, used when the user is not registered
    connection_id: Optional[str] = None
    emergency_type: str = "general"
    avatar_url: str = ""
    vehicle: Optional[dict] = None
    timestamp: int = field(default_factory=now_ms)
    # helper id → helper name, in confirmation order
    helpers: dict[str, str] = field(default_factory=dict)

    def to_record(self) -> dict:
        return {
            "userId": self.user_id,
            "username": self.username,
            "avatarUrl": self.avatar_url,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp,
            "emergencyType": self.emergency_type,
            "status": "active",
            "vehicleInfo": self.vehicle,
        }
