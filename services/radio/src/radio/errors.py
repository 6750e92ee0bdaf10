"""Error taxonomy for radio operations.

Every error is scoped to the single requesting connection: the stream handler
turns it into a failure acknowledgment and keeps the connection open.
"""

from __future__ import annotations


class RadioError(Exception):
    code = "INTERNAL"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(RadioError):
    """Missing or malformed required fields. No state is mutated."""

    code = "INVALID_REQUEST"


class RoomNotFound(RadioError):
    code = "ROOM_NOT_FOUND"

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id} does not exist")
        self.room_id = room_id


class PersistenceError(RadioError):
    """A document-store or blob-store call failed."""

    code = "PERSISTENCE_ERROR"


class ProfileNotFound(RadioError):
    code = "PROFILE_NOT_FOUND"

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Profile {user_id} not found")
        self.user_id = user_id


class EmergencyNotFound(RadioError):
    code = "EMERGENCY_NOT_FOUND"

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No active emergency for user {user_id}")
        self.user_id = user_id


class VehicleNotFound(RadioError):
    code = "VEHICLE_NOT_FOUND"

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Vehicle for user {user_id} not found")
        self.user_id = user_id
