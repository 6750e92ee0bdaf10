"""Radio service: the single owner of presence, membership, talk-token and
emergency state.

Callers (stream handlers, REST routes) only go through the operations here;
nothing outside reads or mutates the underlying maps directly.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from radio.config import AppConfig
from radio.connections import ConnectionRegistry
from radio.emergency import EmergencyCoordinator, validate_position
from radio.errors import (
    InvalidRequest,
    PersistenceError,
    ProfileNotFound,
    RoomNotFound,
    VehicleNotFound,
)
from radio.events import (
    AvailableHelpers,
    ConnectedUsers,
    EmergencyPayload,
    Helper,
    JoinError,
    JoinSuccess,
    MessagePayload,
    OnlineUser,
    RoomInfo,
    RoomsSnapshot,
    RoomUsers,
    Speaker,
    UserUpdated,
)
from radio.membership import MembershipCoordinator
from radio.models import EmergencyAlert, Held, Message, User, new_id, now_ms
from radio.ptt import PTTArbiter
from radio.registry import SubscriberRegistry
from radio.rooms import RoomRegistry
from radio.router import MessageRouter, decode_payload, extension_for, is_data_url, upload
from radio.store import MemoryBlobStore, MemoryDocumentStore

if TYPE_CHECKING:
    from radio.session import StreamHandler

logger = logging.getLogger(__name__)

VEHICLE_PHOTO_FIELDS = {"vehicle": "vehiclePhotoUri", "helmet": "helmetPhotoUri"}


class RadioService:
    def __init__(
        self,
        config: AppConfig,
        store: Optional[MemoryDocumentStore] = None,
        blobs: Optional[MemoryBlobStore] = None,
    ) -> None:
        self._config = config
        self._store = store or MemoryDocumentStore()
        self._blobs = blobs or MemoryBlobStore(config.blob_store.public_base_url)

        self._subscribers = SubscriberRegistry()
        self._rooms = RoomRegistry(config.rooms, config.aliases, config.max_capacity)
        self._connections = ConnectionRegistry(self._store)
        self._membership = MembershipCoordinator(self._rooms, self._subscribers)
        self._ptt = PTTArbiter(self._rooms.room_ids(), self._subscribers)
        self._router = MessageRouter(self._rooms, self._subscribers, self._store, self._blobs)
        self._emergencies = EmergencyCoordinator(
            self._subscribers, self._connections, config.emergency_radius_km
        )

        # connection id → user ids (and names) it joined, spoke or raised alerts as
        self._claims: dict[str, dict[str, str]] = {}
        # user id → connection holding its claim
        self._claimant: dict[str, str] = {}

    @property
    def blobs(self) -> MemoryBlobStore:
        return self._blobs

    @property
    def store(self) -> MemoryDocumentStore:
        return self._store

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def attach(self, handler: StreamHandler) -> None:
        self._subscribers.attach(handler)

    async def register(
        self,
        connection_id: str,
        user_id: str,
        username: str,
        full_name: str = "",
        email: str = "",
        phone: str = "",
        avatar_uri: str = "",
    ) -> dict[str, Any]:
        ConnectionRegistry.validate(user_id, username)

        dropped: Optional[User] = None
        cancelled: list[str] = []
        current = self._connections.user_for(connection_id)
        if current is not None and current.user_id != user_id:
            dropped, cancelled = self._drop(connection_id, detach=False)

        # Presence and subscriptions change before any store write is
        # attempted; a failed mirror does not undo them.
        registration = self._connections.bind(
            connection_id,
            user_id,
            username,
            full_name=full_name,
            email=email,
            phone=phone,
            avatar_uri=avatar_uri,
        )
        if registration.replaced_connection_id:
            self._membership.move_subscription(
                user_id, registration.replaced_connection_id, connection_id
            )
        self._claim(connection_id, user_id, username)

        users = self.online_users()
        self._subscribers.broadcast_all(ConnectedUsers(users=users))
        self._subscribers.unicast(connection_id, self.rooms_snapshot())

        if dropped is not None:
            await self._connections.mark_offline(dropped)
        await self._close_emergencies(cancelled)
        await self._connections.mirror(registration.user)
        return {"user_id": user_id, "online_count": len(users)}

    async def disconnect(self, connection_id: str) -> Optional[User]:
        """Unwind presence, membership, token and alert state for a closed connection."""
        user, cancelled = self._drop(connection_id, detach=True)
        if user is not None:
            await self._connections.mark_offline(user)
        await self._close_emergencies(cancelled)
        return user

    def _claim(self, connection_id: Optional[str], user_id: str, username: str) -> None:
        """Record that ``connection_id`` acts as ``user_id``, taking over any older claim."""
        if connection_id is None:
            return
        previous = self._claimant.get(user_id)
        if previous is not None and previous != connection_id:
            claims = self._claims.get(previous, {})
            claims.pop(user_id, None)
            if not claims:
                self._claims.pop(previous, None)
        self._claimant[user_id] = connection_id
        self._claims.setdefault(connection_id, {})[user_id] = username

    def _drop(self, connection_id: str, detach: bool) -> tuple[Optional[User], list[str]]:
        """Release everything the connection holds: its bound user plus every
        user id it joined a room, took a token or raised an alert as.

        Returns the unbound user, if any, and the user ids whose alerts were
        cancelled.
        """
        # Synchronous: everything owned by the connection is released before
        # any other event can be processed.
        user = self._connections.disconnect(connection_id)
        owned: dict[str, str] = {}
        if user is not None:
            owned[user.user_id] = user.username
        for user_id, username in self._claims.pop(connection_id, {}).items():
            owned.setdefault(user_id, username)

        cancelled = []
        for user_id, username in owned.items():
            if self._claimant.get(user_id) == connection_id:
                del self._claimant[user_id]
            self._ptt.release_all(user_id)
            self._membership.leave(user_id, username, connection_id)
            if self._emergencies.cancel(user_id):
                cancelled.append(user_id)
            self._emergencies.forget(user_id)

        if detach:
            handler = self._subscribers.get(connection_id)
            if handler is not None:
                self._subscribers.detach(handler)
        if user is not None:
            self._subscribers.broadcast_all(ConnectedUsers(users=self.online_users()))
        return user, cancelled

    # ------------------------------------------------------------------
    # Rooms and membership
    # ------------------------------------------------------------------

    def join(
        self,
        connection_id: Optional[str],
        user_id: str,
        username: str,
        room_id: str,
    ) -> dict[str, Any]:
        try:
            result = self._membership.join(user_id, username, room_id, connection_id)
        except RoomNotFound as e:
            self._subscribers.unicast(
                connection_id,
                JoinError(room_id=room_id, code=e.code, message=e.message),
            )
            logger.warning("Join rejected for user %s: %s", user_id, e.message)
            raise

        room = self._rooms.lookup(result.room_id)
        self._subscribers.unicast(
            connection_id,
            JoinSuccess(
                room_id=result.room_id,
                user_count=result.user_count,
                room=RoomInfo.from_room(room),
                current_speaker=self._ptt.current_speaker(result.room_id),
            ),
        )
        self._claim(connection_id, user_id, username)
        return {"room_id": result.room_id, "user_count": result.user_count}

    def rooms_snapshot(self) -> RoomsSnapshot:
        return RoomsSnapshot(rooms=self._rooms.list())

    def room_detail(self, room_id: str) -> tuple[RoomInfo, list[OnlineUser], Optional[Speaker]]:
        room = self._rooms.lookup(room_id)
        return (
            RoomInfo.from_room(room),
            self._member_snapshot(room.room_id),
            self._ptt.current_speaker(room.room_id),
        )

    def room_users(self, room_id: Optional[str] = None) -> RoomUsers:
        room = self._rooms.lookup(room_id or self._config.default_users_room)
        users = self._member_snapshot(room.room_id)
        return RoomUsers(room_id=room.room_id, count=len(users), users=users)

    def online_users(self) -> list[OnlineUser]:
        return [
            OnlineUser.from_user(user, room_id=self._membership.room_of(user.user_id))
            for user in self._connections.online_users()
        ]

    def room_of(self, user_id: str) -> Optional[str]:
        return self._membership.room_of(user_id)

    def _member_snapshot(self, room_id: str) -> list[OnlineUser]:
        users = []
        for user_id in sorted(self._rooms.members(room_id)):
            user = self._connections.get(user_id)
            if user is not None:
                users.append(OnlineUser.from_user(user, room_id=room_id))
            else:
                users.append(OnlineUser(id=user_id, username=user_id, room_id=room_id))
        return users

    # ------------------------------------------------------------------
    # Talk token
    # ------------------------------------------------------------------

    def request_talk(
        self,
        connection_id: Optional[str],
        room_id: str,
        user_id: str,
        username: str,
    ) -> Optional[dict[str, Any]]:
        """Returns the arbitration outcome, or None when the request was ignored."""
        canonical = self._rooms.resolve(room_id)
        state = self._ptt.request_token(canonical, user_id, username, connection_id)
        if state is None:
            return None
        granted = isinstance(state, Held) and state.holder_id == user_id
        if granted:
            self._claim(connection_id, user_id, username)
        speaker = Speaker.from_state(state)
        return {
            "room_id": canonical,
            "granted": granted,
            "current_speaker": speaker.to_json() if speaker else None,
        }

    def release_talk(self, room_id: str, user_id: str) -> dict[str, Any]:
        canonical = self._rooms.resolve(room_id)
        released = self._ptt.release_token(canonical, user_id)
        return {"room_id": canonical, "released": released}

    def current_speaker(self, room_id: str) -> Optional[Speaker]:
        return self._ptt.current_speaker(self._rooms.resolve(room_id))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_text(
        self,
        connection_id: Optional[str],
        user_id: str,
        username: str,
        room_id: str,
        text: str,
    ) -> dict[str, Any]:
        message = await self._router.send_text(user_id, username, room_id, text, connection_id)
        return self._message_result(message)

    async def send_audio(
        self,
        connection_id: Optional[str],
        user_id: str,
        username: str,
        room_id: str,
        audio: str,
    ) -> dict[str, Any]:
        message = await self._router.send_audio(user_id, username, room_id, audio, connection_id)
        return self._message_result(message)

    @staticmethod
    def _message_result(message: Message) -> dict[str, Any]:
        return {"id": message.message_id, "message": MessagePayload.from_message(message).to_json()}

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        if not user_id:
            raise InvalidRequest("user id is required")
        try:
            profile = await self._store.get_user(user_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Error loading profile {user_id}: {e}") from e
        if profile is None:
            raise ProfileNotFound(user_id)
        return profile

    async def update_profile(
        self,
        user_id: str,
        username: str = "",
        full_name: str = "",
        email: str = "",
        phone: str = "",
        avatar: str = "",
    ) -> dict[str, Any]:
        if not user_id:
            raise InvalidRequest("user id is required")

        try:
            previous = await self._store.get_user(user_id) or {}
        except Exception as e:
            raise PersistenceError(f"Error loading profile {user_id}: {e}") from e

        avatar_uri = await self._resolve_avatar(user_id, avatar.strip(), previous.get("avatarUri", ""))
        fields = {
            "id": user_id,
            "fullName": full_name,
            "email": email,
            "phone": phone,
            "avatarUri": avatar_uri,
            "updatedAt": now_ms(),
        }
        if username:
            fields["username"] = username

        try:
            profile = await self._store.upsert_user(user_id, fields)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Error saving profile {user_id}: {e}") from e

        self._connections.apply_profile(user_id, profile)
        self._subscribers.broadcast_all(UserUpdated(user=profile))
        logger.info("Profile updated for user %s", user_id)
        return profile

    async def _resolve_avatar(self, user_id: str, avatar: str, current: str) -> str:
        if not avatar:
            return current
        if is_data_url(avatar, "image/"):
            data, mime = decode_payload(avatar, "image/jpeg")
            prefix = f"avatars/{user_id}/"
            path = f"{prefix}{now_ms()}_{new_id()}.{extension_for(mime)}"
            url = await upload(self._blobs, path, data, mime)
            removed = await self._blobs.prune(prefix, keep=path)
            if removed:
                logger.debug("Removed %d old avatars for user %s", removed, user_id)
            return url
        if avatar.lower().startswith(("http://", "https://")):
            return avatar
        logger.debug("Ignoring local avatar uri for user %s: %s", user_id, avatar)
        return current

    # ------------------------------------------------------------------
    # Emergencies
    # ------------------------------------------------------------------

    async def raise_emergency(
        self,
        connection_id: Optional[str],
        user_id: str,
        username: str,
        latitude: Optional[float],
        longitude: Optional[float],
        emergency_type: str = "general",
        timestamp: Optional[int] = None,
    ) -> dict[str, Any]:
        if not user_id or not username:
            raise InvalidRequest("Invalid user data: user id and username are required")
        latitude, longitude = validate_position(latitude, longitude)

        avatar_url = await self._avatar_of(user_id)
        vehicle = await self._vehicle_of(user_id)

        alert = EmergencyAlert(
            user_id=user_id,
            username=username,
            latitude=latitude,
            longitude=longitude,
            connection_id=connection_id,
            emergency_type=emergency_type or "general",
            avatar_url=avatar_url,
            vehicle=vehicle,
            timestamp=timestamp or now_ms(),
        )
        notified, nearby = self._emergencies.raise_alert(alert)
        self._claim(connection_id, user_id, username)

        await self._record_emergency(user_id, {**alert.to_record(), "createdAt": now_ms()})
        payload = EmergencyPayload.from_alert(alert)
        return {
            "message": "Emergency alert sent",
            "avatar_url": avatar_url,
            "vehicle": payload.vehicle_info.to_json() if payload.vehicle_info else None,
            "notified_users": notified,
            "total_nearby_users": nearby,
        }

    def update_emergency_location(
        self,
        user_id: str,
        username: str,
        latitude: Optional[float],
        longitude: Optional[float],
        timestamp: Optional[int] = None,
    ) -> dict[str, Any]:
        if not user_id:
            raise InvalidRequest("user id is required")
        latitude, longitude = validate_position(latitude, longitude)
        notified = self._emergencies.update_location(
            user_id, username, latitude, longitude, timestamp or now_ms()
        )
        return {"message": "Location updated", "helpers_notified": notified}

    def confirm_help(
        self,
        emergency_user_id: str,
        helper_id: str,
        helper_name: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        timestamp: Optional[int] = None,
    ) -> dict[str, Any]:
        if not emergency_user_id or not helper_id:
            raise InvalidRequest("Invalid help data: emergency user id and helper id are required")
        if latitude is not None or longitude is not None:
            latitude, longitude = validate_position(latitude, longitude)
        self._emergencies.confirm_help(
            emergency_user_id,
            helper_id,
            helper_name or helper_id,
            latitude,
            longitude,
            timestamp or now_ms(),
        )
        return {"message": "Help confirmed"}

    def reject_help(self, emergency_user_id: str, helper_id: str, helper_name: str) -> dict[str, Any]:
        if not emergency_user_id or not helper_id:
            raise InvalidRequest("Invalid help data: emergency user id and helper id are required")
        self._emergencies.reject_help(emergency_user_id, helper_id, helper_name or helper_id)
        return {"message": "Help declined"}

    async def cancel_emergency(self, user_id: str) -> dict[str, Any]:
        if not user_id:
            raise InvalidRequest("user id is required")
        cancelled = self._emergencies.cancel(user_id)
        await self._close_emergencies([user_id] if cancelled else [])
        return {"message": "Emergency cancelled", "cancelled": cancelled}

    def request_helpers(self, connection_id: Optional[str], emergency_user_id: str) -> dict[str, Any]:
        if not emergency_user_id:
            raise InvalidRequest("emergency user id is required")
        helpers = self._emergencies.helpers(emergency_user_id)
        self._subscribers.unicast(
            connection_id,
            AvailableHelpers(emergency_user_id=emergency_user_id, helpers=helpers),
        )
        return {"helpers": [h.to_json() for h in helpers]}

    def active_emergencies(self) -> list[EmergencyPayload]:
        return [EmergencyPayload.from_alert(alert) for alert in self._emergencies.active()]

    def emergency_helpers(self, user_id: str) -> list[Helper]:
        return self._emergencies.helpers(user_id)

    async def _avatar_of(self, user_id: str) -> str:
        user = self._connections.get(user_id)
        if user is not None and user.avatar_uri:
            return user.avatar_uri
        try:
            profile = await self._store.get_user(user_id)
        except Exception as e:
            logger.warning("Avatar lookup failed for user %s: %s", user_id, e)
            return ""
        return (profile or {}).get("avatarUri", "")

    async def _vehicle_of(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            return await self._store.get_vehicle(user_id)
        except Exception as e:
            logger.warning("Vehicle lookup failed for user %s: %s", user_id, e)
            return None

    async def _record_emergency(self, user_id: str, fields: dict[str, Any]) -> None:
        # The live alert is authoritative; the stored record is a best-effort log.
        try:
            await self._store.upsert_emergency(user_id, fields)
        except Exception as e:
            logger.warning("Emergency record for user %s not saved: %s", user_id, e)

    async def _close_emergencies(self, user_ids: list[str]) -> None:
        for user_id in user_ids:
            await self._record_emergency(user_id, {"status": "cancelled", "cancelledAt": now_ms()})

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    async def get_vehicle(self, user_id: str) -> dict[str, Any]:
        if not user_id:
            raise InvalidRequest("user id is required")
        try:
            vehicle = await self._store.get_vehicle(user_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Error loading vehicle {user_id}: {e}") from e
        if vehicle is None:
            raise VehicleNotFound(user_id)
        return vehicle

    async def save_vehicle(
        self,
        user_id: str,
        brand: str = "",
        model: str = "",
        plate: str = "",
        color: str = "",
        vehicle_photo_uri: str = "",
        helmet_photo_uri: str = "",
    ) -> dict[str, Any]:
        """Create or replace the user's vehicle. Empty photo URIs keep the stored ones."""
        if not user_id:
            raise InvalidRequest("user id is required")
        try:
            previous = await self._store.get_vehicle(user_id)
            now = now_ms()
            fields = {
                "userId": user_id,
                "brand": brand,
                "model": model,
                "plate": plate,
                "color": color,
                "updatedAt": now,
            }
            if vehicle_photo_uri:
                fields["vehiclePhotoUri"] = vehicle_photo_uri
            if helmet_photo_uri:
                fields["helmetPhotoUri"] = helmet_photo_uri
            if previous is None:
                fields.setdefault("vehiclePhotoUri", "")
                fields.setdefault("helmetPhotoUri", "")
                fields["createdAt"] = now
            vehicle = await self._store.upsert_vehicle(user_id, fields)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Error saving vehicle {user_id}: {e}") from e
        logger.info("Vehicle saved for user %s (%s)", user_id, plate or "no plate")
        return vehicle

    async def upload_vehicle_photo(self, user_id: str, image_data: str, kind: str) -> dict[str, Any]:
        """Store a vehicle or helmet photo and point the user's vehicle at it.

        The upload counts as done once the blob is stored; a failed vehicle
        update is logged and the URL is still returned.
        """
        if not user_id or not is_data_url(image_data, "image/"):
            raise InvalidRequest("Invalid data: user id and an image data URL are required")
        field = VEHICLE_PHOTO_FIELDS.get(kind)
        if field is None:
            raise InvalidRequest(f"Invalid photo kind {kind!r}: expected 'vehicle' or 'helmet'")

        data, mime = decode_payload(image_data, "image/jpeg")
        path = f"vehicles/{user_id}/{kind}_{now_ms()}_{new_id()}.{extension_for(mime)}"
        url = await upload(self._blobs, path, data, mime)

        vehicle: Optional[dict[str, Any]] = None
        try:
            now = now_ms()
            fields = {"userId": user_id, field: url, "updatedAt": now}
            if await self._store.get_vehicle(user_id) is None:
                fields["createdAt"] = now
            vehicle = await self._store.upsert_vehicle(user_id, fields)
        except Exception as e:
            logger.warning("Vehicle for user %s not updated with %s photo: %s", user_id, kind, e)
        logger.info("Uploaded %s photo for user %s to %s", kind, user_id, path)
        return {"url": url, "kind": kind, "vehicle": vehicle}
