"""Stream handler: one per live client connection.

Manages the read/write loops for the connection and dispatches client frames
to the radio service. Outbound events go through an unbounded queue so that
fan-out from the service never blocks on a slow client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from pydantic import ValidationError

from radio.errors import InvalidRequest, RadioError
from radio.events import (
    REQUEST_TYPES,
    Ack,
    CancelEmergencyRequest,
    ConfirmHelpRequest,
    EmergencyAlertRequest,
    ErrorEvent,
    Event,
    GetProfileRequest,
    GetRoomsRequest,
    GetUsersRequest,
    JoinRoomRequest,
    Pong,
    RegisterRequest,
    RejectHelpRequest,
    ReleaseTalkRequest,
    Request,
    RequestHelpersRequest,
    RequestTalkRequest,
    SendAudioRequest,
    SendMessageRequest,
    UpdateEmergencyLocationRequest,
    UpdateProfileRequest,
)
from radio.models import new_id
from radio.service import RadioService

logger = logging.getLogger(__name__)

Writer = Callable[[dict[str, Any]], Awaitable[None]]


class StreamHandler:
    def __init__(self, service: RadioService, connection_id: Optional[str] = None) -> None:
        self._service = service
        self._connection_id = connection_id or new_id()
        self._outbound: asyncio.Queue[Event] = asyncio.Queue()

    @property
    def connection_id(self) -> str:
        return self._connection_id

    def deliver(self, event: Event) -> None:
        self._outbound.put_nowait(event)

    def pending(self) -> list[Event]:
        """Drain and return every queued event without writing it."""
        events = []
        while not self._outbound.empty():
            events.append(self._outbound.get_nowait())
        return events

    async def run(self, frames: AsyncIterator[dict[str, Any]], write: Writer) -> None:
        """Main loop: read client frames + flush the outbound queue concurrently.

        When the frame iterator ends (client closed, transport error, task
        cancelled) the connection's presence, membership and talk token are
        released before returning.
        """

        async def _write_loop() -> None:
            while True:
                event = await self._outbound.get()
                try:
                    await write(event.to_json())
                except Exception as e:
                    logger.debug("Write failed on connection %s: %s", self._connection_id, e)
                    return

        self._service.attach(self)
        write_task = asyncio.create_task(_write_loop())
        try:
            async for frame in frames:
                await self.handle(frame)
        except asyncio.CancelledError:
            pass
        finally:
            write_task.cancel()
            await self._service.disconnect(self._connection_id)

    # ------------------------------------------------------------------
    # Client frame dispatch
    # ------------------------------------------------------------------

    async def handle(self, frame: dict[str, Any]) -> None:
        """Validate one client frame, run it, and acknowledge it if asked to."""
        ack_id = frame.get("ack_id", frame.get("ackId")) if isinstance(frame, dict) else None
        msg_type = frame.get("type") if isinstance(frame, dict) else None

        model = REQUEST_TYPES.get(msg_type) if isinstance(msg_type, str) else None
        if model is None:
            self.deliver(ErrorEvent(code="UNKNOWN_EVENT", message=f"Unknown event type {msg_type!r}"))
            if ack_id is not None:
                self.deliver(Ack(ack_id=ack_id, success=False, code="UNKNOWN_EVENT"))
            return

        try:
            request = model.model_validate(frame)
            result = await self._dispatch(request)
        except ValidationError as e:
            logger.info("Malformed %s frame on connection %s: %s", msg_type, self._connection_id, e)
            error = InvalidRequest(f"Malformed {msg_type} request")
            self._reply(ack_id, False, code=error.code, message=error.message)
            return
        except RadioError as e:
            logger.info("%s failed on connection %s: %s", msg_type, self._connection_id, e.message)
            self._reply(ack_id, False, code=e.code, message=e.message)
            return
        except Exception:
            logger.exception("Unexpected error handling %s on connection %s", msg_type, self._connection_id)
            self._reply(ack_id, False, code="INTERNAL", message="Internal error")
            return

        if result is None:
            self._reply(ack_id, False)
        else:
            self._reply(ack_id, True, **result)

    def _reply(self, ack_id: Optional[str], success: bool, **payload: Any) -> None:
        if ack_id is None:
            return
        self.deliver(Ack(ack_id=ack_id, success=success, **payload))

    async def _dispatch(self, request: Request) -> Optional[dict[str, Any]]:
        service = self._service
        cid = self._connection_id

        if isinstance(request, RegisterRequest):
            return await service.register(
                cid,
                request.user_id,
                request.username,
                full_name=request.full_name,
                email=request.email,
                phone=request.phone,
                avatar_uri=request.avatar_uri,
            )
        elif isinstance(request, JoinRoomRequest):
            return service.join(cid, request.user_id, request.username, request.room_id)
        elif isinstance(request, SendMessageRequest):
            return await service.send_text(
                cid, request.user_id, request.username, request.room_id, request.text
            )
        elif isinstance(request, SendAudioRequest):
            return await service.send_audio(
                cid, request.user_id, request.username, request.room_id, request.audio
            )
        elif isinstance(request, RequestTalkRequest):
            return service.request_talk(cid, request.room_id, request.user_id, request.username)
        elif isinstance(request, ReleaseTalkRequest):
            return service.release_talk(request.room_id, request.user_id)
        elif isinstance(request, GetRoomsRequest):
            snapshot = service.rooms_snapshot()
            self.deliver(snapshot)
            return {"rooms": [r.to_json() for r in snapshot.rooms]}
        elif isinstance(request, GetUsersRequest):
            users = service.room_users(request.room_id)
            self.deliver(users)
            return {
                "room_id": users.room_id,
                "count": users.count,
                "users": [u.to_json() for u in users.users],
            }
        elif isinstance(request, GetProfileRequest):
            return {"user": await service.get_profile(request.user_id)}
        elif isinstance(request, UpdateProfileRequest):
            profile = await service.update_profile(
                request.user_id,
                username=request.username,
                full_name=request.full_name,
                email=request.email,
                phone=request.phone,
                avatar=request.avatar,
            )
            return {"message": "Profile updated", "user": profile}
        elif isinstance(request, EmergencyAlertRequest):
            return await service.raise_emergency(
                cid,
                request.user_id,
                request.username,
                request.latitude,
                request.longitude,
                emergency_type=request.emergency_type,
                timestamp=request.timestamp,
            )
        elif isinstance(request, UpdateEmergencyLocationRequest):
            return service.update_emergency_location(
                request.user_id,
                request.username,
                request.latitude,
                request.longitude,
                timestamp=request.timestamp,
            )
        elif isinstance(request, ConfirmHelpRequest):
            return service.confirm_help(
                request.emergency_user_id,
                request.helper_id,
                request.helper_name,
                latitude=request.latitude,
                longitude=request.longitude,
                timestamp=request.timestamp,
            )
        elif isinstance(request, RejectHelpRequest):
            return service.reject_help(request.emergency_user_id, request.helper_id, request.helper_name)
        elif isinstance(request, CancelEmergencyRequest):
            return await service.cancel_emergency(request.user_id)
        elif isinstance(request, RequestHelpersRequest):
            return service.request_helpers(cid, request.emergency_user_id)
        else:
            self.deliver(Pong())
            return {}
