"""Text and audio message routing.

A message is persisted before anyone sees it: only after the document store
accepts the record is it broadcast to the room and confirmed to the sender.
Sends are not serialized per room, so two concurrent sends may complete in
either order; each message carries its own id.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional

from radio.errors import InvalidRequest, PersistenceError
from radio.events import MessagePayload, MessageSent, NewMessage
from radio.models import Message, MessageKind, new_id, now_ms
from radio.registry import SubscriberRegistry
from radio.rooms import RoomRegistry
from radio.store import MemoryBlobStore, MemoryDocumentStore

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[a-zA-Z0-9.+-]+/[a-zA-Z0-9.+-]+);base64,", re.IGNORECASE)

DEFAULT_AUDIO_MIME = "audio/mp4"

_EXTENSIONS = {
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/aac": "aac",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "image/jpeg": "jpg",
}


def is_data_url(value: str, media: str = "") -> bool:
    match = _DATA_URL_RE.match(value or "")
    return bool(match) and match.group("mime").lower().startswith(media)


def decode_payload(payload: str, default_mime: str) -> tuple[bytes, str]:
    """Decode a bare base64 string or a ``data:<mime>;base64,`` URL.

    Returns the raw bytes and the mime type. Raises InvalidRequest when the
    payload is not valid base64 or decodes to nothing.
    """
    mime = default_mime
    match = _DATA_URL_RE.match(payload)
    if match:
        mime = match.group("mime").lower()
        payload = payload[match.end():]
    # MIME encoders wrap base64 at 76 columns.
    payload = "".join(payload.split())
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequest(f"Payload is not valid base64: {e}") from e
    if not data:
        raise InvalidRequest("Payload is empty")
    return data, mime


def extension_for(mime: str) -> str:
    return _EXTENSIONS.get(mime) or mime.split("/")[-1] or "bin"


async def upload(blobs: MemoryBlobStore, path: str, data: bytes, mime: str) -> str:
    """Store a blob and return its public URL, normalizing failures."""
    try:
        return await blobs.put(path, data, mime)
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(f"Upload of {path} failed: {e}") from e


class MessageRouter:
    def __init__(
        self,
        rooms: RoomRegistry,
        subscribers: SubscriberRegistry,
        store: MemoryDocumentStore,
        blobs: MemoryBlobStore,
    ) -> None:
        self._rooms = rooms
        self._subscribers = subscribers
        self._store = store
        self._blobs = blobs

    async def send_text(
        self,
        user_id: str,
        username: str,
        room_id: str,
        text: str,
        connection_id: Optional[str] = None,
    ) -> Message:
        if not user_id or not username or not room_id or not text:
            raise InvalidRequest("Invalid message data: user id, username, room id and text are required")
        room = self._rooms.lookup(room_id)

        message = Message.create(user_id, username, room.room_id, MessageKind.TEXT, text)
        await self._persist(message)
        self._fan_out(message, connection_id)
        logger.info("%s → room %s: text message %s", username, room.room_id, message.message_id)
        return message

    async def send_audio(
        self,
        user_id: str,
        username: str,
        room_id: str,
        audio: str,
        connection_id: Optional[str] = None,
    ) -> Message:
        if not user_id or not room_id or not audio:
            raise InvalidRequest("Invalid audio data: user id, room id and audio payload are required")
        room = self._rooms.lookup(room_id)
        data, mime = decode_payload(audio, DEFAULT_AUDIO_MIME)

        path = f"audio/{room.room_id}/{user_id}/{now_ms()}_{new_id()}.{extension_for(mime)}"
        url = await upload(self._blobs, path, data, mime)
        logger.debug("Uploaded %d bytes of audio to %s", len(data), path)

        message = Message.create(user_id, username or user_id, room.room_id, MessageKind.AUDIO, url)
        await self._persist(message)
        self._fan_out(message, connection_id)
        logger.info("%s → room %s: audio message %s", username, room.room_id, message.message_id)
        return message

    async def _persist(self, message: Message) -> None:
        try:
            await self._store.add_message(message.to_record())
        except PersistenceError as e:
            logger.error("Error saving message %s: %s", message.message_id, e)
            raise
        except Exception as e:
            logger.error("Error saving message %s: %s", message.message_id, e)
            raise PersistenceError("Error saving message") from e

    def _fan_out(self, message: Message, connection_id: Optional[str]) -> None:
        payload = MessagePayload.from_message(message)
        self._subscribers.broadcast(message.room_id, NewMessage(message=payload))
        self._subscribers.unicast(connection_id, MessageSent(message=payload))
