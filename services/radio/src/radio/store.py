"""In-memory document and blob stores.

Stand-ins for the hosted document store (user profiles, message log,
vehicles, emergencies) and the blob bucket (audio clips, avatars, vehicle
photos). All data lives in dicts, lost on restart.
The interface is async so a hosted implementation can be swapped in later;
failures surface as PersistenceError.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from radio.errors import PersistenceError

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
MESSAGES_COLLECTION = "messages"
VEHICLES_COLLECTION = "vehicles"
EMERGENCIES_COLLECTION = "emergencies"


@dataclass
class StoredBlob:
    path: str
    data: bytes
    content_type: str
    created_at: datetime


class MemoryDocumentStore:
    def __init__(self) -> None:
        # collection → document id → document
        self._collections: dict[str, dict[str, dict[str, Any]]] = {
            USERS_COLLECTION: {},
            MESSAGES_COLLECTION: {},
            VEHICLES_COLLECTION: {},
            EMERGENCIES_COLLECTION: {},
        }

    def _upsert(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        doc = self._collections[collection].setdefault(doc_id, {"id": doc_id})
        doc.update(fields)
        return copy.deepcopy(doc)

    def _get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        doc = self._collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def upsert_user(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Create the profile if absent, otherwise merge ``fields`` into it."""
        return self._upsert(USERS_COLLECTION, user_id, fields)

    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        return self._get(USERS_COLLECTION, user_id)

    async def upsert_vehicle(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Vehicles are keyed by owner: one vehicle per user."""
        return self._upsert(VEHICLES_COLLECTION, user_id, fields)

    async def get_vehicle(self, user_id: str) -> Optional[dict[str, Any]]:
        return self._get(VEHICLES_COLLECTION, user_id)

    async def upsert_emergency(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return self._upsert(EMERGENCIES_COLLECTION, user_id, fields)

    async def get_emergency(self, user_id: str) -> Optional[dict[str, Any]]:
        return self._get(EMERGENCIES_COLLECTION, user_id)

    async def add_message(self, record: dict[str, Any]) -> None:
        """Append a message record. Records are never updated."""
        messages = self._collections[MESSAGES_COLLECTION]
        message_id = record.get("id")
        if not message_id:
            raise PersistenceError("Message record has no id")
        if message_id in messages:
            raise PersistenceError(f"Message {message_id} already stored")
        messages[message_id] = copy.deepcopy(record)

    async def list_messages(self, room_id: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(m)
            for m in self._collections[MESSAGES_COLLECTION].values()
            if m.get("roomId") == room_id
        ]


class MemoryBlobStore:
    def __init__(self, public_base_url: str) -> None:
        self._public_base_url = public_base_url.rstrip("/")
        self._blobs: dict[str, StoredBlob] = {}

    def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{path}"

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``path`` and return its public URL."""
        if not path or path.startswith("/") or ".." in path.split("/"):
            raise PersistenceError(f"Invalid blob path {path!r}")
        self._blobs[path] = StoredBlob(
            path=path,
            data=data,
            content_type=content_type,
            created_at=datetime.now(timezone.utc),
        )
        logger.debug("Stored blob %s (%d bytes, %s)", path, len(data), content_type)
        return self.public_url(path)

    def get(self, path: str) -> Optional[StoredBlob]:
        return self._blobs.get(path)

    async def prune(self, prefix: str, keep: str) -> int:
        """Delete every blob under ``prefix`` except ``keep``. Returns the count removed."""
        stale = [p for p in self._blobs if p.startswith(prefix) and p != keep]
        for path in stale:
            del self._blobs[path]
        return len(stale)
