"""Live presence: which connection belongs to which user.

The in-memory map is authoritative. The document-store profile is a
best-effort mirror written after the live state has already changed, and a
failed write never rolls the registration back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from radio.errors import InvalidRequest, PersistenceError
from radio.models import User, now_ms
from radio.store import MemoryDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class Registration:
    user: User
    # connection previously bound to the same user, now released
    replaced_connection_id: Optional[str] = None


class ConnectionRegistry:
    def __init__(self, store: MemoryDocumentStore) -> None:
        self._store = store
        self._users: dict[str, User] = {}
        self._by_connection: dict[str, str] = {}

    @staticmethod
    def validate(user_id: str, username: str) -> None:
        if not user_id or not username:
            raise InvalidRequest("Invalid user data: user id and username are required")

    async def connect(
        self,
        connection_id: str,
        user_id: str,
        username: str,
        full_name: str = "",
        email: str = "",
        phone: str = "",
        avatar_uri: str = "",
    ) -> Registration:
        registration = self.bind(
            connection_id,
            user_id,
            username,
            full_name=full_name,
            email=email,
            phone=phone,
            avatar_uri=avatar_uri,
        )
        await self.mirror(registration.user)
        return registration

    def bind(
        self,
        connection_id: str,
        user_id: str,
        username: str,
        full_name: str = "",
        email: str = "",
        phone: str = "",
        avatar_uri: str = "",
    ) -> Registration:
        """Bind ``connection_id`` to the user without touching the store."""
        self.validate(user_id, username)
        incoming = User(
            user_id=user_id,
            username=username,
            full_name=full_name,
            email=email,
            phone=phone,
            avatar_uri=avatar_uri,
        )
        replaced: Optional[str] = None
        existing = self._users.get(incoming.user_id)
        if existing is not None:
            if existing.connection_id and existing.connection_id != connection_id:
                replaced = existing.connection_id
                self._by_connection.pop(replaced, None)
            existing.username = incoming.username
            for attr in ("full_name", "email", "phone", "avatar_uri"):
                if value := getattr(incoming, attr):
                    setattr(existing, attr, value)
            user = existing
        else:
            user = incoming
            self._users[user.user_id] = user

        user.connection_id = connection_id
        user.is_online = True
        user.last_seen = now_ms()
        self._by_connection[connection_id] = user.user_id
        logger.info("User %s (%s) online on connection %s", user.user_id, user.username, connection_id)
        return Registration(user=user, replaced_connection_id=replaced)

    def disconnect(self, connection_id: str) -> Optional[User]:
        """Remove the user bound to ``connection_id``. Returns None when unbound."""
        user_id = self._by_connection.pop(connection_id, None)
        if user_id is None:
            return None
        user = self._users.pop(user_id, None)
        if user is None:
            return None
        user.connection_id = None
        user.is_online = False
        user.last_seen = now_ms()
        logger.info("User %s (%s) offline", user.user_id, user.username)
        return user

    def user_for(self, connection_id: str) -> Optional[User]:
        user_id = self._by_connection.get(connection_id)
        return self._users.get(user_id) if user_id else None

    def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def connection_of(self, user_id: str) -> Optional[str]:
        user = self._users.get(user_id)
        return user.connection_id if user else None

    def online_users(self) -> list[User]:
        return list(self._users.values())

    def apply_profile(self, user_id: str, profile: dict) -> None:
        """Copy persisted profile fields onto the live presence entry, if online."""
        user = self._users.get(user_id)
        if user is None:
            return
        user.username = profile.get("username") or user.username
        user.full_name = profile.get("fullName", user.full_name)
        user.email = profile.get("email", user.email)
        user.phone = profile.get("phone", user.phone)
        user.avatar_uri = profile.get("avatarUri", user.avatar_uri)

    async def mark_offline(self, user: User) -> None:
        await self.mirror(user)

    async def mirror(self, user: User) -> None:
        fields = user.to_profile()
        # Empty profile fields never overwrite what is already stored.
        fields = {k: v for k, v in fields.items() if v != "" or k == "username"}
        try:
            await self._store.upsert_user(user.user_id, fields)
        except PersistenceError as e:
            logger.warning("Profile mirror failed for user %s: %s", user.user_id, e)
        except Exception:
            logger.exception("Unexpected error mirroring profile for user %s", user.user_id)
