"""One active room per user.

The membership index (user → room) and the rooms' member sets are changed
together in plain synchronous code: a transfer removes the user from the old
room and adds it to the new one without yielding to the event loop, so no
other task can observe the user in two rooms or in none mid-transfer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from radio.errors import InvalidRequest
from radio.events import UserJoined, UserLeft
from radio.registry import SubscriberRegistry
from radio.rooms import RoomRegistry

logger = logging.getLogger(__name__)


@dataclass
class JoinResult:
    room_id: str
    user_count: int
    previous_room_id: Optional[str] = None


@dataclass
class LeaveResult:
    room_id: str
    user_count: int


class MembershipCoordinator:
    def __init__(self, rooms: RoomRegistry, subscribers: SubscriberRegistry) -> None:
        self._rooms = rooms
        self._subscribers = subscribers
        self._index: dict[str, str] = {}

    def room_of(self, user_id: str) -> Optional[str]:
        return self._index.get(user_id)

    def memberships(self) -> dict[str, str]:
        return dict(self._index)

    def join(
        self,
        user_id: str,
        username: str,
        room_id: str,
        connection_id: Optional[str] = None,
    ) -> JoinResult:
        if not room_id or not user_id or not username:
            raise InvalidRequest("room id, user id and username are required")

        room = self._rooms.lookup(room_id)
        handler = self._subscribers.get(connection_id)

        previous = self._index.get(user_id)
        if previous is not None and previous != room.room_id:
            self._remove(user_id, username, previous, connection_id)

        count = self._rooms._add_member(room.room_id, user_id)
        self._index[user_id] = room.room_id
        if handler is not None:
            self._subscribers.subscribe(room.room_id, handler)

        self._subscribers.broadcast(
            room.room_id,
            UserJoined(room_id=room.room_id, user_id=user_id, username=username, user_count=count),
        )
        if previous is not None and previous != room.room_id:
            logger.info("User %s moved from room %s to %s (%d members)", user_id, previous, room.room_id, count)
        else:
            logger.info("User %s (%s) joined room %s (%d members)", user_id, username, room.room_id, count)
        return JoinResult(room_id=room.room_id, user_count=count, previous_room_id=previous)

    def leave(
        self,
        user_id: str,
        username: str = "",
        connection_id: Optional[str] = None,
    ) -> Optional[LeaveResult]:
        """Remove the user from its current room. No-op when it has none."""
        room_id = self._index.get(user_id)
        if room_id is None:
            return None
        count = self._remove(user_id, username, room_id, connection_id)
        logger.info("User %s left room %s (%d members)", user_id, room_id, count)
        return LeaveResult(room_id=room_id, user_count=count)

    def move_subscription(self, user_id: str, old_connection_id: str, new_connection_id: str) -> None:
        """Carry the user's room subscription over to a new connection."""
        room_id = self._index.get(user_id)
        if room_id is None:
            return
        old = self._subscribers.get(old_connection_id)
        if old is not None:
            self._subscribers.unsubscribe(room_id, old)
        new = self._subscribers.get(new_connection_id)
        if new is not None:
            self._subscribers.subscribe(room_id, new)

    def _remove(
        self,
        user_id: str,
        username: str,
        room_id: str,
        connection_id: Optional[str],
    ) -> int:
        count = self._rooms._remove_member(room_id, user_id)
        del self._index[user_id]
        handler = self._subscribers.get(connection_id)
        if handler is not None:
            self._subscribers.unsubscribe(room_id, handler)
        self._subscribers.broadcast(
            room_id,
            UserLeft(room_id=room_id, user_id=user_id, username=username, user_count=count),
        )
        return count
