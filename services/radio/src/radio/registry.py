"""Subscriber registry: maps room_id → set of live connection handlers.

Fan-out goes through this explicit structure instead of a transport-level
room abstraction. Delivery never suspends, so callers can fan out in the
middle of a state transition without another task interleaving.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from radio.events import Event
    from radio.session import StreamHandler

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    def __init__(self) -> None:
        self._connections: dict[str, StreamHandler] = {}
        self._rooms: dict[str, set[StreamHandler]] = defaultdict(set)

    def attach(self, handler: StreamHandler) -> None:
        self._connections[handler.connection_id] = handler

    def detach(self, handler: StreamHandler) -> None:
        """Drop a connection from every room and from global fan-out."""
        self._connections.pop(handler.connection_id, None)
        for room_id in list(self._rooms):
            self.unsubscribe(room_id, handler)

    def get(self, connection_id: Optional[str]) -> Optional[StreamHandler]:
        if connection_id is None:
            return None
        return self._connections.get(connection_id)

    def subscribe(self, room_id: str, handler: StreamHandler) -> None:
        self._rooms[room_id].add(handler)
        logger.debug(
            "Subscribed connection %s to room %s (total: %d)",
            handler.connection_id,
            room_id,
            len(self._rooms[room_id]),
        )

    def unsubscribe(self, room_id: str, handler: StreamHandler) -> None:
        subscribers = self._rooms.get(room_id)
        if subscribers is None:
            return
        subscribers.discard(handler)
        if not subscribers:
            del self._rooms[room_id]

    def connection_ids(self) -> list[str]:
        return list(self._connections)

    def subscribers(self, room_id: str) -> set[str]:
        return {h.connection_id for h in self._rooms.get(room_id, set())}

    def broadcast(self, room_id: str, event: Event) -> None:
        """Send an event to every subscriber of a room."""
        self._deliver(list(self._rooms.get(room_id, set())), event)

    def broadcast_all(self, event: Event) -> None:
        """Send an event to every live connection, subscribed or not."""
        self._deliver(list(self._connections.values()), event)

    def unicast(self, connection_id: Optional[str], event: Event) -> None:
        handler = self.get(connection_id)
        if handler is not None:
            handler.deliver(event)

    @staticmethod
    def _deliver(handlers: Iterable[StreamHandler], event: Event) -> None:
        for handler in handlers:
            handler.deliver(event)
