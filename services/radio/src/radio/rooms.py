"""Fixed room catalog seeded at startup."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from radio.config import RoomSeed
from radio.errors import RoomNotFound
from radio.events import RoomInfo
from radio.models import Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    def __init__(
        self,
        seeds: Iterable[RoomSeed],
        aliases: Optional[Mapping[str, str]] = None,
        max_capacity: int = 50,
    ) -> None:
        self._rooms: dict[str, Room] = {}
        for seed in seeds:
            if seed.id in self._rooms:
                raise ValueError(f"Duplicate room id {seed.id!r} in catalog")
            self._rooms[seed.id] = Room(
                room_id=seed.id,
                name=seed.name,
                description=seed.description,
                type=seed.type,
                private=seed.private,
                max_capacity=max_capacity,
            )
        self._aliases = dict(aliases or {})
        logger.info("Room catalog seeded: %s", ", ".join(self._rooms))

    def resolve(self, room_id: str) -> str:
        """Map a legacy alias to its canonical room id."""
        return self._aliases.get(room_id, room_id)

    def lookup(self, room_id: str) -> Room:
        room = self._rooms.get(self.resolve(room_id))
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def exists(self, room_id: str) -> bool:
        return self.resolve(room_id) in self._rooms

    def list(self) -> list[RoomInfo]:
        return [RoomInfo.from_room(room) for room in self._rooms.values()]

    def room_ids(self) -> list[str]:
        return list(self._rooms)

    def members(self, room_id: str) -> frozenset[str]:
        return frozenset(self.lookup(room_id).members)

    # Member-set mutation is reserved for MembershipCoordinator.

    def _add_member(self, room_id: str, user_id: str) -> int:
        room = self.lookup(room_id)
        room.members.add(user_id)
        return room.user_count

    def _remove_member(self, room_id: str, user_id: str) -> int:
        room = self.lookup(room_id)
        room.members.discard(user_id)
        return room.user_count
