"""Push-to-talk arbitration: at most one speaker per room.

Each room is Idle or Held(holder). A request on an Idle room is the only way
into Held; a request on a Held room is denied and never queued. Only the
holder can release, except on disconnect where the token is taken back.
There is no lease timeout: a holder who neither releases nor disconnects keeps
the room indefinitely.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from radio.events import CurrentSpeaker, PttDenied, PttGranted, PttReleased, Speaker
from radio.models import Held, Idle, TokenState
from radio.registry import SubscriberRegistry

logger = logging.getLogger(__name__)

IDLE = Idle()


class PTTArbiter:
    def __init__(self, room_ids: Iterable[str], subscribers: SubscriberRegistry) -> None:
        self._subscribers = subscribers
        self._state: dict[str, TokenState] = {room_id: IDLE for room_id in room_ids}

    def state(self, room_id: str) -> Optional[TokenState]:
        return self._state.get(room_id)

    def current_speaker(self, room_id: str) -> Optional[Speaker]:
        state = self._state.get(room_id)
        return Speaker.from_state(state) if state is not None else None

    def held_by(self, user_id: str) -> list[str]:
        return [
            room_id
            for room_id, state in self._state.items()
            if isinstance(state, Held) and state.holder_id == user_id
        ]

    def request_token(
        self,
        room_id: str,
        user_id: str,
        username: str,
        connection_id: Optional[str] = None,
    ) -> Optional[TokenState]:
        """Grant the token if the room is Idle, otherwise deny.

        Returns the room state after the call, or None when the request was
        ignored (unknown room or no user id).
        """
        state = self._state.get(room_id)
        if state is None or not user_id:
            logger.debug("Ignoring talk request for room %r from %r", room_id, user_id)
            return None

        if isinstance(state, Idle):
            held = Held(holder_id=user_id, holder_name=username)
            self._state[room_id] = held
            self._subscribers.unicast(connection_id, PttGranted(room_id=room_id, since=held.since))
            self._subscribers.broadcast(
                room_id,
                CurrentSpeaker(room_id=room_id, speaker=Speaker.from_state(held)),
            )
            logger.info("Talk token in room %s granted to %s (%s)", room_id, user_id, username)
            return held

        self._subscribers.unicast(
            connection_id,
            PttDenied(room_id=room_id, current_speaker=Speaker.from_state(state)),
        )
        logger.info(
            "Talk token in room %s denied to %s, held by %s",
            room_id,
            user_id,
            state.holder_id,
        )
        return state

    def release_token(self, room_id: str, user_id: str) -> bool:
        """Release the token if ``user_id`` holds it. Anything else is a no-op."""
        state = self._state.get(room_id)
        if not isinstance(state, Held) or state.holder_id != user_id:
            return False
        self._release(room_id, state)
        logger.info("Talk token in room %s released by %s", room_id, user_id)
        return True

    def release_all(self, user_id: str) -> list[str]:
        """Take back every token held by ``user_id``. Used on disconnect."""
        held = [
            (room_id, state)
            for room_id, state in self._state.items()
            if isinstance(state, Held) and state.holder_id == user_id
        ]
        released = []
        for room_id, state in held:
            self._release(room_id, state)
            released.append(room_id)
            logger.info("Talk token in room %s reclaimed from disconnected %s", room_id, user_id)
        return released

    def _release(self, room_id: str, state: Held) -> None:
        self._state[room_id] = IDLE
        self._subscribers.broadcast(
            room_id,
            PttReleased(room_id=room_id, user_id=state.holder_id, username=state.holder_name),
        )
        self._subscribers.broadcast(room_id, CurrentSpeaker(room_id=room_id, speaker=None))
