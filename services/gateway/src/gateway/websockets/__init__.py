"""Gateway WebSocket handlers."""

from gateway.websockets.room import websocket_room_session

__all__ = ["websocket_room_session"]
