"""WebSocket handler for radio sessions."""

import asyncio
import json
import logging
from typing import Any, AsyncIterator

from fastapi import WebSocket, WebSocketDisconnect

from radio.service import RadioService
from radio.session import StreamHandler

logger = logging.getLogger(__name__)


async def websocket_room_session(websocket: WebSocket) -> None:
    """WebSocket session bridged to a StreamHandler on the in-process service.

    The client registers first:
      {"type": "register", "userId": "...", "username": "..."}

    Then joins a room and talks:
      {"type": "join_room", "roomId": "handy", "userId": "...", "username": "..."}
      {"type": "request_talk", "roomId": "handy", "userId": "...", "ackId": "1"}
      {"type": "send_message", "roomId": "general", "text": "hi", ...}
      {"type": "ping"}

    Server pushes events as JSON with a "type" field. Frames carrying an
    ``ackId`` are answered with an ``ack`` event.
    """
    await websocket.accept()
    service: RadioService = websocket.app.state.radio
    handler = StreamHandler(service)
    logger.info("WebSocket connected: %s", handler.connection_id)

    async def frames() -> AsyncIterator[dict[str, Any]]:
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    data = json.loads(text)
                except json.JSONDecodeError:
                    logger.info("Non-JSON frame on connection %s", handler.connection_id)
                    data = {}
                yield data if isinstance(data, dict) else {}
        except WebSocketDisconnect:
            return
        except (ConnectionResetError, BrokenPipeError):
            return

    try:
        await handler.run(frames(), websocket.send_json)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Unexpected error in radio WebSocket %s", handler.connection_id)
    finally:
        logger.info("WebSocket closed: %s", handler.connection_id)
