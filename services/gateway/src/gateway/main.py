"""FastAPI application entry point."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from common.logging import setup_cloudwatch_logging
from radio.config import load_config as load_radio_config
from radio.service import RadioService

from gateway.config import AppConfig, load_config
from gateway.models import HealthResponse, RootResponse
from gateway.routers import (
    blobs_router,
    emergencies_router,
    rooms_router,
    users_router,
    vehicles_router,
)
from gateway.websockets import websocket_room_session

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    service: Optional[RadioService] = None,
) -> FastAPI:
    """Build the gateway app around one in-process RadioService."""
    config = config or load_config()
    if service is None:
        service = RadioService(load_radio_config())

    app = FastAPI(title="Radio Gateway", description="Realtime chat rooms and push-to-talk")
    app.state.config = config
    app.state.radio = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors.origins,
        allow_credentials=config.cors.allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.include_router(users_router)
    app.include_router(emergencies_router)
    app.include_router(vehicles_router)
    app.include_router(blobs_router)
    app.add_api_websocket_route("/ws", websocket_room_session)

    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint with API information."""
        return RootResponse(
            service="radio-gateway",
            status="running",
            endpoints={
                "health": "/health",
                "rooms": "/api/rooms",
                "room": "/api/rooms/{room_id}",
                "users": "/api/users",
                "emergencies": "/api/emergencies/active",
                "vehicle": "/api/vehicles/{user_id}",
                "blobs": "/blobs/{path}",
                "websocket": "/ws",
            },
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    return app


def main() -> None:
    import uvicorn

    setup_cloudwatch_logging("gateway")
    config = load_config()
    logger.info("Starting gateway on %s:%d", config.server.host, config.server.port)
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
