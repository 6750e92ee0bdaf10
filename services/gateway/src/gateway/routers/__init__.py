"""Gateway routers for REST endpoints."""

from gateway.routers.blobs import router as blobs_router
from gateway.routers.emergencies import router as emergencies_router
from gateway.routers.rooms import router as rooms_router
from gateway.routers.users import router as users_router
from gateway.routers.vehicles import router as vehicles_router

__all__ = ["blobs_router", "emergencies_router", "rooms_router", "users_router", "vehicles_router"]
