"""User REST API endpoints."""

from fastapi import APIRouter, Depends

from radio.service import RadioService

from gateway.dependencies import get_service
from gateway.models import ListUsersResponse

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=ListUsersResponse)
async def list_users(service: RadioService = Depends(get_service)) -> ListUsersResponse:
    users = service.online_users()
    return ListUsersResponse(count=len(users), users=users)
