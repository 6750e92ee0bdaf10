"""FastAPI dependencies shared by the REST routers."""

from fastapi import Request

from radio.service import RadioService


def get_service(request: Request) -> RadioService:
    return request.app.state.radio
