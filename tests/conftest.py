"""Shared fixtures for radio tests."""

from typing import Callable, List, Optional

import pytest

from radio.config import AppConfig
from radio.events import Event
from radio.service import RadioService
from radio.session import StreamHandler


class RecordingConnection:
    """Connection double that records every event delivered to it."""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.events: List[Event] = []

    def deliver(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [e.type for e in self.events]

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.type == event_type]

    def last(self, event_type: str) -> Optional[Event]:
        matches = self.of_type(event_type)
        return matches[-1] if matches else None

    def clear(self) -> None:
        self.events.clear()


class FailingDocumentStore:
    """Document store double whose writes always fail."""

    def __init__(self, exc: Optional[Exception] = None) -> None:
        self.exc = exc or RuntimeError("store unavailable")
        self.calls: List[str] = []

    async def upsert_user(self, user_id: str, fields: dict) -> dict:
        self.calls.append("upsert_user")
        raise self.exc

    async def get_user(self, user_id: str) -> Optional[dict]:
        self.calls.append("get_user")
        raise self.exc

    async def add_message(self, record: dict) -> None:
        self.calls.append("add_message")
        raise self.exc

    async def list_messages(self, room_id: str) -> list:
        return []

    async def get_vehicle(self, user_id: str) -> Optional[dict]:
        self.calls.append("get_vehicle")
        raise self.exc

    async def upsert_vehicle(self, user_id: str, fields: dict) -> dict:
        self.calls.append("upsert_vehicle")
        raise self.exc

    async def upsert_emergency(self, user_id: str, fields: dict) -> dict:
        self.calls.append("upsert_emergency")
        raise self.exc


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def service(config: AppConfig) -> RadioService:
    return RadioService(config)


@pytest.fixture
def failing_store() -> FailingDocumentStore:
    return FailingDocumentStore()


@pytest.fixture
def recorder() -> Callable[[str], RecordingConnection]:
    return RecordingConnection


@pytest.fixture
def connect(service: RadioService) -> Callable[[str], StreamHandler]:
    """Attach a StreamHandler to the service without running its loops."""

    def _connect(connection_id: str) -> StreamHandler:
        handler = StreamHandler(service, connection_id=connection_id)
        service.attach(handler)
        return handler

    return _connect
