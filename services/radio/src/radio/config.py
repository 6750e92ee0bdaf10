"""Radio service configuration: the fixed room catalog and store settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from radio.models import RoomType


class RoomSeed(BaseModel):
    """One entry of the fixed room catalog."""

    id: str
    name: str
    description: str = ""
    type: RoomType = RoomType.OTHER
    private: bool = False


def _default_rooms() -> list[RoomSeed]:
    return [
        RoomSeed(
            id="lobby",
            name="Lobby",
            description="Landing room for newly connected users",
            type=RoomType.LOBBY,
        ),
        RoomSeed(
            id="general",
            name="General",
            description="Open text and audio chat",
            type=RoomType.GENERAL,
        ),
        RoomSeed(
            id="handy",
            name="Handy",
            description="Push-to-talk radio channel, one speaker at a time",
            type=RoomType.PTT_RADIO,
        ),
    ]


class BlobStoreConfig(BaseModel):
    public_base_url: str = Field(
        "http://localhost:8000/blobs",
        description="Prefix for public URLs issued by the in-memory blob store",
    )


class AppConfig(BaseModel):
    rooms: list[RoomSeed] = Field(default_factory=_default_rooms)
    aliases: dict[str, str] = Field(
        default_factory=lambda: {
            "chat-general": "general",
            "ptt": "handy",
            "radio": "handy",
        },
        description="Legacy room ids accepted by join-room",
    )
    default_users_room: str = Field("general", description="Room used by get-users when none is given")
    max_capacity: int = Field(50, description="Display-only capacity reported in the room catalog")
    emergency_radius_km: float = Field(
        50.0, gt=0, description="Connections farther than this from an alert are not notified"
    )
    blob_store: BlobStoreConfig = BlobStoreConfig()


def _default_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "config.yaml"


def load_config(path: Optional[Path | str] = None) -> AppConfig:
    """Load the radio configuration from YAML, then apply environment overrides.

    Environment variables take precedence over YAML values:
    - RADIO_CONFIG: path of the YAML file (when ``path`` is not given)
    - BLOB_PUBLIC_BASE_URL: prefix for issued blob URLs
    """
    if path is None and (env_path := os.environ.get("RADIO_CONFIG")):
        path = env_path
    config_path = Path(path) if path is not None else _default_config_path()

    if not config_path.is_file():
        config = AppConfig()
    else:
        with config_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config at {config_path} must be a mapping.")
        try:
            config = AppConfig.model_validate(raw)
        except ValidationError as exc:
            raise ValueError(f"Invalid configuration in {config_path}: {exc}") from exc

    if base_url := os.environ.get("BLOB_PUBLIC_BASE_URL"):
        config.blob_store.public_base_url = base_url

    return config
