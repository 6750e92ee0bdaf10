"""Tests for text and audio message routing."""

import asyncio
import base64

import pytest

from radio.config import AppConfig
from radio.errors import InvalidRequest, PersistenceError, RoomNotFound
from radio.registry import SubscriberRegistry
from radio.rooms import RoomRegistry
from radio.router import MessageRouter, decode_payload, extension_for, is_data_url
from radio.store import MemoryBlobStore, MemoryDocumentStore

AUDIO = base64.b64encode(b"\x00\x01fake-m4a-bytes").decode()


class SlowDocumentStore(MemoryDocumentStore):
    """Completes writes in reverse order of arrival."""

    def __init__(self) -> None:
        super().__init__()
        self.delays = [0.02, 0.0]

    async def add_message(self, record):
        await asyncio.sleep(self.delays.pop(0) if self.delays else 0)
        await super().add_message(record)


class FailingBlobStore(MemoryBlobStore):
    async def put(self, path, data, content_type):
        raise ConnectionError("bucket unreachable")


@pytest.fixture
def subscribers():
    return SubscriberRegistry()


@pytest.fixture
def rooms():
    config = AppConfig()
    return RoomRegistry(config.rooms, config.aliases)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def blobs():
    return MemoryBlobStore("http://testserver/blobs")


@pytest.fixture
def members(subscribers, recorder):
    c1 = recorder("c1")
    c2 = recorder("c2")
    for c in (c1, c2):
        subscribers.attach(c)
        subscribers.subscribe("general", c)
    return c1, c2


def make_router(rooms, subscribers, store, blobs):
    return MessageRouter(rooms, subscribers, store, blobs)


class TestSendText:
    @pytest.mark.asyncio
    async def test_persists_then_broadcasts(self, rooms, subscribers, store, blobs, members):
        c1, c2 = members
        router = make_router(rooms, subscribers, store, blobs)

        message = await router.send_text("u1", "User One", "general", "hello", "c1")

        stored = await store.list_messages("general")
        assert [m["id"] for m in stored] == [message.message_id]
        assert stored[0]["text"] == "hello"
        assert c1.types() == ["new_message", "message_sent"]
        assert c2.types() == ["new_message"]
        assert c2.events[0].message.text == "hello"

    @pytest.mark.asyncio
    async def test_empty_text_is_rejected_without_broadcast(
        self, rooms, subscribers, store, blobs, members
    ):
        c1, c2 = members
        router = make_router(rooms, subscribers, store, blobs)

        with pytest.raises(InvalidRequest):
            await router.send_text("u1", "User One", "general", "", "c1")

        assert await store.list_messages("general") == []
        assert c1.events == []
        assert c2.events == []

    @pytest.mark.asyncio
    async def test_unknown_room_is_rejected(self, rooms, subscribers, store, blobs):
        router = make_router(rooms, subscribers, store, blobs)

        with pytest.raises(RoomNotFound):
            await router.send_text("u1", "User One", "nowhere", "hello")

    @pytest.mark.asyncio
    async def test_store_failure_suppresses_broadcast(
        self, rooms, subscribers, blobs, members, failing_store
    ):
        c1, c2 = members
        router = make_router(rooms, subscribers, failing_store, blobs)

        with pytest.raises(PersistenceError):
            await router.send_text("u1", "User One", "general", "hello", "c1")

        assert failing_store.calls == ["add_message"]
        assert c1.events == []
        assert c2.events == []

    @pytest.mark.asyncio
    async def test_identical_texts_get_distinct_ids(self, rooms, subscribers, blobs, members):
        c1, c2 = members
        store = SlowDocumentStore()
        router = make_router(rooms, subscribers, store, blobs)

        first, second = await asyncio.gather(
            router.send_text("u1", "User One", "general", "same", "c1"),
            router.send_text("u1", "User One", "general", "same", "c1"),
        )

        assert first.message_id != second.message_id
        stored_ids = {m["id"] for m in await store.list_messages("general")}
        assert stored_ids == {first.message_id, second.message_id}
        broadcast_ids = {e.message.id for e in c2.of_type("new_message")}
        assert broadcast_ids == stored_ids


class TestSendAudio:
    @pytest.mark.asyncio
    async def test_uploads_then_broadcasts_url(self, rooms, subscribers, store, blobs, members):
        c1, c2 = members
        router = make_router(rooms, subscribers, store, blobs)

        message = await router.send_audio("u1", "User One", "general", AUDIO, "c1")

        assert message.payload.startswith("http://testserver/blobs/audio/general/u1/")
        assert message.payload.endswith(".m4a")
        path = message.payload[len("http://testserver/blobs/"):]
        assert blobs.get(path).data == b"\x00\x01fake-m4a-bytes"
        assert c2.events[0].message.audio_url == message.payload
        assert c1.types() == ["new_message", "message_sent"]

    @pytest.mark.asyncio
    async def test_data_url_mime_picks_extension(self, rooms, subscribers, store, blobs):
        router = make_router(rooms, subscribers, store, blobs)

        message = await router.send_audio(
            "u1", "User One", "general", f"data:audio/mpeg;base64,{AUDIO}"
        )

        assert message.payload.endswith(".mp3")
        path = message.payload[len("http://testserver/blobs/"):]
        assert blobs.get(path).content_type == "audio/mpeg"

    @pytest.mark.asyncio
    async def test_invalid_base64_is_rejected(self, rooms, subscribers, store, blobs, members):
        c1, c2 = members
        router = make_router(rooms, subscribers, store, blobs)

        with pytest.raises(InvalidRequest):
            await router.send_audio("u1", "User One", "general", "not base64!!", "c1")

        assert c2.events == []

    @pytest.mark.asyncio
    async def test_missing_payload_is_rejected(self, rooms, subscribers, store, blobs):
        router = make_router(rooms, subscribers, store, blobs)

        with pytest.raises(InvalidRequest):
            await router.send_audio("u1", "User One", "general", "")

    @pytest.mark.asyncio
    async def test_upload_failure_suppresses_broadcast(self, rooms, subscribers, store, members):
        c1, c2 = members
        router = make_router(rooms, subscribers, store, FailingBlobStore("http://x"))

        with pytest.raises(PersistenceError):
            await router.send_audio("u1", "User One", "general", AUDIO, "c1")

        assert await store.list_messages("general") == []
        assert c2.events == []


class TestPayloadHelpers:
    def test_decode_bare_base64_uses_default_mime(self):
        data, mime = decode_payload(AUDIO, "audio/mp4")
        assert data == b"\x00\x01fake-m4a-bytes"
        assert mime == "audio/mp4"

    def test_decode_rejects_empty(self):
        with pytest.raises(InvalidRequest):
            decode_payload("data:audio/mp4;base64,", "audio/mp4")

    def test_decode_accepts_line_wrapped_base64(self):
        raw = bytes(range(256)) * 2
        wrapped = base64.encodebytes(raw).decode()
        assert "\n" in wrapped

        data, mime = decode_payload(f"data:audio/ogg;base64,{wrapped}", "audio/mp4")

        assert data == raw
        assert mime == "audio/ogg"

    def test_decode_still_rejects_non_base64(self):
        with pytest.raises(InvalidRequest, match="not valid base64"):
            decode_payload("not base64!", "audio/mp4")

    def test_is_data_url_filters_by_media(self):
        assert is_data_url("data:image/png;base64,AAAA", "image/")
        assert not is_data_url("data:audio/mp4;base64,AAAA", "image/")
        assert not is_data_url("content://media/1", "image/")

    def test_extension_for_unknown_mime(self):
        assert extension_for("audio/mp4") == "m4a"
        assert extension_for("image/png") == "png"
