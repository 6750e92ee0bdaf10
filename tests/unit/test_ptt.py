"""Tests for push-to-talk token arbitration."""

import asyncio

import pytest

from radio.models import Held, Idle
from radio.ptt import PTTArbiter
from radio.registry import SubscriberRegistry


@pytest.fixture
def subscribers():
    return SubscriberRegistry()


@pytest.fixture
def arbiter(subscribers):
    return PTTArbiter(["handy", "general"], subscribers)


@pytest.fixture
def alice(subscribers, recorder):
    conn = recorder("c-alice")
    subscribers.attach(conn)
    subscribers.subscribe("handy", conn)
    return conn


@pytest.fixture
def bob(subscribers, recorder):
    conn = recorder("c-bob")
    subscribers.attach(conn)
    subscribers.subscribe("handy", conn)
    return conn


class TestRequest:
    def test_rooms_start_idle(self, arbiter):
        assert isinstance(arbiter.state("handy"), Idle)
        assert arbiter.current_speaker("handy") is None

    def test_idle_room_grants(self, arbiter, alice, bob):
        state = arbiter.request_token("handy", "alice", "Alice", "c-alice")

        assert isinstance(state, Held)
        assert state.holder_id == "alice"
        assert alice.types() == ["ptt_granted", "current_speaker"]
        assert bob.types() == ["current_speaker"]
        assert bob.events[0].speaker.user_id == "alice"

    def test_held_room_denies_without_change(self, arbiter, alice, bob):
        granted = arbiter.request_token("handy", "alice", "Alice", "c-alice")
        alice.clear()
        bob.clear()

        state = arbiter.request_token("handy", "bob", "Bob", "c-bob")

        assert state == granted
        assert arbiter.state("handy") == granted
        assert bob.types() == ["ptt_denied"]
        assert bob.events[0].current_speaker.user_id == "alice"
        assert alice.events == []

    def test_unknown_room_is_ignored(self, arbiter, alice):
        assert arbiter.request_token("nowhere", "alice", "Alice", "c-alice") is None
        assert alice.events == []

    def test_empty_user_is_ignored(self, arbiter, alice):
        assert arbiter.request_token("handy", "", "Alice", "c-alice") is None
        assert isinstance(arbiter.state("handy"), Idle)

    def test_rooms_are_independent(self, arbiter, alice, bob):
        arbiter.request_token("handy", "alice", "Alice", "c-alice")
        state = arbiter.request_token("general", "bob", "Bob", "c-bob")

        assert isinstance(state, Held)
        assert state.holder_id == "bob"
        assert arbiter.current_speaker("handy").user_id == "alice"

    @pytest.mark.asyncio
    async def test_concurrent_requests_have_one_winner(self, arbiter):
        async def request(user_id):
            await asyncio.sleep(0)
            return arbiter.request_token("handy", user_id, user_id)

        results = await asyncio.gather(*(request(f"user-{i}") for i in range(20)))

        holders = {r.holder_id for r in results}
        assert len(holders) == 1
        assert arbiter.held_by(holders.pop()) == ["handy"]


class TestRelease:
    def test_holder_release_returns_to_idle(self, arbiter, alice, bob):
        arbiter.request_token("handy", "alice", "Alice", "c-alice")
        bob.clear()

        assert arbiter.release_token("handy", "alice") is True

        assert isinstance(arbiter.state("handy"), Idle)
        assert bob.types() == ["ptt_released", "current_speaker"]
        assert bob.events[1].speaker is None

    def test_non_holder_release_is_noop(self, arbiter, alice, bob):
        arbiter.request_token("handy", "alice", "Alice", "c-alice")
        alice.clear()
        bob.clear()

        assert arbiter.release_token("handy", "bob") is False

        assert arbiter.current_speaker("handy").user_id == "alice"
        assert alice.events == []
        assert bob.events == []

    def test_release_on_idle_room_is_noop(self, arbiter):
        assert arbiter.release_token("handy", "alice") is False

    def test_release_then_other_user_is_granted(self, arbiter, alice, bob):
        arbiter.request_token("handy", "alice", "Alice", "c-alice")
        arbiter.release_token("handy", "alice")
        bob.clear()

        state = arbiter.request_token("handy", "bob", "Bob", "c-bob")

        assert state.holder_id == "bob"
        assert bob.types()[0] == "ptt_granted"

    def test_release_all_reclaims_every_room(self, arbiter):
        arbiter.request_token("handy", "alice", "Alice")
        arbiter.request_token("general", "alice", "Alice")

        assert sorted(arbiter.release_all("alice")) == ["general", "handy"]
        assert arbiter.held_by("alice") == []
        assert isinstance(arbiter.state("general"), Idle)

    def test_release_all_leaves_other_holders(self, arbiter, alice, bob):
        arbiter.request_token("handy", "bob", "Bob", "c-bob")
        arbiter.request_token("general", "alice", "Alice", "c-alice")
        alice.clear()
        bob.clear()

        assert arbiter.release_all("alice") == ["general"]
        assert arbiter.release_all("nobody") == []
        assert arbiter.state("handy").holder_id == "bob"
        assert bob.types() == []
