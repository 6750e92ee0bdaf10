"""Tests for room membership and transfers."""

import pytest

from radio.config import AppConfig
from radio.errors import InvalidRequest, RoomNotFound
from radio.membership import MembershipCoordinator
from radio.registry import SubscriberRegistry
from radio.rooms import RoomRegistry


@pytest.fixture
def rooms():
    config = AppConfig()
    return RoomRegistry(config.rooms, config.aliases)


@pytest.fixture
def subscribers():
    return SubscriberRegistry()


@pytest.fixture
def membership(rooms, subscribers):
    return MembershipCoordinator(rooms, subscribers)


@pytest.fixture
def conn(subscribers, recorder):
    def _conn(connection_id):
        c = recorder(connection_id)
        subscribers.attach(c)
        return c

    return _conn


def assert_index_agrees(membership, rooms):
    for room_id in rooms.room_ids():
        for user_id in rooms.members(room_id):
            assert membership.room_of(user_id) == room_id
    for user_id, room_id in membership.memberships().items():
        assert user_id in rooms.members(room_id)


def test_join_adds_member_and_notifies_room(membership, rooms, subscribers, conn):
    c1 = conn("c1")

    result = membership.join("u1", "User One", "general", "c1")

    assert result.room_id == "general"
    assert result.user_count == 1
    assert result.previous_room_id is None
    assert rooms.members("general") == {"u1"}
    assert subscribers.subscribers("general") == {"c1"}
    assert c1.types() == ["user_joined"]
    assert c1.events[0].user_count == 1


def test_second_join_updates_count_for_everyone(membership, conn):
    c1 = conn("c1")
    c2 = conn("c2")
    membership.join("u1", "User One", "general", "c1")
    c1.clear()

    result = membership.join("u2", "User Two", "general", "c2")

    assert result.user_count == 2
    assert c1.last("user_joined").user_count == 2
    assert c2.last("user_joined").user_count == 2


def test_transfer_moves_user_and_notifies_old_room(membership, rooms, subscribers, conn):
    c1 = conn("c1")
    c2 = conn("c2")
    membership.join("u1", "User One", "general", "c1")
    membership.join("u2", "User Two", "general", "c2")
    c1.clear()
    c2.clear()

    result = membership.join("u1", "User One", "handy", "c1")

    assert result.previous_room_id == "general"
    assert result.user_count == 1
    assert rooms.members("general") == {"u2"}
    assert rooms.members("handy") == {"u1"}
    assert membership.room_of("u1") == "handy"
    assert subscribers.subscribers("general") == {"c2"}
    assert c2.types() == ["user_left"]
    assert c2.events[0].user_count == 1
    assert c1.types() == ["user_joined"]
    assert_index_agrees(membership, rooms)


def test_rejoin_same_room_is_idempotent(membership, rooms, conn):
    c1 = conn("c1")
    membership.join("u1", "User One", "general", "c1")
    c1.clear()

    result = membership.join("u1", "User One", "general", "c1")

    assert result.user_count == 1
    assert rooms.members("general") == {"u1"}
    assert c1.types() == ["user_joined"]


def test_alias_resolves_to_canonical_room(membership, rooms):
    result = membership.join("u1", "User One", "ptt")

    assert result.room_id == "handy"
    assert membership.room_of("u1") == "handy"


@pytest.mark.parametrize(
    "user_id,username,room_id",
    [("", "User One", "general"), ("u1", "", "general"), ("u1", "User One", "")],
)
def test_join_with_missing_field_is_rejected(membership, rooms, user_id, username, room_id):
    with pytest.raises(InvalidRequest):
        membership.join(user_id, username, room_id)
    assert membership.memberships() == {}


def test_join_unknown_room_leaves_membership_untouched(membership, rooms):
    membership.join("u1", "User One", "general")

    with pytest.raises(RoomNotFound):
        membership.join("u1", "User One", "nowhere")

    assert membership.room_of("u1") == "general"
    assert rooms.members("general") == {"u1"}


def test_leave_removes_and_broadcasts(membership, rooms, subscribers, conn):
    c1 = conn("c1")
    c2 = conn("c2")
    membership.join("u1", "User One", "general", "c1")
    membership.join("u2", "User Two", "general", "c2")
    c2.clear()

    result = membership.leave("u1", "User One", "c1")

    assert result.room_id == "general"
    assert result.user_count == 1
    assert membership.room_of("u1") is None
    assert subscribers.subscribers("general") == {"c2"}
    assert c2.types() == ["user_left"]
    assert_index_agrees(membership, rooms)


def test_leave_without_room_is_noop(membership):
    assert membership.leave("ghost") is None


def test_move_subscription_follows_new_connection(membership, subscribers, conn):
    conn("old")
    conn("new")
    membership.join("u1", "User One", "general", "old")

    membership.move_subscription("u1", "old", "new")

    assert subscribers.subscribers("general") == {"new"}
