from __future__ import annotations

import pytest

from presence_hub.exceptions import DuplicateMessageError
from presence_hub.models import SYSTEM_USERNAME, ChatMessage
from presence_hub.registries import ConnectionRegistry, KnownUsers, MessageStore


def _msg(username: str, text: str, ts: int = 1) -> ChatMessage:
    return ChatMessage.create(username, text, ts)


def test_message_ids_do_not_collide_within_one_millisecond() -> None:
    ids = {ChatMessage.create("bob", "hi", 42).id for _ in range(1000)}

    assert len(ids) == 1000


def test_store_appends_in_arrival_order_and_rejects_duplicate_ids() -> None:
    store = MessageStore()
    first = _msg("bob", "one")
    second = _msg("carol", "two")
    store.append(first)
    store.append(second)

    assert store.snapshot() == [first, second]
    assert store.tail() == second
    with pytest.raises(DuplicateMessageError):
        store.append(first)


def test_snapshot_is_a_copy() -> None:
    store = MessageStore([_msg("bob", "one")])
    snapshot = store.snapshot()
    snapshot.clear()

    assert len(store) == 1


def test_initial_messages_with_repeated_ids_keep_first() -> None:
    original = _msg("bob", "one")
    clash = ChatMessage(id=original.id, username="eve", text="other", ts=2)

    store = MessageStore([original, clash])

    assert store.snapshot() == [original]


def test_remove_by_author_keeps_system_mentions() -> None:
    store = MessageStore(
        [
            _msg(SYSTEM_USERNAME, "alice joined the chat"),
            _msg("alice", "hello"),
            _msg("bob", "hey alice"),
            _msg("alice", "bye"),
        ]
    )

    removed = store.remove_by_author("alice")

    assert removed == 2
    assert [(m.username, m.text) for m in store.snapshot()] == [
        (SYSTEM_USERNAME, "alice joined the chat"),
        ("bob", "hey alice"),
    ]


def test_remove_by_author_and_system_references() -> None:
    store = MessageStore(
        [
            _msg(SYSTEM_USERNAME, "alice joined the chat"),
            _msg("alice", "hello"),
            _msg("bob", "hey alice"),
            _msg(SYSTEM_USERNAME, "bob joined the chat"),
        ]
    )

    removed = store.remove_by_author_and_system_references("alice")

    assert removed == 2
    assert [(m.username, m.text) for m in store.snapshot()] == [
        ("bob", "hey alice"),
        (SYSTEM_USERNAME, "bob joined the chat"),
    ]


def test_system_reference_match_is_a_substring_match() -> None:
    store = MessageStore(
        [
            _msg(SYSTEM_USERNAME, "jon joined the chat"),
            _msg(SYSTEM_USERNAME, "jo joined the chat"),
            _msg("jon", "i am jon"),
        ]
    )

    removed = store.remove_by_author_and_system_references("jo")

    assert removed == 2
    assert [m.username for m in store.snapshot()] == ["jon"]


def test_known_users_set_semantics_and_order() -> None:
    users = KnownUsers(["bob"])

    assert users.add("carol") is True
    assert users.add("bob") is False
    assert users.snapshot() == ["bob", "carol"]
    assert users.remove("bob") is True
    assert users.remove("bob") is False
    assert "bob" not in users
    assert users.snapshot() == ["carol"]


def test_connection_registry_multi_device_bindings() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "dan")
    registry.bind("c2", "erin")
    registry.bind("c3", "dan")

    assert registry.online_usernames() == ["dan", "erin", "dan"]
    assert registry.unbind_connection("c1") == "dan"
    assert registry.unbind_connection("c1") is None
    assert registry.online_usernames() == ["erin", "dan"]


def test_connection_registry_rebind_overwrites() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "dan")
    registry.bind("c2", "erin")
    registry.bind("c1", "frank")

    assert registry.username_for("c1") == "frank"
    assert registry.online_usernames() == ["frank", "erin"]


def test_unbind_username_returns_every_connection() -> None:
    registry = ConnectionRegistry()
    registry.bind("c1", "dan")
    registry.bind("c2", "erin")
    registry.bind("c3", "dan")

    assert registry.unbind_username("dan") == ["c1", "c3"]
    assert registry.online_usernames() == ["erin"]
    assert registry.unbind_username("dan") == []
