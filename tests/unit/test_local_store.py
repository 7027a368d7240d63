from __future__ import annotations

import pytest

from counselchat.core.chat.local_store import LocalChatStore
from counselchat.core.chat.models import MessageRole
from counselchat.core.chat.storage import JsonFileStorage, MemoryStorage
from counselchat.core.runtime.errors import NotFoundError, PersistenceError, ValidationError


class BrokenStorage(MemoryStorage):
    def get(self, key: str) -> str | None:
        raise PersistenceError("storage disabled")

    def set(self, key: str, value: str) -> None:
        raise PersistenceError("storage disabled")


def test_sessions_listed_newest_first():
    store = LocalChatStore(MemoryStorage())
    first = store.create_session("First")
    second = store.create_session("Second")

    assert [s.id for s in store.list_sessions()] == [second.id, first.id]
    assert first.owner_key is None
    assert first.created_at == first.updated_at


def test_messages_in_creation_order_and_session_touched():
    store = LocalChatStore(MemoryStorage())
    session = store.create_session("Plan A")

    m1 = store.add_message(session.id, MessageRole.USER, "hi")
    m2 = store.add_message(session.id, "assistant", "hello")

    assert [m.id for m in store.list_messages(session.id)] == [m1.id, m2.id]
    assert m2.role is MessageRole.ASSISTANT
    assert store.get_session(session.id).updated_at == m2.created_at


def test_add_message_requires_existing_session():
    store = LocalChatStore(MemoryStorage())
    with pytest.raises(NotFoundError):
        store.add_message("missing", MessageRole.USER, "hi")


def test_add_message_rejects_empty_content_and_unknown_role():
    store = LocalChatStore(MemoryStorage())
    session = store.create_session("Plan A")
    with pytest.raises(ValidationError):
        store.add_message(session.id, MessageRole.USER, "   ")
    with pytest.raises(ValidationError):
        store.add_message(session.id, "system", "hi")


def test_delete_session_cascades_to_messages():
    store = LocalChatStore(MemoryStorage())
    keep = store.create_session("Keep")
    drop = store.create_session("Drop")
    store.add_message(keep.id, MessageRole.USER, "stay")
    store.add_message(drop.id, MessageRole.USER, "go")

    assert store.delete_session(drop.id) is True
    assert store.delete_session(drop.id) is False
    assert store.list_messages(drop.id) == []
    assert [m.content for m in store.list_messages(keep.id)] == ["stay"]


def test_unavailable_storage_is_absorbed():
    store = LocalChatStore(BrokenStorage())

    assert store.list_sessions() == []
    assert store.create_session("Plan A") is None
    assert store.is_empty() is True
    assert store.is_available() is False


def test_quota_exceeded_write_has_no_effect():
    storage = MemoryStorage(quota_bytes=600)
    store = LocalChatStore(storage)
    session = store.create_session("Plan A")

    assert store.add_message(session.id, MessageRole.USER, "x" * 1000) is None
    assert store.list_messages(session.id) == []
    assert store.get_session(session.id).updated_at == session.updated_at


def test_corrupt_payload_reads_as_empty():
    storage = MemoryStorage()
    storage.set("counselchat_chat_sessions", "{not json")
    store = LocalChatStore(storage)

    assert store.list_sessions() == []


def test_update_session_renames_and_touches():
    store = LocalChatStore(MemoryStorage())
    session = store.create_session("Old")

    renamed = store.update_session(session.id, title="New")
    assert renamed.title == "New"
    assert renamed.updated_at >= session.updated_at
    assert store.update_session("missing", title="x") is None


def test_clear_all_empties_store():
    store = LocalChatStore(MemoryStorage())
    session = store.create_session("Plan A")
    store.add_message(session.id, MessageRole.USER, "hi")

    assert store.clear_all() is True
    assert store.is_empty() is True
    assert store.list_messages(session.id) == []


def test_json_file_storage_persists_across_instances(tmp_path):
    path = tmp_path / "local.json"
    store = LocalChatStore(JsonFileStorage(path))
    session = store.create_session("Plan A")
    store.add_message(session.id, MessageRole.USER, "hi")

    reopened = LocalChatStore(JsonFileStorage(path))
    assert [s.id for s in reopened.list_sessions()] == [session.id]
    assert [m.content for m in reopened.list_messages(session.id)] == ["hi"]
    assert not path.with_suffix(".json.tmp").exists()


def test_json_file_storage_corrupt_file_raises(tmp_path):
    path = tmp_path / "local.json"
    path.write_text("[1, 2", encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonFileStorage(path).get("anything")


class StickyMessagesStorage(MemoryStorage):
    def remove(self, key: str) -> None:
        if key == "counselchat_messages":
            raise PersistenceError("storage disabled")
        super().remove(key)


def test_failed_clear_never_leaves_orphaned_messages():
    store = LocalChatStore(StickyMessagesStorage())
    session = store.create_session("Plan A")
    store.add_message(session.id, MessageRole.USER, "hi")

    assert store.clear_all() is False
    assert [s.id for s in store.list_sessions()] == [session.id]
    assert [m.content for m in store.list_messages(session.id)] == ["hi"]
