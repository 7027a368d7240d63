from __future__ import annotations

import pytest

from counselchat.core.chat.models import MessageRole
from counselchat.core.chat.remote_store import RemoteChatStore
from counselchat.core.identity.users import UserDirectory
from counselchat.core.runtime.errors import NotFoundError, ValidationError
from counselchat.db.session import init_db


@pytest.fixture
def remote_env(tmp_path):
    db_session_factory, _ = init_db(f"sqlite:///{tmp_path / 'remote.db'}")
    users = UserDirectory(db_session_factory)
    ada = users.create_user("ada@example.com", "Ada", "ext-ada")
    bob = users.create_user("bob@example.com", "Bob", "ext-bob")
    return RemoteChatStore(db_session_factory), ada, bob


@pytest.mark.asyncio
async def test_list_sessions_without_owner_is_empty(remote_env):
    store, ada, _ = remote_env
    await store.create_session("Plan A", ada.id)

    assert await store.list_sessions(None) == []
    assert await store.list_sessions("") == []


@pytest.mark.asyncio
async def test_create_session_requires_known_owner(remote_env):
    store, _, _ = remote_env
    with pytest.raises(ValidationError):
        await store.create_session("Plan A", None)
    with pytest.raises(ValidationError):
        await store.create_session("Plan A", "9999")


@pytest.mark.asyncio
async def test_sessions_scoped_to_owner_most_recently_updated_first(remote_env):
    store, ada, bob = remote_env
    older = await store.create_session("Older", ada.id)
    newer = await store.create_session("Newer", ada.id)
    await store.create_session("Bob's", bob.id)

    assert [s.id for s in await store.list_sessions(ada.id)] == [newer.id, older.id]

    await store.add_message(older.id, MessageRole.USER, "bump")
    listed = await store.list_sessions(ada.id)
    assert [s.id for s in listed] == [older.id, newer.id]
    assert all(s.owner_key == ada.id for s in listed)


@pytest.mark.asyncio
async def test_messages_returned_in_creation_order(remote_env):
    store, ada, _ = remote_env
    session = await store.create_session("Plan A", ada.id)
    first = await store.add_message(session.id, MessageRole.USER, "hi")
    second = await store.add_message(session.id, MessageRole.ASSISTANT, "hello")
    third = await store.add_message(session.id, "user", "thanks")

    messages = await store.get_messages(session.id)
    assert [m.id for m in messages] == [first.id, second.id, third.id]
    assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER]

    refreshed = await store.get_session(session.id)
    assert refreshed.updated_at == third.created_at


@pytest.mark.asyncio
async def test_add_message_to_missing_session_raises(remote_env):
    store, _, _ = remote_env
    with pytest.raises(NotFoundError):
        await store.add_message("424242", MessageRole.USER, "hi")
    with pytest.raises(ValidationError):
        await store.add_message("1", MessageRole.USER, "")


@pytest.mark.asyncio
async def test_delete_session_cascades(remote_env):
    store, ada, _ = remote_env
    session = await store.create_session("Plan A", ada.id)
    await store.add_message(session.id, MessageRole.USER, "hi")

    assert await store.delete_session(session.id) is True
    assert await store.delete_session(session.id) is False
    assert await store.get_messages(session.id) == []
    assert await store.get_session(session.id) is None


@pytest.mark.asyncio
async def test_update_session_title(remote_env):
    store, ada, _ = remote_env
    session = await store.create_session("Plan A", ada.id)

    renamed = await store.update_session_title(session.id, "Plan B")
    assert renamed.title == "Plan B"
    with pytest.raises(NotFoundError):
        await store.update_session_title("not-a-number", "x")
