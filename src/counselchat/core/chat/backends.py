from __future__ import annotations

from abc import ABC, abstractmethod

from counselchat.core.chat.local_store import LocalChatStore
from counselchat.core.chat.models import AuthSnapshot, ChatMessage, ChatSession, MessageRole, StoreBackend
from counselchat.core.chat.remote_store import RemoteChatStore
from counselchat.core.runtime.errors import NotFoundError


class ChatBackend(ABC):
    """One backing store seen through a uniform async interface.

    Write methods return ``None``/``False`` when the store absorbed a failure
    and the write had no effect; remote failures raise instead.
    """

    kind: StoreBackend

    @abstractmethod
    async def list_sessions(self) -> list[ChatSession]:
        raise NotImplementedError

    @abstractmethod
    async def get_session(self, session_id: str) -> ChatSession | None:
        raise NotImplementedError

    @abstractmethod
    async def create_session(self, title: str) -> ChatSession | None:
        raise NotImplementedError

    @abstractmethod
    async def rename_session(self, session_id: str, title: str) -> ChatSession | None:
        raise NotImplementedError

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        raise NotImplementedError

    @abstractmethod
    async def add_message(self, session_id: str, role: MessageRole, content: str) -> ChatMessage | None:
        raise NotImplementedError


class LocalBackend(ChatBackend):
    kind = StoreBackend.LOCAL

    def __init__(self, store: LocalChatStore) -> None:
        self.store = store

    async def list_sessions(self) -> list[ChatSession]:
        return self.store.list_sessions()

    async def get_session(self, session_id: str) -> ChatSession | None:
        return self.store.get_session(session_id)

    async def create_session(self, title: str) -> ChatSession | None:
        return self.store.create_session(title)

    async def rename_session(self, session_id: str, title: str) -> ChatSession | None:
        return self.store.update_session(session_id, title=title)

    async def delete_session(self, session_id: str) -> bool:
        return self.store.delete_session(session_id)

    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        return self.store.list_messages(session_id)

    async def add_message(self, session_id: str, role: MessageRole, content: str) -> ChatMessage | None:
        return self.store.add_message(session_id, role, content)


class RemoteBackend(ChatBackend):
    kind = StoreBackend.REMOTE

    def __init__(self, store: RemoteChatStore, owner_key: str) -> None:
        self.store = store
        self.owner_key = owner_key

    async def list_sessions(self) -> list[ChatSession]:
        return await self.store.list_sessions(self.owner_key)

    async def get_session(self, session_id: str) -> ChatSession | None:
        session = await self.store.get_session(session_id)
        if session is None or session.owner_key != self.owner_key:
            return None
        return session

    async def create_session(self, title: str) -> ChatSession | None:
        return await self.store.create_session(title, self.owner_key)

    async def rename_session(self, session_id: str, title: str) -> ChatSession | None:
        if await self.get_session(session_id) is None:
            return None
        return await self.store.update_session_title(session_id, title)

    async def delete_session(self, session_id: str) -> bool:
        if await self.get_session(session_id) is None:
            return False
        return await self.store.delete_session(session_id)

    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        if await self.get_session(session_id) is None:
            return []
        return await self.store.get_messages(session_id)

    async def add_message(self, session_id: str, role: MessageRole, content: str) -> ChatMessage | None:
        if await self.get_session(session_id) is None:
            raise NotFoundError(f"session {session_id} does not exist")
        return await self.store.add_message(session_id, role, content)


def backend_for(auth: AuthSnapshot, *, local: LocalChatStore, remote: RemoteChatStore) -> ChatBackend:
    if auth.backend is StoreBackend.REMOTE:
        return RemoteBackend(remote, auth.identity_key)
    return LocalBackend(local)
