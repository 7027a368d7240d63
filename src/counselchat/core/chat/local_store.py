from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import TypeAdapter

from counselchat.core.chat.models import ChatMessage, ChatSession, MessageRole, coerce_role, require_text, utcnow
from counselchat.core.chat.storage import KeyValueStorage
from counselchat.core.runtime.errors import NotFoundError, PersistenceError, compact_error_summary
from counselchat.core.telemetry.logging import get_logger

_SESSIONS = TypeAdapter(list[ChatSession])
_MESSAGES = TypeAdapter(list[ChatMessage])


def _generate_id() -> str:
    return str(uuid.uuid4())


class LocalChatStore:
    """Best-effort chat persistence on the local device.

    Sessions and messages live under two fixed keys as serialized lists. A
    failed read yields an empty list and a failed write leaves the stored
    state unchanged; neither propagates. Write operations report "no effect"
    by returning ``None`` or ``False``.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        sessions_key: str = "counselchat_chat_sessions",
        messages_key: str = "counselchat_messages",
    ) -> None:
        self.storage = storage
        self.sessions_key = sessions_key
        self.messages_key = messages_key
        self.logger = get_logger("counselchat.local_store")

    def _load(self, key: str, adapter: TypeAdapter):
        try:
            raw = self.storage.get(key)
            if raw is None:
                return []
            return adapter.validate_json(raw)
        except (PersistenceError, ValueError) as exc:
            self.logger.warning("local_store_read_failed", key=key, error=compact_error_summary(exc))
            return []

    def _save(self, key: str, adapter: TypeAdapter, items: list) -> bool:
        try:
            self.storage.set(key, adapter.dump_json(items).decode("utf-8"))
        except (PersistenceError, TypeError, ValueError) as exc:
            self.logger.warning("local_store_write_failed", key=key, error=compact_error_summary(exc))
            return False
        return True

    def _load_sessions(self) -> list[ChatSession]:
        return self._load(self.sessions_key, _SESSIONS)

    def _load_messages(self) -> list[ChatMessage]:
        return self._load(self.messages_key, _MESSAGES)

    def list_sessions(self) -> list[ChatSession]:
        return self._load_sessions()

    def get_session(self, session_id: str) -> ChatSession | None:
        for session in self._load_sessions():
            if session.id == session_id:
                return session
        return None

    def create_session(self, title: str, owner_key: str | None = None) -> ChatSession | None:
        require_text(title, "title")
        now = utcnow()
        session = ChatSession(id=_generate_id(), owner_key=owner_key, title=title, created_at=now, updated_at=now)
        sessions = self._load_sessions()
        sessions.insert(0, session)
        if not self._save(self.sessions_key, _SESSIONS, sessions):
            return None
        self.logger.info("local_session_created", session_id=session.id)
        return session

    def update_session(
        self,
        session_id: str,
        *,
        title: str | None = None,
        updated_at: datetime | None = None,
    ) -> ChatSession | None:
        if title is not None:
            require_text(title, "title")
        sessions = self._load_sessions()
        for index, session in enumerate(sessions):
            if session.id != session_id:
                continue
            changes: dict = {"updated_at": updated_at or utcnow()}
            if title is not None:
                changes["title"] = title
            sessions[index] = session.model_copy(update=changes)
            if not self._save(self.sessions_key, _SESSIONS, sessions):
                return None
            return sessions[index]
        return None

    def delete_session(self, session_id: str) -> bool:
        sessions = self._load_sessions()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            return False
        if not self._save(self.sessions_key, _SESSIONS, remaining):
            return False
        self._delete_messages_for_session(session_id)
        self.logger.info("local_session_deleted", session_id=session_id)
        return True

    def _delete_messages_for_session(self, session_id: str) -> None:
        messages = self._load_messages()
        remaining = [m for m in messages if m.session_id != session_id]
        if len(remaining) != len(messages):
            self._save(self.messages_key, _MESSAGES, remaining)

    def list_messages(self, session_id: str) -> list[ChatMessage]:
        messages = [m for m in self._load_messages() if m.session_id == session_id]
        # sort() is stable, so equal timestamps keep insertion order.
        messages.sort(key=lambda m: m.created_at)
        return messages

    def add_message(self, session_id: str, role: MessageRole | str, content: str) -> ChatMessage | None:
        role = coerce_role(role)
        require_text(content, "content")
        if self.get_session(session_id) is None:
            raise NotFoundError(f"session {session_id} does not exist in local storage")

        message = ChatMessage(
            id=_generate_id(),
            session_id=session_id,
            role=role,
            content=content,
            created_at=utcnow(),
        )
        messages = self._load_messages()
        messages.append(message)
        if not self._save(self.messages_key, _MESSAGES, messages):
            return None

        if self.update_session(session_id, updated_at=message.created_at) is None:
            self.logger.warning("local_session_touch_failed", session_id=session_id)
        return message

    def clear_all(self) -> bool:
        try:
            self.storage.remove(self.messages_key)
            self.storage.remove(self.sessions_key)
        except PersistenceError as exc:
            self.logger.warning("local_store_clear_failed", error=compact_error_summary(exc))
            return False
        self.logger.info("local_store_cleared")
        return True

    def is_empty(self) -> bool:
        return not self._load_sessions()

    def is_available(self) -> bool:
        return self.storage.is_available()
