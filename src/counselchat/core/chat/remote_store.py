from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from counselchat.core.chat.models import ChatMessage, ChatSession, MessageRole, as_utc, coerce_role, require_text, utcnow
from counselchat.core.runtime.errors import NotFoundError, PersistenceError, ValidationError, compact_error_summary
from counselchat.core.telemetry.logging import get_logger
from counselchat.db.models import ChatSessionRecord, MessageRecord, User

T = TypeVar("T")


def _parse_key(value: str | int | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_session(row: ChatSessionRecord) -> ChatSession:
    return ChatSession(
        id=str(row.id),
        owner_key=str(row.owner_id) if row.owner_id is not None else None,
        title=row.title,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_message(row: MessageRecord) -> ChatMessage:
    return ChatMessage(
        id=str(row.id),
        session_id=str(row.session_id),
        role=MessageRole(row.role),
        content=row.content,
        created_at=as_utc(row.created_at),
    )


class RemoteChatStore:
    """Authoritative, owner-scoped chat persistence in the application database.

    Every public method is a coroutine; the blocking SQLAlchemy work runs in a
    worker thread. Database failures surface as ``PersistenceError``.
    """

    def __init__(self, db_session_factory) -> None:
        self.db_session_factory = db_session_factory
        self.logger = get_logger("counselchat.remote_store")

    async def _run(self, op: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except SQLAlchemyError as exc:
            self.logger.error("remote_store_failed", op=op, error=compact_error_summary(exc))
            raise PersistenceError(f"remote {op} failed: {exc}") from exc

    async def list_sessions(self, owner_key: str | None) -> list[ChatSession]:
        owner_id = _parse_key(owner_key)
        if owner_id is None:
            return []

        def _query() -> list[ChatSession]:
            with self.db_session_factory() as db:
                stmt = (
                    select(ChatSessionRecord)
                    .where(ChatSessionRecord.owner_id == owner_id)
                    .order_by(ChatSessionRecord.updated_at.desc(), ChatSessionRecord.id.desc())
                )
                return [_to_session(row) for row in db.execute(stmt).scalars()]

        return await self._run("list_sessions", _query)

    async def get_session(self, session_id: str) -> ChatSession | None:
        key = _parse_key(session_id)
        if key is None:
            return None

        def _query() -> ChatSession | None:
            with self.db_session_factory() as db:
                row = db.get(ChatSessionRecord, key)
                return _to_session(row) if row is not None else None

        return await self._run("get_session", _query)

    async def create_session(self, title: str, owner_key: str | None) -> ChatSession:
        require_text(title, "title")
        owner_id = _parse_key(owner_key)
        if owner_id is None:
            raise ValidationError("owner_key is required to create a remote session")

        def _insert() -> ChatSession:
            with self.db_session_factory() as db:
                if db.get(User, owner_id) is None:
                    raise ValidationError(f"owner {owner_key} does not exist")
                now = utcnow()
                row = ChatSessionRecord(owner_id=owner_id, title=title, created_at=now, updated_at=now)
                db.add(row)
                db.commit()
                db.refresh(row)
                return _to_session(row)

        session = await self._run("create_session", _insert)
        self.logger.info("remote_session_created", session_id=session.id, owner_key=session.owner_key)
        return session

    async def update_session_title(self, session_id: str, title: str) -> ChatSession:
        require_text(title, "title")
        key = _parse_key(session_id)

        def _update() -> ChatSession:
            with self.db_session_factory() as db:
                row = db.get(ChatSessionRecord, key) if key is not None else None
                if row is None:
                    raise NotFoundError(f"session {session_id} does not exist")
                row.title = title
                row.updated_at = utcnow()
                db.commit()
                db.refresh(row)
                return _to_session(row)

        return await self._run("update_session_title", _update)

    async def get_messages(self, session_id: str) -> list[ChatMessage]:
        key = _parse_key(session_id)
        if key is None:
            return []

        def _query() -> list[ChatMessage]:
            with self.db_session_factory() as db:
                stmt = (
                    select(MessageRecord)
                    .where(MessageRecord.session_id == key)
                    .order_by(MessageRecord.created_at.asc(), MessageRecord.id.asc())
                )
                return [_to_message(row) for row in db.execute(stmt).scalars()]

        return await self._run("get_messages", _query)

    async def add_message(self, session_id: str, role: MessageRole | str, content: str) -> ChatMessage:
        role = coerce_role(role)
        require_text(content, "content")
        key = _parse_key(session_id)

        def _insert() -> ChatMessage:
            # Message insert and session touch commit together.
            with self.db_session_factory() as db:
                session_row = db.get(ChatSessionRecord, key) if key is not None else None
                if session_row is None:
                    raise NotFoundError(f"session {session_id} does not exist")
                row = MessageRecord(session_id=key, role=role.value, content=content, created_at=utcnow())
                db.add(row)
                session_row.updated_at = row.created_at
                db.commit()
                db.refresh(row)
                return _to_message(row)

        return await self._run("add_message", _insert)

    async def delete_session(self, session_id: str) -> bool:
        key = _parse_key(session_id)
        if key is None:
            return False

        def _delete() -> bool:
            with self.db_session_factory() as db:
                row = db.get(ChatSessionRecord, key)
                if row is None:
                    return False
                db.delete(row)
                db.commit()
                return True

        deleted = await self._run("delete_session", _delete)
        if deleted:
            self.logger.info("remote_session_deleted", session_id=session_id)
        return deleted
