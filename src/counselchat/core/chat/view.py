"""Reducers for the in-memory message list shown for the active session.

A list entry is either a ``PendingMessage`` (written optimistically, not yet
confirmed by a store) or a ``CommittedMessage`` wrapping the persisted record.
Every function returns a new tuple and never mutates its input.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from counselchat.core.chat.models import ChatMessage, MessageRole, utcnow


@dataclass(frozen=True, slots=True)
class PendingMessage:
    temp_id: str
    session_id: str
    role: MessageRole
    content: str
    created_at: datetime

    @property
    def id(self) -> str:
        return self.temp_id

    @property
    def committed(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class CommittedMessage:
    message: ChatMessage

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def session_id(self) -> str:
        return self.message.session_id

    @property
    def role(self) -> MessageRole:
        return self.message.role

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def created_at(self) -> datetime:
        return self.message.created_at

    @property
    def committed(self) -> bool:
        return True


DisplayMessage = PendingMessage | CommittedMessage


def new_pending(session_id: str, role: MessageRole, content: str) -> PendingMessage:
    return PendingMessage(
        temp_id=f"pending-{uuid.uuid4().hex}",
        session_id=session_id,
        role=role,
        content=content,
        created_at=utcnow(),
    )


def from_persisted(messages: list[ChatMessage]) -> tuple[DisplayMessage, ...]:
    return tuple(CommittedMessage(m) for m in messages)


def append_pending(items: tuple[DisplayMessage, ...], pending: PendingMessage) -> tuple[DisplayMessage, ...]:
    return (*items, pending)


def append_committed(items: tuple[DisplayMessage, ...], message: ChatMessage) -> tuple[DisplayMessage, ...]:
    if any(isinstance(i, CommittedMessage) and i.id == message.id for i in items):
        return items
    return (*items, CommittedMessage(message))


def commit_pending(
    items: tuple[DisplayMessage, ...],
    temp_id: str,
    message: ChatMessage,
) -> tuple[DisplayMessage, ...]:
    """Swap the pending entry for its persisted record, keeping its position."""
    out: list[DisplayMessage] = []
    swapped = False
    for item in items:
        if isinstance(item, PendingMessage) and item.temp_id == temp_id:
            out.append(CommittedMessage(message))
            swapped = True
        else:
            out.append(item)
    if not swapped:
        return append_committed(items, message)
    return tuple(out)


def drop_pending(items: tuple[DisplayMessage, ...], temp_id: str) -> tuple[DisplayMessage, ...]:
    return tuple(i for i in items if not (isinstance(i, PendingMessage) and i.temp_id == temp_id))


def committed_messages(items: tuple[DisplayMessage, ...]) -> list[ChatMessage]:
    return [i.message for i in items if isinstance(i, CommittedMessage)]
