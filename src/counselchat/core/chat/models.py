from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from counselchat.core.runtime.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def require_text(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    return value


def coerce_role(role: MessageRole | str) -> MessageRole:
    try:
        return MessageRole(role)
    except ValueError as exc:
        raise ValidationError(f"unsupported message role: {role!r}") from exc


class StoreBackend(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class ChatSession(BaseModel):
    id: str
    owner_key: str | None = None
    title: str = Field(min_length=1)
    created_at: datetime
    updated_at: datetime


class ChatMessage(BaseModel):
    id: str
    session_id: str
    role: MessageRole
    content: str = Field(min_length=1)
    created_at: datetime


@dataclass(frozen=True, slots=True)
class AuthSnapshot:
    """Authentication state captured at the moment an operation starts.

    ``identity_key`` is the application user id that owns remote sessions.
    A snapshot without one is anonymous and routes to the local store.
    """

    identity_key: str | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.identity_key)

    @property
    def backend(self) -> StoreBackend:
        return StoreBackend.REMOTE if self.authenticated else StoreBackend.LOCAL


ANONYMOUS = AuthSnapshot()
