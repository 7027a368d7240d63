from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from counselchat.core.chat.backends import ChatBackend, backend_for
from counselchat.core.chat.local_store import LocalChatStore
from counselchat.core.chat.models import AuthSnapshot, ChatMessage, ChatSession, MessageRole, StoreBackend, require_text
from counselchat.core.chat.remote_store import RemoteChatStore
from counselchat.core.chat.view import (
    DisplayMessage,
    append_committed,
    append_pending,
    commit_pending,
    committed_messages,
    drop_pending,
    from_persisted,
    new_pending,
)
from counselchat.core.counsel.completion import CompletionService
from counselchat.core.runtime.errors import (
    ChatError,
    NotFoundError,
    PersistenceError,
    UpstreamCompletionError,
    ValidationError,
    compact_error_summary,
)
from counselchat.core.telemetry.logging import get_logger

_STORAGE_MODES = {StoreBackend.LOCAL: "localStorage", StoreBackend.REMOTE: "database"}


@dataclass(slots=True)
class SendResult:
    user_message: ChatMessage
    assistant_message: ChatMessage
    fallback: bool = False
    applied: bool = True


def _ordered(sessions: list[ChatSession]) -> tuple[ChatSession, ...]:
    # Stable: sessions sharing an updated_at keep the store's order.
    return tuple(sorted(sessions, key=lambda s: s.updated_at, reverse=True))


class SessionRegistry:
    """In-memory view of the session list and the active session's messages.

    Every public operation takes the caller's current ``AuthSnapshot``. The
    snapshot alone selects the backing store; when it differs from the one
    seen last, the view is dropped and reloaded from the newly selected store
    before the operation proceeds.
    """

    def __init__(
        self,
        *,
        local: LocalChatStore,
        remote: RemoteChatStore,
        completion: CompletionService,
        default_title: str = "New Chat",
    ) -> None:
        self.local = local
        self.remote = remote
        self.completion = completion
        self.default_title = default_title
        self.logger = get_logger("counselchat.registry")

        self.sessions: tuple[ChatSession, ...] = ()
        self.messages: tuple[DisplayMessage, ...] = ()
        self.active_session_id: str | None = None
        self.last_error: str | None = None
        self._auth: AuthSnapshot | None = None
        self._generation = 0
        self._sending: set[str] = set()

    @property
    def current_sessions(self) -> list[ChatSession]:
        return list(self.sessions)

    @property
    def current_messages(self) -> list[DisplayMessage]:
        return list(self.messages)

    @property
    def auth(self) -> AuthSnapshot | None:
        return self._auth

    @property
    def storage_mode(self) -> str:
        backend = self._auth.backend if self._auth is not None else StoreBackend.LOCAL
        return _STORAGE_MODES[backend]

    def backend_for(self, auth: AuthSnapshot) -> ChatBackend:
        return backend_for(auth, local=self.local, remote=self.remote)

    def is_sending(self, session_id: str) -> bool:
        return session_id in self._sending

    def clear_error(self) -> None:
        self.last_error = None

    def _fail(self, op: str, exc: Exception, generation: int | None = None) -> None:
        if generation is None or generation == self._generation:
            self.last_error = compact_error_summary(exc)
        self.logger.warning(
            "registry_operation_failed",
            op=op,
            backend=self._auth.backend.value if self._auth else None,
            error=compact_error_summary(exc),
        )

    async def apply_auth(self, auth: AuthSnapshot) -> bool:
        """Hard cutover to the store selected by ``auth``; no-op when nothing changed."""
        if self._auth == auth:
            return False
        previous = self._auth
        self._auth = auth
        self._generation += 1
        generation = self._generation
        self.sessions = ()
        self.messages = ()
        self.last_error = None
        self.logger.info(
            "registry_backend_switched",
            previous=previous.backend.value if previous else None,
            backend=auth.backend.value,
            active_session_id=self.active_session_id,
        )
        try:
            await self._reload(generation)
        except ChatError as exc:
            self._fail("reload", exc, generation)
            raise
        return True

    async def _reload(self, generation: int) -> None:
        backend = self.backend_for(self._auth)
        sessions = await backend.list_sessions()
        messages: list[ChatMessage] = []
        if self.active_session_id is not None:
            messages = await backend.list_messages(self.active_session_id)
        if generation != self._generation:
            return
        self.sessions = _ordered(sessions)
        self.messages = from_persisted(messages)

    async def refresh(self, auth: AuthSnapshot) -> None:
        if await self.apply_auth(auth):
            return
        try:
            await self._reload(self._generation)
        except ChatError as exc:
            self._fail("refresh", exc)
            raise

    async def list_sessions(self, auth: AuthSnapshot) -> list[ChatSession]:
        await self.apply_auth(auth)
        generation = self._generation
        try:
            sessions = await self.backend_for(auth).list_sessions()
        except ChatError as exc:
            self._fail("list_sessions", exc, generation)
            raise
        if generation == self._generation:
            self.sessions = _ordered(sessions)
        return list(_ordered(sessions))

    async def create_session(self, auth: AuthSnapshot, title: str | None = None) -> ChatSession:
        await self.apply_auth(auth)
        generation = self._generation
        try:
            session = await self.backend_for(auth).create_session(title or self.default_title)
            if session is None:
                raise PersistenceError("session was not persisted to local storage")
        except ChatError as exc:
            self._fail("create_session", exc, generation)
            raise
        if generation == self._generation:
            self.sessions = _ordered([session, *self.sessions])
            self.active_session_id = session.id
            self.messages = ()
        return session

    async def select_session(self, auth: AuthSnapshot, session_id: str) -> list[DisplayMessage]:
        await self.apply_auth(auth)
        generation = self._generation
        backend = self.backend_for(auth)
        try:
            if await backend.get_session(session_id) is None:
                raise NotFoundError(f"session {session_id} does not exist")
            messages = await backend.list_messages(session_id)
        except ChatError as exc:
            self._fail("select_session", exc, generation)
            raise
        if generation == self._generation:
            self.active_session_id = session_id
            self.messages = from_persisted(messages)
        return self.current_messages

    async def rename_session(self, auth: AuthSnapshot, session_id: str, title: str) -> ChatSession:
        await self.apply_auth(auth)
        generation = self._generation
        try:
            session = await self.backend_for(auth).rename_session(session_id, title)
            if session is None:
                raise NotFoundError(f"session {session_id} could not be renamed")
        except ChatError as exc:
            self._fail("rename_session", exc, generation)
            raise
        if generation == self._generation:
            self.sessions = _ordered([session if s.id == session_id else s for s in self.sessions])
        return session

    async def delete_session(self, auth: AuthSnapshot, session_id: str) -> bool:
        await self.apply_auth(auth)
        generation = self._generation
        try:
            deleted = await self.backend_for(auth).delete_session(session_id)
        except ChatError as exc:
            self._fail("delete_session", exc, generation)
            raise
        if deleted and generation == self._generation:
            self.sessions = tuple(s for s in self.sessions if s.id != session_id)
            if self.active_session_id == session_id:
                self.active_session_id = None
                self.messages = ()
        return deleted

    async def list_messages(self, auth: AuthSnapshot, session_id: str | None = None) -> list[ChatMessage]:
        await self.apply_auth(auth)
        generation = self._generation
        target = session_id or self.active_session_id
        if target is None:
            return []
        try:
            messages = await self.backend_for(auth).list_messages(target)
        except ChatError as exc:
            self._fail("list_messages", exc, generation)
            raise
        if generation == self._generation and target == self.active_session_id:
            self.messages = from_persisted(messages)
        return messages

    def _update_view(
        self,
        generation: int,
        session_id: str,
        reducer: Callable[[tuple[DisplayMessage, ...]], tuple[DisplayMessage, ...]],
    ) -> bool:
        if generation != self._generation or session_id != self.active_session_id:
            return False
        self.messages = reducer(self.messages)
        return True

    def _touch_session(self, generation: int, message: ChatMessage) -> None:
        if generation != self._generation:
            return
        self.sessions = _ordered(
            [
                s.model_copy(update={"updated_at": message.created_at}) if s.id == message.session_id else s
                for s in self.sessions
            ]
        )

    async def send_message(
        self,
        auth: AuthSnapshot,
        content: str,
        session_id: str | None = None,
    ) -> SendResult:
        await self.apply_auth(auth)
        target = session_id or self.active_session_id
        if target is None:
            raise ValidationError("no session selected")
        require_text(content, "content")
        if target in self._sending:
            raise ValidationError(f"a message is already being sent for session {target}")

        generation = self._generation
        backend = self.backend_for(auth)
        self._sending.add(target)
        try:
            if target == self.active_session_id:
                history = committed_messages(self.messages)
            else:
                history = await backend.list_messages(target)

            pending = new_pending(target, MessageRole.USER, content)
            self._update_view(generation, target, lambda items: append_pending(items, pending))

            try:
                user_message = await backend.add_message(target, MessageRole.USER, content)
                if user_message is None:
                    raise PersistenceError("user message was not persisted to local storage")
            except ChatError as exc:
                self._update_view(generation, target, lambda items: drop_pending(items, pending.temp_id))
                self._fail("send_message.user", exc, generation)
                raise
            applied = self._update_view(
                generation, target, lambda items: commit_pending(items, pending.temp_id, user_message)
            )
            self._touch_session(generation, user_message)

            try:
                result = await self.completion.complete([*history, user_message])
            except Exception as exc:
                self._fail("send_message.completion", exc, generation)
                raise UpstreamCompletionError(f"completion failed: {exc}") from exc

            try:
                assistant_message = await backend.add_message(target, MessageRole.ASSISTANT, result.content)
                if assistant_message is None:
                    raise PersistenceError("assistant message was not persisted to local storage")
            except ChatError as exc:
                self._fail("send_message.assistant", exc, generation)
                raise
            applied = self._update_view(
                generation, target, lambda items: append_committed(items, assistant_message)
            ) and applied
            self._touch_session(generation, assistant_message)

            if result.fallback and generation == self._generation:
                self.last_error = result.error
            self.logger.info(
                "message_exchange_persisted",
                session_id=target,
                backend=backend.kind.value,
                fallback=result.fallback,
                applied=applied,
            )
            return SendResult(
                user_message=user_message,
                assistant_message=assistant_message,
                fallback=result.fallback,
                applied=applied,
            )
        finally:
            self._sending.discard(target)
