from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass

from counselchat.core.chat.storage import KeyValueStorage
from counselchat.core.runtime.errors import PersistenceError, compact_error_summary
from counselchat.core.telemetry.logging import get_logger


@dataclass(frozen=True, slots=True)
class IdentityAssertion:
    """Identity the external provider vouches for in this browsing session."""

    external_id: str
    email: str
    display_name: str = ""


class IdentityProvider(ABC):
    @abstractmethod
    def get_current_session(self) -> IdentityAssertion | None:
        raise NotImplementedError

    @abstractmethod
    async def sign_out(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def changes(self) -> AsyncIterator[IdentityAssertion | None]:
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):
    """In-process provider that remembers the signed-in identity in local storage.

    Each ``changes()`` iterator gets its own queue and sees every sign-in and
    sign-out published after it was created.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        user_key: str = "counselchat_user",
        session_keys: tuple[str, ...] = (),
        landing_route: str = "/",
    ) -> None:
        self.storage = storage
        self.user_key = user_key
        self.session_keys = session_keys
        self.landing_route = landing_route
        self.redirected_to: str | None = None
        self.logger = get_logger("counselchat.identity_provider")
        self._subscribers: list[asyncio.Queue] = []

    def get_current_session(self) -> IdentityAssertion | None:
        try:
            raw = self.storage.get(self.user_key)
        except PersistenceError as exc:
            self.logger.warning("identity_read_failed", error=compact_error_summary(exc))
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return IdentityAssertion(
                external_id=str(data["external_id"]),
                email=str(data["email"]),
                display_name=str(data.get("display_name", "")),
            )
        except (ValueError, KeyError, TypeError) as exc:
            self.logger.warning("identity_record_corrupt", error=compact_error_summary(exc))
            self.storage.remove(self.user_key)
            return None

    def _publish(self, value: IdentityAssertion | None) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(value)

    def sign_in(self, assertion: IdentityAssertion) -> None:
        self.storage.set(self.user_key, json.dumps(asdict(assertion), ensure_ascii=True))
        self.redirected_to = None
        self.logger.info("identity_signed_in", external_id=assertion.external_id)
        self._publish(assertion)

    async def sign_out(self) -> None:
        for key in (self.user_key, *self.session_keys):
            try:
                self.storage.remove(key)
            except PersistenceError as exc:
                self.logger.warning("identity_clear_failed", key=key, error=compact_error_summary(exc))
        self.redirected_to = self.landing_route
        self.logger.info("identity_signed_out", redirect=self.landing_route)
        self._publish(None)

    async def changes(self) -> AsyncIterator[IdentityAssertion | None]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)
