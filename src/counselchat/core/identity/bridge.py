from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from counselchat.core.chat.models import ANONYMOUS, AuthSnapshot
from counselchat.core.identity.provider import IdentityAssertion, IdentityProvider
from counselchat.core.identity.users import UserDirectory, UserRecord
from counselchat.core.runtime.errors import AccountDeactivatedError, ChatError, compact_error_summary
from counselchat.core.telemetry.logging import get_logger

ACCOUNT_DEACTIVATED_NOTICE = "account_deactivated"
IDENTITY_SYNC_FAILED_NOTICE = "identity_sync_failed"


class IdentityState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    VERIFIED = "verified"
    ANONYMOUS = "anonymous"


class IdentityBridge:
    """Keeps the application user record in step with the provider's assertions.

    Reconciliation runs at most once per asserted identity. The state returns
    to ``UNCHECKED`` only when the asserted external id changes; callers that
    arrive while a check is in flight share its outcome.
    """

    def __init__(self, directory: UserDirectory, provider: IdentityProvider) -> None:
        self.directory = directory
        self.provider = provider
        self.logger = get_logger("counselchat.identity_bridge")
        self.state = IdentityState.UNCHECKED
        self.asserted_key: str | None = None
        self.user: UserRecord | None = None
        self.notice: str | None = None
        self._inflight: asyncio.Future | None = None

    @property
    def auth(self) -> AuthSnapshot:
        if self.state is IdentityState.VERIFIED and self.user is not None:
            return AuthSnapshot(identity_key=self.user.id)
        return ANONYMOUS

    def _transition(self, state: IdentityState) -> None:
        if state is not self.state:
            self.logger.info(
                "identity_state_changed",
                previous=self.state.value,
                state=state.value,
                external_id=self.asserted_key,
            )
        self.state = state

    async def handle_assertion(self, assertion: IdentityAssertion | None) -> AuthSnapshot:
        key = assertion.external_id if assertion is not None else None
        if key != self.asserted_key:
            self.asserted_key = key
            self.user = None
            self._inflight = None
            self._transition(IdentityState.UNCHECKED)

        if assertion is None:
            self._transition(IdentityState.ANONYMOUS)
            return self.auth
        if self.state in (IdentityState.VERIFIED, IdentityState.ANONYMOUS):
            return self.auth
        if self.state is IdentityState.CHECKING and self._inflight is not None:
            await asyncio.shield(self._inflight)
            return self.auth

        self.notice = None
        self._transition(IdentityState.CHECKING)
        self._inflight = asyncio.ensure_future(self._reconcile(assertion))
        await self._inflight
        return self.auth

    async def _reject(self, key: str, notice: str) -> None:
        if self.asserted_key != key:
            return
        self.user = None
        self.notice = notice
        self._transition(IdentityState.ANONYMOUS)
        await self.provider.sign_out()
        # A later sign-in by the same identity is a fresh assertion.
        self.asserted_key = None
        self._inflight = None

    async def _reconcile(self, assertion: IdentityAssertion) -> None:
        key = assertion.external_id
        try:
            lookup = await asyncio.to_thread(
                self.directory.check_user_exists,
                email=assertion.email,
                external_id=assertion.external_id,
            )
            if lookup.exists and not lookup.is_active:
                raise AccountDeactivatedError("user account is deactivated")
            user = await asyncio.to_thread(
                self.directory.create_user,
                assertion.email,
                assertion.display_name,
                assertion.external_id,
            )
        except AccountDeactivatedError:
            self.logger.warning("identity_rejected_deactivated", external_id=key)
            await self._reject(key, ACCOUNT_DEACTIVATED_NOTICE)
            raise
        except ChatError as exc:
            self.logger.error("identity_sync_failed", external_id=key, error=compact_error_summary(exc))
            await self._reject(key, IDENTITY_SYNC_FAILED_NOTICE)
            raise

        if self.asserted_key != key:
            return
        self.user = user
        self._transition(IdentityState.VERIFIED)
        self.logger.info("identity_verified", external_id=key, user_id=user.id, created=not lookup.exists)

    async def start(self) -> AuthSnapshot:
        return await self.handle_assertion(self.provider.get_current_session())

    async def run(self, on_change: Callable[[AuthSnapshot], Awaitable[None]] | None = None) -> None:
        """Follow the provider's change stream until cancelled."""
        async for assertion in self.provider.changes():
            previous = self.auth
            try:
                auth = await self.handle_assertion(assertion)
            except ChatError as exc:
                self.logger.warning("identity_assertion_failed", error=compact_error_summary(exc))
                auth = self.auth
            if on_change is not None and auth != previous:
                await on_change(auth)
