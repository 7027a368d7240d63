from __future__ import annotations

from dataclasses import dataclass

from counselchat.core.chat.local_store import LocalChatStore
from counselchat.core.chat.migration import MigrationReport, migrate_local_to_remote
from counselchat.core.chat.models import AuthSnapshot
from counselchat.core.chat.registry import SessionRegistry
from counselchat.core.chat.remote_store import RemoteChatStore
from counselchat.core.chat.storage import JsonFileStorage, KeyValueStorage
from counselchat.core.config.loader import load_app_config
from counselchat.core.config.schema import AppConfig
from counselchat.core.counsel.completion import CompletionService
from counselchat.core.identity.bridge import IdentityBridge
from counselchat.core.identity.provider import IdentityProvider, LocalIdentityProvider
from counselchat.core.identity.users import UserDirectory
from counselchat.core.providers.base import ProviderAdapter
from counselchat.core.providers.groq_adapter import GroqAdapter
from counselchat.core.runtime.errors import ChatError, compact_error_summary
from counselchat.core.telemetry.logging import configure_logging, get_logger
from counselchat.db.session import init_db


@dataclass(slots=True)
class ChatRuntime:
    cfg: AppConfig
    db_session_factory: object
    local_store: LocalChatStore
    remote_store: RemoteChatStore
    users: UserDirectory
    identity_provider: IdentityProvider
    bridge: IdentityBridge
    completion: CompletionService
    registry: SessionRegistry

    async def migrate(self, owner_key: str) -> MigrationReport:
        report = await migrate_local_to_remote(self.local_store, self.remote_store, owner_key)
        if self.registry.auth is not None and self.registry.auth.identity_key == owner_key:
            await self.registry.refresh(self.registry.auth)
        return report

    async def on_auth_change(self, auth: AuthSnapshot) -> None:
        if auth.authenticated and self.cfg.chat.auto_migrate_on_sign_in and not self.local_store.is_empty():
            try:
                await migrate_local_to_remote(self.local_store, self.remote_store, auth.identity_key)
            except ChatError as exc:
                get_logger("counselchat.runtime").warning("auto_migration_failed", error=compact_error_summary(exc))
        await self.registry.apply_auth(auth)


def build_provider_adapter(cfg: AppConfig) -> ProviderAdapter | None:
    groq = cfg.providers.groq
    if not groq.enabled:
        return None
    return GroqAdapter(api_key_env=groq.api_key_env, timeout_seconds=groq.timeout_seconds, default_model=groq.model)


def build_chat_runtime(
    config_path: str | None = None,
    *,
    cfg: AppConfig | None = None,
    storage: KeyValueStorage | None = None,
    adapter: ProviderAdapter | None = None,
) -> ChatRuntime:
    cfg = cfg or load_app_config(instance_path=config_path)
    configure_logging(cfg.telemetry.log_level, cfg.telemetry.json_logs)

    db_session_factory, _ = init_db(cfg.database.url)
    storage_cfg = cfg.local_storage
    storage = storage or JsonFileStorage(storage_cfg.path, quota_bytes=storage_cfg.quota_bytes)

    local_store = LocalChatStore(
        storage,
        sessions_key=storage_cfg.sessions_key,
        messages_key=storage_cfg.messages_key,
    )
    remote_store = RemoteChatStore(db_session_factory)
    users = UserDirectory(db_session_factory)
    provider = LocalIdentityProvider(storage, user_key=storage_cfg.user_key)
    groq = cfg.providers.groq
    completion = CompletionService(
        adapter or build_provider_adapter(cfg),
        model=groq.model or "llama-3.1-8b-instant",
        temperature=groq.temperature,
        max_output_tokens=groq.max_output_tokens,
    )
    registry = SessionRegistry(
        local=local_store,
        remote=remote_store,
        completion=completion,
        default_title=cfg.chat.default_session_title,
    )
    return ChatRuntime(
        cfg=cfg,
        db_session_factory=db_session_factory,
        local_store=local_store,
        remote_store=remote_store,
        users=users,
        identity_provider=provider,
        bridge=IdentityBridge(users, provider),
        completion=completion,
        registry=registry,
    )
