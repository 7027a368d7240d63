from __future__ import annotations

from pydantic import BaseModel, Field


class InstanceConfig(BaseModel):
    name: str = "counselchat"


class TelemetryConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = True


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///counselchat.db"


class LocalStorageConfig(BaseModel):
    path: str = "data/local_storage.json"
    quota_bytes: int = Field(default=5_000_000, gt=0)
    sessions_key: str = "counselchat_chat_sessions"
    messages_key: str = "counselchat_messages"
    user_key: str = "counselchat_user"


class ChatConfig(BaseModel):
    default_session_title: str = Field(default="New Chat", min_length=1)
    auto_migrate_on_sign_in: bool = False


class ProviderConfig(BaseModel):
    enabled: bool = False
    api_key_env: str | None = None
    model: str | None = None
    timeout_seconds: int = 20
    temperature: float = 0.7
    max_output_tokens: int = 1000


class ProvidersConfig(BaseModel):
    groq: ProviderConfig = Field(
        default_factory=lambda: ProviderConfig(api_key_env="GROQ_API_KEY", model="llama-3.1-8b-instant")
    )


class AppConfig(BaseModel):
    instance: InstanceConfig = Field(default_factory=InstanceConfig)
    environment: str = "dev"
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    local_storage: LocalStorageConfig = Field(default_factory=LocalStorageConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
