from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from counselchat.core.counsel.prompts import COUNSELOR_SYSTEM_PROMPT
from counselchat.core.providers.base import ProviderAdapter, ProviderRequest
from counselchat.core.runtime.errors import classify_error, compact_error_summary
from counselchat.core.telemetry.logging import get_logger

EMPTY_REPLY_FALLBACK = "I apologize, but I'm having trouble generating a response right now. Please try again."
UPSTREAM_FAILURE_FALLBACK = (
    "I'm sorry, but I'm experiencing technical difficulties. Please check your API configuration and try again."
)


class Turn(Protocol):
    role: object
    content: str


@dataclass(slots=True)
class CompletionResult:
    content: str
    fallback: bool = False
    error: str | None = None


def _role_value(role: object) -> str:
    return str(getattr(role, "value", role))


class CompletionService:
    """Turns an ordered chat history into one assistant reply.

    Upstream failures never raise: the reply is replaced by a fixed apology
    and ``CompletionResult.fallback`` is set.
    """

    def __init__(
        self,
        adapter: ProviderAdapter | None,
        *,
        model: str = "llama-3.1-8b-instant",
        temperature: float = 0.7,
        max_output_tokens: int = 1000,
        system_prompt: str = COUNSELOR_SYSTEM_PROMPT,
    ) -> None:
        self.adapter = adapter
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.system_prompt = system_prompt
        self.logger = get_logger("counselchat.completion")

    def build_messages(self, history: Sequence[Turn]) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend({"role": _role_value(t.role), "content": t.content} for t in history)
        return messages

    async def complete(self, history: Sequence[Turn]) -> CompletionResult:
        if self.adapter is None:
            self.logger.warning("completion_provider_missing")
            return CompletionResult(UPSTREAM_FAILURE_FALLBACK, fallback=True, error="provider_not_configured")

        request = ProviderRequest(
            model=self.model,
            messages=self.build_messages(history),
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )
        try:
            response = await asyncio.to_thread(self.adapter.generate, request)
        except Exception as exc:  # noqa: BLE001
            info = classify_error(exc, category="provider", component=self.adapter.name)
            self.logger.warning(
                "completion_failed",
                provider=self.adapter.name,
                error_type=info.error_type,
                retryable=info.retryable,
                http_status=info.http_status,
            )
            return CompletionResult(UPSTREAM_FAILURE_FALLBACK, fallback=True, error=compact_error_summary(exc))

        text = (response.output_text or "").strip()
        if not text:
            self.logger.warning("completion_empty", provider=response.provider, model=response.model)
            return CompletionResult(EMPTY_REPLY_FALLBACK, fallback=True, error="empty_reply")
        return CompletionResult(text)
