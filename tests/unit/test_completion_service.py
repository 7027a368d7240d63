from __future__ import annotations

import pytest

from counselchat.core.counsel.completion import (
    EMPTY_REPLY_FALLBACK,
    UPSTREAM_FAILURE_FALLBACK,
    CompletionService,
)
from counselchat.core.counsel.prompts import COUNSELOR_SYSTEM_PROMPT
from counselchat.core.providers.base import ProviderAdapter, ProviderRequest, ProviderResponse


class FakeAdapter(ProviderAdapter):
    name = "fake"

    def __init__(self, reply: str = "ok", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.requests: list[ProviderRequest] = []

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return ProviderResponse(provider=self.name, model=request.model, output_text=self.reply, raw={})

    def health(self) -> bool:
        return True


class Turn:
    def __init__(self, role: str, content: str) -> None:
        self.role = role
        self.content = content


@pytest.mark.asyncio
async def test_system_prompt_prepended_to_history():
    adapter = FakeAdapter(reply="  Try a bootcamp.  ")
    service = CompletionService(adapter, model="m1", temperature=0.2, max_output_tokens=50)

    result = await service.complete([Turn("user", "hi"), Turn("assistant", "hello"), Turn("user", "advice?")])

    assert result.content == "Try a bootcamp."
    assert result.fallback is False
    request = adapter.requests[0]
    assert request.messages[0] == {"role": "system", "content": COUNSELOR_SYSTEM_PROMPT}
    assert [m["role"] for m in request.messages[1:]] == ["user", "assistant", "user"]
    assert (request.model, request.temperature, request.max_output_tokens) == ("m1", 0.2, 50)


@pytest.mark.asyncio
async def test_upstream_failure_returns_apology():
    service = CompletionService(FakeAdapter(error=RuntimeError("Server error '503 Service Unavailable'")))

    result = await service.complete([Turn("user", "hi")])
    assert result.fallback is True
    assert result.content == UPSTREAM_FAILURE_FALLBACK
    assert result.error.startswith("RuntimeError")


@pytest.mark.asyncio
async def test_empty_reply_returns_apology():
    result = await CompletionService(FakeAdapter(reply="   ")).complete([Turn("user", "hi")])
    assert result.fallback is True
    assert result.content == EMPTY_REPLY_FALLBACK
    assert result.error == "empty_reply"


@pytest.mark.asyncio
async def test_missing_provider_returns_apology():
    result = await CompletionService(None).complete([Turn("user", "hi")])
    assert result.fallback is True
    assert result.error == "provider_not_configured"
