from __future__ import annotations

import os

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from counselchat.core.providers.base import ProviderAdapter, ProviderRequest, ProviderResponse


class GroqAdapter(ProviderAdapter):
    name = "groq"

    def __init__(
        self,
        api_key_env: str | None,
        timeout_seconds: int = 20,
        default_model: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key_env = api_key_env
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.groq.com/openai/v1"
        self.default_model = (default_model or "").strip() or None
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        token = os.getenv(self.api_key_env or "", "")
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(timeout=timeout, transport=self.transport)

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def generate(self, request: ProviderRequest) -> ProviderResponse:
        model = self.default_model or request.model
        payload = {
            "model": model,
            "messages": request.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_output_tokens,
        }

        with self._client(self.timeout_seconds) as client:
            resp = client.post(f"{self.base_url}/chat/completions", json=payload, headers=self._headers())
            resp.raise_for_status()
            body = resp.json()

        choices = body.get("choices") or [{}]
        text = (choices[0].get("message") or {}).get("content") or ""
        return ProviderResponse(provider=self.name, model=model, output_text=text, raw=body)

    def health(self) -> bool:
        if not os.getenv(self.api_key_env or ""):
            return False
        try:
            with self._client(3.0) as client:
                response = client.get(f"{self.base_url}/models", headers=self._headers())
                return response.status_code < 500
        except httpx.HTTPError:
            return False
