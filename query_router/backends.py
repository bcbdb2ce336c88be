"""Classifier backends: a co-located small model and a remote chat API."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
from loguru import logger
from openai import AsyncAzureOpenAI, AsyncOpenAI

from query_router.errors import BackendUnavailableError
from query_router.models import LLMProvider, LLMResponse


class LocalSLMProvider(LLMProvider):
    """Self-hosted small model behind an OpenAI-compatible chat endpoint.

    Works with Ollama, vLLM or llama.cpp servers. ``endpoint`` is the full
    ``.../v1/chat/completions`` URL. The backend is considered available only
    after a successful ``check_health()``; ``start_health_checks()`` keeps
    re-checking every ``health_interval_s`` so an endpoint that went down
    (or came back) is picked up without a restart. Transient request errors
    leave availability alone and are handled by the failover circuit breaker.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        model: str = "granite-3.1-3b",
        *,
        enabled: bool = True,
        timeout_s: float = 3.0,
        health_interval_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(api_key=api_key, api_base=endpoint)
        self.model = model
        self.enabled = enabled and bool(endpoint)
        self._timeout_s = timeout_s
        self._health_interval_s = health_interval_s
        self._client = httpx.AsyncClient(transport=transport)
        self._is_available = False
        self._last_health_check = 0.0
        self._health_task: asyncio.Task | None = None

    @property
    def available(self) -> bool:
        return self.enabled and self._is_available

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def check_health(self) -> bool:
        """Ping the endpoint; a positive result is reused for ``health_interval_s``."""
        if not self.enabled:
            return False
        now = time.monotonic()
        if self._is_available and now - self._last_health_check < self._health_interval_s:
            return True
        try:
            response = await self._client.post(
                self.api_base,
                json={"messages": [{"role": "user", "content": "ping"}], "max_tokens": 1},
                headers=self._headers(),
                timeout=5.0,
            )
            self._is_available = response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Local SLM health check failed: {e}")
            self._is_available = False
        self._last_health_check = now
        return self._is_available

    # --- Periodic health checks ---

    def start_health_checks(self) -> None:
        """Re-check the endpoint every ``health_interval_s`` on the running loop."""
        if not self.enabled or (self._health_task and not self._health_task.done()):
            return
        self._health_task = asyncio.create_task(self._health_check_loop())
        logger.debug("Local SLM: started periodic health checks")

    async def stop_health_checks(self) -> None:
        if self._health_task and not self._health_task.done():
            self._health_task.cancel()
            try:
                await self._health_task
            except asyncio.CancelledError:
                pass
        self._health_task = None

    async def _health_check_loop(self) -> None:
        while True:
            await asyncio.sleep(self._health_interval_s)
            was_available = self._is_available
            if await self.check_health():
                if not was_available:
                    logger.info(f"Local SLM is back online at {self.api_base}")
            elif was_available:
                logger.warning(f"Local SLM went offline at {self.api_base}")

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 150,
        temperature: float = 0.0,
    ) -> LLMResponse:
        if not self.enabled:
            raise BackendUnavailableError("local SLM is disabled")

        start = time.monotonic()
        try:
            response = await self._client.post(
                self.api_base,
                json={
                    "model": model or self.model,
                    "messages": messages,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "stream": False,
                },
                headers=self._headers(),
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as e:
            raise BackendUnavailableError(f"local SLM unreachable: {e}") from e

        if response.status_code >= 400:
            raise BackendUnavailableError(
                f"local SLM responded with {response.status_code}: {response.text[:200]}"
            )

        data = response.json()
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise BackendUnavailableError("unexpected response format from local SLM") from e

        usage = data.get("usage") or {}
        logger.debug(
            f"Local SLM completion: {usage.get('total_tokens', 0)} tokens "
            f"in {int((time.monotonic() - start) * 1000)}ms"
        )
        return LLMResponse(
            content=content,
            finish_reason=data["choices"][0].get("finish_reason") or "stop",
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
            model_used=data.get("model") or model or self.model,
        )

    async def text_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        """Single system + user turn; returns the completion text.

        Entry point for callers outside the router that want a one-shot local
        completion. The classifier goes through ``chat`` so that both backends
        share the failover chain.
        """
        response = await self.chat(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return response.content or ""

    async def aclose(self) -> None:
        await self.stop_health_checks()
        await self._client.aclose()


class RemoteChatProvider(LLMProvider):
    """Hosted small model reached through the OpenAI SDK.

    Uses Azure OpenAI when ``api_version`` is set, plain OpenAI otherwise.
    Without credentials the provider is built permanently unavailable.
    """

    def __init__(
        self,
        api_key: str | None,
        api_base: str | None = None,
        *,
        api_version: str | None = None,
        default_model: str = "gpt-4o-mini",
        timeout_s: float = 10.0,
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(api_key=api_key, api_base=api_base)
        self.default_model = default_model
        self._client = client
        if self._client is None and api_key:
            if api_version:
                if not api_base:
                    logger.warning("Remote classifier: Azure endpoint missing, remote path disabled")
                else:
                    self._client = AsyncAzureOpenAI(
                        api_key=api_key,
                        azure_endpoint=api_base,
                        api_version=api_version,
                        timeout=timeout_s,
                        max_retries=0,
                    )
            else:
                self._client = AsyncOpenAI(
                    api_key=api_key, base_url=api_base, timeout=timeout_s, max_retries=0,
                )
        if self._client is None:
            logger.warning("Remote classifier: no credentials configured, remote path disabled")

    @property
    def available(self) -> bool:
        return self._client is not None

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 150,
        temperature: float = 0.0,
    ) -> LLMResponse:
        if self._client is None:
            raise BackendUnavailableError("remote classifier has no credentials")

        completion = await self._client.chat.completions.create(
            model=model or self.default_model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        choice = completion.choices[0]
        usage = {}
        if completion.usage is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
            }
        return LLMResponse(
            content=(choice.message.content or "").strip(),
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
            model_used=completion.model or model or self.default_model,
        )

    async def chat_completion(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_tokens: int = 150,
        temperature: float = 0.0,
    ) -> str:
        """Chat completion against ``model``; returns the stripped reply text.

        Convenience for callers outside the router. The classifier uses
        ``chat`` through the failover chain.
        """
        response = await self.chat(messages, model=model, max_tokens=max_tokens, temperature=temperature)
        return response.content or ""

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
