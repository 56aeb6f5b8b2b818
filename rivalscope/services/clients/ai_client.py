# rivalscope/services/clients/ai_client.py
from __future__ import annotations

import asyncio
from typing import Any, Optional

from openai import AsyncOpenAI
from openai import (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
    OpenAIError,
)

from rivalscope.config import ServiceConfigs
from rivalscope.services.costs.ledger import TokenUsage
from rivalscope.utils.logger import get_logger
from .base import ApiResponse, retrying


logger = get_logger(__name__)

TRANSIENT_ERRORS = (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
    asyncio.TimeoutError,
)


def extract_assistant_text(resp: Any) -> str:
    """Ambil teks assistant dari response Chat Completions."""
    try:
        content = resp.choices[0].message.content
    except (AttributeError, IndexError):
        return ""
    return (content or "").strip()


def extract_usage(resp: Any) -> Optional[TokenUsage]:
    usage = getattr(resp, "usage", None)
    if usage is None:
        return None
    return TokenUsage(
        input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
    )


class AIClient:
    """Collaborator AI completion lewat endpoint OpenAI-compatible."""

    def __init__(
        self,
        settings: ServiceConfigs,
        *,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.settings = settings
        self.model = settings.synthesis_model
        self.request_timeout = float(settings.request_timeout)
        self.retries = int(settings.collaborator_retries)
        self.client = client or AsyncOpenAI(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key or "missing",
        )

    async def aclose(self) -> None:
        await self.client.close()

    async def _chat_completions(self, **kwargs) -> Any:
        async for attempt in retrying(self.retries, *TRANSIENT_ERRORS):
            with attempt:
                return await asyncio.wait_for(
                    self.client.chat.completions.create(**kwargs),
                    timeout=self.request_timeout,
                )

    async def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.3,
    ) -> ApiResponse[str]:
        model = model or self.model
        if not self.settings.llm_api_key:
            return ApiResponse.fail("LLM_API_KEY is not configured")

        try:
            logger.info("[ai] request start | model=%s | prompt.len=%d", model, len(prompt))
            resp = await self._chat_completions(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens or self.settings.report_max_tokens,
            )
        except asyncio.TimeoutError:
            logger.warning("[ai] request timeout | model=%s", model)
            return ApiResponse.fail(f"AI request timed out after {self.request_timeout:.0f}s")
        except OpenAIError as e:
            logger.warning("[ai] request failed | model=%s | err=%s", model, e)
            return ApiResponse.fail(f"{type(e).__name__}: {e}")

        text = extract_assistant_text(resp)
        usage = extract_usage(resp)
        if not text:
            return ApiResponse(
                success=False, error="AI returned empty response", usage=usage, model=model
            )
        logger.info("[ai] request done | model=%s | usage=%s", model, usage)
        return ApiResponse.ok(text, usage=usage, model=model)

    async def health_check(self) -> ApiResponse[str]:
        return await self.complete(
            'Test prompt: respond with "API working"',
            model=self.settings.quick_model,
            max_tokens=16,
            temperature=0.0,
        )
