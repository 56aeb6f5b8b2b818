# rivalscope/services/clients/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from rivalscope.services.costs.ledger import TokenUsage


T = TypeVar("T")


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    """Hasil panggilan collaborator: sukses + data, atau gagal + error. Tidak pernah raise."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    usage: Optional[TokenUsage] = None
    model: Optional[str] = None

    @classmethod
    def ok(cls, data: T, **kwargs: Any) -> "ApiResponse[T]":
        return cls(success=True, data=data, **kwargs)

    @classmethod
    def fail(cls, error: str) -> "ApiResponse[T]":
        return cls(success=False, error=error)


# =========================
# Kontrak collaborator
# =========================


class CompletionClient(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.3,
    ) -> ApiResponse[str]: ...

    async def health_check(self) -> ApiResponse[str]: ...


class SearchBackend(Protocol):
    async def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        country: str = "us",
        language: str = "en",
        search_type: str = "search",
    ) -> ApiResponse[List[Dict[str, Any]]]: ...

    async def health_check(self) -> ApiResponse[List[Dict[str, Any]]]: ...


class ScrapeBackend(Protocol):
    async def scrape(self, url: str) -> ApiResponse[Dict[str, Any]]: ...

    async def health_check(self) -> ApiResponse[Dict[str, Any]]: ...


def retrying(retries: int, *exc_types: type[BaseException]) -> AsyncRetrying:
    """Retry backoff eksponensial untuk error transient; dipakai di dalam client saja."""
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(1, retries + 1)),
        wait=wait_exponential_jitter(initial=1, max=10),
        retry=retry_if_exception_type(exc_types),
    )
