# rivalscope/services/clients/search_client.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from rivalscope.config import ServiceConfigs
from rivalscope.utils.logger import get_logger
from .base import ApiResponse, retrying


logger = get_logger(__name__)

HTTP_LIMITS = httpx.Limits(max_connections=10, max_keepalive_connections=5)
SERPER_MAX_RESULTS = 100


class SearchClient:
    """Collaborator web search (Serper.dev)."""

    def __init__(self, settings: ServiceConfigs, *, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.retries = int(settings.collaborator_retries)
        self.http = http or httpx.AsyncClient(
            base_url=settings.serper_base_url,
            timeout=httpx.Timeout(settings.request_timeout),
            limits=HTTP_LIMITS,
            headers={
                "X-API-KEY": settings.serper_api_key,
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        async for attempt in retrying(
            self.retries, httpx.TransportError, httpx.HTTPStatusError
        ):
            with attempt:
                resp = await self.http.post(path, json=payload)
                if resp.status_code == 429 or resp.status_code >= 500:
                    resp.raise_for_status()
                return resp

    async def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        country: str = "us",
        language: str = "en",
        search_type: str = "search",
    ) -> ApiResponse[List[Dict[str, Any]]]:
        query = (query or "").strip()
        if not query:
            return ApiResponse.fail("Search query cannot be empty")
        if not self.settings.serper_api_key:
            return ApiResponse.fail("SERPER_API_KEY is not configured")

        payload = {
            "q": query,
            "gl": country,
            "hl": language,
            "num": min(max_results, SERPER_MAX_RESULTS),
        }
        path = "/news" if search_type == "news" else "/search"

        try:
            logger.info("[search] %s start | q=%r", path, query)
            resp = await self._post(path, payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            logger.warning("[search] request failed | q=%r | err=%s", query, e)
            return ApiResponse.fail(f"Search request failed: {e}")
        except ValueError:
            return ApiResponse.fail("Search response is not valid JSON")

        key = "news" if search_type == "news" else "organic"
        items = body.get(key)
        if items is None:
            return ApiResponse.fail(
                f"No {key} results for query: {query!r}. Available data: {', '.join(body)}"
            )

        results = [
            {
                "title": item.get("title") or "",
                "url": item.get("link") or "",
                "snippet": item.get("snippet") or "",
                "position": int(item.get("position") or idx + 1),
                "date": item.get("date"),
            }
            for idx, item in enumerate(items[:max_results])
        ]
        logger.info("[search] done | q=%r | results=%d", query, len(results))
        return ApiResponse.ok(results)

    async def health_check(self) -> ApiResponse[List[Dict[str, Any]]]:
        return await self.search("test health check", max_results=1)
