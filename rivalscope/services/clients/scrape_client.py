# rivalscope/services/clients/scrape_client.py
from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from rivalscope.config import ServiceConfigs
from rivalscope.utils.logger import get_logger
from .base import ApiResponse, retrying


logger = get_logger(__name__)

HTTP_LIMITS = httpx.Limits(max_connections=10, max_keepalive_connections=5)


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ScrapeClient:
    """Collaborator scraping halaman (Firecrawl), output markdown konten utama."""

    def __init__(self, settings: ServiceConfigs, *, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.retries = int(settings.collaborator_retries)
        self.http = http or httpx.AsyncClient(
            base_url=settings.firecrawl_base_url,
            timeout=httpx.Timeout(settings.request_timeout),
            limits=HTTP_LIMITS,
            headers={
                "Authorization": f"Bearer {settings.firecrawl_api_key}",
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def scrape(self, url: str) -> ApiResponse[Dict[str, Any]]:
        if not is_valid_url(url):
            return ApiResponse.fail(f"Invalid URL: {url!r}")
        if not self.settings.firecrawl_api_key:
            return ApiResponse.fail("FIRECRAWL_API_KEY is not configured")

        payload = {
            "url": url,
            "formats": ["markdown"],
            "onlyMainContent": True,
            "waitFor": 2000,
        }
        try:
            async for attempt in retrying(self.retries, httpx.TransportError):
                with attempt:
                    resp = await self.http.post("/v1/scrape", json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            logger.warning("[scrape] failed | url=%s | err=%s", url, e)
            return ApiResponse.fail(f"Scrape request failed: {e}")
        except ValueError:
            return ApiResponse.fail("Scrape response is not valid JSON")

        if not body.get("success", True):
            return ApiResponse.fail(body.get("error") or "Scrape was not successful")

        data = body.get("data") or {}
        markdown = data.get("markdown") or ""
        if not markdown:
            return ApiResponse.fail("No content returned")

        metadata = data.get("metadata") or {}
        logger.info("[scrape] done | url=%s | chars=%d", url, len(markdown))
        return ApiResponse.ok(
            {"url": url, "markdown": markdown, "title": metadata.get("title")}
        )

    async def health_check(self) -> ApiResponse[Dict[str, Any]]:
        return await self.scrape("https://example.com")
