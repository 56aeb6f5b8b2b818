from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, List, Optional

import pytest

from rivalscope.config import ServiceConfigs
from rivalscope.models.schemas import (
    AnalysisOptions,
    BusinessContext,
    Competitor,
    CompetitorAnalysisResult,
    ResultMetadata,
)
from rivalscope.services.analysis.channel import ProgressChannel
from rivalscope.services.analysis.errors import StageError
from rivalscope.services.analysis.orchestrator import BatchOrchestrator
from rivalscope.services.analysis.pipeline import StageEvent, StageName
from rivalscope.services.analysis.supervisor import AnalysisRunner
from rivalscope.services.clients.base import ApiResponse
from rivalscope.services.costs.ledger import CostLedger, TokenUsage


QUERY_TEXT = """Here are the queries:
- Acme products - Product overview
- "Acme funding" - Funding history
- Acme pricing - Pricing model
"""
REPORT_TEXT = "# Acme - Competitive Intelligence Report\n\nAcme sells widgets."


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


# =========================
# Fake collaborators
# =========================


class FakeAI:
    def __init__(
        self,
        *,
        queries: str = QUERY_TEXT,
        report: str = REPORT_TEXT,
        fail_queries: bool = False,
        fail_report: bool = False,
        healthy: bool = True,
        usage: TokenUsage = TokenUsage(input_tokens=1000, output_tokens=500),
    ):
        self.queries = queries
        self.report = report
        self.fail_queries = fail_queries
        self.fail_report = fail_report
        self.healthy = healthy
        self.usage = usage
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, prompt, *, model=None, max_tokens=None, temperature=0.3):
        self.calls.append({"prompt": prompt, "model": model, "max_tokens": max_tokens})
        if prompt.startswith("Generate effective search queries"):
            if self.fail_queries:
                return ApiResponse.fail("rate limited")
            return ApiResponse.ok(self.queries, usage=self.usage, model=model)
        if self.fail_report:
            return ApiResponse.fail("overloaded")
        return ApiResponse.ok(self.report, usage=self.usage, model=model)

    async def health_check(self):
        if not self.healthy:
            return ApiResponse.fail("LLM_API_KEY is not configured")
        return ApiResponse.ok("API working")


class FakeSearch:
    def __init__(self, *, fail: Optional[set] = None, raise_on: Optional[set] = None, healthy=True):
        self.fail = fail or set()
        self.raise_on = raise_on or set()
        self.healthy = healthy
        self.calls: List[Dict[str, Any]] = []

    async def search(self, query, *, max_results=10, country="us", language="en", search_type="search"):
        self.calls.append({"query": query, "search_type": search_type})
        if query in self.raise_on:
            raise RuntimeError("connection reset")
        if query in self.fail:
            return ApiResponse.fail("quota exceeded")
        slug = _slug(query)
        return ApiResponse.ok(
            [
                {
                    "title": f"{query} overview",
                    "url": f"https://news.example.com/{slug}",
                    "snippet": "Acme builds widgets for teams",
                    "position": 1,
                    "date": None,
                },
                {
                    "title": "Industry roundup",
                    "url": f"https://blog.example.org/{slug}",
                    "snippet": "Market notes",
                    "position": 2,
                    "date": None,
                },
            ]
        )

    async def health_check(self):
        if not self.healthy:
            return ApiResponse.fail("SERPER_API_KEY is not configured")
        return ApiResponse.ok([])


class FakeScraper:
    def __init__(self, *, fail: Optional[set] = None, fail_all: bool = False, healthy=True):
        self.fail = fail or set()
        self.fail_all = fail_all
        self.healthy = healthy
        self.calls: List[str] = []

    async def scrape(self, url):
        self.calls.append(url)
        if self.fail_all or url in self.fail:
            return ApiResponse.fail("No content returned")
        return ApiResponse.ok(
            {"url": url, "markdown": f"Acme product pricing from {url}", "title": "Acme"}
        )

    async def health_check(self):
        if not self.healthy:
            return ApiResponse.fail("FIRECRAWL_API_KEY is not configured")
        return ApiResponse.ok({"url": "https://example.com", "markdown": "ok", "title": None})


async def no_sleep(_: float) -> None:
    return None


def rough_tokens(text: str, model: str) -> int:
    return max(1, len(text) // 4)


# =========================
# Stub pipeline (orchestrator/supervisor tests)
# =========================


class StubPipeline:
    """Pipeline tiruan: lima persen stage, satu biaya search, opsional gagal/lambat."""

    def __init__(self, ledger: CostLedger, *, fail_names=(), cost=0.01, delay=0.0):
        self.ledger = ledger
        self.fail_names = set(fail_names)
        self.cost = cost
        self.delay = delay
        self.started: List[str] = []
        self.finished: List[str] = []
        self.cancelled: List[str] = []

    async def analyze(self, competitor, business_context, options, on_stage_event):
        self.started.append(competitor.name)
        for stage, pct in (
            (StageName.QUERIES, 5),
            (StageName.SEARCH, 20),
            (StageName.PRIORITIZE, 35),
            (StageName.SCRAPE, 60),
        ):
            on_stage_event(StageEvent(stage, pct, f"{stage.value}..."))
        on_stage_event(
            StageEvent(
                StageName.SCRAPE,
                60,
                "Scraped",
                detail_type="scraping_completed",
                detail={"url": "https://acme.example"},
            )
        )
        self.ledger.track_external_api_cost("serper", f"Search: {competitor.name}", self.cost)

        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled.append(competitor.name)
                raise

        if competitor.name in self.fail_names:
            raise StageError("scrape", "Scrape failed for every source")

        on_stage_event(StageEvent(StageName.SYNTHESIS, 80, "synthesis..."))
        on_stage_event(StageEvent(StageName.COMPLETE, 100, "done"))
        self.finished.append(competitor.name)
        return CompetitorAnalysisResult(
            competitor=competitor,
            final_report=f"# {competitor.name} report",
            metadata=ResultMetadata(total_cost=self.cost, success=True),
        )


# =========================
# Fixtures
# =========================


@pytest.fixture
def settings() -> ServiceConfigs:
    return ServiceConfigs(
        llm_api_key="test-llm",
        serper_api_key="test-serper",
        firecrawl_api_key="test-firecrawl",
        quick_model="claude-3-5-haiku-20241022",
        synthesis_model="claude-sonnet-4-20250514",
        search_delay_seconds=0,
        analysis_timeout_seconds=30,
        keep_alive_seconds=1,
        preflight_health_checks=True,
    )


@pytest.fixture
def ledger() -> CostLedger:
    return CostLedger()


@pytest.fixture
def acme() -> Competitor:
    return Competitor(name="Acme", website="https://acme.example")


@pytest.fixture
def context() -> BusinessContext:
    return BusinessContext(company="Globex", industry="Widgets", target_market=["SMB"])


@pytest.fixture
def options() -> AnalysisOptions:
    return AnalysisOptions()


def make_orchestrator(pipeline, ledger, channel=None, **kwargs) -> BatchOrchestrator:
    return BatchOrchestrator(pipeline, ledger, channel or ProgressChannel("test"), **kwargs)


def make_runner(settings, ai=None, search=None, scraper=None) -> AnalysisRunner:
    return AnalysisRunner(
        ai or FakeAI(),
        search or FakeSearch(),
        scraper or FakeScraper(),
        settings,
        sleep=no_sleep,
        token_counter=rough_tokens,
    )


async def drain(channel: ProgressChannel) -> list:
    return [event async for event in channel]
