# rivalscope/services/analysis/pipeline.py
"""
Pipeline lima stage untuk satu kompetitor:

    queries → search → prioritize → scrape → synthesis

Setiap stage melapor lewat satu callback sinkron ``on_stage_event``
(``StageEvent``: stage, persen di dalam pipeline, pesan, detail opsional)
sebelum mulai bekerja. Kegagalan collaborator pada search/scrape
individual diturunkan jadi hasil parsial; kegagalan AI pada stage
query/synthesis menjadi ``StageError`` dan naik ke orchestrator.
Retry adalah urusan client collaborator, bukan layer ini.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from rivalscope.config import ServiceConfigs
from rivalscope.models.schemas import (
    AnalysisOptions,
    BusinessContext,
    Competitor,
    CompetitorAnalysisResult,
    PrioritizedUrl,
    ResultMetadata,
    ScrapedDocument,
    SearchHit,
    SearchQuery,
    SearchResult,
)
from rivalscope.services.clients.base import (
    ApiResponse,
    CompletionClient,
    ScrapeBackend,
    SearchBackend,
)
from rivalscope.services.costs.ledger import CostLedger
from rivalscope.utils.helper import count_tokens
from rivalscope.utils.logger import get_logger
from .errors import StageError
from .prioritizer import prioritize_urls
from .prompts import (
    build_query_prompt,
    build_report_prompt,
    limited_data_report,
    parse_search_queries,
    preview,
)


logger = get_logger(__name__)

T = TypeVar("T")


class StageName(str, Enum):
    QUERIES = "queries"
    SEARCH = "search"
    PRIORITIZE = "prioritize"
    SCRAPE = "scrape"
    SYNTHESIS = "synthesis"
    COMPLETE = "complete"


@dataclass(frozen=True)
class StageEvent:
    """Satu laporan stage. ``detail_type`` terisi → event detail, bukan progress."""

    stage: StageName
    percent: float
    message: str
    detail_type: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None

    @property
    def is_detail(self) -> bool:
        return self.detail_type is not None


StageCallback = Callable[[StageEvent], None]
TokenCounter = Callable[[str, str], int]


def _noop(_: StageEvent) -> None:
    return None


class CompetitorPipeline:
    def __init__(
        self,
        ai: CompletionClient,
        search: SearchBackend,
        scraper: ScrapeBackend,
        ledger: CostLedger,
        settings: ServiceConfigs,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        token_counter: TokenCounter = count_tokens,
    ):
        self.ai = ai
        self.search = search
        self.scraper = scraper
        self.ledger = ledger
        self.settings = settings
        self._sleep = sleep
        self._count_tokens = token_counter

    # =====================================================
    # Entry point
    # =====================================================
    async def analyze(
        self,
        competitor: Competitor,
        business_context: BusinessContext,
        options: AnalysisOptions,
        on_stage_event: Optional[StageCallback] = None,
    ) -> CompetitorAnalysisResult:
        emit = on_stage_event or _noop
        start_cost = self.ledger.total_cost
        logger.info("[pipeline] start | competitor=%s", competitor.name)

        queries = await self._generate_queries(competitor, business_context, options, emit)
        search_results = await self._execute_searches(competitor, queries, emit)
        urls = self._prioritize(competitor, search_results, options, emit)
        documents = await self._scrape(competitor, urls, emit)
        report = await self._synthesize(
            competitor, business_context, queries, search_results, documents, emit
        )

        emit(StageEvent(StageName.COMPLETE, 100, f"Analysis of {competitor.name} complete"))
        cost = self.ledger.total_cost - start_cost
        logger.info(
            "[pipeline] done | competitor=%s | docs=%d/%d | cost=%.4f",
            competitor.name,
            sum(1 for d in documents if d.success),
            len(documents),
            cost,
        )
        return CompetitorAnalysisResult(
            competitor=competitor,
            search_queries=queries,
            search_results=search_results,
            prioritized_urls=urls,
            scraped_content=documents,
            final_report=report,
            metadata=ResultMetadata(total_cost=cost, success=True),
        )

    async def _call(self, label: str, call: Awaitable[ApiResponse[T]]) -> ApiResponse[T]:
        """Exception dari collaborator diperlakukan sama dengan response gagal."""
        try:
            return await call
        except Exception as e:
            logger.warning("[pipeline] %s raised %s: %s", label, type(e).__name__, e)
            return ApiResponse.fail(str(e) or type(e).__name__)

    async def _complete(self, prompt: str, model: str, max_tokens: int) -> ApiResponse[str]:
        self.ledger.estimate_cost(model, self._count_tokens(prompt, model), max_tokens)
        resp = await self._call(
            "ai", self.ai.complete(prompt, model=model, max_tokens=max_tokens, temperature=0.3)
        )
        if resp.usage is not None:
            self.ledger.track_usage(resp.model or model, resp.usage)
        return resp

    # =====================================================
    # Stage 1: query generation
    # =====================================================
    async def _generate_queries(
        self,
        competitor: Competitor,
        context: BusinessContext,
        options: AnalysisOptions,
        emit: StageCallback,
    ) -> List[SearchQuery]:
        emit(
            StageEvent(
                StageName.QUERIES, 5, f"Generating search queries for {competitor.name}..."
            )
        )
        prompt = build_query_prompt(competitor, context)
        resp = await self._complete(
            prompt, self.settings.quick_model, self.settings.query_max_tokens
        )
        if not resp.success:
            raise StageError(
                StageName.QUERIES.value, f"Failed to generate search queries: {resp.error}"
            )

        queries = parse_search_queries(resp.data or "")
        if options.include_news:
            queries.append(
                SearchQuery(
                    query=f"{competitor.name} news",
                    purpose="Recent news coverage",
                    search_type="news",
                )
            )
        if not queries:
            logger.warning("[pipeline] no queries parsed | competitor=%s", competitor.name)

        emit(
            StageEvent(
                StageName.QUERIES,
                5,
                f"Generated {len(queries)} search queries",
                detail_type="queries_generated",
                detail={"queries": [q.to_json_dict() for q in queries]},
            )
        )
        return queries

    # =====================================================
    # Stage 2: search execution
    # =====================================================
    async def _execute_searches(
        self, competitor: Competitor, queries: List[SearchQuery], emit: StageCallback
    ) -> List[SearchResult]:
        emit(
            StageEvent(
                StageName.SEARCH, 20, f"Searching the web ({len(queries)} queries)..."
            )
        )
        results: List[SearchResult] = []
        total = len(queries)

        for idx, q in enumerate(queries, start=1):
            emit(
                StageEvent(
                    StageName.SEARCH,
                    20,
                    f"Searching: {q.query}",
                    detail_type="search_started",
                    detail={"query": q.query, "purpose": q.purpose, "index": idx, "total": total},
                )
            )
            resp = await self._call(
                "search",
                self.search.search(
                    q.query,
                    max_results=self.settings.search_results_per_query,
                    search_type=q.search_type,
                ),
            )
            if resp.success:
                self.ledger.track_external_api_cost(
                    "serper",
                    f"Search: {q.query}",
                    self.settings.search_cost_per_query,
                    1,
                    "query",
                )
                hits = [SearchHit.model_validate(item) for item in resp.data or []]
                results.append(SearchResult(query=q.query, results=hits))
                emit(
                    StageEvent(
                        StageName.SEARCH,
                        20,
                        f"Found {len(hits)} results for: {q.query}",
                        detail_type="search_completed",
                        detail={
                            "query": q.query,
                            "resultCount": len(hits),
                            "topResults": [
                                {"title": h.title, "url": h.url, "snippet": preview(h.snippet)}
                                for h in hits[:3]
                            ],
                        },
                    )
                )
            else:
                emit(
                    StageEvent(
                        StageName.SEARCH,
                        20,
                        f"Search failed: {q.query}",
                        detail_type="search_failed",
                        detail={"query": q.query, "error": resp.error},
                    )
                )

            # jeda antar query (rate limit), tidak setelah query terakhir
            if idx < total and self.settings.search_delay_seconds > 0:
                await self._sleep(self.settings.search_delay_seconds)

        return results

    # =====================================================
    # Stage 3: prioritization
    # =====================================================
    def _prioritize(
        self,
        competitor: Competitor,
        search_results: List[SearchResult],
        options: AnalysisOptions,
        emit: StageCallback,
    ) -> List[PrioritizedUrl]:
        emit(StageEvent(StageName.PRIORITIZE, 35, "Prioritizing sources..."))
        urls, candidates = prioritize_urls(
            competitor,
            search_results,
            max_documents=options.max_documents,
            skip_website=options.skip_website_scraping,
        )
        emit(
            StageEvent(
                StageName.PRIORITIZE,
                35,
                f"Selected {len(urls)} of {candidates} URLs",
                detail_type="urls_prioritized",
                detail={
                    "totalCandidates": candidates,
                    "selected": [u.to_json_dict() for u in urls],
                },
            )
        )
        return urls

    # =====================================================
    # Stage 4: scraping
    # =====================================================
    async def _scrape(
        self, competitor: Competitor, urls: List[PrioritizedUrl], emit: StageCallback
    ) -> List[ScrapedDocument]:
        emit(StageEvent(StageName.SCRAPE, 60, f"Scraping {len(urls)} sources..."))
        if not urls:
            return []

        emit(
            StageEvent(
                StageName.SCRAPE,
                60,
                f"Fetching content from {len(urls)} URLs",
                detail_type="scraping_started",
                detail={"urls": [u.url for u in urls]},
            )
        )

        sem = asyncio.Semaphore(self.settings.scrape_concurrency)

        async def fetch(item: PrioritizedUrl) -> ScrapedDocument:
            async with sem:
                resp = await self._call("scrape", self.scraper.scrape(item.url))
            if not resp.success:
                return ScrapedDocument(url=item.url, success=False, error=resp.error)
            data = resp.data or {}
            return ScrapedDocument(
                url=item.url,
                content=data.get("markdown") or "",
                title=data.get("title"),
                success=True,
            )

        # gather menjaga urutan hasil sesuai urutan prioritas
        documents = list(await asyncio.gather(*(fetch(u) for u in urls)))

        for doc in documents:
            if doc.success:
                self.ledger.track_external_api_cost(
                    "firecrawl",
                    f"Scrape: {doc.url}",
                    self.settings.scrape_cost_per_url,
                    1,
                    "url",
                )
                emit(
                    StageEvent(
                        StageName.SCRAPE,
                        60,
                        f"Scraped {doc.url}",
                        detail_type="scraping_completed",
                        detail={
                            "url": doc.url,
                            "title": doc.title,
                            "contentLength": len(doc.content),
                            "preview": preview(doc.content),
                        },
                    )
                )
            else:
                emit(
                    StageEvent(
                        StageName.SCRAPE,
                        60,
                        f"Failed to scrape {doc.url}",
                        detail_type="scraping_failed",
                        detail={"url": doc.url, "error": doc.error},
                    )
                )
        return documents

    # =====================================================
    # Stage 5: synthesis
    # =====================================================
    async def _synthesize(
        self,
        competitor: Competitor,
        context: BusinessContext,
        queries: List[SearchQuery],
        search_results: List[SearchResult],
        documents: List[ScrapedDocument],
        emit: StageCallback,
    ) -> str:
        emit(StageEvent(StageName.SYNTHESIS, 80, "Synthesizing competitive intelligence report..."))

        usable = [d for d in documents if d.success]
        if not usable:
            logger.warning(
                "[pipeline] no usable sources, limited report | competitor=%s", competitor.name
            )
            report = limited_data_report(competitor, queries, search_results, documents)
            emit(StageEvent(StageName.SYNTHESIS, 95, "Generated limited data report"))
            return report

        model = self.settings.synthesis_model
        prompt = build_report_prompt(competitor, context, search_results, usable)
        emit(
            StageEvent(
                StageName.SYNTHESIS,
                85,
                f"Requesting report from {model} ({len(usable)} sources)...",
            )
        )
        resp = await self._complete(prompt, model, self.settings.report_max_tokens)
        if not resp.success:
            raise StageError(
                StageName.SYNTHESIS.value, f"Failed to synthesize report: {resp.error}"
            )

        if not (resp.data or "").strip():
            raise StageError(StageName.SYNTHESIS.value, "AI returned an empty report")

        emit(StageEvent(StageName.SYNTHESIS, 95, "Report synthesized"))
        return resp.data
