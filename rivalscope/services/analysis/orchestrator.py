# rivalscope/services/analysis/orchestrator.py
"""
Batch orchestrator: satu run untuk daftar kompetitor.

State: IDLE → RUNNING → {COMPLETED | TIMED_OUT | FAILED}.
Kompetitor diproses berurutan sesuai input. Kompetitor ke-i dari n
mendapat pita progress ``10 + i/n*80`` s/d ``10 + (i+1)/n*80``; persen
stage (0-100) dipetakan linear ke pita tersebut. Gagal pada satu
kompetitor dicatat sebagai hasil gagal dan run tetap lanjut.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from rivalscope.models.schemas import (
    AnalysisOptions,
    BusinessContext,
    Competitor,
    CompetitorAnalysisResult,
    RunSummary,
)
from rivalscope.services.costs.ledger import CostLedger, SessionCosts
from rivalscope.utils.helper import format_cost, format_token_count
from rivalscope.utils.logger import get_logger
from .channel import ProgressChannel
from .errors import AnalysisError, AnalysisValidationError
from .events import (
    AnalysisDetail,
    CompetitorComplete,
    CompetitorError,
    CompleteEvent,
    CostUpdate,
    ProgressUpdate,
)
from .pipeline import CompetitorPipeline, StageEvent


logger = get_logger(__name__)

START_PROGRESS = 5.0
BAND_START = 10.0
BAND_WIDTH = 80.0
FINALIZING_PROGRESS = 95.0
DEFAULT_MAX_COMPETITORS = 50
TIMED_OUT_ERROR = "Analysis timed out before this competitor was finished"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class RunOutcome:
    state: RunState
    results: List[CompetitorAnalysisResult] = field(default_factory=list)
    summary: Optional[RunSummary] = None
    error: Optional[str] = None

    def to_json_dict(self) -> dict:
        return {
            "competitors": [r.to_json_dict() for r in self.results],
            "summary": self.summary.to_json_dict() if self.summary else None,
        }


def _pct(value: float) -> float:
    return round(value, 2)


def competitor_band(index: int, total: int) -> Tuple[float, float]:
    """Pita progress (awal, akhir) untuk kompetitor ke-``index`` dari ``total``."""
    start = BAND_START + (index / total) * BAND_WIDTH
    end = BAND_START + ((index + 1) / total) * BAND_WIDTH
    return start, end


def prepare_competitors(
    raw: Optional[Iterable[Any]], max_competitors: int = DEFAULT_MAX_COMPETITORS
) -> List[Competitor]:
    """
    Normalisasi input kompetitor: string → ``{"name": ...}``, entri tanpa
    nama dibuang, daftar dipotong ke ``max_competitors``.
    Raise ``AnalysisValidationError`` bila tidak ada yang tersisa.
    """
    competitors: List[Competitor] = []
    for item in raw or []:
        if isinstance(item, Competitor):
            competitors.append(item)
            continue
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            continue
        try:
            competitors.append(Competitor.model_validate(item))
        except ValidationError:
            logger.debug("[orchestrator] skip competitor tanpa nama valid: %r", item)

    if not competitors:
        raise AnalysisValidationError("At least one competitor with a name is required")

    if len(competitors) > max_competitors:
        logger.info(
            "[orchestrator] %d competitors, capped to %d", len(competitors), max_competitors
        )
        competitors = competitors[:max_competitors]
    return competitors


class BatchOrchestrator:
    def __init__(
        self,
        pipeline: CompetitorPipeline,
        ledger: CostLedger,
        channel: ProgressChannel,
        *,
        cost_target: float = 0.20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pipeline = pipeline
        self.ledger = ledger
        self.channel = channel
        self.cost_target = cost_target
        self._clock = clock

        self.state = RunState.IDLE
        self.competitors: List[Competitor] = []
        self.results: List[CompetitorAnalysisResult] = []
        self._current: Optional[Competitor] = None
        self._started_at: Optional[float] = None

    # =====================================================
    # Run
    # =====================================================
    async def run(
        self,
        competitors: List[Competitor],
        business_context: Optional[BusinessContext] = None,
        options: Optional[AnalysisOptions] = None,
    ) -> RunOutcome:
        if self.state is not RunState.IDLE:
            raise AnalysisError(f"Run already {self.state.value}")
        if not competitors:
            raise AnalysisValidationError("At least one competitor is required")

        business_context = business_context or BusinessContext()
        options = options or AnalysisOptions()
        self.competitors = list(competitors)
        self.state = RunState.RUNNING
        self._started_at = self._clock()

        self.ledger.reset()
        unsubscribe = self.ledger.subscribe(self._forward_cost)
        total = len(self.competitors)
        logger.info("[orchestrator] run start | run=%s | competitors=%d", self.channel.run_id, total)

        try:
            self.channel.emit(
                ProgressUpdate(
                    progress=START_PROGRESS,
                    message=f"Starting analysis of {total} competitor{'s' if total != 1 else ''}...",
                    step="starting",
                )
            )

            for index, competitor in enumerate(self.competitors):
                await self._analyze_one(index, total, competitor, business_context, options)

            self.channel.emit(
                ProgressUpdate(
                    progress=FINALIZING_PROGRESS,
                    message="Finalizing analysis...",
                    step="finalizing",
                )
            )
            summary = self.summarize()
            outcome = RunOutcome(RunState.COMPLETED, list(self.results), summary)
            self.channel.emit(
                CompleteEvent(
                    message=(
                        f"Analysis completed! {summary.successful_analyses}/{total} successful. "
                        f"Avg cost: {format_cost(summary.avg_cost_per_competitor)}/competitor"
                    ),
                    data=outcome.to_json_dict(),
                )
            )
            # run yang sudah timeout tidak boleh berubah jadi completed
            if self.state is RunState.RUNNING:
                self.state = RunState.COMPLETED
                self.channel.close("complete")
            outcome.state = self.state
            costs = self.ledger.session_costs()
            logger.info(
                "[orchestrator] run done | run=%s | state=%s | ok=%d/%d | cost=%s | tokens=%s/%s",
                self.channel.run_id,
                self.state.value,
                summary.successful_analyses,
                total,
                format_cost(summary.total_cost),
                format_token_count(costs.total_input_tokens),
                format_token_count(costs.total_output_tokens),
            )
            return outcome
        finally:
            unsubscribe()

    async def _analyze_one(
        self,
        index: int,
        total: int,
        competitor: Competitor,
        business_context: BusinessContext,
        options: AnalysisOptions,
    ) -> None:
        self._current = competitor
        name = competitor.name
        band_start, band_end = competitor_band(index, total)
        width = band_end - band_start
        start_cost = self.ledger.total_cost

        self.channel.emit(
            ProgressUpdate(
                progress=_pct(band_start),
                message=f"Analyzing {name} ({index + 1}/{total})...",
                competitor=name,
                step="competitor_start",
                step_progress=0,
            )
        )

        def on_stage_event(event: StageEvent) -> None:
            if event.is_detail:
                self.channel.emit(
                    AnalysisDetail(
                        progress=self.channel.last_progress,
                        message=event.message,
                        competitor=name,
                        detail_type=event.detail_type,
                        data=event.detail,
                    )
                )
                return
            overall = min(band_start + event.percent / 100 * width, band_end)
            self.channel.emit(
                ProgressUpdate(
                    progress=_pct(overall),
                    message=event.message,
                    competitor=name,
                    step=event.stage.value,
                    step_progress=event.percent,
                )
            )

        try:
            result = await self.pipeline.analyze(
                competitor, business_context, options, on_stage_event
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.exception("[orchestrator] competitor failed | %s | %s", name, error)
            failed = CompetitorAnalysisResult.failed(
                competitor, error, self.ledger.total_cost - start_cost
            )
            self.results.append(failed)
            self.channel.emit(
                CompetitorError(
                    progress=_pct(band_end),
                    message=f"Failed to analyze {name}: {error}",
                    competitor=name,
                    error=error,
                    result=failed,
                )
            )
            return
        finally:
            self._current = None

        self.results.append(result)
        self.channel.emit(
            CompetitorComplete(
                progress=_pct(band_end),
                message=(
                    f"Completed analysis of {name} "
                    f"(cost: {format_cost(result.metadata.total_cost)})"
                ),
                competitor=name,
                result=result,
                cost=result.metadata.total_cost,
            )
        )

    def _forward_cost(self, costs: SessionCosts) -> None:
        self.channel.emit(
            CostUpdate(
                progress=self.channel.last_progress,
                message=f"Total cost: {format_cost(costs.total_cost)}",
                competitor=self._current.name if self._current else None,
                total_cost=costs.total_cost,
                estimated_cost=costs.estimated_cost,
                data=costs.to_dict(),
            )
        )

    # =====================================================
    # Summary & terminal outcomes
    # =====================================================
    def summarize(
        self, results: Optional[List[CompetitorAnalysisResult]] = None
    ) -> RunSummary:
        results = self.results if results is None else results
        total = len(self.competitors)
        total_cost = self.ledger.total_cost
        avg = total_cost / total if total else 0.0
        elapsed = self._clock() - self._started_at if self._started_at is not None else 0.0
        return RunSummary(
            total_competitors=total,
            successful_analyses=sum(1 for r in results if r.metadata.success),
            total_cost=total_cost,
            avg_cost_per_competitor=avg,
            cost_target_met=avg <= self.cost_target,
            processing_time_seconds=int(round(elapsed)),
        )

    def timed_out_outcome(self) -> RunOutcome:
        """Tandai run TIMED_OUT; kompetitor yang belum selesai diisi record gagal."""
        self.state = RunState.TIMED_OUT
        results = list(self.results)
        for competitor in self.competitors[len(results):]:
            results.append(CompetitorAnalysisResult.failed(competitor, TIMED_OUT_ERROR))
        return RunOutcome(
            RunState.TIMED_OUT, results, self.summarize(results), error="timeout"
        )

    def failed_outcome(self, error: str) -> RunOutcome:
        self.state = RunState.FAILED
        return RunOutcome(RunState.FAILED, list(self.results), None, error=error)
