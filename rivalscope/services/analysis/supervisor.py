# rivalscope/services/analysis/supervisor.py
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List

from rivalscope.config import ServiceConfigs
from rivalscope.models.schemas import AnalysisRequest
from rivalscope.services.clients.base import CompletionClient, ScrapeBackend, SearchBackend
from rivalscope.services.costs.ledger import CostLedger
from rivalscope.utils.helper import count_tokens
from rivalscope.utils.logger import get_logger
from .channel import ProgressChannel
from .events import ErrorEvent, TimeoutEvent
from .orchestrator import BatchOrchestrator, RunOutcome, prepare_competitors
from .pipeline import CompetitorPipeline, TokenCounter


logger = get_logger(__name__)


class DeadlineSupervisor:
    """
    Satu deadline untuk satu run.

    - Selesai normal sebelum deadline: outcome dari orchestrator.
    - Exception fatal: event ``error`` (progress -1), channel ditutup.
    - Deadline lewat: event ``timeout`` (progress -1) berisi hasil parsial,
      channel ditutup. ``cancel_on_timeout=True`` membatalkan task run
      (CancelledError masuk ke panggilan collaborator yang sedang ditunggu);
      ``False`` membiarkan task berjalan, event berikutnya dibuang channel.
    """

    def __init__(self, timeout_seconds: float, *, cancel_on_timeout: bool = True):
        self.timeout_seconds = float(timeout_seconds)
        self.cancel_on_timeout = cancel_on_timeout

    async def supervise(
        self,
        orchestrator: BatchOrchestrator,
        run: Awaitable[RunOutcome],
    ) -> RunOutcome:
        channel = orchestrator.channel
        task = asyncio.ensure_future(run)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            exc = task.exception() if not task.cancelled() else asyncio.CancelledError()
            if exc is None:
                return task.result()
            return self._fail(orchestrator, exc)

        return await self._time_out(orchestrator, channel, task)

    def _fail(self, orchestrator: BatchOrchestrator, exc: BaseException) -> RunOutcome:
        channel = orchestrator.channel
        error = str(exc) or type(exc).__name__
        logger.error(
            "[supervisor] run failed | run=%s | %s: %s",
            channel.run_id,
            type(exc).__name__,
            error,
            exc_info=exc,
        )
        outcome = orchestrator.failed_outcome(error)
        channel.emit(
            ErrorEvent(
                message=f"Analysis failed: {error}",
                data={
                    "error": error,
                    "completed": len(outcome.results),
                    "total": len(orchestrator.competitors),
                },
            )
        )
        channel.close("error")
        return outcome

    async def _time_out(
        self,
        orchestrator: BatchOrchestrator,
        channel: ProgressChannel,
        task: "asyncio.Future[RunOutcome]",
    ) -> RunOutcome:
        outcome = orchestrator.timed_out_outcome()
        summary = outcome.summary
        finished = len(orchestrator.results)
        total = len(orchestrator.competitors)
        logger.warning(
            "[supervisor] deadline reached | run=%s | finished=%d/%d | cancel=%s",
            channel.run_id,
            finished,
            total,
            self.cancel_on_timeout,
        )

        channel.emit(
            TimeoutEvent(
                message=(
                    f"Analysis timed out after {_describe_seconds(self.timeout_seconds)}. "
                    f"{summary.successful_analyses if summary else 0}/{total} "
                    "competitors completed successfully."
                ),
                data=outcome.to_json_dict(),
            )
        )
        channel.close("timeout")

        if self.cancel_on_timeout:
            task.cancel()
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "[supervisor] run raised after cancel | run=%s | %s",
                    channel.run_id,
                    task.exception(),
                )
        else:
            task.add_done_callback(_log_abandoned(channel.run_id))
        return outcome


def _describe_seconds(seconds: float) -> str:
    if seconds >= 60:
        return f"{seconds / 60:g} minutes"
    return f"{seconds:g} seconds"


def _log_abandoned(run_id: str) -> Callable[["asyncio.Future[Any]"], None]:
    def _done(task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            logger.info("[supervisor] abandoned run cancelled | run=%s", run_id)
        elif task.exception() is not None:
            logger.warning(
                "[supervisor] abandoned run raised | run=%s | %s", run_id, task.exception()
            )
        else:
            logger.info("[supervisor] abandoned run finished after timeout | run=%s", run_id)

    return _done


# =====================================================
# Runner: rakit objek per-run
# =====================================================
@dataclass
class AnalysisRun:
    run_id: str
    channel: ProgressChannel
    ledger: CostLedger
    orchestrator: BatchOrchestrator
    task: "asyncio.Task[RunOutcome]"

    async def outcome(self) -> RunOutcome:
        return await self.task


class AnalysisRunner:
    """
    Membuat ledger, channel, pipeline, orchestrator dan supervisor baru
    untuk setiap run; collaborator dipakai bersama antar run.
    """

    def __init__(
        self,
        ai: CompletionClient,
        search: SearchBackend,
        scraper: ScrapeBackend,
        settings: ServiceConfigs,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        token_counter: TokenCounter = count_tokens,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ai = ai
        self.search = search
        self.scraper = scraper
        self.settings = settings
        self._sleep = sleep
        self._token_counter = token_counter
        self._clock = clock

    def start(self, request: AnalysisRequest) -> AnalysisRun:
        """Validasi input (sinkron, bisa raise) lalu jadwalkan run sebagai task."""
        competitors = prepare_competitors(request.competitors, self.settings.max_competitors)

        run_id = uuid.uuid4().hex[:12]
        ledger = CostLedger()
        channel = ProgressChannel(run_id)
        pipeline = CompetitorPipeline(
            self.ai,
            self.search,
            self.scraper,
            ledger,
            self.settings,
            sleep=self._sleep,
            token_counter=self._token_counter,
        )
        orchestrator = BatchOrchestrator(
            pipeline,
            ledger,
            channel,
            cost_target=self.settings.cost_target_per_competitor,
            clock=self._clock,
        )
        supervisor = DeadlineSupervisor(
            self.settings.analysis_timeout_seconds,
            cancel_on_timeout=self.settings.cancel_on_timeout,
        )
        task = asyncio.create_task(
            supervisor.supervise(
                orchestrator,
                orchestrator.run(competitors, request.business_context, request.options),
            )
        )
        logger.info("[runner] run scheduled | run=%s | competitors=%d", run_id, len(competitors))
        return AnalysisRun(run_id, channel, ledger, orchestrator, task)

    async def health(self) -> Dict[str, Dict[str, Any]]:
        """Health check ketiga collaborator secara paralel."""
        names = ("ai", "search", "scrape")
        checks = await asyncio.gather(
            self.ai.health_check(),
            self.search.health_check(),
            self.scraper.health_check(),
            return_exceptions=True,
        )
        report: Dict[str, Dict[str, Any]] = {}
        for name, resp in zip(names, checks):
            if isinstance(resp, BaseException):
                report[name] = {"healthy": False, "error": str(resp) or type(resp).__name__}
            else:
                report[name] = {"healthy": bool(resp.success), "error": resp.error}
        return report

    async def preflight(self) -> List[str]:
        """Daftar collaborator yang gagal health check (kosong = siap)."""
        report = await self.health()
        return [
            f"{name}: {info.get('error') or 'unavailable'}"
            for name, info in report.items()
            if not info["healthy"]
        ]

