# rivalscope/services/jobs/job_queue.py
"""
Job queue in-process untuk analisis non-streaming (``?queue=true``).

Job dijalankan satu per satu lewat ``AnalysisRunner`` yang sama dengan
jalur streaming; worker membaca event channel untuk memperbarui
progress job. Hasil run yang selesai disimpan di ``AnalysisCache``.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from rivalscope.models.schemas import AnalysisRequest
from rivalscope.services.analysis.errors import AnalysisError
from rivalscope.services.analysis.orchestrator import RunState
from rivalscope.services.analysis.supervisor import AnalysisRunner
from rivalscope.services.cache.analysis_cache import AnalysisCache
from rivalscope.utils.helper import format_duration
from rivalscope.utils.logger import get_logger


logger = get_logger(__name__)

# menit per kompetitor per mode, +20% buffer
MODE_MINUTES = {"quick": 2, "standard": 4, "comprehensive": 8}
ESTIMATE_BUFFER = 1.2
AVG_JOB_SECONDS = 5 * 60


def estimate_analysis_time(competitor_count: int, mode: str = "standard") -> str:
    base = MODE_MINUTES.get(mode, MODE_MINUTES["standard"])
    return format_duration(math.ceil(base * competitor_count * ESTIMATE_BUFFER))


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.TIMED_OUT, JobStatus.FAILED)


@dataclass
class AnalysisJob:
    job_id: str
    request: AnalysisRequest
    cache_key: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0
    message: str = "Queued"
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


_RUN_TO_JOB = {
    RunState.COMPLETED: JobStatus.COMPLETED,
    RunState.TIMED_OUT: JobStatus.TIMED_OUT,
    RunState.FAILED: JobStatus.FAILED,
}


class JobQueue:
    def __init__(
        self,
        runner: AnalysisRunner,
        cache: Optional[AnalysisCache] = None,
        *,
        keep_completed: int = 10,
        keep_failed: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.runner = runner
        self.cache = cache
        self._clock = clock
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed
        self._jobs: Dict[str, AnalysisJob] = {}
        self._pending: Optional[asyncio.Queue[str]] = None
        self._worker: Optional[asyncio.Task] = None

    # =====================================================
    # API
    # =====================================================
    def enqueue(self, request: AnalysisRequest, cache_key: Optional[str] = None) -> AnalysisJob:
        job = AnalysisJob(
            job_id=uuid.uuid4().hex,
            request=request,
            cache_key=cache_key,
            created_at=self._clock(),
        )
        self._jobs[job.job_id] = job
        self._ensure_worker().put_nowait(job.job_id)
        logger.info(
            "[jobs] enqueued | job=%s | competitors=%d | position=%d",
            job.job_id,
            len(request.competitors),
            self.position(job.job_id) or 0,
        )
        return job

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        return self._jobs.get(job_id)

    def position(self, job_id: str) -> Optional[int]:
        """Posisi 1-based di antrean; None bila job tidak sedang menunggu."""
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.QUEUED:
            return None
        ahead = sum(
            1
            for other in self._jobs.values()
            if other.status is JobStatus.QUEUED and other.created_at < job.created_at
        )
        return ahead + 1

    def estimated_time_remaining(self, job: AnalysisJob) -> Optional[str]:
        if job.status.finished:
            return None
        if job.status is JobStatus.RUNNING:
            if job.progress <= 0 or job.started_at is None:
                return "5-10 minutes"
            elapsed = self._clock() - job.started_at
            remaining = max(0.0, elapsed / job.progress * 100 - elapsed)
            return format_duration(math.ceil(remaining / 60))
        position = self.position(job.job_id) or 1
        return format_duration(math.ceil((position - 1) * AVG_JOB_SECONDS / 60))

    def status(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        return {
            "jobId": job.job_id,
            "status": job.status.value,
            "progress": job.progress,
            "message": job.message,
            "queuePosition": self.position(job_id),
            "result": job.result,
            "error": job.error,
            "createdAt": job.created_at,
            "startedAt": job.started_at,
            "finishedAt": job.finished_at,
            "estimatedTimeRemaining": self.estimated_time_remaining(job),
        }

    async def shutdown(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
        logger.info("[jobs] worker stopped")

    # =====================================================
    # Worker
    # =====================================================
    def _ensure_worker(self) -> "asyncio.Queue[str]":
        if self._pending is None:
            self._pending = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work(self._pending))
        return self._pending

    async def _work(self, pending: "asyncio.Queue[str]") -> None:
        while True:
            job_id = await pending.get()
            job = self._jobs.get(job_id)
            if job is None:
                continue
            try:
                await self._run_job(job)
            except Exception as e:
                logger.exception("[jobs] job crashed | job=%s", job_id)
                self._finish(job, JobStatus.FAILED, error=str(e) or type(e).__name__)
            finally:
                pending.task_done()

    async def _run_job(self, job: AnalysisJob) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = self._clock()
        job.message = "Starting analysis..."
        logger.info("[jobs] start | job=%s", job.job_id)

        try:
            run = self.runner.start(job.request)
        except AnalysisError as e:
            self._finish(job, JobStatus.FAILED, error=str(e))
            return

        async for event in run.channel:
            if event.progress >= 0:
                job.progress = event.progress
            job.message = event.message

        outcome = await run.outcome()
        status = _RUN_TO_JOB.get(outcome.state, JobStatus.FAILED)
        result = outcome.to_json_dict() if outcome.results else None
        self._finish(job, status, result=result, error=outcome.error)

        if status is JobStatus.COMPLETED and self.cache is not None and job.cache_key:
            self.cache.set(job.cache_key, result)

    def _finish(
        self,
        job: AnalysisJob,
        status: JobStatus,
        *,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        job.status = status
        job.result = result
        job.error = error
        job.finished_at = self._clock()
        if status is JobStatus.COMPLETED:
            job.progress = 100.0
        logger.info(
            "[jobs] finished | job=%s | status=%s | error=%s", job.job_id, status.value, error
        )
        self._prune()

    def _prune(self) -> None:
        """Simpan hanya ``keep_completed`` job sukses dan ``keep_failed`` job gagal terakhir."""
        finished = sorted(
            (j for j in self._jobs.values() if j.status.finished),
            key=lambda j: j.finished_at or 0.0,
        )
        completed = [j for j in finished if j.status is JobStatus.COMPLETED]
        failed = [j for j in finished if j.status is not JobStatus.COMPLETED]
        stale = completed[: max(0, len(completed) - self.keep_completed)]
        stale += failed[: max(0, len(failed) - self.keep_failed)]
        for job in stale:
            del self._jobs[job.job_id]
        if stale:
            logger.debug("[jobs] pruned %d finished job(s)", len(stale))
