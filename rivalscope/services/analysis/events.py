# rivalscope/services/analysis/events.py
"""
Protokol event stream analisis.

Setiap event adalah satu objek JSON dengan field umum ``type``,
``progress`` (0-100, atau -1 untuk gagal/timeout), ``message``,
``timestamp`` (ISO-8601), ``competitor`` (opsional) dan ``data``
(opsional). ``AnyProgressEvent`` adalah union tertutup ber-diskriminator
``type``; consumer cukup match pada kelasnya.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from rivalscope.models.schemas import CamelModel, CompetitorAnalysisResult
from rivalscope.utils.helper import utc_now_iso


FAILURE_PROGRESS = -1.0


class ProgressEvent(CamelModel):
    progress: float
    message: str = ""
    timestamp: str = Field(default_factory=utc_now_iso)
    competitor: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error", "timeout")  # type: ignore[attr-defined]


class ProgressUpdate(ProgressEvent):
    type: Literal["progress"] = "progress"
    step: Optional[str] = None
    step_progress: Optional[float] = None


class AnalysisDetail(ProgressEvent):
    type: Literal["analysis_detail"] = "analysis_detail"
    detail_type: str


class CostUpdate(ProgressEvent):
    type: Literal["cost_update"] = "cost_update"
    total_cost: float
    estimated_cost: Optional[float] = None


class CompetitorComplete(ProgressEvent):
    type: Literal["competitor_complete"] = "competitor_complete"
    result: CompetitorAnalysisResult
    cost: float


class CompetitorError(ProgressEvent):
    type: Literal["competitor_error"] = "competitor_error"
    error: str
    result: Optional[CompetitorAnalysisResult] = None


class TimeoutEvent(ProgressEvent):
    type: Literal["timeout"] = "timeout"
    progress: float = FAILURE_PROGRESS


class ErrorEvent(ProgressEvent):
    type: Literal["error"] = "error"
    progress: float = FAILURE_PROGRESS


class CompleteEvent(ProgressEvent):
    type: Literal["complete"] = "complete"
    progress: float = 100.0


AnyProgressEvent = Annotated[
    Union[
        ProgressUpdate,
        AnalysisDetail,
        CostUpdate,
        CompetitorComplete,
        CompetitorError,
        TimeoutEvent,
        ErrorEvent,
        CompleteEvent,
    ],
    Field(discriminator="type"),
]

EVENT_TYPES = (
    "progress",
    "analysis_detail",
    "cost_update",
    "competitor_complete",
    "competitor_error",
    "timeout",
    "error",
    "complete",
)

_event_adapter: TypeAdapter[AnyProgressEvent] = TypeAdapter(AnyProgressEvent)


def parse_event(payload: Dict[str, Any]) -> ProgressEvent:
    """JSON dict (camelCase) → instance event yang sesuai."""
    return _event_adapter.validate_python(payload)
