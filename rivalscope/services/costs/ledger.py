# rivalscope/services/costs/ledger.py
"""
Cost ledger per run analisis.

Akumulasi biaya API (token AI + layanan eksternal seperti search/scrape)
dengan notifikasi publish/subscribe pada setiap mutasi. Satu instance
dimiliki satu run; run paralel memakai instance terpisah sehingga
totalnya tidak tercampur.

Semua biaya dalam USD float: ``tokens / 1_000_000 * rate``. Tidak ada
pembulatan saat perhitungan; pembulatan 4 desimal hanya saat tampil
(lihat :func:`rivalscope.utils.helper.format_cost`).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from rivalscope.utils.logger import get_logger


logger = get_logger(__name__)

# Harga per juta token (USD)
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    # Claude 4
    "claude-opus-4-1-20250805": {"input": 15.0, "output": 75.0},
    "claude-opus-4-20250514": {"input": 15.0, "output": 75.0},
    "claude-sonnet-4-20250514": {"input": 3.0, "output": 15.0},
    # Claude 3.7
    "claude-3-7-sonnet-20250219": {"input": 3.0, "output": 15.0},
    "claude-3-7-sonnet-latest": {"input": 3.0, "output": 15.0},
    # Claude 3.5
    "claude-3-5-haiku-20241022": {"input": 0.25, "output": 1.25},
    "claude-3-5-haiku-latest": {"input": 0.25, "output": 1.25},
    "claude-3-5-sonnet-20241022": {"input": 3.0, "output": 15.0},
    "claude-3-5-sonnet-20240620": {"input": 3.0, "output": 15.0},
    # Claude 3 (legacy)
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
    "claude-3-sonnet-20240229": {"input": 3.0, "output": 15.0},
    "claude-3-opus-20240229": {"input": 15.0, "output": 75.0},
    # alias
    "claude-opus-4-1": {"input": 15.0, "output": 75.0},
    "claude-opus-4-0": {"input": 15.0, "output": 75.0},
    "claude-sonnet-4-0": {"input": 3.0, "output": 15.0},
    # OpenAI
    "gpt-4o": {"input": 2.5, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
}

DEFAULT_PRICING_MODEL = "claude-sonnet-4-20250514"

# Long context: input > 200K token pada model sonnet-4
LONG_CONTEXT_THRESHOLD = 200_000
LONG_CONTEXT_INPUT_MULTIPLIER = 2.0
LONG_CONTEXT_OUTPUT_MULTIPLIER = 1.5


def supports_long_context(model: str) -> bool:
    return "sonnet-4" in model


# =========================
# Records
# =========================


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


@dataclass(frozen=True)
class CostBreakdown:
    model: str
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float


@dataclass(frozen=True)
class ExternalAPICost:
    service: str
    description: str
    cost: float
    units: float
    unit_type: str


@dataclass(frozen=True)
class SessionCosts:
    """Snapshot agregat biaya run saat ini (immutable)."""

    total_cost: float
    breakdown: tuple[CostBreakdown, ...]
    external_api_costs: tuple[ExternalAPICost, ...]
    total_input_tokens: int
    total_output_tokens: int
    request_count: int
    start_time: float
    estimated_cost: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalCost": self.total_cost,
            "estimatedCost": self.estimated_cost,
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "requestCount": self.request_count,
            "externalCalls": len(self.external_api_costs),
        }


CostSubscriber = Callable[[SessionCosts], None]


@dataclass
class _LedgerState:
    total_cost: float = 0.0
    breakdown: List[CostBreakdown] = field(default_factory=list)
    external_api_costs: List[ExternalAPICost] = field(default_factory=list)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    request_count: int = 0
    start_time: float = field(default_factory=time.time)
    estimated_cost: Optional[float] = None


class CostLedger:
    """Akumulator biaya dengan observer list milik instance."""

    def __init__(self, pricing: Optional[Dict[str, Dict[str, float]]] = None):
        self._pricing = dict(pricing or MODEL_PRICING)
        self._state = _LedgerState()
        self._subscribers: List[CostSubscriber] = []

    # =====================================================
    # Perhitungan
    # =====================================================
    def calculate_cost(self, model: str, usage: TokenUsage) -> CostBreakdown:
        pricing = self._pricing.get(model)
        if pricing is None:
            logger.warning(
                "[ledger] Unknown model pricing for: %s, using %s rates",
                model,
                DEFAULT_PRICING_MODEL,
            )
            pricing = self._pricing.get(DEFAULT_PRICING_MODEL) or MODEL_PRICING[DEFAULT_PRICING_MODEL]

        input_tokens = usage.input_tokens + (usage.cache_creation_input_tokens or 0)
        output_tokens = usage.output_tokens

        input_rate = pricing["input"]
        output_rate = pricing["output"]
        if supports_long_context(model) and input_tokens > LONG_CONTEXT_THRESHOLD:
            input_rate *= LONG_CONTEXT_INPUT_MULTIPLIER
            output_rate *= LONG_CONTEXT_OUTPUT_MULTIPLIER

        input_cost = input_tokens / 1_000_000 * input_rate
        output_cost = output_tokens / 1_000_000 * output_rate
        return CostBreakdown(
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=input_cost + output_cost,
        )

    # =====================================================
    # Mutasi (append + notify)
    # =====================================================
    def track_usage(self, model: str, usage: TokenUsage) -> CostBreakdown:
        """Catat satu panggilan AI yang sudah selesai."""
        cost = self.calculate_cost(model, usage)
        s = self._state
        s.total_cost += cost.total_cost
        s.total_input_tokens += cost.input_tokens
        s.total_output_tokens += cost.output_tokens
        s.request_count += 1
        s.breakdown.append(cost)
        s.estimated_cost = None

        self._notify()
        return cost

    def track_external_api_cost(
        self,
        service: str,
        description: str,
        cost: float,
        units: float = 1,
        unit_type: str = "request",
    ) -> ExternalAPICost:
        """Catat biaya layanan non-AI (search, scrape) yang dihargai per unit."""
        entry = ExternalAPICost(
            service=service,
            description=description,
            cost=float(cost),
            units=units,
            unit_type=unit_type,
        )
        s = self._state
        s.total_cost += entry.cost
        s.external_api_costs.append(entry)
        s.estimated_cost = None

        self._notify()
        return entry

    def estimate_cost(
        self, model: str, estimated_input_tokens: int, estimated_output_tokens: int
    ) -> float:
        """Biaya sementara (total + estimasi) untuk request yang sedang berjalan."""
        estimate = self.calculate_cost(
            model,
            TokenUsage(
                input_tokens=estimated_input_tokens,
                output_tokens=estimated_output_tokens,
            ),
        )
        self._state.estimated_cost = self._state.total_cost + estimate.total_cost
        self._notify()
        return self._state.estimated_cost

    def reset(self) -> None:
        self._state = _LedgerState()
        self._notify()

    # =====================================================
    # Observer
    # =====================================================
    def subscribe(self, callback: CostSubscriber) -> Callable[[], None]:
        """Daftarkan listener; kembalikan fungsi unsubscribe (aman dipanggil berulang)."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.session_costs()
        # iterasi salinan: unsubscribe di tengah notifikasi tidak melewatkan listener lain
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("[ledger] Subscriber gagal menerima update biaya.")

    # =====================================================
    # View
    # =====================================================
    @property
    def total_cost(self) -> float:
        return self._state.total_cost

    def session_costs(self) -> SessionCosts:
        s = self._state
        return SessionCosts(
            total_cost=s.total_cost,
            breakdown=tuple(s.breakdown),
            external_api_costs=tuple(s.external_api_costs),
            total_input_tokens=s.total_input_tokens,
            total_output_tokens=s.total_output_tokens,
            request_count=s.request_count,
            start_time=s.start_time,
            estimated_cost=s.estimated_cost,
        )

    def cost_by_model(self) -> Dict[str, Dict[str, float]]:
        """Total biaya & jumlah request per model, diturunkan dari breakdown."""
        grouped: Dict[str, Dict[str, float]] = {}
        for item in self._state.breakdown:
            entry = grouped.setdefault(item.model, {"cost": 0.0, "requests": 0})
            entry["cost"] += item.total_cost
            entry["requests"] += 1
        return grouped

