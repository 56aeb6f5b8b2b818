# rivalscope/services/cache/analysis_cache.py
from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from rivalscope.utils.logger import get_logger


logger = get_logger(__name__)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def analysis_cache_key(
    competitor_names: Iterable[str],
    business_context: Optional[Dict[str, Any]] = None,
    mode: str = "standard",
) -> str:
    """
    Key deterministik: nama kompetitor terurut + hash konteks bisnis + mode.
    Urutan input dan urutan key konteks tidak mempengaruhi hasil.
    """
    context_json = json.dumps(business_context or {}, sort_keys=True, ensure_ascii=False)
    payload = json.dumps(
        {
            "competitors": sorted(n.strip().lower() for n in competitor_names),
            "context": _sha256(context_json),
            "mode": mode,
        },
        sort_keys=True,
    )
    return "analysis:" + _sha256(payload)[:16]


@dataclass
class _Entry:
    value: Any
    expires_at: float


class AnalysisCache:
    """Cache hasil analisis in-memory dengan TTL per entri."""

    def __init__(
        self,
        default_ttl: float = 3600,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._store: Dict[str, _Entry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._store.pop(key, None)
            logger.debug("[cache] expired | key=%s", key)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else float(ttl)
        self._store[key] = _Entry(value=value, expires_at=self._clock() + ttl)
        logger.debug("[cache] set | key=%s | ttl=%.0fs", key, ttl)

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for e in self._store.values() if e.expires_at > now)
