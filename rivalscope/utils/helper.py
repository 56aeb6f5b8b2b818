# rivalscope/utils/helper.py
from __future__ import annotations

import json
import tiktoken
from datetime import datetime, timezone

from rivalscope.utils.logger import get_logger


logger = get_logger(__name__)


def count_tokens(text: str, model: str = "gpt-4o-mini") -> int:
    """
    Hitung perkiraan jumlah token sebuah prompt.
    Fallback encoding: cl100k_base bila model tidak dikenali tiktoken,
    lalu ~4 karakter per token bila encoding tidak bisa dimuat.
    """
    try:
        enc = tiktoken.encoding_for_model(model)
    except Exception:
        try:
            enc = tiktoken.get_encoding("cl100k_base")
        except Exception as e:
            logger.debug("tiktoken encoding tidak tersedia, pakai estimasi kasar: %s", e)
            return max(1, len(text or "") // 4)
    return len(enc.encode(text or ""))


def utc_now_iso() -> str:
    """Waktu UTC dalam ISO-8601 dengan milidetik (contoh: 2025-08-17T01:55:12.345Z)."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def format_cost(cost: float) -> str:
    """Format USD, 4 desimal (pembulatan hanya saat tampil)."""
    return f"${cost:,.4f}"


def format_token_count(count: int) -> str:
    return f"{int(count):,}"


def sse_data(payload: dict) -> str:
    """Satu record Server-Sent Events."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_duration(minutes: int) -> str:
    """'5 minutes', '1 hour', '2h 15m'."""
    if minutes < 1:
        return "Less than 1 minute"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{hours}h {rest}m"
