# rivalscope/services/analysis/channel.py
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from rivalscope.utils.logger import get_logger
from .events import ProgressEvent


logger = get_logger(__name__)


class ProgressChannel:
    """
    Stream event satu arah, berurutan, untuk satu run.

    - ``emit`` sinkron (dipanggil dari task run maupun callback ledger).
    - ``close`` idempotent: hanya penutupan pertama yang berlaku; setelah
      itu setiap ``emit`` ditolak dan di-log.
    - Consumer tunggal membaca lewat ``async for`` atau ``next_event``.
    """

    def __init__(self, run_id: str = ""):
        self.run_id = run_id
        self._queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue()
        self._closed = False
        self._last_progress = 0.0
        self.close_reason: Optional[str] = None
        self.emitted = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_progress(self) -> float:
        """Progress non-negatif terakhir yang dikirim (dipakai event tanpa progress sendiri)."""
        return self._last_progress

    def emit(self, event: ProgressEvent) -> bool:
        if self._closed:
            self.dropped += 1
            logger.debug(
                "[channel] drop %s setelah close (%s) | run=%s",
                getattr(event, "type", "?"),
                self.close_reason,
                self.run_id,
            )
            return False

        self._queue.put_nowait(event)
        self.emitted += 1
        if event.progress >= 0:
            self._last_progress = event.progress
        return True

    def close(self, reason: str = "closed") -> bool:
        """Tutup channel; True hanya untuk pemanggil yang benar-benar menutup."""
        if self._closed:
            return False
        self._closed = True
        self.close_reason = reason
        self._queue.put_nowait(None)
        logger.info(
            "[channel] closed | run=%s | reason=%s | emitted=%d",
            self.run_id,
            reason,
            self.emitted,
        )
        return True

    async def next_event(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """
        Event berikutnya, atau ``None`` bila channel sudah ditutup dan habis.
        Raise ``asyncio.TimeoutError`` bila tidak ada event dalam ``timeout`` detik.
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if item is None:
            # biarkan sentinel tetap ada untuk pembacaan berikutnya
            self._queue.put_nowait(None)
        return item

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.next_event()
            if event is None:
                return
            yield event
