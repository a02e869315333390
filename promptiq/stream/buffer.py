"""
Throttled render buffer.

Stream deltas can arrive far faster than a UI wants to redraw. The buffer
collects pending text and applies it to the target message in one update
per flush interval.
"""
import asyncio
from collections.abc import Callable

from promptiq.core.config import DEFAULT_FLUSH_INTERVAL


class RenderBuffer:
    """
    Pending text plus at most one scheduled flush.

    Runs on a single asyncio event loop: appends, scheduling and the flush
    callback never interleave, so the pending text and the timer handle
    change together.
    """

    def __init__(
        self,
        apply: Callable[[str], None],
        interval: float = DEFAULT_FLUSH_INTERVAL,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._apply = apply
        self.interval = interval
        self._loop = loop
        self._pending: list[str] = []
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> str:
        return "".join(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._handle is not None

    def append(self, text: str) -> None:
        """Add text and make sure a flush is on its way."""
        if not text:
            return
        self._pending.append(text)
        self.schedule_flush()

    def schedule_flush(self) -> None:
        """Schedule a flush unless one is already pending."""
        if self._handle is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval, self._fire)

    def flush_now(self) -> None:
        """Apply everything pending immediately and drop the scheduled flush."""
        self._cancel_timer()
        self._drain()

    def clear(self) -> None:
        """Drop pending text and any scheduled flush without applying."""
        self._cancel_timer()
        self._pending = []

    def _fire(self) -> None:
        self._handle = None
        self._drain()

    def _drain(self) -> None:
        if not self._pending:
            return
        text = "".join(self._pending)
        self._pending = []
        self._apply(text)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
