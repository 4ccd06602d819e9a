"""
Streaming output buffer.

Batches small text deltas from a model stream into fewer, larger
deliveries to the consumer (usually a UI re-render).
"""

import asyncio
from typing import Callable, Dict, Optional, TYPE_CHECKING

from .config import StreamingConfig

if TYPE_CHECKING:
    from .logger import EventLogger


class StreamingBuffer:
    """
    Accumulates text and flushes it to `on_flush`.

    Flush triggers:
    - Buffer reaches `max_buffer_size` chars (immediate)
    - `flush_interval_ms` after the last append
    - `idle_flush_ms` after the last append
    - flush() or finalize()

    Both timers are re-armed on every append and cancelled by any flush.
    Timers run on the asyncio loop; outside a running loop only size and
    explicit flushes apply.
    """

    def __init__(
        self,
        on_flush: Callable[[str], None],
        config: Optional[StreamingConfig] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        logger: Optional["EventLogger"] = None,
    ):
        """
        Initialize buffer.

        Args:
            on_flush: Consumer called with each batch of text
            config: StreamingConfig with thresholds
            loop: Event loop for timers (defaults to the running loop)
            logger: Optional EventLogger for consumer errors and final stats
        """
        self.on_flush = on_flush
        self.config = config or StreamingConfig()
        self.loop = loop
        self.logger = logger

        self._buffer = ""
        self._flush_timer: Optional[asyncio.TimerHandle] = None
        self._idle_timer: Optional[asyncio.TimerHandle] = None
        self._flushing = False
        self._chunks = 0
        self._flushes = 0
        self._errors = 0

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    def append(self, text: str):
        """Add a chunk. Empty chunks are ignored."""
        if not text:
            return

        self._chunks += 1
        self._buffer += text
        self._clear_timers()

        if len(self._buffer) >= self.config.max_buffer_size:
            self.flush()
            if not self._buffer:
                return
            # Appended from inside on_flush; the nested flush was skipped

        loop = self._get_loop()
        if loop is None:
            return
        self._flush_timer = loop.call_later(self.config.flush_interval_ms / 1000, self.flush)
        self._idle_timer = loop.call_later(self.config.idle_flush_ms / 1000, self.flush)

    def flush(self):
        """Deliver buffered text. No-op when empty or already flushing."""
        if self._flushing or not self._buffer:
            return

        self._flushing = True
        self._clear_timers()

        text, self._buffer = self._buffer, ""
        self._flushes += 1

        try:
            self.on_flush(text)
        except Exception as e:
            self._errors += 1
            if self.logger:
                self.logger.log_error("streaming_flush", e)
        finally:
            self._flushing = False

    def finalize(self) -> Dict[str, int]:
        """Flush remaining text, cancel timers and return stats."""
        self.flush()
        self._clear_timers()
        stats = self.stats()
        if self.logger and self._chunks > 0:
            self.logger.log_stream_stats(stats)
        return stats

    def stats(self) -> Dict[str, int]:
        reduction = 0
        if self._chunks > 0:
            reduction = round((1 - self._flushes / self._chunks) * 100)
        return {
            "chunks": self._chunks,
            "flushes": self._flushes,
            "reduction": reduction,
            "errors": self._errors,
        }

    def reset(self):
        """Drop buffered text and counters."""
        self._buffer = ""
        self._clear_timers()
        self._chunks = 0
        self._flushes = 0
        self._errors = 0

    def _get_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self.loop is not None:
            return self.loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _clear_timers(self):
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None
