"""
Sliding-window conversation history.

Keeps the most recent turns verbatim and replaces older turns with a
single summary message, so long conversations stay within budget.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..config import AiSettings, HistoryConfig
from ..context.budget import estimate_tokens
from ..types import ChatMessage, ConversationWindow
from .summarizer import ChatCompletionsSummarizer, ExtractiveSummarizer, Summarizer

if TYPE_CHECKING:
    from ..logger import EventLogger


def calculate_message_tokens(messages: Sequence[ChatMessage]) -> int:
    return sum(estimate_tokens(m.content) for m in messages)


@dataclass
class CachedSummary:
    message_ids: Tuple[str, ...]
    summary: str
    created_at: float


class SummaryCache:
    """
    Single-entry cache of the last model summary.

    Valid only for the exact same ordered list of message ids and only
    for `ttl` seconds.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entry: Optional[CachedSummary] = None

    def get(self, messages: Sequence[ChatMessage]) -> Optional[str]:
        if self._entry is None:
            return None
        if self.clock() - self._entry.created_at > self.ttl:
            self._entry = None
            return None
        if self._entry.message_ids != tuple(m.id for m in messages):
            return None
        return self._entry.summary

    def set(self, messages: Sequence[ChatMessage], summary: str):
        self._entry = CachedSummary(
            message_ids=tuple(m.id for m in messages),
            summary=summary,
            created_at=self.clock(),
        )

    def clear(self):
        self._entry = None


class ConversationHistoryManager:
    """
    Prepares the message window sent with each request.

    Summary sources, tried in order:
    1. Cached summary of the same older messages
    2. Model summarizer (bounded by a timeout)
    3. Extractive summary (never fails)
    """

    def __init__(
        self,
        config: Optional[HistoryConfig] = None,
        summarizer: Optional[Summarizer] = None,
        fallback: Optional[Summarizer] = None,
        logger: Optional["EventLogger"] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize history manager.

        Args:
            config: HistoryConfig with window and summary settings
            summarizer: Model-backed summarizer
            fallback: Summarizer used when the model summarizer fails
            logger: Optional EventLogger
            clock: POSIX time source for summary message timestamps
        """
        self.config = config or HistoryConfig()
        self.summarizer = summarizer or ChatCompletionsSummarizer(self.config)
        self.fallback = fallback or ExtractiveSummarizer()
        self.logger = logger
        self.clock = clock
        self.summary_cache = SummaryCache(ttl=self.config.summary_cache_ttl)

    async def prepare(
        self,
        messages: Sequence[ChatMessage],
        settings: Optional[AiSettings] = None,
    ) -> ConversationWindow:
        """
        Build the conversation window for a request.

        Args:
            messages: Full chat history, oldest first
            settings: AI settings; without them no summary is produced

        Returns:
            ConversationWindow with recent messages and optional summary
        """
        history = [m for m in messages if m.role != "system"]
        window = self.config.window_size

        if len(history) <= window:
            return ConversationWindow(
                recent_messages=history,
                total_original_count=len(history),
                tokens_saved=0,
            )

        recent = history[-window:]
        older = history[:-window]
        original_tokens = calculate_message_tokens(history)
        recent_tokens = calculate_message_tokens(recent)

        min_older = self.config.min_messages_for_summary - window
        if settings is not None and len(older) >= min_older:
            summary, source = await self.summarize(older, settings)
            now = self.clock()
            summary_message = ChatMessage(
                id=f"summary-{int(now * 1000)}",
                role="system",
                content=summary,
                timestamp=now,
            )
            tokens_saved = original_tokens - (recent_tokens + estimate_tokens(summary))
            self._log(len(history), len(recent), tokens_saved, source)
            return ConversationWindow(
                recent_messages=recent,
                summary_message=summary_message,
                total_original_count=len(history),
                tokens_saved=tokens_saved,
            )

        tokens_saved = original_tokens - recent_tokens
        self._log(len(history), len(recent), tokens_saved, None)
        return ConversationWindow(
            recent_messages=recent,
            total_original_count=len(history),
            tokens_saved=tokens_saved,
        )

    async def summarize(
        self,
        messages: List[ChatMessage],
        settings: AiSettings,
    ) -> Tuple[str, str]:
        """
        Summarize older messages through the fallback chain.

        Returns:
            (summary, source) where source is "cache", "model" or "extractive"
        """
        cached = self.summary_cache.get(messages)
        if cached is not None:
            return cached, "cache"

        try:
            summary = await asyncio.wait_for(
                self.summarizer.summarize(messages, settings),
                timeout=self.config.summary_timeout,
            )
        except Exception as e:
            if self.logger:
                self.logger.log_error("history_summary", e, fallback="extractive")
        else:
            self.summary_cache.set(messages, summary)
            return summary, "model"

        return await self.fallback.summarize(messages, settings), "extractive"

    def clear_summary_cache(self):
        """Drop the cached summary, e.g. when the conversation is cleared."""
        self.summary_cache.clear()

    def _log(self, original_count: int, recent_count: int, tokens_saved: int, source: Optional[str]):
        if self.logger:
            self.logger.log_history(original_count, recent_count, tokens_saved, summary_source=source)
