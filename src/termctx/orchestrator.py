"""
Request orchestration.

Runs one user message through the full pipeline:

    enhance -> route -> history -> context selection -> prompt
    -> transport stream -> streaming buffer -> usage bookkeeping

Every stage runs in order; the only suspension points are the history
summarizer, the semantic index and the transport stream.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .config import Config
from .context.budget import estimate_tokens
from .context.cache import ContextCache
from .context.formatter import effective_include_mode, format_ranked_context
from .context.ranker import ContextRanker, deduplicate_context
from .context.smart import SemanticIndex, get_smart_context
from .context.tracking import extract_recent_topics, mark_context_as_used
from .errors import ConfigurationError, RequestCancelled, TransportError
from .history.conversation import ConversationHistoryManager
from .history.memory import build_conversation_memory
from .history.summarizer import Summarizer
from .logger import EventLogger
from .prompts import (
    add_chain_of_thought,
    append_context,
    build_system_prompt,
    summarize_context,
)
from .routing.enhancer import PromptEnhancer
from .routing.router import QueryRouter
from .streaming import StreamingBuffer
from .telemetry import MetricsRecorder, RequestMetrics, TelemetryLogger
from .transport import ModelRequest, ModelTransport, TokenUsage
from .types import (
    ChatMessage,
    ContextItem,
    ConversationWindow,
    PromptEnhancement,
    RoutingDecision,
    ScoringContext,
)


CANCELLED_MESSAGE = "Request cancelled by user."


@dataclass
class ContextSelection:
    formatted: List[str] = field(default_factory=list)
    used_items: List[ContextItem] = field(default_factory=list)
    token_count: int = 0
    source: str = "none"  # none, smart, cache, ranker


@dataclass
class RequestResult:
    """Outcome of one orchestrated request."""
    status: str  # ok, cancelled, failed
    prompt: str
    text: str = ""
    assistant_message_id: Optional[str] = None
    enhancement: Optional[PromptEnhancement] = None
    routing: Optional[RoutingDecision] = None
    window: Optional[ConversationWindow] = None
    context: ContextSelection = field(default_factory=ContextSelection)
    usage: Optional[TokenUsage] = None
    system_message: Optional[ChatMessage] = None
    error: Optional[str] = None
    stream_stats: Dict[str, int] = field(default_factory=dict)
    metrics: Optional[RequestMetrics] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def used_context_ids(self) -> List[str]:
        return [item.id for item in self.context.used_items]


class RequestOrchestrator:
    """
    Owns the per-session components and runs requests through them.

    Usage:
        orchestrator = RequestOrchestrator(config, transport)
        result = await orchestrator.send(prompt, messages, items, on_text=print)
    """

    def __init__(
        self,
        config: Config,
        transport: ModelTransport,
        semantic_index: Optional[SemanticIndex] = None,
        summarizer: Optional[Summarizer] = None,
        logger: Optional[EventLogger] = None,
        telemetry: Optional[TelemetryLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Full termctx Config
            transport: Model transport used for generation
            semantic_index: Optional index for smart context
            summarizer: Optional model summarizer for older history
            logger: EventLogger (created from config.telemetry.log_path if omitted)
            telemetry: TelemetryLogger (created from config.telemetry.telemetry_path if omitted)
            clock: POSIX time source for usage bookkeeping
        """
        self.config = config
        self.transport = transport
        self.semantic_index = semantic_index
        self.clock = clock

        if logger is None and config.telemetry.log_path:
            logger = EventLogger(config.telemetry.log_path)
        if telemetry is None and config.telemetry.telemetry_path:
            telemetry = TelemetryLogger(config.telemetry.telemetry_path)
        self.logger = logger
        self.telemetry = telemetry

        self.enhancer = PromptEnhancer(logger=logger)
        self.router = QueryRouter(logger=logger)
        self.history = ConversationHistoryManager(
            config.history,
            summarizer=summarizer,
            logger=logger,
            clock=clock,
        )
        self.ranker = ContextRanker(config.ranker, clock=clock, logger=logger)
        self.cache = ContextCache(config.cache, logger=logger)
        self.metrics = MetricsRecorder(max_history=config.telemetry.max_history)

    async def send(
        self,
        prompt: str,
        messages: Sequence[ChatMessage],
        context_items: Sequence[ContextItem],
        on_text: Optional[Callable[[str], None]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RequestResult:
        """
        Send one user message.

        Args:
            prompt: User message text
            messages: Prior chat history, oldest first
            context_items: Terminal context available to this request
            on_text: Consumer for batched response text
            cancel_event: Set to cancel the generation

        Returns:
            RequestResult with status ok, cancelled or failed

        Raises:
            ConfigurationError: Provider, model or API key missing
        """
        settings = self.config.ai
        missing = settings.missing_fields()
        if missing:
            raise ConfigurationError(missing)

        mode = settings.mode or "agent"
        trimmed = (prompt or "").strip()
        items = list(context_items or [])
        history = list(messages or [])

        self.metrics.start(settings.model, mode)
        buffer = StreamingBuffer(
            on_text or (lambda text: None),
            self.config.streaming,
            logger=self.logger,
        )
        result = RequestResult(status="ok", prompt=trimmed)
        parts: List[str] = []

        try:
            result.enhancement = self.enhancer.enhance(trimmed, items, settings)
            query = result.enhancement.enhanced

            result.routing = self.router.classify(query, items, settings, mode)
            reasoning = result.routing.reasoning
            self.metrics.record_routing(
                result.routing.tier,
                reasoning.score if reasoning else None,
                result.routing.model,
            )
            if self.logger:
                self.logger.log_routing(result.routing)

            result.window = await self.history.prepare(history, settings)

            result.context = await self.select_context(query, items, history, result.routing, mode)
            self.metrics.record_context_processing(
                len(items), len(result.context.used_items), result.context.token_count
            )

            request = self.build_request(query, items, history, result, mode, cancel_event)
            result.assistant_message_id = str(uuid.uuid4())

            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelled()

            async for event in self.transport.stream(request):
                if cancel_event is not None and cancel_event.is_set():
                    raise RequestCancelled()

                if event.type == "text-delta":
                    self.metrics.record_first_token()
                    parts.append(event.text)
                    buffer.append(event.text)
                elif event.type == "tool-call":
                    self.metrics.record_tool_call()
                elif event.type == "tool-result":
                    if event.duration_ms is not None:
                        self.metrics.record_tool_execution(event.duration_ms)
                elif event.type == "finish":
                    result.usage = event.usage
                    if event.usage:
                        self.metrics.record_token_usage(
                            event.usage.input_tokens,
                            event.usage.output_tokens,
                            event.usage.cached_tokens,
                        )
                elif event.type == "error":
                    raise TransportError(event.error or "Model stream reported an error")

            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelled()

            mark_context_as_used(
                items,
                result.used_context_ids,
                result.assistant_message_id,
                self.clock(),
            )
        except RequestCancelled:
            self._set_cancelled(result)
        except asyncio.CancelledError:
            self._set_cancelled(result)
            raise
        except Exception as e:
            result.status = "failed"
            result.error = str(e) or type(e).__name__
            result.system_message = self._system_message(f"Request failed: {result.error}")
            if self.logger:
                self.logger.log_error("request", e)
        finally:
            result.text = "".join(parts)
            result.stream_stats = buffer.finalize()
            result.metrics = self.metrics.finish(result.status)
            if self.telemetry and result.metrics:
                self.telemetry.log_request(result.metrics)

        return result

    async def select_context(
        self,
        query: str,
        items: Sequence[ContextItem],
        messages: Sequence[ChatMessage],
        routing: RoutingDecision,
        mode: str,
    ) -> ContextSelection:
        """
        Choose and format context for the request.

        Excluded and duplicate items are dropped first. Smart context is
        tried when applicable; otherwise ranked context comes from the
        cache or a fresh ranking pass within the routed budget.
        """
        candidates = deduplicate_context(
            [item for item in items if item.include_mode != "exclude"]
        )
        if not candidates:
            return ContextSelection()

        smart = await get_smart_context(
            self.config.ai,
            candidates,
            query,
            self.semantic_index,
            self.config.smart_context,
            logger=self.logger,
        )
        if smart is not None:
            global_smart_mode = self.config.smart_context.global_smart_mode
            used_ids = {chunk.source_id for chunk in smart.retrieved}
            used = [
                item for item in candidates
                if item.id in used_ids
                or effective_include_mode(item, global_smart_mode) == "always"
            ]
            return ContextSelection(
                formatted=smart.formatted,
                used_items=used,
                token_count=sum(estimate_tokens(text) for text in smart.formatted),
                source="smart",
            )

        cached = self.cache.get(candidates, query, routing.context_budget)
        if cached is not None:
            return ContextSelection(
                formatted=list(cached.formatted),
                used_items=[rc.item for rc in cached.ranked],
                token_count=cached.token_count,
                source="cache",
            )

        conversation = [m for m in messages if m.role != "system"]
        scoring = ScoringContext(
            recent_message_topics=extract_recent_topics(conversation),
            recent_messages=conversation,
            mode=mode,
        )
        ranked = self.ranker.rank(candidates, query, routing.context_budget, scoring)
        formatted = format_ranked_context(ranked)
        tokens = sum(estimate_tokens(rc.item.text) for rc in ranked)
        self.cache.set(candidates, query, ranked, formatted, tokens, routing.context_budget)

        return ContextSelection(
            formatted=formatted,
            used_items=[rc.item for rc in ranked],
            token_count=tokens,
            source="ranker",
        )

    def build_request(
        self,
        query: str,
        items: Sequence[ContextItem],
        messages: Sequence[ChatMessage],
        result: RequestResult,
        mode: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ModelRequest:
        """Assemble system prompt, history and user turn into a ModelRequest."""
        routing = result.routing
        score = routing.reasoning.score if routing.reasoning else None
        memory = build_conversation_memory(messages)

        system = build_system_prompt(
            mode,
            context_summary=summarize_context(items),
            complexity_score=score,
            skill_level=memory.skill_level,
        )
        system = append_context(system, result.context.formatted)

        level = routing.complexity if routing.auto_routed else None
        chat = [{"role": m.role, "content": m.content} for m in result.window.messages]
        chat.append({"role": "user", "content": add_chain_of_thought(query, level)})

        return ModelRequest(
            model=routing.model,
            system=system,
            messages=chat,
            temperature=routing.temperature,
            max_output_tokens=self.config.ai.max_output_tokens,
            tools_enabled=mode == "agent",
            cancel_event=cancel_event,
            metadata={"tier": routing.tier, "context_source": result.context.source},
        )

    def _set_cancelled(self, result: RequestResult):
        result.status = "cancelled"
        result.error = "Request cancelled"
        result.system_message = self._system_message(CANCELLED_MESSAGE)

    def _system_message(self, content: str) -> ChatMessage:
        return ChatMessage(
            id=str(uuid.uuid4()),
            role="system",
            content=content,
            timestamp=self.clock(),
        )
