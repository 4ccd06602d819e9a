"""
termctx: context selection and model routing for terminal AI assistants

Per user message:
- Enhance vague prompts with references to terminal context
- Route by query complexity to a model tier, budget and temperature
- Window long conversations, summarizing older turns
- Rank, budget and cache terminal context (or retrieve it semantically)
- Batch streamed output for the UI

Usage:
    from termctx import Config, RequestOrchestrator
    from termctx.transport import ChatCompletionsTransport

    config = Config.load("./termctx.yaml")
    transport = ChatCompletionsTransport(config.ai.api_key)
    orchestrator = RequestOrchestrator(config, transport)
    result = await orchestrator.send("fix this", messages, context_items)
"""

from .config import Config, AiSettings, AutoRoutingConfig
from .errors import TermctxError, ConfigurationError, TransportError, RequestCancelled
from .types import ContextItem, ChatMessage, RankedContext, RoutingDecision, PromptEnhancement
from .context import ContextRanker, ContextCache, rank_context_by_relevance
from .routing import QueryRouter, PromptEnhancer, classify_and_route, enhance_prompt_if_needed
from .history import ConversationHistoryManager
from .streaming import StreamingBuffer
from .orchestrator import RequestOrchestrator, RequestResult

__version__ = "0.1.0"
__all__ = [
    "Config",
    "AiSettings",
    "AutoRoutingConfig",
    "TermctxError",
    "ConfigurationError",
    "TransportError",
    "RequestCancelled",
    "ContextItem",
    "ChatMessage",
    "RankedContext",
    "RoutingDecision",
    "PromptEnhancement",
    "ContextRanker",
    "ContextCache",
    "rank_context_by_relevance",
    "QueryRouter",
    "PromptEnhancer",
    "classify_and_route",
    "enhance_prompt_if_needed",
    "ConversationHistoryManager",
    "StreamingBuffer",
    "RequestOrchestrator",
    "RequestResult",
]
