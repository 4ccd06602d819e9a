# Context selection
# Ranking, budgeting, caching and formatting of terminal context

from .budget import TokenBudget, estimate_tokens, filter_by_token_budget
from .ranker import (
    ContextRanker,
    rank_context_by_relevance,
    explain_relevance,
    extract_key_terms,
    deduplicate_context,
    create_fingerprint,
)
from .cache import BoundedCache, ContextCache, generate_context_fingerprint
from .formatter import (
    get_text_for_model,
    format_context_item,
    format_context_items,
    format_ranked_context,
    effective_include_mode,
)
from .tracking import mark_context_as_used, extract_recent_topics, get_stale_context
from .smart import (
    SemanticIndex,
    SmartContextChunk,
    RetrievedChunk,
    SmartContextResult,
    chunk_lines,
    build_smart_chunks,
    build_always_included_context,
    get_smart_context,
)

__all__ = [
    "TokenBudget",
    "estimate_tokens",
    "filter_by_token_budget",
    "ContextRanker",
    "rank_context_by_relevance",
    "explain_relevance",
    "extract_key_terms",
    "deduplicate_context",
    "create_fingerprint",
    "BoundedCache",
    "ContextCache",
    "generate_context_fingerprint",
    "get_text_for_model",
    "format_context_item",
    "format_context_items",
    "format_ranked_context",
    "effective_include_mode",
    "mark_context_as_used",
    "extract_recent_topics",
    "get_stale_context",
    "SemanticIndex",
    "SmartContextChunk",
    "RetrievedChunk",
    "SmartContextResult",
    "chunk_lines",
    "build_smart_chunks",
    "build_always_included_context",
    "get_smart_context",
]
