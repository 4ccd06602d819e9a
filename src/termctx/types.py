"""Core data types for termctx."""

import time
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


CONTEXT_TYPES = ("command", "output", "command_output", "file", "selection")
INCLUDE_MODES = ("smart", "always", "exclude")
OUTPUT_TYPES = ("output", "command_output")


@dataclass
class ContextItem:
    """A piece of terminal-derived material eligible for a model prompt."""
    id: str
    type: str
    content: str
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Secret scanning
    has_secrets: bool = False
    secrets_redacted: bool = False
    redacted_content: Optional[str] = None

    # Usage bookkeeping (written back after a request consumes the item)
    last_used_in_message_id: Optional[str] = None
    last_used_timestamp: Optional[float] = None
    usage_count: int = 0

    def _meta(self, *keys: str) -> Any:
        if not isinstance(self.metadata, dict):
            return None
        for key in keys:
            value = self.metadata.get(key)
            if value is not None:
                return value
        return None

    @property
    def text(self) -> str:
        return self.content if isinstance(self.content, str) else ""

    @property
    def command(self) -> Optional[str]:
        value = self._meta("command")
        return value if isinstance(value, str) and value else None

    @property
    def path(self) -> Optional[str]:
        value = self._meta("path")
        return value if isinstance(value, str) and value else None

    @property
    def exit_code(self) -> Optional[int]:
        value = self._meta("exitCode", "exit_code")
        if isinstance(value, bool):
            return None
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    @property
    def include_mode(self) -> str:
        value = self._meta("includeMode", "include_mode")
        return value if value in INCLUDE_MODES else "smart"

    @property
    def has_error(self) -> bool:
        code = self.exit_code
        return code is not None and code != 0

    @property
    def is_output(self) -> bool:
        return self.type in OUTPUT_TYPES


@dataclass
class ChatMessage:
    """A single chat turn."""
    id: str
    role: str  # user, assistant, system
    content: str
    timestamp: float = field(default_factory=time.time)
    used_context: Optional[Dict[str, Any]] = None


@dataclass
class ScoreBreakdown:
    """Additive relevance sub-scores for one context item."""
    recency: int = 0
    query_match: int = 0
    type_relevance: int = 0
    usage_penalty: int = 0
    time_decay: int = 0
    conversation_relevance: int = 0
    conversation_memory: int = 0
    mode_bonus: int = 0

    @property
    def raw_total(self) -> int:
        return (
            self.recency + self.query_match + self.type_relevance +
            self.usage_penalty + self.time_decay +
            self.conversation_relevance + self.conversation_memory +
            self.mode_bonus
        )

    @property
    def total(self) -> int:
        return min(100, max(0, self.raw_total))

    def to_dict(self) -> Dict[str, int]:
        return {
            "recency": self.recency,
            "query_match": self.query_match,
            "type_relevance": self.type_relevance,
            "usage_penalty": self.usage_penalty,
            "time_decay": self.time_decay,
            "conversation_relevance": self.conversation_relevance,
            "conversation_memory": self.conversation_memory,
            "mode_bonus": self.mode_bonus,
        }


@dataclass
class RankedContext:
    """Context item with relevance score."""
    item: ContextItem
    score: int
    reason: str = ""
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)


@dataclass
class ScoringContext:
    """Conversation state that influences relevance scoring."""
    recent_message_topics: List[str] = field(default_factory=list)
    current_message_id: Optional[str] = None
    recent_messages: List[ChatMessage] = field(default_factory=list)
    mode: Optional[str] = None  # chat or agent


@dataclass
class ScoringFactor:
    """One contribution to a complexity score."""
    name: str
    value: int
    weight: float = 1.0
    description: str = ""


@dataclass
class TierAlternative:
    """An adjacent tier that was close to being selected."""
    tier: str
    score: int
    reason: str


@dataclass
class RoutingReasoning:
    """Why a routing decision was made."""
    query_type: str
    score: int
    factors: List[ScoringFactor] = field(default_factory=list)
    alternatives: List[TierAlternative] = field(default_factory=list)


@dataclass
class RoutingDecision:
    """Model, budget and parameters selected for a request."""
    tier: str
    complexity: int
    model: str
    context_budget: int
    temperature: float
    fallback_used: bool = False
    original_tier: Optional[str] = None
    reasoning: Optional[RoutingReasoning] = None
    auto_routed: bool = True


@dataclass
class PromptEnhancement:
    """Result of prompt enhancement. `original` is always preserved."""
    original: str
    enhanced: str
    was_enhanced: bool = False
    reason: Optional[str] = None
    pattern: Optional[str] = None


@dataclass
class ConversationWindow:
    """Recent turns kept verbatim plus an optional summary of older turns."""
    recent_messages: List[ChatMessage]
    summary_message: Optional[ChatMessage] = None
    total_original_count: int = 0
    tokens_saved: int = 0

    @property
    def messages(self) -> List[ChatMessage]:
        if self.summary_message is not None:
            return [self.summary_message] + list(self.recent_messages)
        return list(self.recent_messages)


@dataclass
class CacheValue:
    """Ranked and formatted context stored in the context cache."""
    ranked: List[RankedContext]
    formatted: List[str]
    token_count: int
    token_budget: Optional[int] = None  # Budget the ranked list was truncated to
