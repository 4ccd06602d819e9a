"""Relevance ranking for terminal context items."""

import math
import time
from typing import Callable, List, Optional, Sequence, TYPE_CHECKING

from ..config import RankerConfig
from ..types import ContextItem, RankedContext, ScoreBreakdown, ScoringContext
from .budget import TokenBudget

if TYPE_CHECKING:
    from ..logger import EventLogger


STOP_WORDS = {
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'up', 'about', 'into', 'through', 'is',
    'this', 'that', 'what', 'why', 'how', 'can', 'should', 'would', 'could',
    'my', 'me', 'i', 'you',
}

# (max age in minutes, recency bonus, decay penalty); last band is open-ended
AGE_BANDS = [
    (5, 25, 0),
    (30, 15, -5),
    (60, 8, -10),
    (180, 3, -15),
]
STALE_BAND = (0, -25)


def extract_key_terms(query: str, limit: int = 10) -> List[str]:
    """
    Extract matchable terms from a query.

    Lowercased whitespace tokens longer than 2 chars, stop-words removed,
    capped at `limit`.
    """
    words = (query or "").lower().split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS][:limit]


def explain_relevance(score: int, breakdown: Optional[ScoreBreakdown] = None) -> str:
    """Human-readable explanation of a relevance score."""
    if score >= 70:
        parts = ["Highly relevant"]
    elif score >= 50:
        parts = ["Relevant"]
    elif score >= 30:
        parts = ["Possibly relevant"]
    else:
        parts = ["Low relevance"]

    if breakdown:
        details = []
        if breakdown.recency > 15:
            details.append("recent")
        if breakdown.query_match > 20:
            details.append("matches query")
        if breakdown.usage_penalty < -15:
            details.append("recently used")
        if breakdown.time_decay < -15:
            details.append("stale")
        if breakdown.conversation_relevance > 15:
            details.append("conversation-related")
        if details:
            parts.append(f"({', '.join(details)})")

    return " ".join(parts)


def create_fingerprint(item: ContextItem) -> str:
    """Fingerprint used to detect duplicate context items."""
    if item.command:
        return f"cmd:{item.command}"
    if item.type == "file" and item.path:
        return f"file:{item.path}"
    return f"{item.type}:{item.text[:200].strip()}"


def deduplicate_context(items: Sequence[ContextItem]) -> List[ContextItem]:
    """Drop items whose fingerprint was already seen. Keeps first occurrence."""
    seen = set()
    result = []
    for item in items:
        fingerprint = create_fingerprint(item)
        if fingerprint not in seen:
            seen.add(fingerprint)
            result.append(item)
    return result


class ContextRanker:
    """
    Multi-factor relevance scoring for context items.

    Combines (all additive, total clamped to 0-100):
    - Recency and time decay (age bands, size penalty)
    - Usage penalty (recently or frequently sent)
    - Conversation memory (already sent in a recent turn)
    - Type relevance (query keywords vs item type)
    - Query term matching (content, command, path)
    - Conversation topics and explicit pinning
    - Mode adjustment (chat front-loads, agent stays selective)
    """

    def __init__(
        self,
        config: Optional[RankerConfig] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional["EventLogger"] = None,
    ):
        """
        Initialize ranker.

        Args:
            config: RankerConfig with thresholds
            clock: Returns current POSIX time in seconds
            logger: Optional EventLogger for heavy-penalty diagnostics
        """
        self.config = config or RankerConfig()
        self.clock = clock
        self.logger = logger

    def rank(
        self,
        items: Sequence[ContextItem],
        query: str,
        token_budget: Optional[int] = None,
        scoring_context: Optional[ScoringContext] = None,
    ) -> List[RankedContext]:
        """
        Rank context items by relevance and truncate to the token budget.

        Args:
            items: Candidate context items
            query: Current user query
            token_budget: Approximate token budget (defaults to config)
            scoring_context: Recent conversation state and mode

        Returns:
            List of RankedContext sorted by score descending
        """
        if token_budget is None:
            token_budget = self.config.default_token_budget

        ranked = self.score_all(items, query, scoring_context)
        return TokenBudget(token_budget).allocate(ranked)

    def score_all(
        self,
        items: Sequence[ContextItem],
        query: str,
        scoring_context: Optional[ScoringContext] = None,
    ) -> List[RankedContext]:
        """Score every item without budget filtering, sorted descending."""
        query_lower = (query or "").lower()
        terms = extract_key_terms(query_lower, self.config.max_query_terms)
        now = self.clock()

        ranked = []
        for item in items or []:
            breakdown = self.score_item(item, query_lower, terms, now, scoring_context)
            score = breakdown.total
            ranked.append(RankedContext(
                item=item,
                score=score,
                reason=explain_relevance(score, breakdown),
                breakdown=breakdown,
            ))

        # Stable sort keeps input order among equal scores
        ranked.sort(key=lambda r: r.score, reverse=True)
        return ranked

    def score_item(
        self,
        item: ContextItem,
        query_lower: str,
        terms: List[str],
        now: float,
        scoring_context: Optional[ScoringContext] = None,
    ) -> ScoreBreakdown:
        """Compute the full score breakdown for one item."""
        ctx = scoring_context or ScoringContext()
        content = item.text.lower()
        b = ScoreBreakdown()

        b.recency, b.time_decay = self._age_scores(item, now)
        b.time_decay += self._size_penalty(item)
        b.usage_penalty = self._usage_penalty(item, now)
        b.type_relevance = self._type_relevance(item, query_lower, content)
        b.query_match = self._query_match(item, terms, content)
        b.conversation_relevance = self._conversation_relevance(item, ctx, content)
        b.conversation_memory = self._conversation_memory(item, ctx, b.query_match)

        if ctx.mode == "chat":
            if b.recency > 15:
                b.mode_bonus += 5
            if b.conversation_memory < 0:
                b.conversation_memory = math.floor(
                    b.conversation_memory * self.config.chat_memory_factor
                )
        elif ctx.mode == "agent":
            if b.query_match > 25:
                b.mode_bonus += 5

        if self.logger and b.conversation_memory < -20:
            self.logger.log_activity(
                "heavy_memory_penalty",
                item_id=item.id,
                score=b.total,
                breakdown=b.to_dict(),
            )

        return b

    def _age_scores(self, item: ContextItem, now: float):
        try:
            age_minutes = (now - float(item.timestamp)) / 60
        except (TypeError, ValueError):
            return STALE_BAND
        for max_minutes, recency, decay in AGE_BANDS:
            if age_minutes < max_minutes:
                return recency, decay
        return STALE_BAND

    def _size_penalty(self, item: ContextItem) -> int:
        length = len(item.text)
        if length > 10000:
            return -10
        if length > 5000:
            return -5
        return 0

    def _usage_penalty(self, item: ContextItem, now: float) -> int:
        if not item.last_used_timestamp:
            return 0

        penalty = 0
        try:
            minutes_since_use = (now - float(item.last_used_timestamp)) / 60
        except (TypeError, ValueError):
            minutes_since_use = None

        if minutes_since_use is not None:
            if minutes_since_use < 2:
                penalty = -30
            elif minutes_since_use < 5:
                penalty = -20
            elif minutes_since_use < 15:
                penalty = -10

        usage_count = item.usage_count if isinstance(item.usage_count, int) else 0
        if usage_count > 5:
            penalty -= 15
        elif usage_count > 3:
            penalty -= 10
        elif usage_count > 1:
            penalty -= 5

        return penalty

    def _conversation_memory(
        self,
        item: ContextItem,
        ctx: ScoringContext,
        query_match: int,
    ) -> int:
        if not item.last_used_in_message_id or not ctx.recent_messages:
            return 0

        turns_since_used = 0
        found = False
        for message in reversed(ctx.recent_messages):
            if message.id == item.last_used_in_message_id:
                found = True
                break
            if message.role in ("user", "assistant"):
                turns_since_used += 1

        if not found:
            return 0

        if turns_since_used == 0:
            penalty = -50
        elif turns_since_used <= 2:
            penalty = -40
        elif turns_since_used <= 5:
            penalty = -25
        elif turns_since_used <= 10:
            penalty = -15
        else:
            penalty = -5

        # User is asking about this material again
        if query_match > self.config.memory_override_threshold:
            penalty = math.floor(penalty * self.config.memory_override_factor)

        return penalty

    def _type_relevance(self, item: ContextItem, query_lower: str, content: str) -> int:
        score = 0

        if "error" in query_lower or "fail" in query_lower or "fix" in query_lower:
            if item.has_error:
                score += 35
            if item.is_output:
                score += 20

        if "file" in query_lower or "code" in query_lower:
            if item.type == "file":
                score += 25

        if "command" in query_lower or "ran" in query_lower:
            if item.type == "command" or item.command:
                score += 25

        if "error" in content or "fail" in content:
            score += 15

        return score

    def _query_match(self, item: ContextItem, terms: List[str], content: str) -> int:
        command = (item.command or "").lower()
        path = (item.path or "").lower()

        score = 0
        matches = 0
        for term in terms:
            if term in content:
                matches += 1
                score += 12
            if command and term in command:
                matches += 1
                score += 18
            if path and term in path:
                matches += 1
                score += 12

        if matches > 1:
            score += matches * 8

        return score

    def _conversation_relevance(
        self,
        item: ContextItem,
        ctx: ScoringContext,
        content: str,
    ) -> int:
        command = (item.command or "").lower()

        score = 0
        for topic in ctx.recent_message_topics or []:
            topic = str(topic).lower()
            if not topic:
                continue
            if topic in content:
                score += 10
            if command and topic in command:
                score += 15

        if item.include_mode == "always":
            score += 50

        return score


def rank_context_by_relevance(
    items: Sequence[ContextItem],
    query: str,
    max_tokens: int = 8000,
    scoring_context: Optional[ScoringContext] = None,
) -> List[RankedContext]:
    """Rank with default settings. See ContextRanker.rank."""
    return ContextRanker().rank(items, query, max_tokens, scoring_context)
