"""
Query complexity routing.

Classifies a prompt into a query type, scores its complexity from prompt
length, attached context and keywords, and maps the score to a model tier
with a matching context budget and temperature.
"""

import re
from typing import Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..config import AiSettings
from ..types import (
    ContextItem,
    RoutingDecision,
    RoutingReasoning,
    ScoringFactor,
    TierAlternative,
)
from .presets import (
    DEFAULT_QUERY_TYPE_SCORE,
    DEFAULT_TEMPERATURE,
    QUERY_TYPE_SCORES,
    TIER_FALLBACKS,
    TIER_LEVELS,
    TIER_THRESHOLDS,
    get_temperature,
    score_to_tier,
)

if TYPE_CHECKING:
    from ..logger import EventLogger


def _compile(*patterns: str) -> List["re.Pattern"]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


SIMPLE_PATTERNS = _compile(
    r"^what (is|are|does|do)\b",
    r"^how (do|does) .{1,30}\?$",
    r"^(explain|describe) .{1,40}$",
    r"^list\b",
    r"^show me\b",
    r"\bdefine\b",
)

CODE_PATTERNS = _compile(
    r"\b(write|create|implement|build|make)\b.*\b(function|class|component|hook|script|code)\b",
    r"\b(refactor|optimize|improve)\b.*\b(code|function|class)\b",
    r"\badd (a |an )?(feature|functionality|method)\b",
    r"\bconvert\b.*\bto\b",
)

DEBUG_PATTERNS = _compile(
    r"\b(fix|debug|solve|resolve)\b",
    r"\berror\b",
    r"\bfail(ed|ing|s)?\b",
    r"\bbug\b",
    r"\bnot working\b",
    r"\bbroken\b",
    r"\bcrash(es|ed|ing)?\b",
    r"\bissue\b",
    r"\bproblem\b",
)

CREATIVE_PATTERNS = _compile(
    r"\b(design|architect|plan|brainstorm)\b",
    r"\bsuggestions?\b",
    r"\bideas?\b",
    r"\balternatives?\b",
    r"\bbest (way|approach|practice)\b",
)

COMPLEX_PATTERNS = _compile(
    r"\b(analyze|compare|evaluate|assess)\b",
    r"\barchitecture\b",
    r"\bstrategy\b",
    r"\btrade-?offs?\b",
    r"\bperformance\b",
    r"\bsecurity\b",
    r"\bscalability\b",
    r"\bwhy (doesn't|does|is|are|do)\b",
    r"\bexplain (how|why|the)\b.*\b(works?|happen)",
)

ERROR_WORDS = re.compile(r"\b(error|exception|fail|crash|bug)\b", re.IGNORECASE)

LARGE_ITEM_CHARS = 5000


def _matches(patterns: List["re.Pattern"]) -> Callable[[str, Sequence[ContextItem]], bool]:
    def predicate(prompt: str, items: Sequence[ContextItem]) -> bool:
        return any(p.search(prompt) for p in patterns)
    return predicate


def _has_error_context(items: Sequence[ContextItem]) -> bool:
    return any(item.has_error for item in items)


# First match wins; anything unmatched is an explanation
QUERY_TYPE_RULES: List[Tuple[str, Callable[[str, Sequence[ContextItem]], bool]]] = [
    ("debug", lambda prompt, items: _has_error_context(items) or _matches(DEBUG_PATTERNS)(prompt, items)),
    ("complex", _matches(COMPLEX_PATTERNS)),
    ("code", _matches(CODE_PATTERNS)),
    ("creative", _matches(CREATIVE_PATTERNS)),
    ("factual", _matches(SIMPLE_PATTERNS)),
]

DEFAULT_QUERY_TYPE = "explanation"


def detect_query_type(prompt: str, context_items: Sequence[ContextItem] = ()) -> str:
    """Classify a prompt as debug, complex, code, creative, factual or explanation."""
    prompt = prompt or ""
    items = list(context_items or [])
    for query_type, predicate in QUERY_TYPE_RULES:
        if predicate(prompt, items):
            return query_type
    return DEFAULT_QUERY_TYPE


def calculate_complexity_score(
    prompt: str,
    context_items: Sequence[ContextItem] = (),
) -> Tuple[int, List[ScoringFactor], str]:
    """
    Score prompt complexity on a 0-100 scale.

    Returns:
        (score, factors, query_type)
    """
    prompt = prompt or ""
    items = list(context_items or [])
    factors = []

    word_count = len(prompt.split())
    if word_count <= 5:
        length_score = 5
    elif word_count <= 15:
        length_score = 10
    elif word_count <= 30:
        length_score = 15
    else:
        length_score = 20
    factors.append(ScoringFactor(
        name="prompt_length",
        value=length_score,
        description=f"{word_count} words",
    ))

    has_files = any(item.type == "file" for item in items)
    has_errors = _has_error_context(items)
    has_large = any(len(item.text) > LARGE_ITEM_CHARS for item in items)

    context_score = min(len(items) * 3, 10)
    if has_files:
        context_score += 5
    if has_errors:
        context_score += 10
    if has_large:
        context_score += 5
    context_score = min(context_score, 25)

    description = f"{len(items)} items"
    if has_errors:
        description += ", has errors"
    if has_files:
        description += ", has files"
    factors.append(ScoringFactor(
        name="context_complexity",
        value=context_score,
        description=description,
    ))

    query_type = detect_query_type(prompt, items)
    factors.append(ScoringFactor(
        name="keyword_matching",
        value=QUERY_TYPE_SCORES.get(query_type, DEFAULT_QUERY_TYPE_SCORE),
        description=f"Query type: {query_type}",
    ))

    if has_errors:
        error_score = 25
    elif ERROR_WORDS.search(prompt):
        error_score = 15
    else:
        error_score = 0
    factors.append(ScoringFactor(
        name="error_presence",
        value=error_score,
        description="Exit code != 0" if has_errors else "No explicit errors",
    ))

    total = sum(f.value * f.weight for f in factors)
    score = int(min(100, max(0, round(total))))
    return score, factors, query_type


def generate_alternatives(score: int, tier: str) -> List[TierAlternative]:
    """Adjacent tiers the score came close to."""
    moderate = TIER_THRESHOLDS["moderate"]
    alternatives = []

    if tier == "simple" and score > 25:
        alternatives.append(TierAlternative(
            tier="moderate",
            score=moderate.min,
            reason=f"Close to moderate tier (score {score} vs threshold {moderate.min})",
        ))

    if tier == "moderate":
        if score < 45:
            alternatives.append(TierAlternative(
                tier="simple",
                score=TIER_THRESHOLDS["simple"].max,
                reason=f"Could use simple tier for cost savings (score {score})",
            ))
        if score > 60:
            complex_min = TIER_THRESHOLDS["complex"].min
            alternatives.append(TierAlternative(
                tier="complex",
                score=complex_min,
                reason=f"Close to complex tier (score {score} vs threshold {complex_min})",
            ))

    if tier == "complex" and score < 80:
        alternatives.append(TierAlternative(
            tier="moderate",
            score=moderate.max,
            reason=f"Moderate tier might suffice (score {score})",
        ))

    return alternatives


class QueryRouter:
    """
    Routes prompts to a model tier.

    Usage:
        router = QueryRouter()
        decision = router.classify(prompt, items, settings, mode="agent")
        decision.model, decision.context_budget, decision.temperature
    """

    def __init__(self, logger: Optional["EventLogger"] = None):
        self.logger = logger

    def classify(
        self,
        prompt: str,
        context_items: Sequence[ContextItem],
        settings: AiSettings,
        mode: Optional[str] = None,
    ) -> RoutingDecision:
        """
        Produce a routing decision for a prompt.

        With routing disabled the main model is used with the unscaled
        mode budget and the default temperature.
        """
        mode = mode or settings.mode

        if not settings.routing_enabled:
            return RoutingDecision(
                tier="moderate",
                complexity=TIER_LEVELS["moderate"],
                model=settings.model,
                context_budget=settings.mode_budget(mode),
                temperature=DEFAULT_TEMPERATURE,
                auto_routed=False,
            )

        score, factors, query_type = calculate_complexity_score(prompt, context_items)
        tier = score_to_tier(score)
        model, fallback_used, original_tier = self.model_for_tier(tier, settings)

        return RoutingDecision(
            tier=tier,
            complexity=TIER_LEVELS[tier],
            model=model,
            context_budget=self.context_budget(tier, mode, settings),
            temperature=get_temperature(query_type),
            fallback_used=fallback_used,
            original_tier=original_tier,
            reasoning=RoutingReasoning(
                query_type=query_type,
                score=score,
                factors=factors,
                alternatives=generate_alternatives(score, tier),
            ),
        )

    def model_for_tier(
        self,
        tier: str,
        settings: AiSettings,
    ) -> Tuple[str, bool, Optional[str]]:
        """
        Resolve the model for a tier, walking down to cheaper tiers.

        Returns:
            (model, fallback_used, original_tier)
        """
        routing = settings.auto_routing
        model = routing.model_for(tier) if routing else None
        if model:
            return model, False, None

        for fallback_tier in TIER_FALLBACKS.get(tier, ()):
            model = routing.model_for(fallback_tier) if routing else None
            if model:
                self._log_fallback(tier, fallback_tier, model)
                return model, True, tier

        self._log_fallback(tier, "main", settings.model)
        return settings.model, True, tier

    def context_budget(self, tier: str, mode: str, settings: AiSettings) -> int:
        """Per-tier budget if configured, else a share of the mode budget."""
        if settings.auto_routing:
            budget = settings.auto_routing.budget_for(tier)
            if budget:
                return budget
        return round(settings.mode_budget(mode) * TIER_THRESHOLDS[tier].budget_multiplier)

    def _log_fallback(self, tier: str, fallback: str, model: str):
        if self.logger:
            self.logger.log_activity(
                "tier_fallback",
                original_tier=tier,
                fallback_tier=fallback,
                model=model,
            )


def classify_and_route(
    prompt: str,
    context_items: Sequence[ContextItem],
    settings: AiSettings,
    mode: Optional[str] = None,
) -> RoutingDecision:
    """Route with a default QueryRouter. See QueryRouter.classify."""
    return QueryRouter().classify(prompt, context_items, settings, mode)
