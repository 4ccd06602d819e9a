"""Routing tier thresholds and per-query-type presets."""

from dataclasses import dataclass
from typing import Dict


TIERS = ("simple", "moderate", "complex")

# Numeric complexity level carried on RoutingDecision
TIER_LEVELS: Dict[str, int] = {"simple": 1, "moderate": 2, "complex": 3}


@dataclass
class TierThreshold:
    """Inclusive score range for a routing tier."""
    name: str
    min: int
    max: int
    budget_multiplier: float  # Fraction of the mode budget when no per-tier budget is set
    description: str


TIER_THRESHOLDS: Dict[str, TierThreshold] = {
    "simple": TierThreshold(
        name="simple",
        min=0,
        max=35,
        budget_multiplier=0.5,
        description="Lookups and short factual questions. Cheapest model."
    ),
    "moderate": TierThreshold(
        name="moderate",
        min=36,
        max=69,
        budget_multiplier=0.8,
        description="Code generation and explanations."
    ),
    "complex": TierThreshold(
        name="complex",
        min=70,
        max=100,
        budget_multiplier=1.0,
        description="Debugging with errors, analysis, architecture."
    ),
}

# Lower tiers tried, in order, when a tier has no model configured
TIER_FALLBACKS: Dict[str, tuple] = {
    "complex": ("moderate", "simple"),
    "moderate": ("simple",),
    "simple": (),
}

TEMPERATURE_PRESETS: Dict[str, float] = {
    "factual": 0.2,
    "code": 0.4,
    "debug": 0.2,
    "explanation": 0.6,
    "creative": 0.8,
    "complex": 0.5,
}

DEFAULT_TEMPERATURE = 0.7

# keyword_matching factor per detected query type
QUERY_TYPE_SCORES: Dict[str, int] = {
    "debug": 28,
    "complex": 25,
    "creative": 20,
    "code": 18,
    "explanation": 12,
    "factual": 5,
}

DEFAULT_QUERY_TYPE_SCORE = 15


def get_temperature(query_type: str) -> float:
    return TEMPERATURE_PRESETS.get(query_type, DEFAULT_TEMPERATURE)


def score_to_tier(score: int) -> str:
    """Map a 0-100 complexity score to a tier name."""
    if score <= TIER_THRESHOLDS["simple"].max:
        return "simple"
    if score <= TIER_THRESHOLDS["moderate"].max:
        return "moderate"
    return "complex"
