# Query routing
# Complexity-based model selection and prompt enhancement

from .router import (
    QueryRouter,
    classify_and_route,
    detect_query_type,
    calculate_complexity_score,
    generate_alternatives,
)
from .presets import (
    TIER_THRESHOLDS,
    TEMPERATURE_PRESETS,
    DEFAULT_TEMPERATURE,
    get_temperature,
    score_to_tier,
)
from .enhancer import PromptEnhancer, enhance_prompt_if_needed

__all__ = [
    "QueryRouter",
    "classify_and_route",
    "detect_query_type",
    "calculate_complexity_score",
    "generate_alternatives",
    "TIER_THRESHOLDS",
    "TEMPERATURE_PRESETS",
    "DEFAULT_TEMPERATURE",
    "get_temperature",
    "score_to_tier",
    "PromptEnhancer",
    "enhance_prompt_if_needed",
]
