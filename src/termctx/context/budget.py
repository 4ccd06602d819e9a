"""Token budget management for context selection."""

import math
from typing import List, Optional

from ..types import RankedContext


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token estimate: ~4 chars per token, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


class TokenBudget:
    """
    Fills a fixed budget with the highest-ranked context.

    Items are taken in order until the next one would exceed the budget.
    If the very first item alone is over budget it is admitted anyway,
    so a non-empty candidate list never produces an empty selection.
    """

    def __init__(self, total_budget: int = 8000):
        """
        Initialize budget manager.

        Args:
            total_budget: Approximate tokens available for context
        """
        self.total_budget = total_budget

    def count_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def allocate(self, ranked: List[RankedContext]) -> List[RankedContext]:
        """
        Select a prefix of `ranked` that fits the budget.

        Args:
            ranked: Context sorted by score (descending)

        Returns:
            Selected context, still in ranked order
        """
        if self.total_budget <= 0:
            return []

        selected = []
        used = 0

        for rc in ranked:
            tokens = self.count_tokens(rc.item.text)

            if used + tokens > self.total_budget:
                if not selected:
                    selected.append(rc)
                break

            selected.append(rc)
            used += tokens

        return selected

    def set_budget(self, tokens: int):
        """Update total budget."""
        self.total_budget = tokens


def filter_by_token_budget(ranked: List[RankedContext], max_tokens: int) -> List[RankedContext]:
    """Truncate a ranked list to fit `max_tokens`."""
    return TokenBudget(max_tokens).allocate(ranked)
