"""
Rule-based prompt enhancement.

Rewrites vague prompts ("fix this", "what's wrong?") so they name the
context they refer to, without any model call. Prompts that already
carry a file reference, line number, error text or code block are left
alone.
"""

import re
from typing import Optional, Sequence, TYPE_CHECKING

from ..config import AiSettings
from ..types import ContextItem, PromptEnhancement

if TYPE_CHECKING:
    from ..logger import EventLogger


VAGUE_PATTERNS = [
    re.compile(r"^(fix|solve|help with) (this|that|it)\s*$", re.IGNORECASE),
    re.compile(
        r"^(fix|solve|help with) (this|that|it)\b(?!\s+(error|bug|issue|problem|file|function|code))",
        re.IGNORECASE,
    ),
    re.compile(r"^what('s| is) (wrong|the problem|the issue)\s*\??$", re.IGNORECASE),
    re.compile(r"^why (doesn't|isn't|won't) (this|that|it) work\s*\??$", re.IGNORECASE),
    re.compile(r"^(this|that|it) (doesn't|isn't|won't) work\s*$", re.IGNORECASE),
]

SPECIFIC_PATTERNS = [
    re.compile(
        r"\b(in|at|from)\s+[a-zA-Z0-9_\-/.]+\."
        r"(ts|tsx|js|jsx|py|rs|go|java|c|cpp|h|hpp|css|html|json|yaml|yml|md|txt|sh|bash)",
        re.IGNORECASE,
    ),
    re.compile(r"\bline\s+\d+", re.IGNORECASE),
    re.compile(r"\berror:?\s+.{10,}", re.IGNORECASE),
    re.compile(r"\bfunction\s+\w+", re.IGNORECASE),
    re.compile(r"\bclass\s+\w+", re.IGNORECASE),
    re.compile(r"```.+```", re.DOTALL),
]

MISSING_CONTEXT_PATTERNS = [
    re.compile(r"^(run|execute|do|perform)\s+(this|that|it)\s*$", re.IGNORECASE),
    re.compile(r"^what does (this|that|it) (do|mean)\s*\??$", re.IGNORECASE),
    re.compile(r"^(explain|describe)\s+(this|that|it)\s*$", re.IGNORECASE),
]

MAX_LISTED_ITEMS = 3


def is_specific(prompt: str) -> bool:
    return any(p.search(prompt) for p in SPECIFIC_PATTERNS)


def is_vague_reference(prompt: str) -> bool:
    if is_specific(prompt):
        return False
    return any(p.search(prompt) for p in VAGUE_PATTERNS)


def is_missing_context_reference(prompt: str, context_items: Sequence[ContextItem]) -> bool:
    if not context_items:
        return False
    return any(p.search(prompt) for p in MISSING_CONTEXT_PATTERNS)


def get_most_relevant_context(context_items: Sequence[ContextItem]) -> Optional[ContextItem]:
    """Pick the item a vague prompt most likely means: error, file, output, newest."""
    if not context_items:
        return None
    for predicate in (
        lambda item: item.has_error,
        lambda item: item.type == "file",
        lambda item: item.is_output,
    ):
        for item in context_items:
            if predicate(item):
                return item
    return max(context_items, key=lambda item: item.timestamp or 0)


def format_context_reference(item: ContextItem) -> str:
    if item.type == "file":
        return f"in {item.path or 'attached file'}"

    if item.is_output:
        command = item.command or "command"
        if item.has_error:
            return f'in the output from "{command}" (exit code {item.exit_code})'
        return f'in the output from "{command}"'

    if item.type == "command":
        return f'for command "{item.text[:50]}"'

    return "in the provided context"


def list_available_context(context_items: Sequence[ContextItem]) -> str:
    labels = []
    for item in list(context_items)[:MAX_LISTED_ITEMS]:
        if item.type == "file":
            labels.append(f"file: {item.path or 'unknown'}")
        elif item.is_output:
            labels.append(f"output from: {item.command or 'command'}")
        elif item.type == "command":
            labels.append(f"command: {item.text[:30]}")
        else:
            labels.append(str(item.type))
    return ", ".join(labels)


class PromptEnhancer:
    """
    Applies enhancement patterns in order: vague reference, then missing
    context. The first one that changes the prompt wins.
    """

    def __init__(self, logger: Optional["EventLogger"] = None):
        self.logger = logger

    def enhance(
        self,
        prompt: str,
        context_items: Sequence[ContextItem],
        settings: Optional[AiSettings] = None,
    ) -> PromptEnhancement:
        trimmed = (prompt or "").strip()
        items = list(context_items or [])

        if settings is not None and not settings.prompt_enhancement_enabled:
            return PromptEnhancement(original=trimmed, enhanced=trimmed)

        if is_vague_reference(trimmed):
            item = get_most_relevant_context(items)
            if item is not None:
                return self._enhanced(
                    trimmed,
                    f"{trimmed} {format_context_reference(item)}",
                    reason="Added explicit context reference",
                    pattern="vague_reference",
                )

        if is_missing_context_reference(trimmed, items):
            available = list_available_context(items)
            if available:
                return self._enhanced(
                    trimmed,
                    f"{trimmed} (Available context: {available})",
                    reason="Listed available context items",
                    pattern="missing_context",
                )

        return PromptEnhancement(original=trimmed, enhanced=trimmed)

    def _enhanced(self, original: str, enhanced: str, reason: str, pattern: str) -> PromptEnhancement:
        result = PromptEnhancement(
            original=original,
            enhanced=enhanced,
            was_enhanced=True,
            reason=reason,
            pattern=pattern,
        )
        if self.logger:
            self.logger.log_enhancement(result)
        return result


def enhance_prompt_if_needed(
    prompt: str,
    context_items: Sequence[ContextItem],
    settings: Optional[AiSettings] = None,
) -> PromptEnhancement:
    return PromptEnhancer().enhance(prompt, context_items, settings)
