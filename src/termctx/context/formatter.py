"""Formatting of context items for inclusion in model prompts."""

from typing import List, Sequence

from ..types import ContextItem, RankedContext


HIGH_RELEVANCE_MARKER = " \U0001F525"
RELEVANT_MARKER = " ⭐"


def get_text_for_model(item: ContextItem) -> str:
    """Item content, redacted when secrets were found and redaction is on."""
    if item.has_secrets and item.secrets_redacted and item.redacted_content:
        return item.redacted_content
    return item.text


def format_context_item(item: ContextItem) -> str:
    """
    Format a single item as a prompt block.

    Example:
        Type: command
        Content: ls -la

        Type: output
        Content: ...
    """
    content = get_text_for_model(item)

    if item.type == "command_output":
        return f"Type: command\nContent: {item.command or ''}\n\nType: output\nContent: {content}"

    if item.type == "file":
        text = f"Type: file\nContent: {content}"
        if item.path:
            text += f"\nPath: {item.path}"
        if isinstance(item.metadata, dict) and item.metadata.get("truncated"):
            text += "\nTruncated: true"
        return text

    if item.command:
        return f"Type: {item.type}\nContent: {content}\nCommand: {item.command}"

    return f"Type: {item.type}\nContent: {content}"


def format_context_items(items: Sequence[ContextItem], separator: str = "\n\n") -> str:
    return separator.join(format_context_item(item) for item in items)


def effective_include_mode(item: ContextItem, global_smart_mode: bool) -> str:
    """Global smart mode forces every item into semantic retrieval."""
    if global_smart_mode:
        return "smart"
    return item.include_mode


def format_ranked_context(ranked: Sequence[RankedContext]) -> List[str]:
    """
    Format ranked context as numbered prompt blocks.

    Each block carries a `[Context i/n]` header with a relevance marker,
    then command, path and exit code when present, then the content.
    """
    total = len(ranked)
    blocks = []
    for index, rc in enumerate(ranked, start=1):
        item = rc.item
        if rc.score >= 70:
            marker = HIGH_RELEVANCE_MARKER
        elif rc.score >= 50:
            marker = RELEVANT_MARKER
        else:
            marker = ""

        parts = [f"[Context {index}/{total}] Type: {item.type}{marker}"]
        if item.command:
            parts.append(f"Command: {item.command}")
        if item.path:
            parts.append(f"Path: {item.path}")
        if item.exit_code is not None:
            parts.append(f"Exit Code: {item.exit_code}")
        parts.append(f"Content:\n{get_text_for_model(item)}")

        blocks.append("\n".join(parts))
    return blocks
