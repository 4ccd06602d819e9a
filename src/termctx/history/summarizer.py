"""
Conversation summarization backends.

Condenses older chat turns into a short system message so the sliding
window can drop them without losing the thread of the conversation.
"""

import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import List, Optional, Sequence

import httpx

from ..config import AiSettings, HistoryConfig
from ..types import ChatMessage


DEFAULT_BASE_URL = "https://api.openai.com/v1"

SUMMARY_PROMPT = """Summarize this conversation concisely. Focus on:
- Key topics discussed
- Important decisions or findings
- Files, commands, or errors mentioned
- Current task or goal

Keep it under 200 words and maintain a technical, factual tone.

CONVERSATION:
{conversation}

SUMMARY:"""

FALLBACK_HEADER = "[Previous conversation summary]"

CODE_SPAN = re.compile(r"`([^`]+)`")
FILE_TOKEN = re.compile(r"[\w/.-]+\.(?:ts|js|json|txt|py|md|tsx|jsx)", re.IGNORECASE)
TOPIC_WORD = re.compile(r"^[a-z]+$")


class Summarizer(ABC):
    """
    Abstract base class for conversation summarization.

    Implementations:
    - ChatCompletionsSummarizer: OpenAI-compatible chat completions API
    - ExtractiveSummarizer: Local keyword extraction, never fails
    """

    @abstractmethod
    async def summarize(self, messages: Sequence[ChatMessage], settings: AiSettings) -> str:
        """
        Summarize older messages.

        Args:
            messages: Messages being dropped from the window, oldest first
            settings: Provider settings for model-backed implementations

        Returns:
            Summary text
        """
        pass


def format_conversation(messages: Sequence[ChatMessage]) -> str:
    lines = []
    for message in messages:
        role = "User" if message.role == "user" else "Assistant"
        lines.append(f"{role}: {message.content}")
    return "\n\n".join(lines)


def summary_model_for(model: str) -> str:
    """Use the cheaper sibling for the gpt-4 family."""
    if "gpt-4" in (model or ""):
        return "gpt-4o-mini"
    return model


class ChatCompletionsSummarizer(Summarizer):
    """
    Summarizes via an OpenAI-compatible `/chat/completions` endpoint.

    Credentials and base URL come from the AiSettings passed to each call.
    """

    def __init__(
        self,
        config: Optional[HistoryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize summarizer.

        Args:
            config: HistoryConfig with summary token and temperature limits
            client: Optional shared httpx.AsyncClient (a short-lived one is
                created per call otherwise)
        """
        self.config = config or HistoryConfig()
        self.client = client

    async def summarize(self, messages: Sequence[ChatMessage], settings: AiSettings) -> str:
        prompt = SUMMARY_PROMPT.format(conversation=format_conversation(messages))
        payload = {
            "model": summary_model_for(settings.model),
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.config.summary_max_tokens,
            "temperature": self.config.summary_temperature,
        }
        headers = {
            "Authorization": f"Bearer {settings.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{(settings.url or DEFAULT_BASE_URL).rstrip('/')}/chat/completions"

        if self.client is not None:
            response = await self.client.post(url, headers=headers, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.config.summary_timeout) as client:
                response = await client.post(url, headers=headers, json=payload)

        response.raise_for_status()
        data = response.json()

        choices = data.get("choices") or []
        if not choices:
            raise ValueError("Summary response contained no choices")
        summary = (choices[0].get("message", {}).get("content") or "").strip()
        if not summary:
            raise ValueError("Summary response was empty")
        return summary


def create_fallback_summary(messages: Sequence[ChatMessage]) -> str:
    """
    Build a summary from the messages alone.

    Lists frequent long words, backtick code spans and file-looking tokens.
    """
    topics: Counter = Counter()
    commands: List[str] = []
    files: List[str] = []

    for message in messages:
        content = (message.content or "").lower()

        for command in CODE_SPAN.findall(content):
            if command not in commands:
                commands.append(command)

        for path in FILE_TOKEN.findall(content)[:3]:
            if path not in files:
                files.append(path)

        for word in content.split():
            if len(word) > 5 and TOPIC_WORD.match(word):
                topics[word] += 1

    parts = [FALLBACK_HEADER]
    if topics:
        parts.append("Topics: " + ", ".join(word for word, _ in topics.most_common(5)))
    if commands:
        parts.append("Commands discussed: " + ", ".join(commands[:3]))
    if files:
        parts.append("Files mentioned: " + ", ".join(files))
    return "\n".join(parts)


class ExtractiveSummarizer(Summarizer):
    """Keyword summary with no model call."""

    async def summarize(self, messages: Sequence[ChatMessage], settings: Optional[AiSettings] = None) -> str:
        return create_fallback_summary(messages)


def create_summarizer(
    settings: Optional[AiSettings] = None,
    config: Optional[HistoryConfig] = None,
) -> Summarizer:
    """
    Factory function to create a summarizer.

    Returns the model-backed summarizer when settings carry credentials,
    otherwise the extractive one.
    """
    if settings is not None and settings.is_complete():
        return ChatCompletionsSummarizer(config=config)
    return ExtractiveSummarizer()
