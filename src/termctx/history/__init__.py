# Conversation history
# Sliding window, summarization and conversation memory

from .conversation import ConversationHistoryManager, SummaryCache, calculate_message_tokens
from .summarizer import (
    Summarizer,                 # Abstract base class
    ChatCompletionsSummarizer,  # OpenAI-compatible API
    ExtractiveSummarizer,       # Local keyword summary
    create_fallback_summary,
    create_summarizer,          # Factory function
)
from .memory import ConversationMemory, ConversationTurn, build_conversation_memory

__all__ = [
    "ConversationHistoryManager",
    "SummaryCache",
    "calculate_message_tokens",
    "Summarizer",
    "ChatCompletionsSummarizer",
    "ExtractiveSummarizer",
    "create_fallback_summary",
    "create_summarizer",
    "ConversationMemory",
    "ConversationTurn",
    "build_conversation_memory",
]
