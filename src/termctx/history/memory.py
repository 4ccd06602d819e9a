"""Conversation memory: turns, frequent topics and a user skill estimate."""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..types import ChatMessage


TOPIC_PATTERNS = [
    (re.compile(r"(git|github|gitlab|version control)"), "git"),
    (re.compile(r"(docker|container|kubernetes)"), "docker"),
    (re.compile(r"(npm|node|javascript|typescript)"), "node"),
    (re.compile(r"(python|pip|venv|conda)"), "python"),
    (re.compile(r"(ssh|remote|server)"), "ssh"),
    (re.compile(r"(file|directory|folder|path)"), "filesystem"),
    (re.compile(r"(process|memory|cpu|performance)"), "system"),
    (re.compile(r"(error|bug|fix|debug)"), "debugging"),
]

EXPERT_TOOLS = re.compile(r"\b(regex|awk|sed|grep)\b")
DETAILED_QUERY_CHARS = 100
MIN_TURNS_FOR_SKILL = 3


@dataclass
class ConversationTurn:
    """A user query paired with the assistant response that followed it."""
    timestamp: float
    user_query: str
    assistant_response: str
    context_used: List[str] = field(default_factory=list)
    was_successful: bool = True


@dataclass
class ConversationMemory:
    turns: List[ConversationTurn] = field(default_factory=list)
    frequent_topics: Dict[str, int] = field(default_factory=dict)
    skill_level: str = "intermediate"  # beginner, intermediate, expert
    preferred_shell: Optional[str] = None
    verbosity: Optional[str] = None

    def top_topics(self, limit: int = 3) -> List[str]:
        return [t for t, _ in Counter(self.frequent_topics).most_common(limit)]


def extract_topics(query: str) -> List[str]:
    lower = (query or "").lower()
    return [topic for pattern, topic in TOPIC_PATTERNS if pattern.search(lower)]


def detect_skill_level(turns: Sequence[ConversationTurn]) -> str:
    """Estimate skill from query phrasing; intermediate until 3 turns exist."""
    if len(turns) < MIN_TURNS_FOR_SKILL:
        return "intermediate"

    beginner = 0
    expert = 0
    for turn in turns:
        query = turn.user_query.lower()
        if "what is" in query or "how do i" in query or "what does" in query:
            beginner += 1
        if "step by step" in query or "explain" in query:
            beginner += 1
        if "optimize" in query or "performance" in query or "benchmark" in query:
            expert += 1
        if EXPERT_TOOLS.search(query):
            expert += 1
        if len(query) > DETAILED_QUERY_CHARS:
            expert += 1

    if beginner > expert * 2:
        return "beginner"
    if expert > beginner * 2:
        return "expert"
    return "intermediate"


def _context_sources(message: ChatMessage) -> List[str]:
    used = message.used_context
    if not isinstance(used, dict):
        return []
    chunks = used.get("chunks") or []
    return [
        c.get("source_type") or c.get("sourceType")
        for c in chunks
        if isinstance(c, dict) and (c.get("source_type") or c.get("sourceType"))
    ]


def build_conversation_memory(messages: Sequence[ChatMessage]) -> ConversationMemory:
    """
    Build conversation memory from chat history.

    Each user message opens a turn that the next assistant message closes.
    A turn counts as successful when the response does not mention "error".
    """
    memory = ConversationMemory()
    topics: Counter = Counter()
    pending_query = None

    for message in messages:
        if message.role == "user":
            pending_query = message.content
            topics.update(extract_topics(message.content))
        elif message.role == "assistant" and pending_query:
            memory.turns.append(ConversationTurn(
                timestamp=message.timestamp,
                user_query=pending_query,
                assistant_response=message.content,
                context_used=_context_sources(message),
                was_successful="error" not in (message.content or "").lower(),
            ))
            pending_query = None

    memory.frequent_topics = dict(topics)
    memory.skill_level = detect_skill_level(memory.turns)
    return memory
