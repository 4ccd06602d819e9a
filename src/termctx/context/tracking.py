"""Usage bookkeeping for context items across chat turns."""

import time
from typing import Iterable, List, Optional, Sequence

from ..types import ChatMessage, ContextItem


TOPIC_STOP_WORDS = {
    "about", "after", "before", "could", "should", "would",
    "there", "their", "these", "those", "which", "while",
    "please", "thanks", "hello",
}

RECENT_USE_WINDOW_MINUTES = 30


def mark_context_as_used(
    items: Sequence[ContextItem],
    used_ids: Iterable[str],
    message_id: str,
    timestamp: Optional[float] = None,
) -> List[ContextItem]:
    """
    Record that `used_ids` were sent with `message_id`.

    Items are updated in place; the ones that changed are returned.
    """
    used = set(used_ids)
    if timestamp is None:
        timestamp = time.time()

    updated = []
    for item in items:
        if item.id in used:
            item.last_used_in_message_id = message_id
            item.last_used_timestamp = timestamp
            item.usage_count = (item.usage_count or 0) + 1
            updated.append(item)
    return updated


def extract_recent_topics(messages: Sequence[ChatMessage], limit: int = 3) -> List[str]:
    """Key words (>4 chars) from user turns among the last `limit` messages."""
    topics: List[str] = []
    for message in list(messages)[-limit:] if limit > 0 else []:
        if message.role != "user":
            continue
        for word in (message.content or "").lower().split():
            if len(word) > 4 and word not in TOPIC_STOP_WORDS and word not in topics:
                topics.append(word)
    return topics[:10]


def get_stale_context(
    items: Sequence[ContextItem],
    age_threshold_minutes: float = 180,
    now: Optional[float] = None,
) -> List[ContextItem]:
    """Items older than the threshold and not used in the last 30 minutes."""
    if now is None:
        now = time.time()
    threshold = age_threshold_minutes * 60

    stale = []
    for item in items:
        age = now - item.timestamp
        since_use = now - item.last_used_timestamp if item.last_used_timestamp else age
        if age > threshold and since_use > RECENT_USE_WINDOW_MINUTES * 60:
            stale.append(item)
    return stale
