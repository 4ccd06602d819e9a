"""
Smart context: semantic retrieval over chunked context items.

Large terminal outputs and files are split into overlapping line chunks,
handed to an external semantic index, and the top matches are formatted
for the prompt. Items pinned with include mode `always` bypass retrieval
and are formatted in full.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, TYPE_CHECKING

from ..config import AiSettings, SmartContextConfig
from ..types import ContextItem
from .formatter import effective_include_mode, format_context_item, get_text_for_model

if TYPE_CHECKING:
    from ..logger import EventLogger


FILE_CHUNK_LINES = 140
FILE_CHUNK_CHARS = 9000
OTHER_CHUNK_LINES = 220
OTHER_CHUNK_CHARS = 12000
CHUNK_OVERLAP_LINES = 12


@dataclass
class SmartContextChunk:
    """A chunk of one context item, as sent to the semantic index."""
    chunk_id: str
    text: str
    source_type: str
    source_id: str
    timestamp: float
    path: Optional[str] = None


@dataclass
class RetrievedChunk:
    """A chunk returned by the semantic index."""
    chunk_id: str
    source_type: str
    source_id: str
    timestamp: float
    score: float
    text: str
    path: Optional[str] = None


@dataclass
class SmartContextResult:
    retrieved: List[RetrievedChunk] = field(default_factory=list)
    formatted: List[str] = field(default_factory=list)


class SemanticIndex(ABC):
    """
    External embedding index used for smart context.

    Implementations own embedding and storage; this package only chunks
    and formats.
    """

    async def sync(self, settings: AiSettings, chunks: List[SmartContextChunk]) -> None:
        """Upsert `chunks` and drop stale ones. Override if the index is stateful."""
        pass

    @abstractmethod
    async def query(
        self,
        model: str,
        chunks: List[SmartContextChunk],
        query: str,
        top_k: int = 8,
    ) -> List[RetrievedChunk]:
        """
        Find the chunks most similar to `query`.

        Args:
            model: Embedding model name
            chunks: Current chunk set
            query: User query
            top_k: Maximum results

        Returns:
            RetrievedChunk list, most similar first
        """
        pass


def chunk_lines(
    text: str,
    max_lines: int,
    max_chars: int,
    overlap_lines: int = CHUNK_OVERLAP_LINES,
) -> List[str]:
    """
    Split text into line chunks bounded by line count and characters.

    Consecutive chunks share `overlap_lines` lines. Text under `max_chars`
    is returned whole.
    """
    if len(text) <= max_chars:
        return [text]

    lines = text.split("\n")
    chunks = []
    start = 0

    while start < len(lines):
        end = start
        char_count = 0
        while end < len(lines):
            cost = len(lines[end]) + 1
            if end > start and end - start >= max_lines:
                break
            if end > start and char_count + cost > max_chars:
                break
            char_count += cost
            end += 1

        chunk = "\n".join(lines[start:end]).strip()
        if chunk:
            chunks.append(chunk)

        if end >= len(lines):
            break

        next_start = max(0, end - overlap_lines)
        # Always advance
        start = next_start if next_start > start else end

    return chunks or [text]


def build_smart_chunks(
    items: Sequence[ContextItem],
    global_smart_mode: bool = True,
) -> List[SmartContextChunk]:
    """Chunk every item whose effective include mode is `smart`."""
    chunks = []
    for item in items:
        if effective_include_mode(item, global_smart_mode) != "smart":
            continue

        if item.type == "file":
            parts = chunk_lines(get_text_for_model(item), FILE_CHUNK_LINES, FILE_CHUNK_CHARS)
        else:
            parts = chunk_lines(get_text_for_model(item), OTHER_CHUNK_LINES, OTHER_CHUNK_CHARS)

        for i, part in enumerate(parts):
            chunks.append(SmartContextChunk(
                chunk_id=f"{item.id}:{i}",
                text=part,
                source_type=item.type,
                source_id=item.id,
                timestamp=item.timestamp,
                path=item.path,
            ))
    return chunks


def build_always_included_context(
    items: Sequence[ContextItem],
    global_smart_mode: bool = True,
) -> List[str]:
    """Full formatted text of items pinned with include mode `always`."""
    return [
        format_context_item(item)
        for item in items
        if effective_include_mode(item, global_smart_mode) == "always"
    ]


def format_retrieved_chunk(chunk: RetrievedChunk) -> str:
    # Score stays out of the prompt
    header = [f"Type: {chunk.source_type}"]
    if chunk.path:
        header.append(f"Path: {chunk.path}")
    return "\n".join(header) + f"\nContent: {chunk.text}"


async def get_smart_context(
    settings: AiSettings,
    items: Sequence[ContextItem],
    query: str,
    index: Optional[SemanticIndex],
    config: Optional[SmartContextConfig] = None,
    logger: Optional["EventLogger"] = None,
) -> Optional[SmartContextResult]:
    """
    Retrieve context through the semantic index.

    Returns None when smart context does not apply (no index, no embedding
    model, too few items) or when the index fails; callers then fall back
    to relevance ranking.
    """
    config = config or SmartContextConfig()
    model = (settings.embedding_model or "").strip()
    if index is None or not model or len(items) < config.min_items:
        return None

    chunks = build_smart_chunks(items, config.global_smart_mode)
    always = build_always_included_context(items, config.global_smart_mode)

    try:
        await index.sync(settings, chunks)
        retrieved = await index.query(model, chunks, query, config.top_k)
    except Exception as e:
        if logger:
            logger.log_error("smart_context", e, fallback="ranker")
        return None

    retrieved = list(retrieved or [])
    return SmartContextResult(
        retrieved=retrieved,
        formatted=always + [format_retrieved_chunk(r) for r in retrieved],
    )
