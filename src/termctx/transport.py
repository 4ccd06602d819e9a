"""
Model transport interface.

The orchestrator hands a ModelRequest to a ModelTransport and consumes
the resulting stream of events. Provider SDKs, tool execution and retry
policy live behind this seam.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx


EVENT_TYPES = ("text-delta", "tool-call", "tool-result", "finish", "error")


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: Optional[int] = None


@dataclass
class StreamEvent:
    """One event from a generation stream."""
    type: str  # text-delta, tool-call, tool-result, finish, error
    text: str = ""
    tool_name: Optional[str] = None
    duration_ms: Optional[float] = None  # tool-result only
    usage: Optional[TokenUsage] = None  # finish only
    error: Optional[str] = None  # error only


@dataclass
class ModelRequest:
    """Everything a transport needs to run one generation."""
    model: str
    system: str
    messages: List[Dict[str, str]]
    temperature: float = 0.7
    max_output_tokens: int = 2000
    tools_enabled: bool = False
    cancel_event: Optional[asyncio.Event] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ModelTransport(ABC):
    """
    Base class for model transports.

    Implementations:
    - ChatCompletionsTransport: OpenAI-compatible streaming over httpx
    """

    @abstractmethod
    def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        """
        Run a generation and yield its events.

        Implementations should stop early when `request.cancel_event` is set.
        A `finish` event carrying TokenUsage ends a successful stream.
        """
        pass


class ChatCompletionsTransport(ModelTransport):
    """
    Streams from an OpenAI-compatible `/chat/completions` endpoint (SSE).

    Tool execution is not handled here; tool_calls deltas are surfaced as
    `tool-call` events.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize transport.

        Args:
            api_key: Provider API key
            base_url: API base URL including version prefix
            timeout: Request timeout in seconds
            client: Optional shared httpx.AsyncClient
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client

    async def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        payload = {
            "model": request.model,
            "messages": [{"role": "system", "content": request.system}] + list(request.messages),
            "temperature": request.temperature,
            "max_tokens": request.max_output_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        try:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                headers=headers,
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    yield StreamEvent(
                        type="error",
                        error=f"HTTP {response.status_code}: {body.decode(errors='replace')[:200]}",
                    )
                    return

                usage = None
                async for line in response.aiter_lines():
                    if request.cancel_event is not None and request.cancel_event.is_set():
                        return
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break

                    chunk = json.loads(data)
                    if chunk.get("usage"):
                        usage = TokenUsage(
                            input_tokens=chunk["usage"].get("prompt_tokens", 0),
                            output_tokens=chunk["usage"].get("completion_tokens", 0),
                        )
                    for choice in chunk.get("choices") or []:
                        delta = choice.get("delta") or {}
                        if delta.get("content"):
                            yield StreamEvent(type="text-delta", text=delta["content"])
                        for call in delta.get("tool_calls") or []:
                            name = (call.get("function") or {}).get("name")
                            if name:
                                yield StreamEvent(type="tool-call", tool_name=name)

                yield StreamEvent(type="finish", usage=usage or TokenUsage())
        finally:
            if self.client is None:
                await client.aclose()
