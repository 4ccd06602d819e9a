"""Shared fixtures for termctx tests."""

import asyncio
import sys
from pathlib import Path
from typing import List

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from termctx.config import AiSettings, AutoRoutingConfig, Config
from termctx.context.smart import RetrievedChunk, SemanticIndex
from termctx.history.summarizer import Summarizer
from termctx.transport import ModelTransport, StreamEvent, TokenUsage
from termctx.types import ChatMessage, ContextItem


NOW = 1_700_000_000.0


def minutes_ago(minutes: float) -> float:
    return NOW - minutes * 60


def make_item(item_id, type="output", content="", minutes=1, **metadata) -> ContextItem:
    return ContextItem(
        id=item_id,
        type=type,
        content=content,
        timestamp=minutes_ago(minutes),
        metadata=metadata,
    )


def make_conversation(count: int) -> List[ChatMessage]:
    messages = []
    for i in range(count):
        role = "user" if i % 2 == 0 else "assistant"
        messages.append(ChatMessage(
            id=f"m{i}",
            role=role,
            content=f"message number {i} about deployment configuration",
            timestamp=minutes_ago(count - i),
        ))
    return messages


class FakeTransport(ModelTransport):
    """Replays a fixed list of events and records requests."""

    def __init__(self, events=None, raise_error=None, on_event=None):
        self.events = events if events is not None else [
            StreamEvent(type="text-delta", text="Hello "),
            StreamEvent(type="text-delta", text="world"),
            StreamEvent(type="finish", usage=TokenUsage(input_tokens=120, output_tokens=2)),
        ]
        self.raise_error = raise_error
        self.on_event = on_event
        self.requests = []

    async def stream(self, request):
        self.requests.append(request)
        for event in self.events:
            if self.raise_error is not None and event.type == "finish":
                raise self.raise_error
            yield event
            if self.on_event:
                self.on_event(event)


class FakeSummarizer(Summarizer):
    def __init__(self, summary="Earlier: discussed deployment configuration.", error=None, delay=0.0):
        self.summary = summary
        self.error = error
        self.delay = delay
        self.calls = 0

    async def summarize(self, messages, settings):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.summary


class FakeSemanticIndex(SemanticIndex):
    def __init__(self, error=None):
        self.error = error
        self.queries = []

    async def query(self, model, chunks, query, top_k=8):
        self.queries.append((model, query, top_k))
        if self.error is not None:
            raise self.error
        return [
            RetrievedChunk(
                chunk_id=c.chunk_id,
                source_type=c.source_type,
                source_id=c.source_id,
                timestamp=c.timestamp,
                score=0.9,
                text=c.text,
                path=c.path,
            )
            for c in chunks[:top_k]
        ]


@pytest.fixture
def settings():
    return AiSettings(
        provider="openai",
        model="gpt-4.1",
        api_key="sk-test",
        mode="agent",
        auto_routing=AutoRoutingConfig(
            simple_model="gpt-4o-mini",
            moderate_model="gpt-4.1",
            complex_model="o3",
        ),
    )


@pytest.fixture
def config(settings):
    return Config(ai=settings)


@pytest.fixture
def error_item():
    return make_item(
        "err",
        type="command_output",
        content="npm ERR! code EACCES\nnpm ERR! permission denied error",
        minutes=1,
        command="npm install",
        exitCode=1,
    )


@pytest.fixture
def file_item():
    return make_item(
        "file",
        type="file",
        content="export function login() {}",
        minutes=120,
        path="src/auth.ts",
    )
