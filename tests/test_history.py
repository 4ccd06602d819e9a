"""Tests for conversation windowing, summarization and memory."""

import asyncio
import json
import math
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from termctx.config import HistoryConfig
from termctx.history import (
    ChatCompletionsSummarizer,
    ConversationHistoryManager,
    ExtractiveSummarizer,
    build_conversation_memory,
    calculate_message_tokens,
    create_fallback_summary,
    create_summarizer,
)
from termctx.logger import EventLogger
from termctx.types import ChatMessage

from conftest import FakeSummarizer, make_conversation


def run(coro):
    return asyncio.run(coro)


class TestSlidingWindow:

    def test_short_conversation_verbatim(self, settings):
        messages = make_conversation(5)
        manager = ConversationHistoryManager(summarizer=FakeSummarizer())
        window = run(manager.prepare(messages, settings))

        assert window.recent_messages == messages
        assert window.summary_message is None
        assert window.total_original_count == 5
        assert window.tokens_saved == 0

    def test_long_conversation_summarized(self, settings):
        messages = make_conversation(20)
        summarizer = FakeSummarizer(summary="SUMMARY")
        manager = ConversationHistoryManager(summarizer=summarizer, clock=lambda: 1000.0)
        window = run(manager.prepare(messages, settings))

        assert [m.id for m in window.recent_messages] == [f"m{i}" for i in range(12, 20)]
        assert window.summary_message.role == "system"
        assert window.summary_message.content == "SUMMARY"
        assert window.summary_message.id == "summary-1000000"
        assert window.total_original_count == 20
        expected = calculate_message_tokens(messages) - (
            calculate_message_tokens(messages[12:]) + math.ceil(len("SUMMARY") / 4)
        )
        assert window.tokens_saved == expected
        assert window.messages[0] is window.summary_message

    def test_system_messages_dropped(self, settings):
        messages = make_conversation(4)
        messages.insert(1, ChatMessage(id="sys", role="system", content="note"))
        manager = ConversationHistoryManager(summarizer=FakeSummarizer())
        window = run(manager.prepare(messages, settings))
        assert "sys" not in [m.id for m in window.recent_messages]
        assert window.total_original_count == 4

    def test_too_few_older_messages_no_summary(self, settings):
        messages = make_conversation(10)
        summarizer = FakeSummarizer()
        manager = ConversationHistoryManager(summarizer=summarizer)
        window = run(manager.prepare(messages, settings))

        assert window.summary_message is None
        assert len(window.recent_messages) == 8
        assert summarizer.calls == 0
        assert window.tokens_saved == calculate_message_tokens(messages[:2])

    def test_no_settings_no_summary(self):
        messages = make_conversation(20)
        summarizer = FakeSummarizer()
        manager = ConversationHistoryManager(summarizer=summarizer)
        window = run(manager.prepare(messages, None))
        assert window.summary_message is None
        assert summarizer.calls == 0

    def test_window_size_configurable(self, settings):
        messages = make_conversation(10)
        manager = ConversationHistoryManager(
            HistoryConfig(window_size=4, min_messages_for_summary=6),
            summarizer=FakeSummarizer(),
        )
        window = run(manager.prepare(messages, settings))
        assert len(window.recent_messages) == 4
        assert window.summary_message is not None


class TestSummaryFallbackChain:

    def test_cached_summary_reused(self, settings):
        messages = make_conversation(20)
        summarizer = FakeSummarizer()
        manager = ConversationHistoryManager(summarizer=summarizer)

        run(manager.prepare(messages, settings))
        run(manager.prepare(messages, settings))
        assert summarizer.calls == 1

        manager.clear_summary_cache()
        run(manager.prepare(messages, settings))
        assert summarizer.calls == 2

    def test_cache_keyed_by_message_ids(self, settings):
        summarizer = FakeSummarizer()
        manager = ConversationHistoryManager(summarizer=summarizer)
        run(manager.prepare(make_conversation(20), settings))
        run(manager.prepare(make_conversation(22), settings))
        assert summarizer.calls == 2

    def test_failure_falls_back_to_extractive(self, settings, tmp_path):
        logger = EventLogger(str(tmp_path))
        manager = ConversationHistoryManager(
            summarizer=FakeSummarizer(error=RuntimeError("provider down")),
            logger=logger,
        )
        window = run(manager.prepare(make_conversation(20), settings))

        assert window.summary_message.content.startswith("[Previous conversation summary]")
        errors = logger.read_events("errors.jsonl")
        assert errors[0]["stage"] == "history_summary"
        assert errors[0]["fallback"] == "extractive"
        history = logger.read_events("history.jsonl")
        assert history[0]["summary_source"] == "extractive"

    def test_timeout_falls_back(self, settings):
        manager = ConversationHistoryManager(
            HistoryConfig(summary_timeout=0.01),
            summarizer=FakeSummarizer(delay=1.0),
        )
        window = run(manager.prepare(make_conversation(20), settings))
        assert window.summary_message.content.startswith("[Previous conversation summary]")

    def test_failed_summary_not_cached(self, settings):
        summarizer = FakeSummarizer(error=RuntimeError("down"))
        manager = ConversationHistoryManager(summarizer=summarizer)
        messages = make_conversation(20)
        run(manager.prepare(messages, settings))
        run(manager.prepare(messages, settings))
        assert summarizer.calls == 2


class TestFallbackSummary:

    def test_extracts_commands_files_topics(self):
        messages = [
            ChatMessage(id="1", role="user", content="Run `npm install` then check src/app.ts please"),
            ChatMessage(id="2", role="assistant", content="The dependency install failed; dependency versions conflict"),
        ]
        summary = create_fallback_summary(messages)
        lines = summary.split("\n")

        assert lines[0] == "[Previous conversation summary]"
        assert lines[1].startswith("Topics: dependency")
        assert "Commands discussed: npm install" in lines
        assert "Files mentioned: src/app.ts" in lines

    def test_header_only(self):
        assert create_fallback_summary([ChatMessage(id="1", role="user", content="hi")]) == (
            "[Previous conversation summary]"
        )

    def test_extractive_summarizer(self, settings):
        summary = run(ExtractiveSummarizer().summarize(make_conversation(3), settings))
        assert summary.startswith("[Previous conversation summary]")


class TestChatCompletionsSummarizer:

    def test_posts_to_chat_completions(self, settings):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "  Short summary.  "}}]})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                summarizer = ChatCompletionsSummarizer(client=client)
                return await summarizer.summarize(make_conversation(4), settings)

        assert run(scenario()) == "Short summary."
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["max_tokens"] == 300
        assert seen["body"]["temperature"] == 0.3
        assert "User: message number 0" in seen["body"]["messages"][0]["content"]

    def test_http_error_raises(self, settings):
        def handler(request):
            return httpx.Response(500, json={"error": "boom"})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                await ChatCompletionsSummarizer(client=client).summarize(make_conversation(2), settings)

        with pytest.raises(httpx.HTTPStatusError):
            run(scenario())

    def test_factory(self, settings):
        assert isinstance(create_summarizer(settings), ChatCompletionsSummarizer)
        assert isinstance(create_summarizer(None), ExtractiveSummarizer)


class TestConversationMemory:

    def test_turns_and_topics(self):
        messages = [
            ChatMessage(id="1", role="user", content="my git push fails"),
            ChatMessage(id="2", role="assistant", content="Try pulling first."),
            ChatMessage(id="3", role="user", content="docker container will not start"),
            ChatMessage(id="4", role="assistant", content="There is an error in your compose file."),
        ]
        memory = build_conversation_memory(messages)

        assert len(memory.turns) == 2
        assert memory.turns[0].was_successful is True
        assert memory.turns[1].was_successful is False
        assert memory.frequent_topics["git"] == 1
        assert memory.frequent_topics["docker"] == 1
        assert memory.skill_level == "intermediate"

    def test_beginner_detected(self):
        messages = []
        for i, query in enumerate(["what is grep?", "how do i list files", "explain step by step"]):
            messages.append(ChatMessage(id=f"u{i}", role="user", content=query))
            messages.append(ChatMessage(id=f"a{i}", role="assistant", content="ok"))
        assert build_conversation_memory(messages).skill_level == "beginner"

    def test_expert_detected(self):
        messages = []
        for i, query in enumerate(["optimize this awk pipeline", "benchmark sed vs perl", "grep performance"]):
            messages.append(ChatMessage(id=f"u{i}", role="user", content=query))
            messages.append(ChatMessage(id=f"a{i}", role="assistant", content="ok"))
        assert build_conversation_memory(messages).skill_level == "expert"
