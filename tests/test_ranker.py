"""Tests for context ranking and token budgeting."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from termctx.config import RankerConfig
from termctx.context.budget import TokenBudget, estimate_tokens, filter_by_token_budget
from termctx.context.ranker import (
    ContextRanker,
    create_fingerprint,
    deduplicate_context,
    explain_relevance,
    extract_key_terms,
)
from termctx.types import ChatMessage, RankedContext, ScoreBreakdown, ScoringContext

from conftest import NOW, make_item, minutes_ago


@pytest.fixture
def ranker():
    return ContextRanker(clock=lambda: NOW)


class TestKeyTerms:

    def test_stop_words_and_short_words_removed(self):
        assert extract_key_terms("why did the npm install fail") == ["did", "npm", "install", "fail"]

    def test_limit(self):
        query = " ".join(f"word{i}" for i in range(20))
        assert len(extract_key_terms(query)) == 10

    def test_empty(self):
        assert extract_key_terms("") == []


class TestTokenBudget:

    def _ranked(self, *sizes):
        return [
            RankedContext(item=make_item(f"i{n}", content="x" * size), score=50)
            for n, size in enumerate(sizes)
        ]

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_allocate_stops_at_budget(self):
        ranked = self._ranked(400, 400, 400)  # 100 tokens each
        selected = TokenBudget(250).allocate(ranked)
        assert [r.item.id for r in selected] == ["i0", "i1"]

    def test_oversized_first_item_admitted(self):
        ranked = self._ranked(40000, 4)
        selected = TokenBudget(100).allocate(ranked)
        assert [r.item.id for r in selected] == ["i0"]

    def test_zero_budget_returns_nothing(self):
        assert filter_by_token_budget(self._ranked(4), 0) == []
        assert filter_by_token_budget(self._ranked(4), -5) == []

    def test_empty_input(self):
        assert TokenBudget(100).allocate([]) == []


class TestContextRanker:

    def test_error_output_ranked_first(self, ranker, error_item, file_item):
        old_output = make_item("old", content="total 0", minutes=300, command="ls")
        ranked = ranker.rank([file_item, old_output, error_item], "why did npm install fail")

        assert ranked[0].item.id == "err"
        assert ranked[0].score >= 70
        assert "Highly relevant" in ranked[0].reason

    def test_scores_clamped_and_sorted(self, ranker, error_item, file_item):
        noisy = make_item("big", content="y" * 20000, minutes=600)
        ranked = ranker.rank([noisy, file_item, error_item], "fix the error in npm", token_budget=100000)

        scores = [r.score for r in ranked]
        assert scores == sorted(scores, reverse=True)
        assert all(0 <= s <= 100 for s in scores)
        assert all(r.score == r.breakdown.total for r in ranked)

    def test_stale_item_penalized(self, ranker):
        fresh = make_item("fresh", content="hello", minutes=1)
        stale = make_item("stale", content="hello", minutes=500)
        b_fresh = ranker.score_all([fresh], "")[0].breakdown
        b_stale = ranker.score_all([stale], "")[0].breakdown

        assert b_fresh.recency == 25 and b_fresh.time_decay == 0
        assert b_stale.recency == 0 and b_stale.time_decay == -25

    def test_recent_usage_penalty(self, ranker):
        item = make_item("used", content="hello", minutes=1)
        item.last_used_timestamp = minutes_ago(1)
        item.usage_count = 4

        breakdown = ranker.score_all([item], "")[0].breakdown
        assert breakdown.usage_penalty == -40

    def test_malformed_timestamp_treated_as_stale(self, ranker):
        item = make_item("bad", content="hello")
        item.timestamp = "not-a-time"
        breakdown = ranker.score_all([item], "hello")[0].breakdown
        assert breakdown.time_decay == -25

    def test_always_include_boost(self, ranker):
        pinned = make_item("pin", content="notes", minutes=1, includeMode="always")
        breakdown = ranker.score_all([pinned], "")[0].breakdown
        assert breakdown.conversation_relevance == 50

    def test_stable_order_for_equal_scores(self, ranker):
        items = [make_item(f"i{n}", content="same", minutes=1) for n in range(5)]
        ranked = ranker.rank(items, "")
        assert [r.item.id for r in ranked] == ["i0", "i1", "i2", "i3", "i4"]

    def test_budget_applied(self, ranker):
        items = [make_item(f"i{n}", content="z" * 4000, minutes=1) for n in range(5)]
        ranked = ranker.rank(items, "", token_budget=2500)
        assert len(ranked) == 2


class TestConversationMemory:

    @pytest.fixture
    def history(self):
        return [
            ChatMessage(id="u1", role="user", content="run the tests"),
            ChatMessage(id="a1", role="assistant", content="ran them"),
        ]

    def _used_item(self):
        item = make_item(
            "tests",
            content="FAILED tests/test_api.py::test_login",
            minutes=1,
            command="pytest tests",
        )
        item.last_used_in_message_id = "a1"
        return item

    def test_full_penalty_when_just_sent(self, ranker, history):
        ctx = ScoringContext(recent_messages=history, mode="agent")
        breakdown = ranker.score_all([self._used_item()], "hello there", ctx)[0].breakdown
        assert breakdown.conversation_memory == -50

    def test_penalty_halved_when_query_matches(self, ranker, history):
        ctx = ScoringContext(recent_messages=history, mode="agent")
        breakdown = ranker.score_all([self._used_item()], "pytest tests failing", ctx)[0].breakdown
        assert breakdown.query_match > 30
        assert breakdown.conversation_memory == -25

    def test_override_threshold_configurable(self, history):
        ranker = ContextRanker(RankerConfig(memory_override_threshold=1000), clock=lambda: NOW)
        ctx = ScoringContext(recent_messages=history, mode="agent")
        breakdown = ranker.score_all([self._used_item()], "pytest tests failing", ctx)[0].breakdown
        assert breakdown.conversation_memory == -50

    def test_chat_mode_softens_penalty(self, ranker, history):
        ctx = ScoringContext(recent_messages=history, mode="chat")
        breakdown = ranker.score_all([self._used_item()], "hello there", ctx)[0].breakdown
        assert breakdown.conversation_memory == -40
        assert breakdown.mode_bonus == 5

    def test_older_usage_smaller_penalty(self, ranker, history):
        history = history + [
            ChatMessage(id=f"x{i}", role="user" if i % 2 == 0 else "assistant", content="more")
            for i in range(4)
        ]
        ctx = ScoringContext(recent_messages=history, mode="agent")
        breakdown = ranker.score_all([self._used_item()], "hello there", ctx)[0].breakdown
        assert breakdown.conversation_memory == -25

    def test_unknown_message_no_penalty(self, ranker):
        ctx = ScoringContext(recent_messages=[ChatMessage(id="z", role="user", content="hi")])
        breakdown = ranker.score_all([self._used_item()], "hello", ctx)[0].breakdown
        assert breakdown.conversation_memory == 0


class TestDeduplication:

    def test_same_command_deduplicated(self):
        a = make_item("a", content="one", command="ls -la")
        b = make_item("b", content="two", command="ls -la")
        c = make_item("c", type="file", content="x", path="a.py")
        result = deduplicate_context([a, b, c])
        assert [i.id for i in result] == ["a", "c"]

    def test_idempotent(self):
        items = [
            make_item("a", content="same text"),
            make_item("b", content="same text"),
            make_item("c", type="file", content="x", path="a.py"),
            make_item("d", type="file", content="y", path="a.py"),
        ]
        once = deduplicate_context(items)
        assert deduplicate_context(once) == once

    def test_fingerprint_kinds(self):
        assert create_fingerprint(make_item("a", content="x", command="git status")) == "cmd:git status"
        assert create_fingerprint(make_item("b", type="file", content="x", path="p.py")) == "file:p.py"
        assert create_fingerprint(make_item("c", content="  hi  ")) == "output:hi"


def test_explain_relevance():
    b = ScoreBreakdown(recency=25, query_match=30)
    assert explain_relevance(75, b) == "Highly relevant (recent, matches query)"
    assert explain_relevance(10) == "Low relevance"
