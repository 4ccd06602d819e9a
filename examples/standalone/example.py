#!/usr/bin/env python3
"""
Standalone example of termctx usage.

Runs offline with a canned transport. Run from this directory:
    python example.py
"""

import asyncio
from pathlib import Path
import sys

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from termctx import Config, ContextItem, RequestOrchestrator
from termctx.config import AiSettings, AutoRoutingConfig
from termctx.context import ContextRanker
from termctx.routing import classify_and_route, enhance_prompt_if_needed
from termctx.transport import ModelTransport, StreamEvent, TokenUsage


class CannedTransport(ModelTransport):
    """Streams a fixed answer word by word."""

    async def stream(self, request):
        answer = f"({request.model}) Looks like a permissions problem with the npm cache."
        for word in answer.split(" "):
            yield StreamEvent(type="text-delta", text=word + " ")
        yield StreamEvent(type="finish", usage=TokenUsage(input_tokens=len(request.system) // 4, output_tokens=12))


def main():
    settings = AiSettings(
        provider="openai",
        model="gpt-4.1",
        api_key="sk-example",
        mode="agent",
        auto_routing=AutoRoutingConfig(
            simple_model="gpt-4o-mini",
            moderate_model="gpt-4.1",
            complex_model="o3",
        ),
    )
    config = Config(ai=settings)

    items = [
        ContextItem(
            id="npm",
            type="command_output",
            content="npm ERR! code EACCES\nnpm ERR! permission denied, mkdir '/usr/lib/node_modules'",
            metadata={"command": "npm install -g typescript", "exitCode": 1},
        ),
        ContextItem(
            id="ls",
            type="command_output",
            content="README.md  package.json  src",
            metadata={"command": "ls", "exitCode": 0},
        ),
        ContextItem(
            id="pkg",
            type="file",
            content='{"name": "demo", "scripts": {"build": "tsc"}}',
            metadata={"path": "package.json"},
        ),
    ]

    print("=== termctx Example ===\n")

    prompt = "fix this"
    enhancement = enhance_prompt_if_needed(prompt, items, settings)
    print(f"Prompt:   {prompt!r}")
    print(f"Enhanced: {enhancement.enhanced!r}\n")

    decision = classify_and_route(enhancement.enhanced, items, settings)
    print(f"Tier: {decision.tier} (score {decision.complexity}) -> {decision.model}")
    print(f"Context budget: {decision.context_budget} tokens, temperature {decision.temperature}\n")

    print("Ranked context:")
    for rc in ContextRanker().rank(items, enhancement.enhanced, decision.context_budget):
        print(f"  [{rc.score:3d}] {rc.item.id}: {rc.reason}")

    print("\n--- Sending ---\n")
    orchestrator = RequestOrchestrator(config, CannedTransport())
    result = asyncio.run(orchestrator.send(prompt, [], items, on_text=lambda t: print(t, end="", flush=True)))

    print(f"\n\nStatus: {result.status}, context source: {result.context.source}")
    print(f"Used context: {', '.join(result.used_context_ids)}")
    print(f"Stream stats: {result.stream_stats}")

    print("\n✓ Example complete!")


if __name__ == "__main__":
    main()
