#!/usr/bin/env python3
"""Quick demo of the MindMesh message pipeline.

Runs with local backends only (lexicon emotion scoring, hash embeddings,
in-memory stores). Set OPENAI_API_KEY to let the model analyze and reply.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from mindmesh.services.pipeline import CancellationToken, PipelineConfig, build_pipeline


MESSAGES = [
    "I feel really sad and down today",
    "I'm so anxious about my exams, I can't sleep",
    "Can you help me start journaling?",
    "I want to end it all",
]


async def demo_blocking(orchestrator):
    """Process a few messages and print the outcome of each."""
    print("\n" + "="*60)
    print("MindMesh Pipeline - Blocking Mode")
    print("="*60 + "\n")

    for text in MESSAGES:
        state = await orchestrator.process_message("demo_user", text)
        signal = state.emotional_signal

        print(f"📝 {text}")
        print(f"   Dominant emotion: {signal.dominant_emotion} ({signal.source.value})")
        print(f"   Actions: {[a.value for a in state.recommendation.actions] or 'none'}")
        print(f"   Priority: {state.recommendation.priority.value}")
        print(f"   Alert issued: {state.alert_issued}")
        if state.degraded_stages:
            print(f"   Degraded: {[s.value for s in state.degraded_stages]}")
        print(f"💬 {state.reply_text}")
        print()


async def demo_streaming(orchestrator):
    """Stream stage events for one message."""
    print("\n" + "="*60)
    print("MindMesh Pipeline - Streaming Mode")
    print("="*60 + "\n")

    def sink(event):
        keys = ", ".join(event.delta) or "-"
        print(f"  → {event.stage.value:<18} {keys}")

    await orchestrator.stream_message(
        "demo_user",
        "Work has been stressing me out and I keep worrying",
        sink,
        cancel=CancellationToken(timeout_seconds=10),
    )
    print()


async def main():
    """Run all demos."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    os.environ.setdefault("PII_HASH_SALT", "demo_salt_only_for_local_runs_0123456789")
    os.environ.setdefault("THERAPIST_ALERTS_ENABLED", "false")

    orchestrator = await build_pipeline(PipelineConfig.from_env())
    try:
        await demo_blocking(orchestrator)
        await demo_streaming(orchestrator)
        print(f"Agent: {orchestrator.describe()['name']} v{orchestrator.describe()['version']}")
    finally:
        await orchestrator.aclose()

    print("\n" + "="*60)
    print("✅ Demo Complete!")
    print("="*60)


if __name__ == "__main__":
    asyncio.run(main())
