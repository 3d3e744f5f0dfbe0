#!/usr/bin/env python3
"""
Context Mesh Demo

Main entry point demonstrating configuration, both memory tiers and
prompt assembly, entirely in-process.

Usage:
    python -m ctxmesh

    # Or with custom config
    CTXMESH_CONTEXT_TOKEN_BUDGET=256 CTXMESH_LOG_LEVEL=DEBUG python -m ctxmesh
"""

from __future__ import annotations

import asyncio
import sys

from ctxmesh.context.window import ContextBlock, ContextKind, ContextPriority, ContextWindow
from ctxmesh.core.config import CtxMeshConfig
from ctxmesh.memory.manager import MemoryManager
from ctxmesh.observability.logging import LogLevel, setup_logging
from ctxmesh.observability.metrics import MetricsCollector


async def demo_local_mode() -> None:
    """Store a few memories, retrieve them and assemble a prompt."""
    print("\n" + "=" * 60)
    print("Context Mesh - Local Demo")
    print("=" * 60 + "\n")

    config_result = CtxMeshConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)

    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        sys.exit(1)

    print("✓ Configuration loaded and validated")
    print(f"  Short-term capacity: {config.short_term.max_capacity}")
    print(f"  Long-term threshold: {config.manager.long_term_threshold}")
    print(f"  Token budget: {config.context_window.token_budget}")

    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )
    metrics = MetricsCollector.get_instance()

    manager = MemoryManager.from_config(config, metrics=metrics)
    window = ContextWindow(config.context_window, metrics=metrics)
    print("✓ Memory manager and context window initialized")

    print("\n--- Demo Operations ---\n")

    # 1. Store memories; routing decides the tier
    knowledge = (
        "Deployment policy:\n"
        "- deploys happen on tuesdays\n"
        "- rollbacks need two approvals\n"
        "- staging mirrors production config\n"
    ) * 4
    long_id = await manager.store(knowledge, {"priority": "high", "type": "knowledge"})
    short_id = await manager.store("user asked how to roll back a deploy", {"type": "note"})
    print(f"1. Stored knowledge -> {'long-term' if long_id in manager.long_term else 'short-term'}")
    print(f"   Stored note      -> {'short-term' if short_id in manager.short_term else 'long-term'}")

    # 2. Fused retrieval
    hits = await manager.retrieve("roll back deploy", max_results=4)
    print(f"2. Retrieved {len(hits)} memories:")
    for hit in hits:
        print(f"   [{hit.tier.value}] score={hit.relevance_score:.3f} {hit.content[:40]!r}")

    # 3. Prompt assembly
    await window.add_context(ContextBlock.create(
        ContextKind.SYSTEM_PROMPT, "You are a release assistant.", ContextPriority.HIGHEST,
    ))
    for hit in hits:
        await window.add_context(MemoryManager.to_context_block(hit))
    await window.add_context(ContextBlock.create(
        ContextKind.USER_INPUT, "How do I roll back today's deploy?", ContextPriority.HIGH,
    ))
    prompt = await window.assemble_context()
    status = await window.status()
    print(f"3. Assembled prompt: {len(prompt)} chars, "
          f"{status.used_tokens}/{status.token_budget} tokens in {status.block_count} blocks")

    # 4. Stats
    stats = await manager.get_stats()
    print("\n4. Memory Stats:")
    print(f"   Short-term items: {stats.short_term.total_items}")
    print(f"   Long-term items: {stats.long_term.total_items}")
    print(f"   Total size: {stats.total_size} chars")

    if config.observability.metrics_enabled:
        print("\n5. Metrics:\n")
        print(metrics.export_prometheus())

    await manager.clear()
    await window.clear()

    print("\n✓ Demo complete")
    print("=" * 60 + "\n")


async def main() -> None:
    """Main entry point."""
    try:
        await demo_local_mode()
    except KeyboardInterrupt:
        print("\nInterrupted")
    except Exception as e:
        print(f"Error: {e}")
        raise


def run() -> None:
    """Synchronous entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
