"""
Context Window: Token-Budgeted Prompt Assembly

Provides:
- ContextBlock: prioritized text block of a given kind
- Admission control against a fixed token budget
- Auto-eviction of the lowest-priority blocks to make room
- Assembly into one prompt string with per-kind headers

Design:
    Size is estimated from text length only (``len(text) // chars_per_token``).
    The sum of held block sizes never exceeds the budget after a call
    returns. Eviction candidates are taken lowest priority weight first,
    oldest first among equals. When even evicting every candidate cannot
    make room, nothing is evicted and the block is refused (set
    ``rollback_failed_eviction=False`` to keep the evictions instead).
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Union
from uuid import uuid4

from ctxmesh.core.config import ContextWindowConfig, ensure_valid
from ctxmesh.core.types import Clock, Metadata, utc_now
from ctxmesh.observability.logging import StructuredLogger
from ctxmesh.observability.metrics import MetricsCollector


# =============================================================================
# CONTEXT KIND AND PRIORITY
# =============================================================================
class ContextKind(Enum):
    """What a block holds; decides its header in the assembled prompt."""
    SYSTEM_PROMPT = "system_prompt"
    OUTPUT_FORMAT = "output_format"
    TOOL_SPEC = "tool_spec"
    EXTERNAL_KNOWLEDGE = "external_knowledge"
    SHORT_TERM_MEMORY = "short_term_memory"
    LONG_TERM_MEMORY = "long_term_memory"
    GLOBAL_STATE = "global_state"
    USER_INPUT = "user_input"

    @property
    def header(self) -> str:
        return _HEADERS[self]


_HEADERS = {
    ContextKind.SYSTEM_PROMPT: "# System Prompt",
    ContextKind.OUTPUT_FORMAT: "# Output Format",
    ContextKind.TOOL_SPEC: "# Available Tools",
    ContextKind.EXTERNAL_KNOWLEDGE: "# Knowledge Base",
    ContextKind.SHORT_TERM_MEMORY: "# Recent Context",
    ContextKind.LONG_TERM_MEMORY: "# Background Knowledge",
    ContextKind.GLOBAL_STATE: "# Current State",
    ContextKind.USER_INPUT: "# User Request",
}


class ContextPriority(IntEnum):
    """Named priority weights; any int weight is accepted."""
    HIGHEST = 100
    HIGH = 80
    MEDIUM = 60
    LOW = 40
    LOWEST = 20

    @classmethod
    def from_score(cls, score: float) -> ContextPriority:
        """Map a 0..1 relevance score onto a named priority."""
        if score >= 0.8:
            return cls.HIGHEST
        if score >= 0.6:
            return cls.HIGH
        if score >= 0.4:
            return cls.MEDIUM
        if score >= 0.2:
            return cls.LOW
        return cls.LOWEST


# =============================================================================
# CONTEXT BLOCK
# =============================================================================
@dataclass(frozen=True, slots=True)
class ContextBlock:
    """
    One block of prompt text.

    ``estimated_size``, ``inserted_at`` and ``sequence`` are stamped by the
    window on admission.
    """
    block_id: str
    kind: ContextKind
    text: str
    priority_weight: int = int(ContextPriority.MEDIUM)
    metadata: Metadata = field(default_factory=dict)
    estimated_size: int = 0
    inserted_at: Optional[datetime] = None
    sequence: int = 0

    @classmethod
    def create(
        cls,
        kind: ContextKind,
        text: str,
        priority: Union[ContextPriority, int] = ContextPriority.MEDIUM,
        block_id: Optional[str] = None,
        metadata: Optional[Metadata] = None,
    ) -> ContextBlock:
        return cls(
            block_id=block_id or f"{kind.value}-{uuid4().hex[:12]}",
            kind=kind,
            text=text,
            priority_weight=int(priority),
            metadata=dict(metadata or {}),
        )

    def render(self) -> str:
        return f"{self.kind.header}\n{self.text}"

    def copy(self) -> ContextBlock:
        """Detached copy; metadata is not shared with the window."""
        return replace(self, metadata=copy.deepcopy(self.metadata))


@dataclass(frozen=True, slots=True)
class ContextWindowStatus:
    """Point-in-time budget summary."""
    token_budget: int
    used_tokens: int
    block_count: int
    blocks_by_kind: dict[ContextKind, int]
    near_capacity_ratio: float

    @property
    def remaining_tokens(self) -> int:
        return self.token_budget - self.used_tokens

    @property
    def utilization_rate(self) -> float:
        return self.used_tokens / self.token_budget

    @property
    def is_near_capacity(self) -> bool:
        return self.utilization_rate > self.near_capacity_ratio


# =============================================================================
# CONTEXT WINDOW
# =============================================================================
class ContextWindow:
    """
    Budgeted set of context blocks.

    Features:
        - Admission control with lowest-priority-first eviction
        - Atomic admission (evictions roll back when the block still cannot fit)
        - Deterministic assembly: priority desc, then newest first

    Usage:
        window = ContextWindow(ContextWindowConfig(token_budget=4096))
        await window.add_context(ContextBlock.create(
            ContextKind.SYSTEM_PROMPT, "You are a careful reviewer.",
            ContextPriority.HIGHEST,
        ))
        prompt = await window.assemble_context()
    """

    __slots__ = (
        "_config", "_clock", "_blocks", "_used", "_sequence",
        "_lock", "_logger", "_outcomes", "_used_gauge",
    )

    def __init__(
        self,
        config: Optional[ContextWindowConfig] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._config = config or ContextWindowConfig()
        ensure_valid(self._config.validate())
        self._clock = clock or utc_now
        self._blocks: dict[str, ContextBlock] = {}
        self._used = 0
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()
        self._logger = StructuredLogger("ctxmesh.context.window")

        collector = metrics or MetricsCollector.get_instance()
        self._outcomes = collector.counter(
            "ctxmesh_context_blocks_total", ["outcome"], "Context block admissions and evictions",
        )
        self._used_gauge = collector.gauge(
            "ctxmesh_context_used_tokens", (), "Estimated tokens held by the context window",
        )

    # -------------------------------------------------------------------------
    # Budget
    # -------------------------------------------------------------------------
    @property
    def config(self) -> ContextWindowConfig:
        return self._config

    @property
    def token_budget(self) -> int:
        return self._config.token_budget

    @property
    def used_tokens(self) -> int:
        return self._used

    @property
    def remaining_tokens(self) -> int:
        return self._config.token_budget - self._used

    def estimate_size(self, text: str) -> int:
        return len(text) // self._config.chars_per_token

    def __len__(self) -> int:
        return len(self._blocks)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------
    async def add_context(self, block: ContextBlock) -> bool:
        """
        Admit a block, evicting lower-priority blocks if needed.

        A block whose id is already held replaces the earlier one.

        Returns:
            False if the block cannot fit even after evicting every
            other block.
        """
        size = self.estimate_size(block.text)
        async with self._lock:
            existing = self._blocks.get(block.block_id)
            used = self._used - (existing.estimated_size if existing else 0)
            shortfall = used + size - self._config.token_budget

            evicted: list[ContextBlock] = []
            if shortfall > 0:
                candidates = sorted(
                    (b for b in self._blocks.values() if b.block_id != block.block_id),
                    key=lambda b: (b.priority_weight, b.sequence),
                )
                freed = 0
                for candidate in candidates:
                    if freed >= shortfall:
                        break
                    evicted.append(candidate)
                    freed += candidate.estimated_size

                if freed < shortfall:
                    if not self._config.rollback_failed_eviction:
                        for victim in evicted:
                            self._remove_locked(victim.block_id, reason="failed_admission")
                    self._outcomes.inc(outcome="rejected")
                    self._logger.warning(
                        "Context block does not fit",
                        block_id=block.block_id,
                        kind=block.kind.value,
                        size=size,
                        budget=self._config.token_budget,
                        used=self._used,
                    )
                    return False

                for victim in evicted:
                    self._remove_locked(victim.block_id, reason="auto_evicted")

            if existing is not None:
                self._remove_locked(block.block_id, reason="replaced")

            stored = replace(
                block,
                estimated_size=size,
                inserted_at=self._clock(),
                sequence=next(self._sequence),
                metadata=copy.deepcopy(block.metadata),
            )
            self._blocks[stored.block_id] = stored
            self._used += size
            self._used_gauge.set(self._used)

        self._outcomes.inc(outcome="admitted")
        self._logger.debug(
            "Context block admitted",
            block_id=block.block_id,
            size=size,
            evicted=[b.block_id for b in evicted],
        )
        return True

    async def remove_context(self, block_id: str) -> bool:
        async with self._lock:
            return self._remove_locked(block_id, reason="removed")

    async def clear(self) -> None:
        async with self._lock:
            self._blocks.clear()
            self._used = 0
            self._used_gauge.set(0)

    def _remove_locked(self, block_id: str, reason: str) -> bool:
        block = self._blocks.pop(block_id, None)
        if block is None:
            return False
        self._used -= block.estimated_size
        self._used_gauge.set(self._used)
        if reason in ("auto_evicted", "failed_admission"):
            self._outcomes.inc(outcome="evicted")
            self._logger.debug(
                "Context block evicted",
                block_id=block_id,
                priority=block.priority_weight,
                reason=reason,
            )
        return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    def _ordered(self) -> list[ContextBlock]:
        return sorted(
            self._blocks.values(),
            key=lambda b: (b.priority_weight, b.sequence),
            reverse=True,
        )

    async def assemble_context(self) -> str:
        """
        Render held blocks, highest priority first (newest first among
        equals), stopping before the first block that would overflow the
        budget.
        """
        async with self._lock:
            parts: list[str] = []
            running = 0
            for block in self._ordered():
                if running + block.estimated_size > self._config.token_budget:
                    break
                running += block.estimated_size
                parts.append(block.render())
        return "\n\n".join(parts).strip()

    async def get_all_contexts(self) -> list[ContextBlock]:
        """All held blocks in assembly order."""
        async with self._lock:
            return [block.copy() for block in self._ordered()]

    async def get_context(self, block_id: str) -> Optional[ContextBlock]:
        async with self._lock:
            held = self._blocks.get(block_id)
            return held.copy() if held is not None else None

    async def status(self) -> ContextWindowStatus:
        async with self._lock:
            by_kind: dict[ContextKind, int] = {}
            for block in self._blocks.values():
                by_kind[block.kind] = by_kind.get(block.kind, 0) + 1
            return ContextWindowStatus(
                token_budget=self._config.token_budget,
                used_tokens=self._used,
                block_count=len(self._blocks),
                blocks_by_kind=by_kind,
                near_capacity_ratio=self._config.near_capacity_ratio,
            )
