"""
Memory Manager: Unified Interface over Both Tiers

Provides:
- Importance-based write routing (short-term vs. long-term)
- Fan-out retrieval with per-tier re-weighting and de-duplication
- Promotion, consolidation sweeps and auto-consolidation wiring
- Combined cleanup, stats and reset
- Conversion of records into context-window blocks

Design:
    The manager owns both stores and the consolidation engine. It holds
    no records itself; every read and write is delegated, so each store's
    own lock remains the unit of consistency.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from ctxmesh.context.window import ContextBlock, ContextKind, ContextPriority
from ctxmesh.core.config import CtxMeshConfig, MemoryManagerConfig, ensure_valid
from ctxmesh.core.types import Clock, Metadata
from ctxmesh.memory.importance import routing_importance
from ctxmesh.memory.ltm.consolidation import ConsolidationEngine
from ctxmesh.memory.ltm.long_term import LongTermStore
from ctxmesh.memory.records import (
    META_AUTO_STORED,
    META_IMPORTANCE,
    MemoryRecord,
    MemoryStats,
    MemoryTier,
)
from ctxmesh.memory.stm.short_term import ShortTermStore
from ctxmesh.observability.logging import StructuredLogger
from ctxmesh.observability.metrics import MetricsCollector


@dataclass(frozen=True, slots=True)
class CleanupReport:
    """Records removed by a combined cleanup."""
    short_term_cleaned: int
    long_term_cleaned: int

    @property
    def total_cleaned(self) -> int:
        return self.short_term_cleaned + self.long_term_cleaned


@dataclass(frozen=True, slots=True)
class ManagerStats:
    """Per-tier and combined statistics."""
    short_term: MemoryStats
    long_term: MemoryStats

    @property
    def combined(self) -> MemoryStats:
        return self.short_term.merge(self.long_term)

    @property
    def total_items(self) -> int:
        return self.short_term.total_items + self.long_term.total_items

    @property
    def total_size(self) -> int:
        return self.short_term.total_size + self.long_term.total_size


class MemoryManager:
    """
    Two-tier memory facade.

    Features:
        - Writes routed by content importance
        - Reads fused from both tiers
        - Auto-consolidation of frequently retrieved important records

    Usage:
        manager = MemoryManager()
        rid = await manager.store("Deploys happen on Tuesdays", {"type": "knowledge"})
        hits = await manager.retrieve("when do deploys happen", max_results=4)
        await manager.consolidate_all()
    """

    __slots__ = ("_config", "_short_term", "_long_term", "_consolidation", "_logger", "_routes")

    def __init__(
        self,
        config: Optional[MemoryManagerConfig] = None,
        short_term: Optional[ShortTermStore] = None,
        long_term: Optional[LongTermStore] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._config = config or MemoryManagerConfig()
        ensure_valid(self._config.validate())
        if short_term is None:
            short_term = ShortTermStore(clock=clock, metrics=metrics)
        if long_term is None:
            long_term = LongTermStore(clock=clock, metrics=metrics)
        self._short_term = short_term
        self._long_term = long_term
        self._consolidation = ConsolidationEngine(
            self._short_term, self._long_term, self._config.consolidation, metrics=metrics,
        )
        self._consolidation.attach()
        self._logger = StructuredLogger("ctxmesh.memory.manager")
        self._routes = (metrics or MetricsCollector.get_instance()).counter(
            "ctxmesh_manager_routes_total", ["tier"], "Writes routed per tier",
        )

    @classmethod
    def from_config(
        cls,
        config: CtxMeshConfig,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> MemoryManager:
        return cls(
            config.manager,
            short_term=ShortTermStore(config.short_term, clock=clock, metrics=metrics),
            long_term=LongTermStore(config.long_term, clock=clock, metrics=metrics),
            metrics=metrics,
        )

    @property
    def short_term(self) -> ShortTermStore:
        return self._short_term

    @property
    def long_term(self) -> LongTermStore:
        return self._long_term

    @property
    def consolidation(self) -> ConsolidationEngine:
        return self._consolidation

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    async def store(self, content: str, metadata: Optional[Metadata] = None) -> Optional[str]:
        """
        Route a new record by importance.

        Records at or above ``long_term_threshold`` go to long-term memory;
        if the long-term tier still refuses them they fall back to
        short-term, so a write is never silently lost.
        """
        metadata = dict(metadata or {})
        importance = routing_importance(content, metadata)

        if importance >= self._config.long_term_threshold:
            record_id = await self._long_term.store(content, {**metadata, META_AUTO_STORED: True})
            if record_id is not None:
                self._routes.inc(tier=MemoryTier.LONG_TERM.value)
                self._logger.debug("Routed to long-term", record_id=record_id, importance=importance)
                return record_id
            self._logger.info("Long-term refused high-importance write, keeping it short-term",
                              importance=importance)

        record_id = await self._short_term.store(content, {**metadata, META_IMPORTANCE: importance})
        self._routes.inc(tier=MemoryTier.SHORT_TERM.value)
        return record_id

    async def update(self, record_id: str, content: str, metadata: Optional[Metadata] = None) -> bool:
        if await self._short_term.update(record_id, content, metadata):
            return True
        return await self._long_term.update(record_id, content, metadata)

    async def delete(self, record_id: str) -> bool:
        short_deleted = await self._short_term.delete(record_id)
        long_deleted = await self._long_term.delete(record_id)
        return short_deleted or long_deleted

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def get(self, record_id: str) -> Optional[MemoryRecord]:
        record = await self._short_term.get(record_id)
        if record is not None:
            return record
        return await self._long_term.get(record_id)

    async def retrieve(
        self,
        query: str,
        max_results: int = 10,
        threshold: float = 0.0,
    ) -> list[MemoryRecord]:
        """
        Query both tiers (half the budget each), re-weight scores per tier,
        drop duplicate ids and return the best ``max_results``.
        """
        per_tier = max(1, max_results // 2)
        short_hits, long_hits = await asyncio.gather(
            self._short_term.retrieve(query, per_tier, threshold),
            self._long_term.retrieve(query, per_tier, threshold),
        )

        best: dict[str, tuple[float, MemoryRecord]] = {}
        for record in [*short_hits, *long_hits]:
            weight = (
                self._config.short_term_weight
                if record.tier is MemoryTier.SHORT_TERM
                else self._config.long_term_weight
            )
            weighted = record.relevance_score * weight
            current = best.get(record.record_id)
            if current is None or weighted > current[0]:
                best[record.record_id] = (weighted, record)

        ranked = sorted(
            best.values(),
            key=lambda item: (item[0], item[1].last_accessed),
            reverse=True,
        )[:max_results]
        results: list[MemoryRecord] = []
        for weighted, record in ranked:
            record.relevance_score = min(1.0, weighted)
            results.append(record)
        return results

    # -------------------------------------------------------------------------
    # Consolidation
    # -------------------------------------------------------------------------
    async def promote_to_long_term(self, record_id: str) -> bool:
        return await self._consolidation.promote(record_id)

    async def consolidate_all(self) -> int:
        return await self._consolidation.consolidate_all()

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------
    async def cleanup(self) -> CleanupReport:
        """Run each tier's default cleanup."""
        report = CleanupReport(
            short_term_cleaned=await self._short_term.cleanup(),
            long_term_cleaned=await self._long_term.cleanup(),
        )
        self._logger.info(
            "Memory cleanup finished",
            short_term=report.short_term_cleaned,
            long_term=report.long_term_cleaned,
        )
        return report

    async def get_stats(self) -> ManagerStats:
        return ManagerStats(
            short_term=await self._short_term.get_stats(),
            long_term=await self._long_term.get_stats(),
        )

    async def clear(self) -> None:
        await self._short_term.clear()
        await self._long_term.clear()

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------
    @staticmethod
    def to_context_block(record: MemoryRecord) -> ContextBlock:
        """Wrap a retrieved record as a context block prioritized by its score."""
        kind = (
            ContextKind.SHORT_TERM_MEMORY
            if record.tier is MemoryTier.SHORT_TERM
            else ContextKind.LONG_TERM_MEMORY
        )
        return ContextBlock.create(
            kind,
            record.content,
            ContextPriority.from_score(record.relevance_score),
            block_id=f"memory-{record.record_id}",
            metadata={"record_id": record.record_id, "tier": record.tier.value},
        )
