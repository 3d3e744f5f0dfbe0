"""
Consolidation Engine: Short-Term to Long-Term Promotion

Provides:
- promote(): one-way move of a short-term record into long-term memory
- consolidate_all(): sweep promoting every eligible short-term record
- Auto-consolidation: event listener promoting hot records on RETRIEVED

Design:
    Promotion is a long-term insert followed by a short-term delete.
    Promotions are serialized by the engine's own lock, so two callers
    can never promote the same record twice; readers of the stores may
    still observe the record in both tiers during the short window
    between the two calls. The record keeps its id across tiers.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ctxmesh.core.config import ConsolidationConfig, ensure_valid
from ctxmesh.core.types import meta_float
from ctxmesh.memory.records import (
    META_IMPORTANCE,
    META_PROMOTED_FROM,
    MemoryEvent,
    MemoryEventType,
    MemoryRecord,
    MemoryTier,
)
from ctxmesh.memory.ltm.long_term import LongTermStore
from ctxmesh.memory.stm.short_term import ShortTermStore
from ctxmesh.observability.logging import StructuredLogger
from ctxmesh.observability.metrics import MetricsCollector


class ConsolidationEngine:
    """
    Promotion policy between the two tiers.

    Usage:
        engine = ConsolidationEngine(short_term, long_term)
        engine.attach()                  # enable auto-consolidation
        promoted = await engine.consolidate_all()
    """

    __slots__ = ("_short_term", "_long_term", "_config", "_lock", "_logger", "_promotions", "_attached")

    def __init__(
        self,
        short_term: ShortTermStore,
        long_term: LongTermStore,
        config: Optional[ConsolidationConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._config = config or ConsolidationConfig()
        ensure_valid(self._config.validate())
        self._short_term = short_term
        self._long_term = long_term
        self._lock = asyncio.Lock()
        self._logger = StructuredLogger("ctxmesh.memory.consolidation")
        self._promotions = (metrics or MetricsCollector.get_instance()).counter(
            "ctxmesh_promotions_total", ["trigger", "outcome"], "Short-term to long-term promotions",
        )
        self._attached = False

    @property
    def config(self) -> ConsolidationConfig:
        return self._config

    def attach(self) -> None:
        """Register the auto-consolidation listener on the short-term store."""
        if not self._attached:
            self._short_term.add_listener(self)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._short_term.remove_listener(self)
            self._attached = False

    # -------------------------------------------------------------------------
    # Promotion
    # -------------------------------------------------------------------------
    async def promote(self, record_id: str, trigger: str = "manual") -> bool:
        """
        Move a short-term record into long-term memory.

        Returns:
            True if long-term accepted the record and the short-term copy
            is gone; False if the record is missing or was rejected.
        """
        async with self._lock:
            record = await self._short_term.peek(record_id)
            if record is None:
                self._promotions.inc(trigger=trigger, outcome="missing")
                return False

            metadata = dict(record.metadata)
            metadata[META_PROMOTED_FROM] = MemoryTier.SHORT_TERM.value
            stored = await self._long_term.store(record.content, metadata, record_id=record_id)
            if stored is None:
                self._promotions.inc(trigger=trigger, outcome="rejected")
                self._logger.debug("Promotion rejected by long-term tier", record_id=record_id)
                return False

            if not await self._short_term.delete(record_id):
                self._logger.info("Short-term copy vanished during promotion", record_id=record_id)

        self._promotions.inc(trigger=trigger, outcome="ok")
        self._logger.info("Record promoted", record_id=record_id, trigger=trigger)
        return True

    def is_candidate(self, record: MemoryRecord) -> bool:
        return (
            meta_float(record.metadata, META_IMPORTANCE) >= self._config.importance_threshold
            or record.access_count >= self._config.access_threshold
        )

    def is_auto_candidate(self, record: MemoryRecord) -> bool:
        return (
            meta_float(record.metadata, META_IMPORTANCE) >= self._config.auto_importance_threshold
            and record.access_count >= self._config.auto_access_threshold
        )

    async def consolidate_all(self) -> int:
        """Promote every eligible short-term record; returns the number promoted."""
        candidates = [r for r in await self._short_term.snapshot() if self.is_candidate(r)]
        promoted = 0
        for record in candidates:
            if await self.promote(record.record_id, trigger="sweep"):
                promoted += 1
        self._logger.info(
            "Consolidation sweep finished", candidates=len(candidates), promoted=promoted,
        )
        return promoted

    # -------------------------------------------------------------------------
    # Listener
    # -------------------------------------------------------------------------
    async def on_memory_event(self, event: MemoryEvent) -> None:
        if (
            not self._config.auto_consolidate
            or event.event_type is not MemoryEventType.RETRIEVED
            or event.tier is not MemoryTier.SHORT_TERM
            or event.record is None
        ):
            return
        if self.is_auto_candidate(event.record):
            await self.promote(event.record_id, trigger="auto")
