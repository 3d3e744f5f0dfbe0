"""
Short-Term Store: Recency-Weighted Session Memory

Provides:
- Unconditional admission, bounded by capacity
- Idle expiry (age since last access beyond max age)
- Relevance = lexical / temporal / access blend
- Per-record access history

Design:
    When the store is full, an implicit cleanup evicts the records with
    the weakest recency/frequency rank until ~80% of capacity remains,
    then the new record is inserted. Expired records are invisible to
    reads and are removed lazily (``get``) or swept (``retrieve``,
    ``cleanup``), firing EXPIRED.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Optional, Sequence

from ctxmesh.core.config import ShortTermConfig, ensure_valid
from ctxmesh.core.types import Clock
from ctxmesh.memory.records import CleanupCriteria, MemoryRecord, MemoryTier
from ctxmesh.memory.scoring import RelevanceScorer, access_score
from ctxmesh.memory.store import MemoryStore, PreparedContent, TierPolicy
from ctxmesh.observability.metrics import MetricsCollector

ACCESS_HISTORY_LIMIT = 100


class ShortTermPolicy(TierPolicy):
    """Admission, scoring and expiry rules of the short-term tier."""

    tier = MemoryTier.SHORT_TERM

    def __init__(self, config: ShortTermConfig) -> None:
        self._config = config
        self._scorer = RelevanceScorer(config.weights, config.max_age_seconds, config.decay_rate)
        self._history: dict[str, deque[datetime]] = {}

    @property
    def config(self) -> ShortTermConfig:
        return self._config

    @property
    def scorer(self) -> RelevanceScorer:
        return self._scorer

    def capacity(self) -> Optional[int]:
        return self._config.max_capacity

    def capacity_target(self) -> int:
        return self._config.capacity_target

    def is_expired(self, record: MemoryRecord, now: datetime) -> bool:
        idle = (now - record.last_accessed).total_seconds()
        return idle > self._config.max_age_seconds

    def default_criteria(self) -> CleanupCriteria:
        return CleanupCriteria(max_age_seconds=self._config.max_age_seconds)

    def retention_score(self, record: MemoryRecord, now: datetime) -> float:
        w = self._config.weights
        return w.temporal * self._scorer.temporal(record, now) + w.access * access_score(record.access_count)

    def score_all(
        self,
        query: str,
        prepared: PreparedContent,
        records: Sequence[MemoryRecord],
        now: datetime,
    ) -> dict[str, float]:
        return {r.record_id: self._scorer.score(query, r, now) for r in records}

    def on_accessed(self, record: MemoryRecord, now: datetime) -> None:
        history = self._history.get(record.record_id)
        if history is None:
            history = self._history[record.record_id] = deque(maxlen=ACCESS_HISTORY_LIMIT)
        history.append(now)

    def on_removed(self, record_id: str) -> None:
        self._history.pop(record_id, None)

    def on_cleared(self) -> None:
        self._history.clear()

    def access_history(self, record_id: str) -> list[datetime]:
        return list(self._history.get(record_id, ()))


class ShortTermStore(MemoryStore):
    """
    Session memory tier.

    Usage:
        stm = ShortTermStore(ShortTermConfig(max_capacity=200))
        rid = await stm.store("user asked about pagination", {"tags": ["api"]})
        await stm.retrieve("pagination")
    """

    __slots__ = ()

    def __init__(
        self,
        config: Optional[ShortTermConfig] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        config = config or ShortTermConfig()
        ensure_valid(config.validate())
        super().__init__(ShortTermPolicy(config), clock=clock, metrics=metrics)

    @property
    def config(self) -> ShortTermConfig:
        return self._policy.config

    async def access_history(self, record_id: str) -> list[datetime]:
        """Timestamps of the most recent accesses, oldest first."""
        async with self._lock:
            return self._policy.access_history(record_id)

