"""
Memory Store Engine: One Control Flow, Pluggable Tier Policy

Provides:
- MemoryStore: store / retrieve / get / update / delete / cleanup /
  stats / clear over an in-memory index, shared by both tiers
- TierPolicy: the strategy a tier plugs in (admission, scoring,
  expiry, retention ranking, index extensions, persistence)
- PreparedContent: collaborator output computed before the lock

Design:
    Each operation follows the same three phases:

    1. await collaborators (vector generation) with no lock held
    2. mutate the index synchronously under ``asyncio.Lock``, collecting
       events and pending persistence work
    3. release the lock, then write through to persistence and notify
       listeners (over a snapshot of the listener list)

    Listeners may therefore call back into the store. Records leave the
    store only as copies.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence
from uuid import uuid4

import numpy as np

from ctxmesh.core.errors import ValidationError
from ctxmesh.core.types import Clock, Metadata, utc_now, validate_metadata
from ctxmesh.memory.collaborators import PersistenceBackend, invoke_collaborator
from ctxmesh.memory.records import (
    CleanupCriteria,
    MemoryEvent,
    MemoryEventListener,
    MemoryEventType,
    MemoryRecord,
    MemoryStats,
    MemoryTier,
)
from ctxmesh.observability.logging import StructuredLogger
from ctxmesh.observability.metrics import MetricsCollector


# =============================================================================
# STRATEGY
# =============================================================================
@dataclass(frozen=True, slots=True)
class PreparedContent:
    """Collaborator output for one piece of text (content or query)."""
    vector: Optional[np.ndarray] = None


_NOTHING_PREPARED = PreparedContent()


class TierPolicy:
    """
    Tier-specific behaviour plugged into MemoryStore.

    Defaults describe a plain in-memory tier with no expiry, no
    capacity, no collaborators and no persistence. Methods without the
    ``async`` keyword run under the store lock and must not await.
    """

    tier: MemoryTier = MemoryTier.SHORT_TERM
    persistence: Optional[PersistenceBackend] = None
    collaborator_timeout_seconds: float = 2.0

    # Admission -------------------------------------------------------------
    def capacity(self) -> Optional[int]:
        return None

    def capacity_target(self) -> int:
        return 0

    def admit(self, content: str, metadata: Metadata, now: datetime) -> Optional[Metadata]:
        """Metadata to store with a new record, or None to reject it."""
        return metadata

    def revise(self, record: MemoryRecord, content: str, metadata: Metadata, now: datetime) -> Metadata:
        """Metadata to keep after an update."""
        return metadata

    def initial_relevance(self, metadata: Metadata) -> float:
        return 0.0

    # Lifecycle -------------------------------------------------------------
    def is_expired(self, record: MemoryRecord, now: datetime) -> bool:
        return False

    def default_criteria(self) -> CleanupCriteria:
        return CleanupCriteria()

    def cleanup_relevance(self, record: MemoryRecord) -> float:
        return record.relevance_score

    def retention_score(self, record: MemoryRecord, now: datetime) -> float:
        """Rank used when evicting down to a max item count (lowest goes first)."""
        return record.relevance_score

    # Collaborators ---------------------------------------------------------
    async def prepare(self, text: str) -> PreparedContent:
        return _NOTHING_PREPARED

    # Scoring ---------------------------------------------------------------
    def score_all(
        self,
        query: str,
        prepared: PreparedContent,
        records: Sequence[MemoryRecord],
        now: datetime,
    ) -> dict[str, float]:
        raise NotImplementedError

    # Index extensions ------------------------------------------------------
    def on_indexed(self, record: MemoryRecord, prepared: PreparedContent) -> None:
        pass

    def on_accessed(self, record: MemoryRecord, now: datetime) -> None:
        pass

    def on_removed(self, record_id: str) -> None:
        pass

    def on_cleared(self) -> None:
        pass


# =============================================================================
# ENGINE
# =============================================================================
class MemoryStore:
    """
    Generic memory tier.

    Features:
        - Lock-serialized index mutation, collaborator calls outside the lock
        - Capacity-triggered implicit cleanup before insert
        - OR-combined cleanup criteria plus max-items eviction
        - Lifecycle events dispatched after the lock is released
        - Write-through persistence ordered by a dedicated I/O lock

    Usage:
        store = ShortTermStore()
        record_id = await store.store("User prefers dark mode", {"type": "note"})
        hits = await store.retrieve("dark mode", max_results=3)
    """

    __slots__ = (
        "_policy", "_clock", "_records", "_listeners",
        "_lock", "_io_lock", "_logger",
        "_ops", "_items", "_latency",
    )

    def __init__(
        self,
        policy: TierPolicy,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._policy = policy
        self._clock = clock or utc_now
        self._records: dict[str, MemoryRecord] = {}
        self._listeners: list[MemoryEventListener] = []
        self._lock = asyncio.Lock()
        self._io_lock = asyncio.Lock()
        self._logger = StructuredLogger(f"ctxmesh.memory.{policy.tier.value}")

        collector = metrics or MetricsCollector.get_instance()
        self._ops = collector.counter(
            "ctxmesh_memory_operations_total",
            ["tier", "operation", "outcome"],
            "Memory store operations",
        )
        self._items = collector.gauge(
            "ctxmesh_memory_items", ["tier"], "Records held per tier",
        )
        self._latency = collector.histogram(
            "ctxmesh_memory_retrieve_seconds", ["tier"], "Retrieve latency",
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def tier(self) -> MemoryTier:
        return self._policy.tier

    @property
    def policy(self) -> TierPolicy:
        return self._policy

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------
    def add_listener(self, listener: MemoryEventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: MemoryEventListener) -> bool:
        try:
            self._listeners.remove(listener)
            return True
        except ValueError:
            return False

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------
    async def store(
        self,
        content: str,
        metadata: Optional[Metadata] = None,
        *,
        record_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Insert a new record.

        Returns:
            The record id, or None when the tier rejects the content
            (or ``record_id`` is already taken).
        """
        clean = self._validated(metadata)
        if record_id is not None and not record_id.strip():
            raise ValidationError.invalid_argument("record_id", record_id, "must not be blank")
        prepared = await self._policy.prepare(content)

        events: list[MemoryEvent] = []
        forgotten: list[str] = []
        async with self._lock:
            now = self._clock()
            admitted = self._policy.admit(content, clean, now)
            if admitted is None:
                self._ops.inc(tier=self.tier.value, operation="store", outcome="rejected")
                self._logger.debug("Record rejected", content_length=len(content))
                return None
            if record_id is not None and record_id in self._records:
                self._ops.inc(tier=self.tier.value, operation="store", outcome="duplicate")
                self._logger.warning("Record id already present", record_id=record_id)
                return None

            capacity = self._policy.capacity()
            if capacity is not None and len(self._records) >= capacity:
                evicted = self._cleanup_locked(
                    CleanupCriteria(max_items=self._policy.capacity_target()),
                    now, events, forgotten,
                )
                self._logger.info("Capacity sweep", evicted=evicted, capacity=capacity)

            new_id = record_id or uuid4().hex
            record = MemoryRecord(
                record_id=new_id,
                content=content,
                tier=self.tier,
                created_at=now,
                last_accessed=now,
                access_count=1,
                relevance_score=self._policy.initial_relevance(admitted),
                metadata=admitted,
            )
            self._records[new_id] = record
            self._policy.on_indexed(record, prepared)
            self._policy.on_accessed(record, now)
            events.append(self._event(MemoryEventType.STORED, record, now))
            self._items.set(len(self._records), tier=self.tier.value)

        self._ops.inc(tier=self.tier.value, operation="store", outcome="ok")
        self._logger.debug("Record stored", record_id=new_id, content_length=len(content))
        await self._forget(forgotten)
        await self._persist(new_id)
        await self._dispatch(events)
        return new_id

    async def retrieve(
        self,
        query: str,
        max_results: int = 5,
        threshold: float = 0.0,
    ) -> list[MemoryRecord]:
        """
        Score every live record against ``query``.

        Returns copies ordered by score (ties: most recently accessed
        first), each carrying its score in ``relevance_score``.
        """
        if max_results < 1:
            raise ValidationError.invalid_argument("max_results", max_results, "must be >= 1")
        prepared = await self._policy.prepare(query)

        events: list[MemoryEvent] = []
        forgotten: list[str] = []
        with self._latency.time(tier=self.tier.value):
            async with self._lock:
                now = self._clock()
                self._sweep_expired_locked(now, events, forgotten)
                live = list(self._records.values())
                scores = self._policy.score_all(query, prepared, live, now) if live else {}

                hits = [r for r in live if scores.get(r.record_id, 0.0) >= threshold]
                hits.sort(
                    key=lambda r: (scores[r.record_id], r.last_accessed),
                    reverse=True,
                )
                results: list[MemoryRecord] = []
                for record in hits[:max_results]:
                    record.relevance_score = scores[record.record_id]
                    record.touch(now)
                    self._policy.on_accessed(record, now)
                    results.append(record.copy())
                    events.append(self._event(MemoryEventType.RETRIEVED, record, now))
                self._items.set(len(self._records), tier=self.tier.value)

        self._ops.inc(tier=self.tier.value, operation="retrieve", outcome="ok")
        await self._forget(forgotten)
        await self._dispatch(events)
        return results

    async def get(self, record_id: str) -> Optional[MemoryRecord]:
        """
        Fetch one record and count the access.

        Expired records are removed lazily and reported missing. On a
        cache miss the persistence backend, if any, is consulted.
        """
        found = await self._get_cached(record_id)
        if found is not _MISS:
            return found

        loaded = await self._load(record_id)
        if loaded is None:
            self._ops.inc(tier=self.tier.value, operation="get", outcome="missing")
            return None
        prepared = await self._policy.prepare(loaded.content)
        async with self._lock:
            if record_id not in self._records:
                loaded.tier = self.tier
                self._records[record_id] = loaded
                self._policy.on_indexed(loaded, prepared)
                self._items.set(len(self._records), tier=self.tier.value)
                self._logger.debug("Record restored from persistence", record_id=record_id)
        found = await self._get_cached(record_id)
        return None if found is _MISS else found

    async def peek(self, record_id: str) -> Optional[MemoryRecord]:
        """Copy of a live record without touching access bookkeeping."""
        async with self._lock:
            record = self._records.get(record_id)
            if record is None or self._policy.is_expired(record, self._clock()):
                return None
            return record.copy()

    async def snapshot(self) -> list[MemoryRecord]:
        """Copies of every live record, without side effects."""
        async with self._lock:
            now = self._clock()
            return [
                r.copy() for r in self._records.values()
                if not self._policy.is_expired(r, now)
            ]

    async def update(
        self,
        record_id: str,
        content: str,
        metadata: Optional[Metadata] = None,
    ) -> bool:
        """
        Replace content (and metadata, when given) of a live record.

        Returns:
            False if the record is absent or expired.
        """
        clean = self._validated(metadata) if metadata is not None else None
        prepared = await self._policy.prepare(content)

        events: list[MemoryEvent] = []
        forgotten: list[str] = []
        async with self._lock:
            now = self._clock()
            record = self._records.get(record_id)
            if record is not None and self._policy.is_expired(record, now):
                self._remove_locked(record_id, MemoryEventType.EXPIRED, now, events, forgotten)
                record = None
            if record is None:
                self._ops.inc(tier=self.tier.value, operation="update", outcome="missing")
                updated = False
            else:
                new_metadata = clean if clean is not None else dict(record.metadata)
                record.metadata = self._policy.revise(record, content, new_metadata, now)
                record.content = content
                record.touch(now)
                self._policy.on_indexed(record, prepared)
                self._policy.on_accessed(record, now)
                events.append(self._event(MemoryEventType.UPDATED, record, now))
                updated = True

        if updated:
            self._ops.inc(tier=self.tier.value, operation="update", outcome="ok")
            self._logger.debug("Record updated", record_id=record_id)
            await self._persist(record_id)
        await self._forget(forgotten)
        await self._dispatch(events)
        return updated

    async def delete(self, record_id: str) -> bool:
        events: list[MemoryEvent] = []
        forgotten: list[str] = []
        async with self._lock:
            now = self._clock()
            removed = self._remove_locked(record_id, MemoryEventType.DELETED, now, events, forgotten)
        if not removed and self._policy.persistence is not None:
            # Not cached, but the durable copy may still exist
            removed = (await self._load(record_id)) is not None
            if removed:
                forgotten.append(record_id)
                events.append(MemoryEvent(
                    MemoryEventType.DELETED, record_id, self.tier, self._clock(),
                ))
        self._ops.inc(
            tier=self.tier.value, operation="delete", outcome="ok" if removed else "missing",
        )
        await self._forget(forgotten)
        await self._dispatch(events)
        return removed

    async def cleanup(self, criteria: Optional[CleanupCriteria] = None) -> int:
        """
        Remove every record matching ANY rule in ``criteria`` (tier default
        when omitted), then evict the lowest-ranked survivors down to
        ``max_items``. Returns the number of removed records.
        """
        criteria = criteria or self._policy.default_criteria()
        events: list[MemoryEvent] = []
        forgotten: list[str] = []
        async with self._lock:
            removed = self._cleanup_locked(criteria, self._clock(), events, forgotten)
        if removed:
            self._logger.info("Cleanup finished", removed=removed, remaining=len(self._records))
        await self._forget(forgotten)
        await self._dispatch(events)
        return removed

    async def get_stats(self) -> MemoryStats:
        async with self._lock:
            records = list(self._records.values())
            if not records:
                return MemoryStats()
            return MemoryStats(
                total_items=len(records),
                total_size=sum(r.size for r in records),
                oldest=min(r.created_at for r in records),
                newest=max(r.created_at for r in records),
                average_access_count=sum(r.access_count for r in records) / len(records),
            )

    async def clear(self) -> None:
        """Drop everything. No per-record events fire."""
        async with self._lock:
            count = len(self._records)
            self._records.clear()
            self._policy.on_cleared()
            self._items.set(0, tier=self.tier.value)
        backend = self._policy.persistence
        if backend is not None:
            async with self._io_lock:
                result = await invoke_collaborator(
                    "persistence.clear", backend.clear(), self._policy.collaborator_timeout_seconds,
                )
            if result.is_err():
                self._logger.warning("Persistence clear failed", **result.error.to_dict())
        self._logger.info("Store cleared", removed=count)

    # -------------------------------------------------------------------------
    # Locked helpers (caller holds self._lock)
    # -------------------------------------------------------------------------
    def _remove_locked(
        self,
        record_id: str,
        event_type: MemoryEventType,
        now: datetime,
        events: list[MemoryEvent],
        forgotten: list[str],
    ) -> bool:
        record = self._records.pop(record_id, None)
        if record is None:
            return False
        self._policy.on_removed(record_id)
        events.append(self._event(event_type, record, now))
        forgotten.append(record_id)
        self._items.set(len(self._records), tier=self.tier.value)
        return True

    def _sweep_expired_locked(
        self,
        now: datetime,
        events: list[MemoryEvent],
        forgotten: list[str],
    ) -> int:
        expired = [
            rid for rid, r in self._records.items() if self._policy.is_expired(r, now)
        ]
        for rid in expired:
            self._remove_locked(rid, MemoryEventType.EXPIRED, now, events, forgotten)
        return len(expired)

    def _cleanup_locked(
        self,
        criteria: CleanupCriteria,
        now: datetime,
        events: list[MemoryEvent],
        forgotten: list[str],
    ) -> int:
        removed = self._sweep_expired_locked(now, events, forgotten)

        doomed: list[str] = []
        for record in self._records.values():
            age = (now - record.created_at).total_seconds()
            if (
                (criteria.max_age_seconds is not None and age > criteria.max_age_seconds)
                or (criteria.min_access_count is not None
                    and record.access_count < criteria.min_access_count)
                or (criteria.relevance_threshold is not None
                    and self._policy.cleanup_relevance(record) < criteria.relevance_threshold)
            ):
                doomed.append(record.record_id)
        for rid in doomed:
            removed += self._remove_locked(rid, MemoryEventType.DELETED, now, events, forgotten)

        if criteria.max_items is not None and len(self._records) > criteria.max_items:
            ranked = sorted(
                self._records.values(),
                key=lambda r: (self._policy.retention_score(r, now), r.last_accessed),
            )
            excess = len(self._records) - max(0, criteria.max_items)
            for record in ranked[:excess]:
                removed += self._remove_locked(
                    record.record_id, MemoryEventType.DELETED, now, events, forgotten,
                )

        if removed:
            self._ops.inc(removed, tier=self.tier.value, operation="evict", outcome="ok")
        return removed

    # -------------------------------------------------------------------------
    # Unlocked helpers
    # -------------------------------------------------------------------------
    async def _get_cached(self, record_id: str) -> object:
        events: list[MemoryEvent] = []
        forgotten: list[str] = []
        async with self._lock:
            now = self._clock()
            record = self._records.get(record_id)
            if record is None:
                return _MISS
            if self._policy.is_expired(record, now):
                self._remove_locked(record_id, MemoryEventType.EXPIRED, now, events, forgotten)
                result = None
            else:
                record.touch(now)
                self._policy.on_accessed(record, now)
                events.append(self._event(MemoryEventType.ACCESSED, record, now))
                result = record.copy()
        self._ops.inc(
            tier=self.tier.value, operation="get", outcome="ok" if result is not None else "expired",
        )
        await self._forget(forgotten)
        await self._dispatch(events)
        return result

    async def _load(self, record_id: str) -> Optional[MemoryRecord]:
        backend = self._policy.persistence
        if backend is None:
            return None
        result = await invoke_collaborator(
            "persistence.get", backend.get(record_id), self._policy.collaborator_timeout_seconds,
        )
        if result.is_err():
            self._logger.warning("Persistence read failed", record_id=record_id, **result.error.to_dict())
            return None
        return result.unwrap()

    async def _persist(self, record_id: str) -> None:
        backend = self._policy.persistence
        if backend is None:
            return
        async with self._io_lock:
            async with self._lock:
                record = self._records.get(record_id)
                snapshot = record.copy() if record is not None else None
            if snapshot is None:
                return
            result = await invoke_collaborator(
                "persistence.put", backend.put(snapshot), self._policy.collaborator_timeout_seconds,
            )
        if result.is_err():
            self._logger.warning("Persistence write skipped", record_id=record_id, **result.error.to_dict())

    async def _forget(self, record_ids: list[str]) -> None:
        backend = self._policy.persistence
        if backend is None or not record_ids:
            return
        async with self._io_lock:
            for rid in record_ids:
                result = await invoke_collaborator(
                    "persistence.delete", backend.delete(rid), self._policy.collaborator_timeout_seconds,
                )
                if result.is_err():
                    self._logger.warning("Persistence delete failed", record_id=rid, **result.error.to_dict())

    async def _dispatch(self, events: list[MemoryEvent]) -> None:
        if not events:
            return
        listeners = tuple(self._listeners)
        for event in events:
            for listener in listeners:
                try:
                    await listener.on_memory_event(event)
                except Exception:
                    self._logger.exception(
                        "Memory event listener failed",
                        event_type=event.event_type.name,
                        record_id=event.record_id,
                    )

    def _event(self, event_type: MemoryEventType, record: MemoryRecord, now: datetime) -> MemoryEvent:
        return MemoryEvent(
            event_type=event_type,
            record_id=record.record_id,
            tier=self.tier,
            timestamp=now,
            record=record.copy(),
        )

    @staticmethod
    def _validated(metadata: Optional[Metadata]) -> Metadata:
        result = validate_metadata(metadata or {})
        if result.is_err():
            raise ValidationError.invalid_metadata(result.error)
        return result.unwrap()


_MISS = object()
