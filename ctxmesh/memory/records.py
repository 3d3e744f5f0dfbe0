"""
Memory Records: Data Model Shared by Both Tiers

Provides:
- MemoryRecord: one stored unit of content plus bookkeeping
- MemoryEvent / MemoryEventType: lifecycle notifications
- CleanupCriteria: removal rules for explicit sweeps
- MemoryStats: aggregate view of a store
- MemoryEventListener: observer protocol

Design:
    Records are owned by exactly one store. Stores hand out copies
    (``MemoryRecord.copy``) so callers can never mutate store state.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, auto
from typing import Optional, Protocol, runtime_checkable

from ctxmesh.core.types import Metadata


# =============================================================================
# TIERS
# =============================================================================
class MemoryTier(Enum):
    """Which store a record lives in."""
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


# Reserved metadata keys written by the stores and the manager
META_IMPORTANCE = "importance"
META_CONSOLIDATION_LEVEL = "consolidation_level"
META_LAST_MODIFIED = "last_modified"
META_AUTO_STORED = "auto_stored"
META_PROMOTED_FROM = "promoted_from"
META_PRIORITY = "priority"
META_TYPE = "type"
META_TAGS = "tags"
META_CONTEXT = "context"


# =============================================================================
# MEMORY RECORD
# =============================================================================
@dataclass(slots=True)
class MemoryRecord:
    """
    Stored unit of memory.

    ``relevance_score`` holds the score of the most recent retrieval that
    returned this record (long-term records start at their importance).
    """
    record_id: str
    content: str
    tier: MemoryTier
    created_at: datetime
    last_accessed: datetime
    access_count: int = 0
    relevance_score: float = 0.0
    metadata: Metadata = field(default_factory=dict)

    @property
    def size(self) -> int:
        """Content length in characters."""
        return len(self.content)

    def touch(self, now: datetime) -> None:
        """Record one access."""
        self.access_count += 1
        self.last_accessed = now

    def copy(self, relevance_score: Optional[float] = None) -> MemoryRecord:
        """Detached copy, optionally carrying a fresh score."""
        return replace(
            self,
            metadata=copy.deepcopy(self.metadata),
            relevance_score=self.relevance_score if relevance_score is None else relevance_score,
        )


# =============================================================================
# EVENTS
# =============================================================================
class MemoryEventType(Enum):
    """Lifecycle notifications emitted by the stores."""
    STORED = auto()
    RETRIEVED = auto()
    UPDATED = auto()
    DELETED = auto()
    ACCESSED = auto()
    EXPIRED = auto()


@dataclass(frozen=True, slots=True)
class MemoryEvent:
    """Notification about one record; carries a detached snapshot."""
    event_type: MemoryEventType
    record_id: str
    tier: MemoryTier
    timestamp: datetime
    record: Optional[MemoryRecord] = None


@runtime_checkable
class MemoryEventListener(Protocol):
    """Observer notified after a store operation has released its lock."""

    async def on_memory_event(self, event: MemoryEvent) -> None:
        ...


# =============================================================================
# CLEANUP AND STATS
# =============================================================================
@dataclass(frozen=True, slots=True)
class CleanupCriteria:
    """
    Removal rules for an explicit cleanup pass.

    A record is removed when ANY given rule matches it. ``max_items`` is
    applied afterwards: the lowest-ranked survivors are evicted until at
    most ``max_items`` remain.
    """
    max_age_seconds: Optional[float] = None
    min_access_count: Optional[int] = None
    relevance_threshold: Optional[float] = None
    max_items: Optional[int] = None


@dataclass(frozen=True, slots=True)
class MemoryStats:
    """Aggregate view of one store (or of both, for the manager)."""
    total_items: int = 0
    total_size: int = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None
    average_access_count: float = 0.0

    def merge(self, other: MemoryStats) -> MemoryStats:
        """Combine stats of two disjoint stores."""
        items = self.total_items + other.total_items
        accesses = (
            self.average_access_count * self.total_items
            + other.average_access_count * other.total_items
        )
        stamps_old = [s for s in (self.oldest, other.oldest) if s is not None]
        stamps_new = [s for s in (self.newest, other.newest) if s is not None]
        return MemoryStats(
            total_items=items,
            total_size=self.total_size + other.total_size,
            oldest=min(stamps_old) if stamps_old else None,
            newest=max(stamps_new) if stamps_new else None,
            average_access_count=accesses / items if items else 0.0,
        )
