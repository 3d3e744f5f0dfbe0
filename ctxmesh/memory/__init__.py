"""
Memory Module: Two-Tier Memory Engine

Provides:
- Short-Term Memory (STM): recency-weighted, capacity- and age-bounded
- Long-Term Memory (LTM): importance-gated, vector + association retrieval
- Consolidation: one-way promotion STM -> LTM
- MemoryManager: unified routing, retrieval and maintenance

Architecture:
    MemoryManager
      ├── ShortTermStore ──(RETRIEVED events)──> ConsolidationEngine
      └── LongTermStore  <──(promote)──────────── ConsolidationEngine

    Both stores run on the same MemoryStore engine with a tier policy.
"""

from ctxmesh.memory.records import (
    CleanupCriteria,
    MemoryEvent,
    MemoryEventListener,
    MemoryEventType,
    MemoryRecord,
    MemoryStats,
    MemoryTier,
)
from ctxmesh.memory.scoring import RelevanceScorer, ScoreBreakdown, ScoreSignals
from ctxmesh.memory.collaborators import (
    HashingVectorGenerator,
    InMemoryPersistence,
    PersistenceBackend,
    SemanticVectorGenerator,
)
from ctxmesh.memory.store import MemoryStore, TierPolicy
from ctxmesh.memory.stm import ShortTermStore
from ctxmesh.memory.ltm import AssociationGraph, ConsolidationEngine, LongTermStore
from ctxmesh.memory.manager import CleanupReport, ManagerStats, MemoryManager

__all__ = [
    "CleanupCriteria",
    "MemoryEvent",
    "MemoryEventListener",
    "MemoryEventType",
    "MemoryRecord",
    "MemoryStats",
    "MemoryTier",
    "RelevanceScorer",
    "ScoreBreakdown",
    "ScoreSignals",
    "HashingVectorGenerator",
    "InMemoryPersistence",
    "PersistenceBackend",
    "SemanticVectorGenerator",
    "MemoryStore",
    "TierPolicy",
    "ShortTermStore",
    "LongTermStore",
    "AssociationGraph",
    "ConsolidationEngine",
    "CleanupReport",
    "ManagerStats",
    "MemoryManager",
]
