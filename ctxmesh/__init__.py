"""
Context Mesh: Budgeted Prompt Context backed by Two-Tier Memory

- Memory Engine: short-term and long-term stores with relevance scoring,
  promotion, cleanup and eviction
- Context Window: priority- and budget-constrained prompt assembly

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from ctxmesh.core.types import Result, Ok, Err
from ctxmesh.core.errors import (
    CtxMeshError,
    ConfigurationError,
    ValidationError,
    CollaboratorError,
)
from ctxmesh.core.config import CtxMeshConfig

from ctxmesh.memory import (
    CleanupCriteria,
    MemoryEvent,
    MemoryEventType,
    MemoryRecord,
    MemoryStats,
    MemoryTier,
    ShortTermStore,
    LongTermStore,
    ConsolidationEngine,
    MemoryManager,
)
from ctxmesh.context import (
    ContextBlock,
    ContextKind,
    ContextPriority,
    ContextWindow,
    ContextWindowStatus,
)

__all__ = [
    "__version__",
    "Result",
    "Ok",
    "Err",
    "CtxMeshError",
    "ConfigurationError",
    "ValidationError",
    "CollaboratorError",
    "CtxMeshConfig",
    "CleanupCriteria",
    "MemoryEvent",
    "MemoryEventType",
    "MemoryRecord",
    "MemoryStats",
    "MemoryTier",
    "ShortTermStore",
    "LongTermStore",
    "ConsolidationEngine",
    "MemoryManager",
    "ContextBlock",
    "ContextKind",
    "ContextPriority",
    "ContextWindow",
    "ContextWindowStatus",
]
