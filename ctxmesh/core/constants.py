"""
System-Wide Constants for the Context Mesh

All tunable defaults centralized here. Config dataclasses in
``ctxmesh.core.config`` reference these values; nothing else should
hard-code them.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND: Final[float] = 1.0
MINUTE: Final[float] = 60 * SECOND
HOUR: Final[float] = 60 * MINUTE
DAY: Final[float] = 24 * HOUR

# =============================================================================
# SHORT-TERM TIER
# =============================================================================
STM_MAX_CAPACITY: Final[int] = 1000
STM_MAX_AGE_SECONDS: Final[float] = 1 * HOUR
STM_DECAY_RATE: Final[float] = 2.0
STM_CAPACITY_TARGET_RATIO: Final[float] = 0.8  # evict down to 80% when full
STM_LEXICAL_WEIGHT: Final[float] = 0.5
STM_TEMPORAL_WEIGHT: Final[float] = 0.3
STM_ACCESS_WEIGHT: Final[float] = 0.2

# =============================================================================
# LONG-TERM TIER
# =============================================================================
LTM_MIN_IMPORTANCE: Final[float] = 0.3
LTM_CONSOLIDATION_THRESHOLD: Final[int] = 5
LTM_MAX_CONSOLIDATION_LEVEL: Final[int] = 3
LTM_VECTOR_DIMENSION: Final[int] = 128
LTM_ASSOCIATION_TOP_K: Final[int] = 5
LTM_ASSOCIATION_FLOOR: Final[float] = 0.3
LTM_MAX_AGE_SECONDS: Final[float] = 1 * DAY
LTM_DECAY_RATE: Final[float] = 0.01
LTM_COLLABORATOR_TIMEOUT_SECONDS: Final[float] = 2.0

LTM_LEXICAL_WEIGHT: Final[float] = 0.25
LTM_SEMANTIC_WEIGHT: Final[float] = 0.30
LTM_ASSOCIATION_WEIGHT: Final[float] = 0.15
LTM_IMPORTANCE_WEIGHT: Final[float] = 0.10
LTM_TEMPORAL_WEIGHT: Final[float] = 0.10
LTM_ACCESS_WEIGHT: Final[float] = 0.10

# =============================================================================
# CONSOLIDATION AND ROUTING
# =============================================================================
CONSOLIDATION_IMPORTANCE_THRESHOLD: Final[float] = 0.5
CONSOLIDATION_ACCESS_THRESHOLD: Final[int] = 3
AUTO_CONSOLIDATION_IMPORTANCE_THRESHOLD: Final[float] = 0.8
AUTO_CONSOLIDATION_ACCESS_THRESHOLD: Final[int] = 5

LONG_TERM_ROUTING_THRESHOLD: Final[float] = 0.7
SHORT_TERM_RESULT_WEIGHT: Final[float] = 1.2
LONG_TERM_RESULT_WEIGHT: Final[float] = 1.0

# =============================================================================
# CONTEXT WINDOW
# =============================================================================
CONTEXT_TOKEN_BUDGET: Final[int] = 8192
CONTEXT_CHARS_PER_TOKEN: Final[int] = 4
CONTEXT_NEAR_CAPACITY_RATIO: Final[float] = 0.8

# =============================================================================
# NUMERICS
# =============================================================================
WEIGHT_SUM_TOLERANCE: Final[float] = 1e-6
