"""
Long-Term Memory: importance-gated tier, association graph and promotion.
"""

from ctxmesh.memory.ltm.associations import AssociationGraph
from ctxmesh.memory.ltm.long_term import LongTermPolicy, LongTermStore
from ctxmesh.memory.ltm.consolidation import ConsolidationEngine

__all__ = [
    "AssociationGraph",
    "LongTermPolicy",
    "LongTermStore",
    "ConsolidationEngine",
]
