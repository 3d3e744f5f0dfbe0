"""
Short-Term Memory: capacity- and age-bounded session tier.
"""

from ctxmesh.memory.stm.short_term import ShortTermPolicy, ShortTermStore

__all__ = ["ShortTermPolicy", "ShortTermStore"]
