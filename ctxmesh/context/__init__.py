"""
Context Module: token-budgeted prompt assembly.
"""

from ctxmesh.context.window import (
    ContextBlock,
    ContextKind,
    ContextPriority,
    ContextWindow,
    ContextWindowStatus,
)

__all__ = [
    "ContextBlock",
    "ContextKind",
    "ContextPriority",
    "ContextWindow",
    "ContextWindowStatus",
]
