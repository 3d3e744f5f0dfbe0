"""
Importance Heuristics

Two content-only estimates in [0, 1]:

- ``routing_importance``: used by the memory manager to decide whether a
  new record goes straight to long-term memory.
- ``retention_importance``: used by the long-term store to admit records
  and to rank them for retention.

Both read ``priority`` (high/medium/low) and, for routing, ``type`` from
metadata.
"""

from __future__ import annotations

from typing import Any, Mapping

from ctxmesh.core.types import meta_str
from ctxmesh.memory.records import META_PRIORITY, META_TYPE

_ROUTING_PRIORITY_BONUS = {"high": 0.4, "medium": 0.2, "low": 0.1}
_RETENTION_PRIORITY_BONUS = {"high": 0.3, "medium": 0.2, "low": 0.1}

_TYPE_BONUS = {
    "knowledge": 0.3,
    "definition": 0.3,
    "concept": 0.3,
    "example": 0.2,
    "code": 0.2,
    "note": 0.1,
    "comment": 0.1,
}

_CODE_CHARACTERS = frozenset('{}[]()"\'`')


def _priority(metadata: Mapping[str, Any]) -> str:
    return (meta_str(metadata, META_PRIORITY) or "").lower()


def _structured_line_ratio(content: str) -> float:
    lines = content.splitlines()
    if not lines:
        return 0.0
    structured = 0
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(("-", "*", "1.")) or ":" in stripped:
            structured += 1
    return structured / len(lines)


def _indented_line_ratio(content: str) -> float:
    lines = content.splitlines()
    if not lines:
        return 0.0
    indented = sum(1 for line in lines if line.startswith((" ", "\t")))
    return indented / len(lines)


def routing_importance(content: str, metadata: Mapping[str, Any]) -> float:
    """Length, priority, type and list/definition structure."""
    score = min(1.0, len(content) / 500) * 0.2
    score += _ROUTING_PRIORITY_BONUS.get(_priority(metadata), 0.0)
    kind = (meta_str(metadata, META_TYPE) or "").lower()
    score += _TYPE_BONUS.get(kind, 0.0)
    score += _structured_line_ratio(content) * 0.1
    return max(0.0, min(1.0, score))


def retention_importance(content: str, metadata: Mapping[str, Any]) -> float:
    """Length, priority, code-character density and indentation."""
    if not content:
        return 0.0
    score = min(1.0, len(content) / 1000) * 0.2
    score += _RETENTION_PRIORITY_BONUS.get(_priority(metadata), 0.0)
    density = sum(1 for ch in content if ch in _CODE_CHARACTERS) / len(content)
    score += min(1.0, density) * 0.3
    score += _indented_line_ratio(content) * 0.2
    return max(0.0, min(1.0, score))
