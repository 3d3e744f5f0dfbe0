"""
Association Graph: Undirected Similarity Links Between Long-Term Records

Provides:
- Symmetric link/unlink with weights (cosine similarity at link time)
- Node removal that drops every incident edge
- Neighbourhood queries and an invariant check

Design:
    Adjacency is a dict of dicts. Every mutation writes both directions
    in the same call, so ``weight(a, b) == weight(b, a)`` always holds.
    The graph is owned by one LongTermStore and mutated only under that
    store's lock, so it carries no lock of its own.
"""

from __future__ import annotations

from typing import Iterator, Optional


class AssociationGraph:
    """
    Undirected weighted graph keyed by record id.

    Usage:
        graph = AssociationGraph()
        graph.link("a", "b", 0.82)
        graph.neighbors("b")   # {"a": 0.82}
        graph.remove_node("a")
    """

    __slots__ = ("_adjacency",)

    def __init__(self) -> None:
        self._adjacency: dict[str, dict[str, float]] = {}

    def add_node(self, node_id: str) -> None:
        self._adjacency.setdefault(node_id, {})

    def link(self, a: str, b: str, weight: float = 1.0) -> bool:
        """Create or reweight the edge a-b. Self-links are refused."""
        if a == b:
            return False
        self._adjacency.setdefault(a, {})[b] = weight
        self._adjacency.setdefault(b, {})[a] = weight
        return True

    def unlink(self, a: str, b: str) -> bool:
        edges_a = self._adjacency.get(a)
        if edges_a is None or b not in edges_a:
            return False
        del edges_a[b]
        del self._adjacency[b][a]
        return True

    def unlink_all(self, node_id: str) -> int:
        """Drop every edge touching node_id but keep the node."""
        edges = self._adjacency.get(node_id)
        if not edges:
            return 0
        for other in list(edges):
            del self._adjacency[other][node_id]
        count = len(edges)
        edges.clear()
        return count

    def remove_node(self, node_id: str) -> int:
        removed = self.unlink_all(node_id)
        self._adjacency.pop(node_id, None)
        return removed

    def neighbors(self, node_id: str) -> dict[str, float]:
        return dict(self._adjacency.get(node_id, {}))

    def weight(self, a: str, b: str) -> Optional[float]:
        return self._adjacency.get(a, {}).get(b)

    def degree(self, node_id: str) -> int:
        return len(self._adjacency.get(node_id, {}))

    def has_node(self, node_id: str) -> bool:
        return node_id in self._adjacency

    @property
    def node_count(self) -> int:
        return len(self._adjacency)

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self._adjacency.values()) // 2

    def edges(self) -> Iterator[tuple[str, str, float]]:
        """Each undirected edge once, as (smaller_id, larger_id, weight)."""
        for a, edges in self._adjacency.items():
            for b, w in edges.items():
                if a < b:
                    yield a, b, w

    def is_symmetric(self) -> bool:
        for a, edges in self._adjacency.items():
            for b, w in edges.items():
                if self._adjacency.get(b, {}).get(a) != w:
                    return False
        return True

    def clear(self) -> None:
        self._adjacency.clear()
