"""
Long-Term Store: Importance-Gated Durable Memory

Provides:
- Selective admission by content importance
- Semantic vectors from a pluggable generator (numpy)
- Symmetric association links to the top-K most similar records
- Relevance = lexical / semantic / association / importance /
  temporal / access blend
- Consolidation levels that grow with repeated access
- Write-through to a persistence backend, with read fall-through

Design:
    The in-memory index is a cache over the persistence backend.
    Vector generation is awaited before the store lock is taken and is
    bounded by a timeout; on failure the record is kept without a vector
    and its semantic sub-score is 0.

    Association strength for a query is spreading activation: the best
    ``link_weight * lexical(query, neighbour)`` over a record's links.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from ctxmesh.core.config import LongTermConfig, ensure_valid
from ctxmesh.core.types import Clock, Metadata, meta_float, meta_int
from ctxmesh.memory.collaborators import (
    HashingVectorGenerator,
    InMemoryPersistence,
    PersistenceBackend,
    SemanticVectorGenerator,
    check_vector,
    invoke_collaborator,
)
from ctxmesh.memory.importance import retention_importance
from ctxmesh.memory.ltm.associations import AssociationGraph
from ctxmesh.memory.records import (
    META_CONSOLIDATION_LEVEL,
    META_IMPORTANCE,
    META_LAST_MODIFIED,
    CleanupCriteria,
    MemoryRecord,
    MemoryTier,
)
from ctxmesh.memory.scoring import RelevanceScorer, ScoreSignals, cosine_similarity, lexical_score
from ctxmesh.memory.store import MemoryStore, PreparedContent, TierPolicy
from ctxmesh.observability.logging import StructuredLogger
from ctxmesh.observability.metrics import MetricsCollector

logger = StructuredLogger("ctxmesh.memory.long_term.policy")


class LongTermPolicy(TierPolicy):
    """Admission, scoring and index rules of the long-term tier."""

    tier = MemoryTier.LONG_TERM

    def __init__(
        self,
        config: LongTermConfig,
        vector_generator: SemanticVectorGenerator,
        persistence: Optional[PersistenceBackend],
    ) -> None:
        self._config = config
        self._generator = vector_generator
        self.persistence = persistence
        self.collaborator_timeout_seconds = config.collaborator_timeout_seconds
        self._scorer = RelevanceScorer(config.weights, config.max_age_seconds, config.decay_rate)
        self._vectors: dict[str, np.ndarray] = {}
        self._graph = AssociationGraph()

    @property
    def config(self) -> LongTermConfig:
        return self._config

    @property
    def graph(self) -> AssociationGraph:
        return self._graph

    def vector(self, record_id: str) -> Optional[np.ndarray]:
        return self._vectors.get(record_id)

    # Admission -------------------------------------------------------------
    def admit(self, content: str, metadata: Metadata, now: datetime) -> Optional[Metadata]:
        importance = retention_importance(content, metadata)
        if importance < self._config.min_importance_threshold:
            return None
        admitted = dict(metadata)
        admitted[META_IMPORTANCE] = importance
        admitted[META_CONSOLIDATION_LEVEL] = 0
        return admitted

    def revise(self, record: MemoryRecord, content: str, metadata: Metadata, now: datetime) -> Metadata:
        revised = dict(metadata)
        revised[META_IMPORTANCE] = retention_importance(content, metadata)
        revised[META_CONSOLIDATION_LEVEL] = meta_int(record.metadata, META_CONSOLIDATION_LEVEL)
        revised[META_LAST_MODIFIED] = now.isoformat()
        return revised

    def initial_relevance(self, metadata: Metadata) -> float:
        return meta_float(metadata, META_IMPORTANCE)

    # Lifecycle -------------------------------------------------------------
    def default_criteria(self) -> CleanupCriteria:
        return CleanupCriteria(relevance_threshold=self._config.min_importance_threshold)

    def cleanup_relevance(self, record: MemoryRecord) -> float:
        return meta_float(record.metadata, META_IMPORTANCE)

    def retention_score(self, record: MemoryRecord, now: datetime) -> float:
        return meta_float(record.metadata, META_IMPORTANCE)

    # Collaborators ---------------------------------------------------------
    async def prepare(self, text: str) -> PreparedContent:
        result = await invoke_collaborator(
            "vector_generator",
            self._generator.generate(text),
            self._config.collaborator_timeout_seconds,
        )
        result = result.flat_map(
            lambda v: check_vector("vector_generator", v, self._config.vector_dimension)
        )
        if result.is_err():
            logger.warning("Semantic vector unavailable, scoring without it", **result.error.to_dict())
            return PreparedContent()
        vector = result.unwrap()
        return PreparedContent(vector=vector / np.linalg.norm(vector))

    # Scoring ---------------------------------------------------------------
    def score_all(
        self,
        query: str,
        prepared: PreparedContent,
        records: Sequence[MemoryRecord],
        now: datetime,
    ) -> dict[str, float]:
        lexical = {r.record_id: lexical_score(query, r.content, r.metadata) for r in records}
        scores: dict[str, float] = {}
        for record in records:
            rid = record.record_id
            semantic = None
            stored = self._vectors.get(rid)
            if prepared.vector is not None and stored is not None:
                semantic = cosine_similarity(prepared.vector, stored)
            association = max(
                (weight * lexical[other]
                 for other, weight in self._graph.neighbors(rid).items()
                 if other in lexical),
                default=0.0,
            )
            scores[rid] = self._scorer.score(
                query,
                record,
                now,
                ScoreSignals(
                    semantic=semantic,
                    association=association,
                    importance=meta_float(record.metadata, META_IMPORTANCE),
                    lexical=lexical[rid],
                ),
            )
        return scores

    # Index extensions ------------------------------------------------------
    def on_indexed(self, record: MemoryRecord, prepared: PreparedContent) -> None:
        rid = record.record_id
        self._graph.unlink_all(rid)
        self._graph.add_node(rid)
        if prepared.vector is None:
            self._vectors.pop(rid, None)
            return
        self._vectors[rid] = prepared.vector
        self._link_similar(rid, prepared.vector)

    def _link_similar(self, rid: str, vector: np.ndarray) -> None:
        others = [oid for oid in self._vectors if oid != rid]
        if not others or self._config.association_top_k == 0:
            return
        matrix = np.vstack([self._vectors[oid] for oid in others])
        similarities = matrix @ vector
        order = np.argsort(-similarities, kind="stable")
        linked = 0
        for index in order:
            similarity = float(similarities[index])
            if similarity <= self._config.association_similarity_floor:
                break
            self._graph.link(rid, others[index], similarity)
            linked += 1
            if linked >= self._config.association_top_k:
                break

    def on_accessed(self, record: MemoryRecord, now: datetime) -> None:
        level = meta_int(record.metadata, META_CONSOLIDATION_LEVEL)
        if (
            record.access_count > self._config.consolidation_threshold
            and level < self._config.max_consolidation_level
        ):
            record.metadata[META_CONSOLIDATION_LEVEL] = level + 1

    def on_removed(self, record_id: str) -> None:
        self._vectors.pop(record_id, None)
        self._graph.remove_node(record_id)

    def on_cleared(self) -> None:
        self._vectors.clear()
        self._graph.clear()


class LongTermStore(MemoryStore):
    """
    Durable memory tier.

    Features:
        - Importance-gated admission
        - Semantic + associative retrieval
        - Association graph kept symmetric on every insert/update/delete

    Usage:
        ltm = LongTermStore()
        rid = await ltm.store(source_code, {"priority": "high", "type": "code"})
        related = await ltm.get_associated_memories(rid)
    """

    __slots__ = ()

    def __init__(
        self,
        config: Optional[LongTermConfig] = None,
        vector_generator: Optional[SemanticVectorGenerator] = None,
        persistence: Optional[PersistenceBackend] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        config = config or LongTermConfig()
        ensure_valid(config.validate())
        if vector_generator is None:
            vector_generator = HashingVectorGenerator(config.vector_dimension)
        policy = LongTermPolicy(
            config,
            vector_generator,
            persistence if persistence is not None else InMemoryPersistence(),
        )
        super().__init__(policy, clock=clock, metrics=metrics)

    @property
    def config(self) -> LongTermConfig:
        return self._policy.config

    async def get_associated_memories(self, record_id: str, max_results: int = 5) -> list[MemoryRecord]:
        """Linked records ordered by importance, highest first. No side effects."""
        async with self._lock:
            linked = [
                self._records[oid]
                for oid in self._policy.graph.neighbors(record_id)
                if oid in self._records
            ]
            linked.sort(
                key=lambda r: (meta_float(r.metadata, META_IMPORTANCE), r.last_accessed),
                reverse=True,
            )
            return [r.copy() for r in linked[:max_results]]

    async def association_count(self, record_id: str) -> int:
        async with self._lock:
            return self._policy.graph.degree(record_id)

    async def associations_consistent(self) -> bool:
        """True when every link is mirrored and points at a live record."""
        async with self._lock:
            graph = self._policy.graph
            if not graph.is_symmetric():
                return False
            return all(a in self._records and b in self._records for a, b, _ in graph.edges())
