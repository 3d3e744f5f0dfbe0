"""
Relevance Scoring: Pure Sub-Scores and Weighted Composite

Provides:
- Lexical overlap (Jaccard, substring, position, metadata match)
- Temporal decay since last access
- Access-frequency saturation
- Cosine similarity over numpy vectors
- RelevanceScorer: weighted composite clamped to [0, 1]

Design:
    Every function here is pure and deterministic for fixed inputs
    (including ``now``). Stores pass in the signals they own (semantic
    similarity, association strength, importance); the scorer never
    reaches back into a store.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

import numpy as np

from ctxmesh.core.config import WeightProfile
from ctxmesh.memory.records import META_CONTEXT, META_TAGS, META_TYPE, MemoryRecord

_WORD_RE = re.compile(r"\w+", re.UNICODE)

LEXICAL_JACCARD_WEIGHT = 0.4
LEXICAL_EXACT_WEIGHT = 0.3
LEXICAL_POSITION_WEIGHT = 0.2
LEXICAL_METADATA_WEIGHT = 0.1


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens."""
    return _WORD_RE.findall(text.lower())


# =============================================================================
# LEXICAL
# =============================================================================
def _position_score(query_words: list[str], content_lower: str) -> float:
    if not content_lower:
        return 0.0
    total = 0.0
    for word in query_words:
        index = content_lower.find(word)
        if index >= 0:
            total += max(0.1, 1.0 - index / len(content_lower))
    return total / len(query_words)


def metadata_match_score(query_lower: str, metadata: Mapping[str, Any]) -> float:
    """Match of the query against ``tags``, ``type`` and ``context``."""
    score = 0.0
    tags = metadata.get(META_TAGS)
    if isinstance(tags, list):
        names = [t.lower() for t in tags if isinstance(t, str)]
        if names:
            score += sum(1 for t in names if t in query_lower) / len(names) * 0.5
    elif isinstance(tags, str) and tags.lower() in query_lower:
        score += 0.5

    kind = metadata.get(META_TYPE)
    if isinstance(kind, str) and kind and kind.lower() in query_lower:
        score += 0.3

    context = metadata.get(META_CONTEXT)
    if isinstance(context, str) and context and context.lower() in query_lower:
        score += 0.2

    return clamp(score)


def lexical_score(query: str, content: str, metadata: Optional[Mapping[str, Any]] = None) -> float:
    """
    Lexical relevance of ``content`` to ``query`` in [0, 1].

    Weighted blend of Jaccard overlap of the word sets, the fraction of
    query words occurring inside some content word, how early the query
    words appear, and a metadata tag/type/context match.
    """
    query_words = tokenize(query)
    if not query_words:
        return 0.0
    content_lower = content.lower()
    content_words = tokenize(content)

    query_set = set(query_words)
    content_set = set(content_words)
    union = query_set | content_set
    jaccard = len(query_set & content_set) / len(union) if union else 0.0

    exact = sum(
        1 for q in query_words if any(q in c for c in content_set)
    ) / len(query_words)

    position = _position_score(query_words, content_lower)
    meta = metadata_match_score(query.lower(), metadata or {})

    return clamp(
        jaccard * LEXICAL_JACCARD_WEIGHT
        + exact * LEXICAL_EXACT_WEIGHT
        + position * LEXICAL_POSITION_WEIGHT
        + meta * LEXICAL_METADATA_WEIGHT
    )


# =============================================================================
# TEMPORAL / ACCESS
# =============================================================================
def temporal_score(age_seconds: float, max_age_seconds: float, decay_rate: float) -> float:
    """exp(-decay * age / max_age); 1.0 for a record touched just now."""
    age = max(0.0, age_seconds)
    return clamp(math.exp(-decay_rate * age / max_age_seconds))


def access_score(access_count: int) -> float:
    """Saturating frequency score: 0 for never accessed, toward 1 as count grows."""
    return max(0.0, 1.0 - 1.0 / (1.0 + max(0, access_count)))


# =============================================================================
# SEMANTIC
# =============================================================================
def cosine_similarity(a: np.ndarray, b: np.ndarray) -> Optional[float]:
    """Cosine similarity, or None when either vector has no direction."""
    if a.shape != b.shape:
        return None
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0 or not math.isfinite(norm):
        return None
    return float(np.dot(a, b) / norm)


# =============================================================================
# COMPOSITE
# =============================================================================
@dataclass(frozen=True, slots=True)
class ScoreSignals:
    """Per-record inputs owned by the store rather than the record."""
    semantic: Optional[float] = None
    association: float = 0.0
    importance: float = 0.0
    lexical: Optional[float] = None  # precomputed lexical score, if any


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """Sub-scores and their weighted composite."""
    lexical: float
    temporal: float
    access: float
    semantic: float
    association: float
    importance: float
    total: float


class RelevanceScorer:
    """
    Weighted composite relevance scorer.

    Usage:
        scorer = RelevanceScorer(config.weights, max_age_seconds=3600, decay_rate=2.0)
        score = scorer.score("python decorators", record, now)
    """

    __slots__ = ("_weights", "_max_age_seconds", "_decay_rate")

    def __init__(self, weights: WeightProfile, max_age_seconds: float, decay_rate: float) -> None:
        weights.ensure_valid()
        self._weights = weights
        self._max_age_seconds = max_age_seconds
        self._decay_rate = decay_rate

    @property
    def weights(self) -> WeightProfile:
        return self._weights

    def temporal(self, record: MemoryRecord, now: datetime) -> float:
        age = (now - record.last_accessed).total_seconds()
        return temporal_score(age, self._max_age_seconds, self._decay_rate)

    def breakdown(
        self,
        query: str,
        record: MemoryRecord,
        now: datetime,
        signals: ScoreSignals = ScoreSignals(),
    ) -> ScoreBreakdown:
        w = self._weights
        lexical = (
            signals.lexical
            if signals.lexical is not None
            else lexical_score(query, record.content, record.metadata)
        )
        temporal = self.temporal(record, now)
        access = access_score(record.access_count)
        semantic = clamp(signals.semantic) if signals.semantic is not None else 0.0
        association = clamp(signals.association)
        importance = clamp(signals.importance)

        total = clamp(
            lexical * w.lexical
            + temporal * w.temporal
            + access * w.access
            + semantic * w.semantic
            + association * w.association
            + importance * w.importance
        )
        return ScoreBreakdown(
            lexical=lexical,
            temporal=temporal,
            access=access,
            semantic=semantic,
            association=association,
            importance=importance,
            total=total,
        )

    def score(
        self,
        query: str,
        record: MemoryRecord,
        now: datetime,
        signals: ScoreSignals = ScoreSignals(),
    ) -> float:
        """Composite relevance in [0, 1]."""
        return self.breakdown(query, record, now, signals).total
