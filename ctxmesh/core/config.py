"""
Configuration Management for the Context Mesh

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after construction
- Fail-fast on invalid configuration (components call validate())
- Type-safe with dataclasses
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields

from ctxmesh.core import constants as C
from ctxmesh.core.errors import ConfigurationError
from ctxmesh.core.types import Err, Ok, Result


def _check_unit(name: str, value: float) -> Result[None, str]:
    if not 0.0 <= value <= 1.0:
        return Err(f"{name} must be within [0, 1], got {value}")
    return Ok(None)


def ensure_valid(result: Result[None, str]) -> None:
    """Raise ConfigurationError when a validate() result is an Err."""
    if result.is_err():
        raise ConfigurationError.invalid_value(result.error)


# =============================================================================
# SCORING WEIGHTS
# =============================================================================
@dataclass(frozen=True, slots=True)
class WeightProfile:
    """
    Weights of the relevance sub-scores.

    Every weight lies in [0, 1] and the weights sum to 1 within
    WEIGHT_SUM_TOLERANCE.
    """

    lexical: float = 0.0
    temporal: float = 0.0
    access: float = 0.0
    semantic: float = 0.0
    association: float = 0.0
    importance: float = 0.0

    @property
    def total(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))

    def validate(self) -> Result[None, str]:
        for f in fields(self):
            check = _check_unit(f"weight {f.name}", getattr(self, f.name))
            if check.is_err():
                return check
        if not math.isclose(self.total, 1.0, abs_tol=C.WEIGHT_SUM_TOLERANCE):
            return Err(f"weights must sum to 1.0, got {self.total:.6f}")
        return Ok(None)

    def ensure_valid(self) -> None:
        result = self.validate()
        if result.is_err():
            raise ConfigurationError.invalid_weights(result.error, self.total)


def short_term_weights() -> WeightProfile:
    return WeightProfile(
        lexical=C.STM_LEXICAL_WEIGHT,
        temporal=C.STM_TEMPORAL_WEIGHT,
        access=C.STM_ACCESS_WEIGHT,
    )


def long_term_weights() -> WeightProfile:
    return WeightProfile(
        lexical=C.LTM_LEXICAL_WEIGHT,
        temporal=C.LTM_TEMPORAL_WEIGHT,
        access=C.LTM_ACCESS_WEIGHT,
        semantic=C.LTM_SEMANTIC_WEIGHT,
        association=C.LTM_ASSOCIATION_WEIGHT,
        importance=C.LTM_IMPORTANCE_WEIGHT,
    )


# =============================================================================
# MEMORY TIERS
# =============================================================================
@dataclass(frozen=True, slots=True)
class ShortTermConfig:
    """Short-term (recency) tier configuration."""

    max_capacity: int = C.STM_MAX_CAPACITY
    max_age_seconds: float = C.STM_MAX_AGE_SECONDS
    decay_rate: float = C.STM_DECAY_RATE
    capacity_target_ratio: float = C.STM_CAPACITY_TARGET_RATIO
    weights: WeightProfile = field(default_factory=short_term_weights)

    @property
    def capacity_target(self) -> int:
        """Record count the capacity sweep evicts down to."""
        return int(self.max_capacity * self.capacity_target_ratio)

    def validate(self) -> Result[None, str]:
        if self.max_capacity < 1:
            return Err("short-term max_capacity must be >= 1")
        if self.max_age_seconds <= 0:
            return Err("short-term max_age_seconds must be > 0")
        if self.decay_rate < 0:
            return Err("short-term decay_rate must be >= 0")
        if not 0.0 < self.capacity_target_ratio < 1.0:
            return Err("short-term capacity_target_ratio must be within (0, 1)")
        return self.weights.validate()


@dataclass(frozen=True, slots=True)
class LongTermConfig:
    """Long-term (importance-weighted) tier configuration."""

    min_importance_threshold: float = C.LTM_MIN_IMPORTANCE
    consolidation_threshold: int = C.LTM_CONSOLIDATION_THRESHOLD
    max_consolidation_level: int = C.LTM_MAX_CONSOLIDATION_LEVEL
    vector_dimension: int = C.LTM_VECTOR_DIMENSION
    association_top_k: int = C.LTM_ASSOCIATION_TOP_K
    association_similarity_floor: float = C.LTM_ASSOCIATION_FLOOR
    max_age_seconds: float = C.LTM_MAX_AGE_SECONDS
    decay_rate: float = C.LTM_DECAY_RATE
    collaborator_timeout_seconds: float = C.LTM_COLLABORATOR_TIMEOUT_SECONDS
    weights: WeightProfile = field(default_factory=long_term_weights)

    def validate(self) -> Result[None, str]:
        check = _check_unit("min_importance_threshold", self.min_importance_threshold)
        if check.is_err():
            return check
        check = _check_unit("association_similarity_floor", self.association_similarity_floor)
        if check.is_err():
            return check
        if self.vector_dimension < 1:
            return Err("vector_dimension must be >= 1")
        if self.association_top_k < 0:
            return Err("association_top_k must be >= 0")
        if self.max_consolidation_level < 0 or self.consolidation_threshold < 0:
            return Err("consolidation settings must be >= 0")
        if self.max_age_seconds <= 0 or self.collaborator_timeout_seconds <= 0:
            return Err("long-term durations must be > 0")
        return self.weights.validate()


@dataclass(frozen=True, slots=True)
class ConsolidationConfig:
    """Promotion thresholds from short-term to long-term."""

    importance_threshold: float = C.CONSOLIDATION_IMPORTANCE_THRESHOLD
    access_threshold: int = C.CONSOLIDATION_ACCESS_THRESHOLD
    auto_importance_threshold: float = C.AUTO_CONSOLIDATION_IMPORTANCE_THRESHOLD
    auto_access_threshold: int = C.AUTO_CONSOLIDATION_ACCESS_THRESHOLD
    auto_consolidate: bool = True

    def validate(self) -> Result[None, str]:
        for name in ("importance_threshold", "auto_importance_threshold"):
            check = _check_unit(name, getattr(self, name))
            if check.is_err():
                return check
        if self.access_threshold < 0 or self.auto_access_threshold < 0:
            return Err("access thresholds must be >= 0")
        return Ok(None)


@dataclass(frozen=True, slots=True)
class MemoryManagerConfig:
    """Routing and fusion settings of the memory manager."""

    long_term_threshold: float = C.LONG_TERM_ROUTING_THRESHOLD
    short_term_weight: float = C.SHORT_TERM_RESULT_WEIGHT
    long_term_weight: float = C.LONG_TERM_RESULT_WEIGHT
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)

    def validate(self) -> Result[None, str]:
        check = _check_unit("long_term_threshold", self.long_term_threshold)
        if check.is_err():
            return check
        if self.short_term_weight < 0 or self.long_term_weight < 0:
            return Err("tier result weights must be >= 0")
        return self.consolidation.validate()


# =============================================================================
# CONTEXT WINDOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class ContextWindowConfig:
    """Configuration for the context window."""

    token_budget: int = C.CONTEXT_TOKEN_BUDGET
    chars_per_token: int = C.CONTEXT_CHARS_PER_TOKEN
    rollback_failed_eviction: bool = True  # restore evicted blocks when admission still fails
    near_capacity_ratio: float = C.CONTEXT_NEAR_CAPACITY_RATIO

    def validate(self) -> Result[None, str]:
        if self.token_budget < 1:
            return Err("token_budget must be >= 1")
        if self.chars_per_token < 1:
            return Err("chars_per_token must be >= 1")
        return _check_unit("near_capacity_ratio", self.near_capacity_ratio)


# =============================================================================
# OBSERVABILITY
# =============================================================================
@dataclass(frozen=True, slots=True)
class ObservabilityConfig:
    """Logging and metrics configuration."""

    log_level: str = "INFO"
    log_json: bool = True
    metrics_enabled: bool = True

    def validate(self) -> Result[None, str]:
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return Err(f"unknown log level {self.log_level!r}")
        return Ok(None)


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================
def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class CtxMeshConfig:
    """Root configuration for the context mesh."""

    short_term: ShortTermConfig = field(default_factory=ShortTermConfig)
    long_term: LongTermConfig = field(default_factory=LongTermConfig)
    manager: MemoryManagerConfig = field(default_factory=MemoryManagerConfig)
    context_window: ContextWindowConfig = field(default_factory=ContextWindowConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[CtxMeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with CTXMESH_.
        Example: CTXMESH_STM_MAX_CAPACITY, CTXMESH_CONTEXT_TOKEN_BUDGET
        """
        try:
            short_term = ShortTermConfig(
                max_capacity=int(os.getenv("CTXMESH_STM_MAX_CAPACITY", C.STM_MAX_CAPACITY)),
                max_age_seconds=float(os.getenv("CTXMESH_STM_MAX_AGE_SECONDS", C.STM_MAX_AGE_SECONDS)),
                decay_rate=float(os.getenv("CTXMESH_STM_DECAY_RATE", C.STM_DECAY_RATE)),
            )
            long_term = LongTermConfig(
                min_importance_threshold=float(
                    os.getenv("CTXMESH_LTM_MIN_IMPORTANCE", C.LTM_MIN_IMPORTANCE)
                ),
                vector_dimension=int(os.getenv("CTXMESH_LTM_VECTOR_DIMENSION", C.LTM_VECTOR_DIMENSION)),
                collaborator_timeout_seconds=float(
                    os.getenv("CTXMESH_LTM_COLLABORATOR_TIMEOUT", C.LTM_COLLABORATOR_TIMEOUT_SECONDS)
                ),
            )
            manager = MemoryManagerConfig(
                long_term_threshold=float(
                    os.getenv("CTXMESH_LONG_TERM_THRESHOLD", C.LONG_TERM_ROUTING_THRESHOLD)
                ),
                consolidation=ConsolidationConfig(
                    auto_consolidate=_env_bool("CTXMESH_AUTO_CONSOLIDATE", True),
                ),
            )
            context_window = ContextWindowConfig(
                token_budget=int(os.getenv("CTXMESH_CONTEXT_TOKEN_BUDGET", C.CONTEXT_TOKEN_BUDGET)),
            )
            observability = ObservabilityConfig(
                log_level=os.getenv("CTXMESH_LOG_LEVEL", "INFO"),
                log_json=_env_bool("CTXMESH_LOG_JSON", True),
                metrics_enabled=_env_bool("CTXMESH_METRICS_ENABLED", True),
            )
            return Ok(cls(
                short_term=short_term,
                long_term=long_term,
                manager=manager,
                context_window=context_window,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate every section; first failure wins."""
        for section in (
            self.short_term,
            self.long_term,
            self.manager,
            self.context_window,
            self.observability,
        ):
            result = section.validate()
            if result.is_err():
                return result
        return Ok(None)
