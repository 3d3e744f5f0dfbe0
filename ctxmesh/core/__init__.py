"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the context mesh:
- Result monad for exception-free handling of expected failures
- Tagged metadata value union with typed readers
- Error hierarchy with classmethod constructors
- Configuration management with validation
"""

from ctxmesh.core.types import (
    Result,
    Ok,
    Err,
    Metadata,
    MetadataValue,
    Clock,
    meta_float,
    meta_int,
    meta_str,
    utc_now,
    validate_metadata,
)
from ctxmesh.core.errors import (
    CtxMeshError,
    ErrorCode,
    ConfigurationError,
    ValidationError,
    CollaboratorError,
)
from ctxmesh.core.config import (
    CtxMeshConfig,
    WeightProfile,
    ShortTermConfig,
    LongTermConfig,
    ConsolidationConfig,
    MemoryManagerConfig,
    ContextWindowConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Metadata",
    "MetadataValue",
    "Clock",
    "meta_float",
    "meta_int",
    "meta_str",
    "utc_now",
    "validate_metadata",
    "CtxMeshError",
    "ErrorCode",
    "ConfigurationError",
    "ValidationError",
    "CollaboratorError",
    "CtxMeshConfig",
    "WeightProfile",
    "ShortTermConfig",
    "LongTermConfig",
    "ConsolidationConfig",
    "MemoryManagerConfig",
    "ContextWindowConfig",
    "ObservabilityConfig",
]
