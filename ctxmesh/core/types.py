"""
Core Type Definitions for the Context Mesh

Implements the Result monad for exception-free handling of expected
failures, and the tagged value union used for record metadata.

Design Principles:
- Never use null for absence of a *failure* (use Result)
- Metadata values are restricted to a closed set of JSON-like types
- Typed readers never perform unchecked casts
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable, hashable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries full error context for exhaustive handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# METADATA VALUE UNION
# =============================================================================
MetadataValue = Union[str, int, float, bool, list, dict]
Metadata = dict[str, MetadataValue]

_SCALAR_TYPES = (str, int, float, bool)


def _check_value(path: str, value: Any) -> Optional[str]:
    if isinstance(value, _SCALAR_TYPES):
        return None
    if isinstance(value, list):
        for i, item in enumerate(value):
            problem = _check_value(f"{path}[{i}]", item)
            if problem:
                return problem
        return None
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"{path}: non-string key {key!r}"
            problem = _check_value(f"{path}.{key}", item)
            if problem:
                return problem
        return None
    return f"{path}: unsupported type {type(value).__name__}"


def validate_metadata(metadata: Mapping[str, Any]) -> Result[Metadata, str]:
    """
    Check that every value belongs to the metadata union.

    Returns:
        Ok[Metadata]: A shallow copy safe to store
        Err[str]: Path and type of the first offending value
    """
    for key, value in metadata.items():
        if not isinstance(key, str):
            return Err(f"non-string key {key!r}")
        problem = _check_value(key, value)
        if problem:
            return Err(problem)
    return Ok(dict(metadata))


def meta_float(metadata: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    """Read a numeric metadata value; bools and non-numbers yield default."""
    value = metadata.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def meta_int(metadata: Mapping[str, Any], key: str, default: int = 0) -> int:
    """Read an integer metadata value."""
    value = metadata.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def meta_str(metadata: Mapping[str, Any], key: str) -> Optional[str]:
    """Read a string metadata value."""
    value = metadata.get(key)
    return value if isinstance(value, str) else None


# =============================================================================
# TIME
# =============================================================================
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(timezone.utc)
