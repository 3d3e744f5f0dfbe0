"""
Error Hierarchy for the Context Mesh

Design Principles:
- Expected business outcomes (not found, rejected, no room) are plain
  return values, never exceptions
- Exceptions are reserved for programming errors (bad configuration,
  malformed metadata)
- Collaborator failures travel as Err(CollaboratorError) and are degraded
  by the caller

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis

Usage:
    result = await invoke_collaborator(...)
    match result:
        case Ok(vector):
            index(vector)
        case Err(CollaboratorError() as err):
            logger.warning("degraded", **err.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from ctxmesh.core.types import utc_now


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Configuration errors
    - 2xxx: Validation errors
    - 3xxx: Collaborator errors
    - 9xxx: Internal errors
    """

    CONFIG_INVALID_VALUE = 1001
    CONFIG_WEIGHTS_INVALID = 1002

    VALIDATION_INVALID_METADATA = 2001
    VALIDATION_INVALID_ARGUMENT = 2002

    COLLABORATOR_TIMEOUT = 3001
    COLLABORATOR_FAILED = 3002
    COLLABORATOR_BAD_OUTPUT = 3003

    INTERNAL_ERROR = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class CtxMeshError(Exception):
    """
    Base class for all context mesh errors.

    Provides an error id for log correlation, an error code for
    programmatic handling, and a free-form context dictionary.
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for structured logging."""
        data = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "error_message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(CtxMeshError):
    """Raised when a component is constructed with an invalid config."""

    @classmethod
    def invalid_value(cls, reason: str, **context: Any) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid configuration: {reason}",
            context=context,
        )

    @classmethod
    def invalid_weights(cls, reason: str, total: float) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIG_WEIGHTS_INVALID,
            message=f"Invalid weight profile: {reason}",
            context={"total": total},
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================
@dataclass
class ValidationError(CtxMeshError):
    """Raised for caller errors: malformed metadata or arguments."""

    @classmethod
    def invalid_metadata(cls, reason: str) -> ValidationError:
        return cls(
            code=ErrorCode.VALIDATION_INVALID_METADATA,
            message=f"Metadata rejected: {reason}",
        )

    @classmethod
    def invalid_argument(cls, name: str, value: Any, reason: str) -> ValidationError:
        return cls(
            code=ErrorCode.VALIDATION_INVALID_ARGUMENT,
            message=f"Invalid argument {name}={value!r}: {reason}",
            context={"argument": name},
        )


# =============================================================================
# COLLABORATOR ERRORS
# =============================================================================
@dataclass
class CollaboratorError(CtxMeshError):
    """
    Failure of an external collaborator (vector generator, persistence).

    Never raised out of the stores; carried in Err and degraded.
    """

    @classmethod
    def timeout(cls, collaborator: str, timeout_seconds: float) -> CollaboratorError:
        return cls(
            code=ErrorCode.COLLABORATOR_TIMEOUT,
            message=f"{collaborator} timed out after {timeout_seconds}s",
            context={"collaborator": collaborator, "timeout_seconds": timeout_seconds},
        )

    @classmethod
    def failed(cls, collaborator: str, cause: BaseException) -> CollaboratorError:
        return cls(
            code=ErrorCode.COLLABORATOR_FAILED,
            message=f"{collaborator} failed: {cause}",
            cause=cause,
            context={"collaborator": collaborator},
        )

    @classmethod
    def bad_output(cls, collaborator: str, reason: str) -> CollaboratorError:
        return cls(
            code=ErrorCode.COLLABORATOR_BAD_OUTPUT,
            message=f"{collaborator} returned unusable output: {reason}",
            context={"collaborator": collaborator},
        )
