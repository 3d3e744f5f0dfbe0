"""
External Collaborators of the Memory Stores

Provides:
- SemanticVectorGenerator: protocol for content -> fixed-length vector
- HashingVectorGenerator: deterministic numpy feature-hashing generator
- PersistenceBackend: protocol for the durable copy behind the cache
- InMemoryPersistence: dict-backed backend (default, and for tests)
- invoke_collaborator: timeout + error capture into a Result

Design Principles:
    - Protocol classes for structural subtyping
    - Collaborators are awaited outside the store lock
    - Failures never escape as exceptions; they become Err(CollaboratorError)
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Awaitable, Optional, Protocol, TypeVar, runtime_checkable

import numpy as np

from ctxmesh.core.errors import CollaboratorError
from ctxmesh.core.types import Err, Ok, Result
from ctxmesh.memory.records import MemoryRecord
from ctxmesh.memory.scoring import tokenize

T = TypeVar("T")


# =============================================================================
# PROTOCOLS
# =============================================================================
@runtime_checkable
class SemanticVectorGenerator(Protocol):
    """Maps content to a fixed-length vector; same content, same vector."""

    @property
    def dimension(self) -> int:
        ...

    async def generate(self, content: str) -> np.ndarray:
        ...


@runtime_checkable
class PersistenceBackend(Protocol):
    """Durable store behind the long-term in-memory index."""

    async def put(self, record: MemoryRecord) -> None:
        ...

    async def get(self, record_id: str) -> Optional[MemoryRecord]:
        ...

    async def delete(self, record_id: str) -> None:
        ...

    async def clear(self) -> None:
        ...


# =============================================================================
# DEFAULT IMPLEMENTATIONS
# =============================================================================
class HashingVectorGenerator:
    """
    Feature-hashing bag-of-words vector.

    Each token is hashed (blake2b, stable across processes) to a bucket and
    a sign; the vector is L2-normalized. Content without tokens yields the
    zero vector, which the store treats as "no semantic signal".
    """

    __slots__ = ("_dimension",)

    def __init__(self, dimension: int = 128) -> None:
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def _bucket(self, token: str) -> tuple[int, float]:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        value = int.from_bytes(digest, "little")
        sign = 1.0 if (value >> 63) & 1 == 0 else -1.0
        return value % self._dimension, sign

    def vectorize(self, content: str) -> np.ndarray:
        vector = np.zeros(self._dimension, dtype=np.float64)
        for token in tokenize(content):
            index, sign = self._bucket(token)
            vector[index] += sign
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    async def generate(self, content: str) -> np.ndarray:
        return self.vectorize(content)


class InMemoryPersistence:
    """Dict-backed persistence; stores detached copies."""

    __slots__ = ("_records",)

    def __init__(self) -> None:
        self._records: dict[str, MemoryRecord] = {}

    async def put(self, record: MemoryRecord) -> None:
        self._records[record.record_id] = record.copy()

    async def get(self, record_id: str) -> Optional[MemoryRecord]:
        record = self._records.get(record_id)
        return record.copy() if record is not None else None

    async def delete(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    async def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records


# =============================================================================
# INVOCATION
# =============================================================================
async def invoke_collaborator(
    name: str,
    call: Awaitable[T],
    timeout_seconds: float,
) -> Result[T, CollaboratorError]:
    """
    Await a collaborator call with a timeout.

    Returns:
        Ok[T]: The collaborator's result
        Err[CollaboratorError]: Timeout or any exception it raised
    """
    try:
        return Ok(await asyncio.wait_for(call, timeout=timeout_seconds))
    except asyncio.TimeoutError:
        return Err(CollaboratorError.timeout(name, timeout_seconds))
    except Exception as e:
        return Err(CollaboratorError.failed(name, e))


def check_vector(name: str, vector: object, dimension: int) -> Result[np.ndarray, CollaboratorError]:
    """Reject vectors of the wrong shape, non-finite values or zero norm."""
    try:
        array = np.asarray(vector, dtype=np.float64)
    except (TypeError, ValueError) as e:
        return Err(CollaboratorError.bad_output(name, str(e)))
    if array.shape != (dimension,):
        return Err(CollaboratorError.bad_output(name, f"shape {array.shape}, expected ({dimension},)"))
    if not np.all(np.isfinite(array)):
        return Err(CollaboratorError.bad_output(name, "non-finite values"))
    if float(np.linalg.norm(array)) == 0.0:
        return Err(CollaboratorError.bad_output(name, "zero vector"))
    return Ok(array)
