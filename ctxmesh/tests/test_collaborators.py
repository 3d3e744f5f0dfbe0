"""
Unit Tests: External Collaborators

Tests:
    - Feature-hashing vector generator
    - Vector sanity checks
    - Timeout / exception capture into Err(CollaboratorError)
    - In-memory persistence isolation
"""

import asyncio
from datetime import datetime, timezone

import numpy as np
import pytest

from ctxmesh.core.errors import ErrorCode
from ctxmesh.memory.collaborators import (
    HashingVectorGenerator,
    InMemoryPersistence,
    PersistenceBackend,
    SemanticVectorGenerator,
    check_vector,
    invoke_collaborator,
)
from ctxmesh.memory.records import MemoryRecord, MemoryTier


class TestHashingVectorGenerator:
    """Tests for the default vector generator."""

    def test_unit_norm_and_dimension(self):
        generator = HashingVectorGenerator(64)

        vector = generator.vectorize("deploys happen on tuesdays")

        assert vector.shape == (64,)
        np.testing.assert_allclose(np.linalg.norm(vector), 1.0)

    def test_deterministic(self):
        generator = HashingVectorGenerator(32)

        np.testing.assert_array_equal(generator.vectorize("same text"), generator.vectorize("same text"))

    def test_case_and_punctuation_insensitive(self):
        generator = HashingVectorGenerator(32)

        np.testing.assert_array_equal(generator.vectorize("Hello, World"), generator.vectorize("hello world"))

    def test_empty_content_is_zero(self):
        np.testing.assert_array_equal(HashingVectorGenerator(8).vectorize("  "), np.zeros(8))

    def test_protocol(self):
        assert isinstance(HashingVectorGenerator(), SemanticVectorGenerator)
        assert isinstance(InMemoryPersistence(), PersistenceBackend)

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            HashingVectorGenerator(0)


class TestCheckVector:
    """Tests for generator output validation."""

    def test_accepts_list(self):
        result = check_vector("gen", [0.0, 3.0, 4.0], 3)

        assert result.is_ok()
        np.testing.assert_array_equal(result.unwrap(), np.array([0.0, 3.0, 4.0]))

    @pytest.mark.parametrize(
        "vector",
        [
            [1.0, 2.0],
            [0.0, 0.0, 0.0],
            [1.0, float("nan"), 0.0],
            "not a vector",
        ],
    )
    def test_rejects_unusable_output(self, vector):
        result = check_vector("gen", vector, 3)

        assert result.is_err()
        assert result.error.code is ErrorCode.COLLABORATOR_BAD_OUTPUT


class TestInvokeCollaborator:
    """Tests for timeout and error capture."""

    @pytest.mark.asyncio
    async def test_success(self):
        async def call():
            return 42

        result = await invoke_collaborator("gen", call(), 1.0)

        assert result.unwrap() == 42

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await invoke_collaborator("gen", asyncio.sleep(1), 0.01)

        assert result.is_err()
        assert result.error.code is ErrorCode.COLLABORATOR_TIMEOUT
        assert result.error.context["collaborator"] == "gen"

    @pytest.mark.asyncio
    async def test_exception(self):
        async def call():
            raise ConnectionError("refused")

        result = await invoke_collaborator("persistence.put", call(), 1.0)

        assert result.is_err()
        assert result.error.code is ErrorCode.COLLABORATOR_FAILED
        assert isinstance(result.error.cause, ConnectionError)


class TestInMemoryPersistence:
    """Tests for the dict-backed backend."""

    @pytest.mark.asyncio
    async def test_stores_detached_copies(self):
        backend = InMemoryPersistence()
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = MemoryRecord("r1", "text", MemoryTier.LONG_TERM, now, now, metadata={"tags": ["a"]})

        await backend.put(record)
        record.metadata["tags"].append("b")
        loaded = await backend.get("r1")
        loaded.content = "changed"

        assert (await backend.get("r1")).metadata == {"tags": ["a"]}
        assert (await backend.get("r1")).content == "text"
        assert "r1" in backend and len(backend) == 1

        await backend.delete("r1")
        assert await backend.get("r1") is None
