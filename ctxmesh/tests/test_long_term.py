"""
Unit Tests: Long-Term Store

Tests:
    - Importance-gated admission and reserved metadata
    - Consolidation levels
    - Cleanup by item count keeps the most important records
    - Association links (symmetry, top-K, cleanup on delete)
    - Degraded operation when the vector generator fails
    - Write-through / read fall-through persistence
"""

import asyncio

import numpy as np
import pytest

from ctxmesh.core.config import LongTermConfig
from ctxmesh.memory.collaborators import InMemoryPersistence
from ctxmesh.memory.ltm.long_term import LongTermStore
from ctxmesh.memory.records import (
    CleanupCriteria,
    META_CONSOLIDATION_LEVEL,
    META_IMPORTANCE,
    META_LAST_MODIFIED,
    MemoryTier,
)

IMPORTANT = {"priority": "high"}


class TableGenerator:
    """Vector generator backed by a fixed content -> vector table."""

    def __init__(self, vectors, dimension=3):
        self.vectors = vectors
        self.dimension = dimension

    async def generate(self, content):
        return np.array(self.vectors[content], dtype=float)


class SlowGenerator:
    dimension = 3

    async def generate(self, content):
        await asyncio.sleep(1)
        return np.ones(3)


class BrokenGenerator:
    dimension = 3

    async def generate(self, content):
        raise RuntimeError("model offline")


class BrokenPersistence:
    """Backend whose writes always fail."""

    async def put(self, record):
        raise OSError("disk full")

    async def get(self, record_id):
        return None

    async def delete(self, record_id):
        return None

    async def clear(self):
        return None


VECTORS = {
    "alpha": [1.0, 0.0, 0.0],
    "beta": [0.9, 0.1, 0.0],
    "gamma": [0.0, 0.0, 1.0],
    "delta": [1.0, 0.05, 0.0],
}


@pytest.fixture
def table_store(clock, metrics):
    return LongTermStore(
        LongTermConfig(vector_dimension=3),
        vector_generator=TableGenerator(VECTORS),
        clock=clock,
        metrics=metrics,
    )


class TestAdmission:
    """Tests for importance-gated writes."""

    @pytest.mark.asyncio
    async def test_low_importance_rejected(self, long_term):
        assert await long_term.store("hello") is None
        assert len(long_term) == 0

    @pytest.mark.asyncio
    async def test_admitted_record_metadata(self, long_term):
        rid = await long_term.store("deploys happen on tuesdays", IMPORTANT)

        record = await long_term.peek(rid)

        assert record.tier is MemoryTier.LONG_TERM
        assert record.metadata[META_IMPORTANCE] >= 0.3
        assert record.metadata[META_CONSOLIDATION_LEVEL] == 0
        assert record.metadata["priority"] == "high"
        assert record.relevance_score == record.metadata[META_IMPORTANCE]

    @pytest.mark.asyncio
    async def test_consolidation_level_grows_and_caps(self, long_term):
        rid = await long_term.store("deploys happen on tuesdays", IMPORTANT)

        for _ in range(5):
            record = await long_term.get(rid)
        assert record.access_count == 6
        assert record.metadata[META_CONSOLIDATION_LEVEL] == 1

        for _ in range(3):
            record = await long_term.get(rid)
        assert record.metadata[META_CONSOLIDATION_LEVEL] == 3

    @pytest.mark.asyncio
    async def test_update_recomputes_importance(self, long_term, clock):
        rid = await long_term.store("deploys happen on tuesdays", IMPORTANT)
        for _ in range(5):
            await long_term.get(rid)
        clock.advance(30)

        assert await long_term.update(rid, "plain words", {"note": "demoted"})

        record = await long_term.peek(rid)
        assert record.metadata[META_IMPORTANCE] < 0.3
        # level carried over, then bumped by the update's own access
        assert record.metadata[META_CONSOLIDATION_LEVEL] == 2
        assert record.metadata[META_LAST_MODIFIED] == clock.now.isoformat()

    @pytest.mark.asyncio
    async def test_default_cleanup_drops_unimportant(self, long_term):
        keep = await long_term.store("deploys happen on tuesdays", IMPORTANT)
        demoted = await long_term.store("release notes live in the wiki", IMPORTANT)
        await long_term.update(demoted, "plain words", {})

        removed = await long_term.cleanup()

        assert removed == 1
        assert keep in long_term
        assert demoted not in long_term


class TestCleanup:
    """Tests for explicit cleanup sweeps."""

    @pytest.mark.asyncio
    async def test_max_items_keeps_most_important(self, clock, metrics):
        # importance grows with length: 0.32, 0.36, 0.42, 0.48
        contents = ["a" * 100, "b" * 300, "c" * 600, "d" * 900]
        vectors = dict(zip(contents, [[1.0, 0.0, 0.0], [0.9, 0.1, 0.0], [1.0, 0.05, 0.0], [0.95, 0.0, 0.05]]))
        store = LongTermStore(
            LongTermConfig(vector_dimension=3),
            vector_generator=TableGenerator(vectors),
            clock=clock,
            metrics=metrics,
        )
        ids = [await store.store(content, IMPORTANT) for content in contents]
        assert await store.association_count(ids[3]) == 3

        removed = await store.cleanup(CleanupCriteria(max_items=2))

        assert removed == 2
        assert len(store) == 2
        assert ids[0] not in store and ids[1] not in store
        assert ids[2] in store and ids[3] in store
        assert await store.association_count(ids[2]) == 1
        assert await store.association_count(ids[3]) == 1
        assert await store.associations_consistent()


class TestAssociations:
    """Tests for similarity links."""

    @pytest.mark.asyncio
    async def test_similar_records_are_linked_symmetrically(self, table_store):
        a = await table_store.store("alpha", IMPORTANT)
        b = await table_store.store("beta", IMPORTANT)
        c = await table_store.store("gamma", IMPORTANT)

        assert await table_store.association_count(a) == 1
        assert await table_store.association_count(b) == 1
        assert await table_store.association_count(c) == 0
        assert await table_store.associations_consistent()

        related = await table_store.get_associated_memories(a)
        assert [r.record_id for r in related] == [b]

    @pytest.mark.asyncio
    async def test_top_k_limits_links(self, clock, metrics):
        store = LongTermStore(
            LongTermConfig(vector_dimension=3, association_top_k=1),
            vector_generator=TableGenerator(VECTORS),
            clock=clock,
            metrics=metrics,
        )
        a = await store.store("alpha", IMPORTANT)
        await store.store("beta", IMPORTANT)
        d = await store.store("delta", IMPORTANT)

        related = await store.get_associated_memories(d)

        assert await store.association_count(d) == 1
        assert [r.record_id for r in related] == [a]

    @pytest.mark.asyncio
    async def test_delete_removes_links(self, table_store):
        a = await table_store.store("alpha", IMPORTANT)
        b = await table_store.store("beta", IMPORTANT)

        assert await table_store.delete(b)

        assert await table_store.association_count(a) == 0
        assert await table_store.get_associated_memories(a) == []
        assert await table_store.associations_consistent()

    @pytest.mark.asyncio
    async def test_clear_drops_graph(self, table_store):
        await table_store.store("alpha", IMPORTANT)
        await table_store.store("beta", IMPORTANT)

        await table_store.clear()

        assert len(table_store) == 0
        assert await table_store.associations_consistent()
        assert (await table_store.get_stats()).total_items == 0


class TestRetrieve:
    """Tests for scored retrieval."""

    @pytest.mark.asyncio
    async def test_best_match_first(self, long_term):
        await long_term.store("gardening tips for spring", IMPORTANT)
        target = await long_term.store("python asyncio event loop", IMPORTANT)

        hits = await long_term.retrieve("python asyncio", 2)

        assert hits[0].record_id == target
        assert hits[0].relevance_score >= hits[1].relevance_score
        assert all(0.0 <= h.relevance_score <= 1.0 for h in hits)

    @pytest.mark.asyncio
    async def test_failing_generator_degrades(self, clock, metrics):
        store = LongTermStore(
            LongTermConfig(vector_dimension=3),
            vector_generator=BrokenGenerator(),
            clock=clock,
            metrics=metrics,
        )
        rid = await store.store("python asyncio event loop", IMPORTANT)

        hits = await store.retrieve("python asyncio", 1)

        assert rid is not None
        assert [h.record_id for h in hits] == [rid]
        assert await store.association_count(rid) == 0

    @pytest.mark.asyncio
    async def test_slow_generator_times_out(self, clock, metrics):
        store = LongTermStore(
            LongTermConfig(vector_dimension=3, collaborator_timeout_seconds=0.01),
            vector_generator=SlowGenerator(),
            clock=clock,
            metrics=metrics,
        )

        rid = await store.store("python asyncio event loop", IMPORTANT)

        assert rid in store

    @pytest.mark.asyncio
    async def test_wrong_vector_shape_is_ignored(self, clock, metrics):
        store = LongTermStore(
            LongTermConfig(vector_dimension=4),
            vector_generator=TableGenerator(VECTORS, dimension=4),
            clock=clock,
            metrics=metrics,
        )

        rid = await store.store("alpha", IMPORTANT)

        assert rid in store
        assert store.policy.vector(rid) is None


class TestPersistence:
    """Tests for the durable copy behind the cache."""

    @pytest.mark.asyncio
    async def test_write_through(self, clock, metrics):
        backend = InMemoryPersistence()
        store = LongTermStore(persistence=backend, clock=clock, metrics=metrics)

        rid = await store.store("deploys happen on tuesdays", IMPORTANT)
        assert rid in backend

        await store.update(rid, "deploys happen on wednesdays")
        assert (await backend.get(rid)).content == "deploys happen on wednesdays"

        await store.delete(rid)
        assert rid not in backend

    @pytest.mark.asyncio
    async def test_read_fall_through(self, clock, metrics):
        backend = InMemoryPersistence()
        writer = LongTermStore(persistence=backend, clock=clock, metrics=metrics)
        rid = await writer.store("deploys happen on tuesdays", IMPORTANT)

        reader = LongTermStore(persistence=backend, clock=clock, metrics=metrics)
        record = await reader.get(rid)

        assert record is not None
        assert record.content == "deploys happen on tuesdays"
        assert record.tier is MemoryTier.LONG_TERM
        assert rid in reader

    @pytest.mark.asyncio
    async def test_delete_of_uncached_record(self, clock, metrics):
        backend = InMemoryPersistence()
        writer = LongTermStore(persistence=backend, clock=clock, metrics=metrics)
        rid = await writer.store("deploys happen on tuesdays", IMPORTANT)

        other = LongTermStore(persistence=backend, clock=clock, metrics=metrics)

        assert await other.delete(rid)
        assert rid not in backend

    @pytest.mark.asyncio
    async def test_failed_write_keeps_record(self, clock, metrics):
        store = LongTermStore(persistence=BrokenPersistence(), clock=clock, metrics=metrics)

        rid = await store.store("deploys happen on tuesdays", IMPORTANT)

        assert rid is not None
        assert (await store.get(rid)).content == "deploys happen on tuesdays"
