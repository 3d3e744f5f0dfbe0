"""
Unit Tests: Short-Term Store

Tests:
    - Store / get / update / delete round trips
    - Idle expiry and lazy removal
    - Retrieval ordering, thresholds and access bookkeeping
    - Capacity sweep and explicit cleanup
    - Events and listener isolation
"""

import pytest

from ctxmesh.core.config import ShortTermConfig
from ctxmesh.core.errors import ConfigurationError, ValidationError
from ctxmesh.memory.records import CleanupCriteria, MemoryEventType, MemoryTier
from ctxmesh.memory.stm.short_term import ShortTermStore


class Recorder:
    """Listener capturing every event."""

    def __init__(self):
        self.events = []

    async def on_memory_event(self, event):
        self.events.append(event)

    def types(self):
        return [e.event_type for e in self.events]


class TestShortTermBasics:
    """Tests for single-record operations."""

    @pytest.mark.asyncio
    async def test_store_then_get(self, short_term):
        """Test stored content comes back and the access is counted."""
        rid = await short_term.store("remember the milk", {"type": "note"})

        record = await short_term.get(rid)

        assert record is not None
        assert record.content == "remember the milk"
        assert record.tier is MemoryTier.SHORT_TERM
        assert record.access_count == 2
        assert record.metadata == {"type": "note"}
        assert record.last_accessed >= record.created_at

    @pytest.mark.asyncio
    async def test_returned_record_is_a_copy(self, short_term):
        rid = await short_term.store("original", {"tags": ["a"]})

        record = await short_term.get(rid)
        record.content = "mutated"
        record.metadata["tags"].append("b")

        again = await short_term.peek(rid)
        assert again.content == "original"
        assert again.metadata == {"tags": ["a"]}

    @pytest.mark.asyncio
    async def test_get_missing(self, short_term):
        assert await short_term.get("nope") is None

    @pytest.mark.asyncio
    async def test_update(self, short_term):
        rid = await short_term.store("draft", {"v": 1})

        assert await short_term.update(rid, "final", {"v": 2})

        record = await short_term.peek(rid)
        assert record.content == "final"
        assert record.metadata == {"v": 2}
        assert record.access_count == 2

    @pytest.mark.asyncio
    async def test_update_keeps_metadata_when_omitted(self, short_term):
        rid = await short_term.store("draft", {"v": 1})

        assert await short_term.update(rid, "final")

        assert (await short_term.peek(rid)).metadata == {"v": 1}

    @pytest.mark.asyncio
    async def test_update_missing(self, short_term):
        assert not await short_term.update("nope", "x")

    @pytest.mark.asyncio
    async def test_delete(self, short_term):
        rid = await short_term.store("temp")

        assert await short_term.delete(rid)
        assert not await short_term.delete(rid)
        assert await short_term.get(rid) is None

    @pytest.mark.asyncio
    async def test_invalid_metadata_rejected(self, short_term):
        with pytest.raises(ValidationError):
            await short_term.store("x", {"bad": object()})

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            ShortTermStore(ShortTermConfig(max_capacity=0))


class TestShortTermExpiry:
    """Tests for idle expiry."""

    @pytest.mark.asyncio
    async def test_expired_record_is_removed_on_get(self, short_term, clock):
        recorder = Recorder()
        short_term.add_listener(recorder)
        rid = await short_term.store("stale soon")

        clock.advance(3601)

        assert await short_term.get(rid) is None
        assert len(short_term) == 0
        assert recorder.types() == [MemoryEventType.STORED, MemoryEventType.EXPIRED]

    @pytest.mark.asyncio
    async def test_access_postpones_expiry(self, short_term, clock):
        rid = await short_term.store("kept alive")

        clock.advance(3000)
        assert await short_term.get(rid) is not None
        clock.advance(3000)

        assert await short_term.get(rid) is not None

    @pytest.mark.asyncio
    async def test_update_of_expired_record_fails(self, short_term, clock):
        rid = await short_term.store("old")
        clock.advance(4000)

        assert not await short_term.update(rid, "new")
        assert rid not in short_term

    @pytest.mark.asyncio
    async def test_retrieve_skips_expired(self, short_term, clock):
        await short_term.store("python one")
        clock.advance(4000)
        fresh = await short_term.store("python two")

        hits = await short_term.retrieve("python", 10)

        assert [h.record_id for h in hits] == [fresh]
        assert len(short_term) == 1


class TestShortTermRetrieve:
    """Tests for scored retrieval."""

    @pytest.mark.asyncio
    async def test_scores_non_increasing(self, short_term, clock):
        await short_term.store("python decorators guide")
        clock.advance(10)
        await short_term.store("rust ownership rules")
        clock.advance(10)
        await short_term.store("python asyncio tips")

        hits = await short_term.retrieve("python asyncio", 5)

        scores = [h.relevance_score for h in hits]
        assert scores == sorted(scores, reverse=True)
        assert hits[0].content == "python asyncio tips"

    @pytest.mark.asyncio
    async def test_threshold_and_limit(self, short_term):
        await short_term.store("python decorators guide")
        await short_term.store("rust ownership rules")
        await short_term.store("python asyncio tips")

        hits = await short_term.retrieve("python", 10, threshold=0.5)
        assert {h.content for h in hits} == {"python decorators guide", "python asyncio tips"}

        limited = await short_term.retrieve("python", 1)
        assert len(limited) == 1

    @pytest.mark.asyncio
    async def test_retrieve_updates_bookkeeping(self, short_term, clock):
        recorder = Recorder()
        short_term.add_listener(recorder)
        rid = await short_term.store("python decorators guide")
        clock.advance(5)

        hits = await short_term.retrieve("python", 3)

        record = await short_term.peek(rid)
        assert record.access_count == 2
        assert record.last_accessed == clock.now
        assert record.relevance_score == hits[0].relevance_score
        assert recorder.types().count(MemoryEventType.RETRIEVED) == 1

    @pytest.mark.asyncio
    async def test_empty_store(self, short_term):
        assert await short_term.retrieve("anything", 5) == []

    @pytest.mark.asyncio
    async def test_non_positive_limit_rejected(self, short_term):
        with pytest.raises(ValidationError):
            await short_term.retrieve("x", 0)


class TestShortTermCapacity:
    """Tests for capacity sweep and explicit cleanup."""

    @pytest.mark.asyncio
    async def test_capacity_sweep_before_insert(self, short_term):
        """Test a full store evicts down to 80% and keeps frequently used records."""
        ids = [await short_term.store(f"note {i}") for i in range(10)]
        await short_term.get(ids[0])
        await short_term.get(ids[1])

        newest = await short_term.store("note 10")

        assert len(short_term) == 9
        assert newest in short_term
        assert ids[0] in short_term and ids[1] in short_term
        assert ids[2] not in short_term and ids[3] not in short_term

    @pytest.mark.asyncio
    async def test_cleanup_max_items_keeps_best(self, short_term):
        ids = [await short_term.store(f"note {i}") for i in range(5)]
        for _ in range(3):
            await short_term.get(ids[4])
        await short_term.get(ids[2])

        removed = await short_term.cleanup(CleanupCriteria(max_items=2))

        assert removed == 3
        assert len(short_term) == 2
        assert ids[4] in short_term and ids[2] in short_term

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, short_term):
        for i in range(5):
            await short_term.store(f"note {i}")
        criteria = CleanupCriteria(max_items=3, min_access_count=1)

        first = await short_term.cleanup(criteria)
        second = await short_term.cleanup(criteria)

        assert first == 2
        assert second == 0

    @pytest.mark.asyncio
    async def test_cleanup_criteria_are_ored(self, short_term):
        """Test a record failing any single rule is removed."""
        popular = await short_term.store("popular")
        await short_term.get(popular)
        await short_term.store("lonely")

        removed = await short_term.cleanup(CleanupCriteria(max_age_seconds=10_000, min_access_count=2))

        assert removed == 1
        assert popular in short_term

    @pytest.mark.asyncio
    async def test_default_cleanup_uses_creation_age(self, short_term, clock):
        rid = await short_term.store("long lived")
        clock.advance(1800)
        await short_term.get(rid)
        clock.advance(1900)
        young = await short_term.store("young")

        removed = await short_term.cleanup()

        assert removed == 1
        assert rid not in short_term
        assert young in short_term

    @pytest.mark.asyncio
    async def test_cleanup_fires_delete_events(self, short_term):
        recorder = Recorder()
        short_term.add_listener(recorder)
        await short_term.store("a")
        await short_term.store("b")

        await short_term.cleanup(CleanupCriteria(max_items=0))

        assert recorder.types().count(MemoryEventType.DELETED) == 2


class TestShortTermStatsAndEvents:
    """Tests for stats, clear and listener behaviour."""

    @pytest.mark.asyncio
    async def test_stats(self, short_term, clock):
        first = await short_term.store("abc")
        clock.advance(60)
        await short_term.store("defgh")
        await short_term.get(first)

        stats = await short_term.get_stats()

        assert stats.total_items == 2
        assert stats.total_size == 8
        assert stats.average_access_count == pytest.approx(1.5)
        assert stats.newest == clock.now
        assert (stats.newest - stats.oldest).total_seconds() == 60

    @pytest.mark.asyncio
    async def test_clear_resets_and_is_silent(self, short_term):
        await short_term.store("a")
        recorder = Recorder()
        short_term.add_listener(recorder)

        await short_term.clear()

        stats = await short_term.get_stats()
        assert stats.total_items == 0 and stats.total_size == 0
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_store(self, short_term):
        class Broken:
            async def on_memory_event(self, event):
                raise RuntimeError("boom")

        recorder = Recorder()
        short_term.add_listener(Broken())
        short_term.add_listener(recorder)

        rid = await short_term.store("still works")

        assert rid is not None
        assert recorder.types() == [MemoryEventType.STORED]

    @pytest.mark.asyncio
    async def test_listener_may_unsubscribe_during_dispatch(self, short_term):
        class OneShot:
            def __init__(self, store):
                self.store = store
                self.calls = 0

            async def on_memory_event(self, event):
                self.calls += 1
                self.store.remove_listener(self)

        one_shot = OneShot(short_term)
        recorder = Recorder()
        short_term.add_listener(one_shot)
        short_term.add_listener(recorder)

        await short_term.store("first")
        await short_term.store("second")

        assert one_shot.calls == 1
        assert len(recorder.events) == 2

    @pytest.mark.asyncio
    async def test_access_history(self, short_term, clock):
        rid = await short_term.store("tracked")
        clock.advance(5)
        await short_term.get(rid)

        history = await short_term.access_history(rid)

        assert len(history) == 2
        assert history[-1] == clock.now
