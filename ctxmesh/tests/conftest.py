# =============================================================================
# CONFTEST - Pytest Fixtures and Configuration
# =============================================================================
# Shared fixtures: a controllable clock and components wired to it.
# Each test gets its own MetricsCollector so counters never leak between tests.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ctxmesh.context.window import ContextWindow
from ctxmesh.core.config import ContextWindowConfig, LongTermConfig, ShortTermConfig
from ctxmesh.memory.ltm.long_term import LongTermStore
from ctxmesh.memory.manager import MemoryManager
from ctxmesh.memory.stm.short_term import ShortTermStore
from ctxmesh.observability.metrics import MetricsCollector


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def short_term(clock: FakeClock, metrics: MetricsCollector) -> ShortTermStore:
    return ShortTermStore(ShortTermConfig(max_capacity=10, max_age_seconds=3600), clock=clock, metrics=metrics)


@pytest.fixture
def long_term(clock: FakeClock, metrics: MetricsCollector) -> LongTermStore:
    return LongTermStore(LongTermConfig(), clock=clock, metrics=metrics)


@pytest.fixture
def manager(clock: FakeClock, metrics: MetricsCollector) -> MemoryManager:
    return MemoryManager(
        short_term=ShortTermStore(clock=clock, metrics=metrics),
        long_term=LongTermStore(clock=clock, metrics=metrics),
        metrics=metrics,
    )


@pytest.fixture
def window(clock: FakeClock, metrics: MetricsCollector) -> ContextWindow:
    return ContextWindow(ContextWindowConfig(token_budget=100), clock=clock, metrics=metrics)

