"""
Shared pytest fixtures for the buy-index test suite.

Provides:
  - Fake collaborators (news, judges, social, trend, inflation, storage,
    approximator) with call counters, so orchestration tests never touch
    the network.
  - ``product`` / ``flat_history``: sample inputs.
  - ``make_orchestrator``: builds a ScoreOrchestrator around the fakes.
"""

import asyncio
from datetime import date, timedelta
from typing import List, Optional

import pytest

from buyindex.models.datatypes import (
    JudgeVerdict, PostMetric, PricePoint, ProductInput, ServiceScore, SocialSignal,
)
from buyindex.pipeline.orchestrator import ScoreOrchestrator
from buyindex.pipeline.producers import ServiceRegistry
from buyindex.scoring.price_series import PriceSeriesResolver

TODAY = date(2026, 10, 1)


# ── Fake collaborators ────────────────────────────────────────────────────────

class FakeNews:
    def __init__(self, score=70.0, error=None, exc: Optional[Exception] = None):
        self.result = ServiceScore(score=score, rationale="fake news", error=error)
        self.exc = exc
        self.calls = 0

    def score(self, product_title):
        self.calls += 1
        if self.exc:
            raise self.exc
        return self.result


class FakeJudge:
    def __init__(self, ratings=(8, 6), exc: Optional[Exception] = None):
        self.ratings = ratings
        self.exc = exc
        self.calls = 0

    def score(self, title, description):
        self.calls += 1
        if self.exc:
            raise self.exc
        return [JudgeVerdict(judge=f"judge-{i}", rating=r) for i, r in enumerate(self.ratings)]


class FakeSocial:
    def __init__(self, score=40.0, posts: Optional[List[PostMetric]] = None, exc=None):
        self.signal = SocialSignal(score=score, posts=posts or [])
        self.exc = exc
        self.calls = 0

    def score(self, product_title):
        self.calls += 1
        if self.exc:
            raise self.exc
        return self.signal


class FakeTrend:
    def __init__(self, score=30.0, exc=None):
        self.exc = exc
        self.value = score
        self.calls = []

    def score(self, product_title, category=None):
        self.calls.append((product_title, category))
        if self.exc:
            raise self.exc
        return ServiceScore(score=self.value)


class FakeInflation:
    def __init__(self, score=90.0, exc=None):
        self.exc = exc
        self.value = score
        self.calls = 0

    def score(self):
        self.calls += 1
        if self.exc:
            raise self.exc
        return ServiceScore(score=self.value)


class FakeStorage:
    def __init__(self, ok=True, exc=None):
        self.ok = ok
        self.exc = exc
        self.saved = []

    def persist_composite_score(self, product_id, score):
        self.saved.append((product_id, score))
        if self.exc:
            raise self.exc
        return self.ok


class FakeApproximator:
    """Returns ``lines`` (or raises ``exc``) and counts calls."""

    def __init__(self, lines: str = "", exc=None):
        self.lines = lines
        self.exc = exc
        self.calls = 0

    def approximate(self, title, category, current_price, days):
        self.calls += 1
        if self.exc:
            raise self.exc
        return self.lines


class FailingResolver(PriceSeriesResolver):
    """Resolver whose trend-model path always raises."""

    async def resolve_for_trend_models(self, product):
        raise RuntimeError("price history unavailable")


class SlowNews(FakeNews):
    """Async news service that blocks until released."""

    def __init__(self, score=70.0):
        super().__init__(score=score)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def score(self, product_title):
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return self.result


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def product() -> ProductInput:
    return ProductInput(
        product_id="kb-001",
        title="Keychron K2 Wireless Mechanical Keyboard",
        current_price=89.99,
        description="75% Bluetooth mechanical keyboard",
        category="Keyboards",
    )


@pytest.fixture
def flat_history() -> List[PricePoint]:
    """Ten days at a constant price of 100."""
    return [PricePoint(date=TODAY - timedelta(days=9 - i), price=100.0) for i in range(10)]


@pytest.fixture
def services() -> ServiceRegistry:
    return ServiceRegistry(
        news=FakeNews(),
        judge=FakeJudge(),
        social=FakeSocial(),
        trend=FakeTrend(),
        inflation=FakeInflation(),
    )


@pytest.fixture
def failing_services() -> ServiceRegistry:
    boom = RuntimeError("collaborator down")
    return ServiceRegistry(
        news=FakeNews(exc=boom),
        judge=FakeJudge(exc=boom),
        social=FakeSocial(exc=boom),
        trend=FakeTrend(exc=boom),
        inflation=FakeInflation(exc=boom),
    )


@pytest.fixture
def make_orchestrator():
    def _make(services, resolver=None, storage=None, **kwargs) -> ScoreOrchestrator:
        return ScoreOrchestrator(
            services=services,
            resolver=resolver or PriceSeriesResolver(today=TODAY),
            storage=storage,
            **kwargs,
        )
    return _make
