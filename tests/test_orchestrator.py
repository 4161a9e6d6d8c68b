"""
Tests for the score orchestrator (buyindex.pipeline.orchestrator).

What we test
------------
1. End-to-end: every collaborator throws ⇒ seven 50s + predictedPrice 100 ⇒ 60.
2. Happy path totals with fake collaborators; a flat stored history at a
   non-round price keeps movingAverage at 50.
3. Fallback vs. resolved: exceptions and malformed scores fall back to 50,
   an ``error`` note with a valid score stays RESOLVED.
4. LLM averaging and social/virality blending.
5. Price series memoization: one approximation per run.
6. Persistence exactly once, never after abandonment, failures tolerated.
7. Execution modes: batch fan-out per group, interactive strict order.
8. Event stream: finite, non-restartable, cancellable; no current category
   once the run completes or is abandoned.
9. ``compute_many`` isolates product failures.
"""

import asyncio
import math
from datetime import timedelta
from types import SimpleNamespace
from typing import List

import pytest

from conftest import (
    FailingResolver, FakeApproximator, FakeJudge, FakeNews, FakeSocial, FakeStorage,
    SlowNews, TODAY,
)
from buyindex.models.datatypes import (
    CategoryStatus, ExecutionMode, IndexCategory, JudgeVerdict, PostMetric,
    PricePoint, ProductInput, RunStatus, ServiceScore, SocialSignal,
)
from buyindex.pipeline.orchestrator import (
    BATCH_GROUPS, EVALUATION_ORDER, FALLBACK_SCORE, ScoreOrchestrator,
)
from buyindex.pipeline.producers import ServiceRegistry, aggregate_judge_ratings
from buyindex.scoring.price_series import PriceSeriesResolver


async def _drain(run) -> list:
    return [event async for event in run.events()]


def _with_history(product: ProductInput, history) -> ProductInput:
    product.known_history = history
    return product


# ── End-to-end totals ─────────────────────────────────────────────────────────

class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_all_collaborators_failing_gives_60(self, product, failing_services, make_orchestrator) -> None:
        orchestrator = make_orchestrator(failing_services, resolver=FailingResolver())
        run = orchestrator.start_run(product)
        events = await _drain(run)

        assert run.result.total == 60
        assert len(events) == 7
        assert all(e.status == CategoryStatus.FAILED_FALLBACK for e in events)
        assert all(e.result.score == FALLBACK_SCORE for e in events)
        assert run.result.scores()[IndexCategory.PREDICTED_PRICE] == 100
        assert run.status == RunStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_happy_path_total(self, product, flat_history, services, make_orchestrator) -> None:
        _with_history(product, flat_history)
        result = await make_orchestrator(services).compute_index(product)
        scores = result.scores()

        assert scores[IndexCategory.RELATED_NEWS] == 70
        assert scores[IndexCategory.LLM_SCORE] == 70       # (8 + 6) / 2 * 10
        assert scores[IndexCategory.SOCIAL_MEDIA_PRESENCE] == 40
        assert scores[IndexCategory.VOLATILITY] == 100     # flat history
        assert scores[IndexCategory.MOVING_AVERAGE] == 50
        assert result.total == 70

    @pytest.mark.asyncio
    async def test_same_total_in_both_modes(self, product, flat_history, services, make_orchestrator) -> None:
        _with_history(product, flat_history)
        orchestrator = make_orchestrator(services)
        batch = await orchestrator.compute_index(product, ExecutionMode.BATCH)
        interactive = await orchestrator.compute_index(product, ExecutionMode.INTERACTIVE)
        assert batch.total == interactive.total

    @pytest.mark.asyncio
    async def test_flat_non_round_history_is_neutral_trend(self, product, services, make_orchestrator) -> None:
        history = [PricePoint(date=TODAY - timedelta(days=69 - i), price=49.95) for i in range(70)]
        _with_history(product, history)
        run = make_orchestrator(services).start_run(product)
        await _drain(run)

        assert run.scores[IndexCategory.MOVING_AVERAGE].score == 50
        assert run.scores[IndexCategory.VOLATILITY].score == 100
        details = run.scores[IndexCategory.MOVING_AVERAGE].details["moving_average"]
        assert details.ma7 == 49.95
        assert details.ma60 == 49.95
        assert details.price_above_ma7 is False
        assert details.price_above_ma60 is False


# ── Fallback vs. resolved ─────────────────────────────────────────────────────

class TestFallback:
    @pytest.mark.asyncio
    async def test_error_note_with_valid_score_is_resolved(self, product, services, make_orchestrator) -> None:
        services.news = FakeNews(score=50, error="SERPAPI_API_KEY is not configured")
        run = make_orchestrator(services).start_run(product)
        events = {e.category: e for e in await _drain(run)}
        news = events[IndexCategory.RELATED_NEWS]
        assert news.status == CategoryStatus.RESOLVED
        assert news.result.error == "SERPAPI_API_KEY is not configured"
        assert IndexCategory.RELATED_NEWS not in run.fallback_categories

    @pytest.mark.parametrize("bad", [150, -1, math.nan, math.inf, "70", None, True])
    @pytest.mark.asyncio
    async def test_malformed_scores_fall_back(self, bad, product, services, make_orchestrator) -> None:
        services.trend = SimpleNamespace(score=lambda title, category=None: ServiceScore(score=bad))
        run = make_orchestrator(services).start_run(product)
        await _drain(run)
        assert run.settled_status[IndexCategory.SEARCH_TREND] == CategoryStatus.FAILED_FALLBACK
        assert run.scores[IndexCategory.SEARCH_TREND].score == 50

    @pytest.mark.asyncio
    async def test_non_score_answer_falls_back(self, product, services, make_orchestrator) -> None:
        services.inflation = SimpleNamespace(score=lambda: "high")
        run = make_orchestrator(services).start_run(product)
        await _drain(run)
        assert IndexCategory.INFLATION_SCORE in run.fallback_categories

    @pytest.mark.asyncio
    async def test_missing_service_falls_back(self, product, make_orchestrator) -> None:
        run = make_orchestrator(ServiceRegistry()).start_run(product)
        await _drain(run)
        assert set(run.fallback_categories) >= {
            IndexCategory.RELATED_NEWS, IndexCategory.LLM_SCORE,
            IndexCategory.SOCIAL_MEDIA_PRESENCE, IndexCategory.SEARCH_TREND,
            IndexCategory.INFLATION_SCORE,
        }
        # price models still run on the synthesized series
        assert run.settled_status[IndexCategory.VOLATILITY] == CategoryStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_category_states_end_done(self, product, failing_services, make_orchestrator) -> None:
        run = make_orchestrator(failing_services).start_run(product)
        await _drain(run)
        assert all(s == CategoryStatus.DONE for s in run.category_status.values())


# ── Category adaptation ───────────────────────────────────────────────────────

class TestLLMAggregation:
    def test_mean_rescaled(self) -> None:
        verdicts = [JudgeVerdict("a", 7), JudgeVerdict("b", 9), JudgeVerdict("c", None, error="timeout")]
        assert aggregate_judge_ratings(verdicts).score == 80

    def test_no_ratings_defaults_to_five(self) -> None:
        result = aggregate_judge_ratings([JudgeVerdict("a", None, error="down")])
        assert result.score == 50
        assert result.error

    def test_out_of_range_ratings_ignored(self) -> None:
        assert aggregate_judge_ratings([JudgeVerdict("a", 42), JudgeVerdict("b", 6)]).score == 60

    @pytest.mark.asyncio
    async def test_judge_failures_resolve_neutral(self, product, services, make_orchestrator) -> None:
        services.judge = FakeJudge(ratings=())
        run = make_orchestrator(services).start_run(product)
        await _drain(run)
        assert run.settled_status[IndexCategory.LLM_SCORE] == CategoryStatus.RESOLVED
        assert run.scores[IndexCategory.LLM_SCORE].score == 50


class TestSocialBlend:
    @pytest.mark.asyncio
    async def test_posts_blend_with_presence(self, product, services, make_orchestrator) -> None:
        post = PostMetric(reach=1000, likes=10, comments=2, shares=1, timestamp_ms=0)
        services.social = FakeSocial(score=50, posts=[post])
        run = make_orchestrator(services).start_run(product)
        await _drain(run)
        assert run.scores[IndexCategory.SOCIAL_MEDIA_PRESENCE].score == 25

    @pytest.mark.asyncio
    async def test_custom_virality_ceilings(self, product, services, make_orchestrator) -> None:
        post = PostMetric(reach=1000, likes=10, comments=2, shares=1, timestamp_ms=0)
        services.social = FakeSocial(score=50, posts=[post])
        orchestrator = make_orchestrator(services, max_engagement_rate=0.017)
        run = orchestrator.start_run(product)
        await _drain(run)
        # ER saturates: 0.5 + 0.002 → 50; 20 + 30 = 50
        assert run.scores[IndexCategory.SOCIAL_MEDIA_PRESENCE].score == 50


# ── Memoization ───────────────────────────────────────────────────────────────

class TestPriceSeriesMemoization:
    @pytest.mark.asyncio
    async def test_one_approximation_per_run(self, product, services, make_orchestrator) -> None:
        lines = "\n".join(f"2026-09-{d:02d},{80 + d}" for d in range(1, 21))
        approximator = FakeApproximator(lines=lines)
        resolver = PriceSeriesResolver(approximator=approximator, today=TODAY)
        orchestrator = make_orchestrator(services, resolver=resolver)

        await orchestrator.compute_index(product, ExecutionMode.BATCH)
        assert approximator.calls == 1

        await orchestrator.compute_index(product, ExecutionMode.INTERACTIVE)
        assert approximator.calls == 2  # each run owns its own series

    @pytest.mark.asyncio
    async def test_volatility_and_ma_share_series(self, product, services, make_orchestrator) -> None:
        run = make_orchestrator(services).start_run(product)
        await _drain(run)
        vol_series = await run.context.price_series.get()
        ma = run.scores[IndexCategory.MOVING_AVERAGE].details["moving_average"]
        assert len(ma.points) == len(vol_series) == 90


# ── Persistence ───────────────────────────────────────────────────────────────

class TestPersistence:
    @pytest.mark.asyncio
    async def test_persisted_exactly_once(self, product, services, make_orchestrator) -> None:
        storage = FakeStorage()
        run = make_orchestrator(services, storage=storage).start_run(product)
        await _drain(run)
        assert storage.saved == [(product.product_id, run.result.total)]
        assert run.persisted is True

    @pytest.mark.asyncio
    async def test_false_result_not_retried(self, product, services, make_orchestrator) -> None:
        storage = FakeStorage(ok=False)
        run = make_orchestrator(services, storage=storage).start_run(product)
        await _drain(run)
        assert len(storage.saved) == 1
        assert run.persisted is False
        assert run.status == RunStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_storage_exception_tolerated(self, product, services, make_orchestrator) -> None:
        storage = FakeStorage(exc=RuntimeError("db locked"))
        run = make_orchestrator(services, storage=storage).start_run(product)
        await _drain(run)
        assert run.result is not None
        assert run.persisted is False


# ── Execution modes ───────────────────────────────────────────────────────────

class Recorder:
    """Async fake services that log when each call starts and ends."""

    def __init__(self) -> None:
        self.log: List[str] = []

    def service(self, name: str, result):
        async def call(*args):
            self.log.append(f"start:{name}")
            await asyncio.sleep(0.01)
            self.log.append(f"end:{name}")
            return result
        return SimpleNamespace(score=call)

    def registry(self) -> ServiceRegistry:
        return ServiceRegistry(
            news=self.service("news", ServiceScore(score=60)),
            judge=self.service("llm", [JudgeVerdict("j", 6)]),
            social=self.service("social", SocialSignal(score=60)),
            trend=self.service("trend", ServiceScore(score=60)),
            inflation=self.service("inflation", ServiceScore(score=60)),
        )


class TestExecutionModes:
    @pytest.mark.asyncio
    async def test_batch_groups_fan_out(self, product, make_orchestrator) -> None:
        recorder = Recorder()
        run = make_orchestrator(recorder.registry()).start_run(product, ExecutionMode.BATCH)
        events = await _drain(run)

        first_group = recorder.log[:6]
        assert sorted(first_group[:3]) == ["start:inflation", "start:llm", "start:news"]
        assert all(entry.startswith("end:") for entry in first_group[3:])
        assert recorder.log[6:] == ["start:social", "end:social", "start:trend", "end:trend"]
        assert [e.category for e in events] == [c for group in BATCH_GROUPS for c in group]

    @pytest.mark.asyncio
    async def test_interactive_is_sequential(self, product, make_orchestrator) -> None:
        recorder = Recorder()
        run = make_orchestrator(recorder.registry()).start_run(product, ExecutionMode.INTERACTIVE)
        seen = []
        async for event in run.events():
            seen.append((event.category, run.current_category))

        assert [c for c, _ in seen] == list(EVALUATION_ORDER)
        assert all(category == current for category, current in seen)
        assert recorder.log == [
            "start:news", "end:news", "start:llm", "end:llm",
            "start:social", "end:social", "start:trend", "end:trend",
            "start:inflation", "end:inflation",
        ]

    @pytest.mark.asyncio
    async def test_partial_index_while_running(self, product, services, make_orchestrator) -> None:
        services.news = FakeNews(score=80)
        run = make_orchestrator(services).start_run(product, ExecutionMode.INTERACTIVE)
        stream = run.events()
        first = await stream.__anext__()
        assert first.category == IndexCategory.RELATED_NEWS

        partial = run.partial_index()
        assert partial.total == 32  # 12 (news) + 20 (predictedPrice)
        assert sum(row.is_loading for row in partial.breakdown) == 6
        await stream.aclose()


# ── Event stream lifecycle ────────────────────────────────────────────────────

class TestEventStream:
    @pytest.mark.asyncio
    async def test_stream_cannot_be_restarted(self, product, services, make_orchestrator) -> None:
        run = make_orchestrator(services).start_run(product)
        await _drain(run)
        with pytest.raises(RuntimeError):
            run.events()

    @pytest.mark.asyncio
    async def test_illegal_category_transition_raises(self, product, services, make_orchestrator) -> None:
        run = make_orchestrator(services).start_run(product)
        with pytest.raises(RuntimeError):
            run._transition(IndexCategory.RELATED_NEWS, CategoryStatus.DONE)

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, product, services, make_orchestrator) -> None:
        news = SlowNews()
        services.news = news
        storage = FakeStorage()
        run = make_orchestrator(services, storage=storage).start_run(product, ExecutionMode.INTERACTIVE)

        consumer = asyncio.ensure_future(_drain(run))
        await news.started.wait()
        run.cancel()
        news.release.set()
        events = await consumer

        assert events == []
        assert run.status == RunStatus.ABANDONED
        assert run.result is None
        assert run.scores == {}
        assert storage.saved == []
        assert services.judge.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_between_events(self, product, services, make_orchestrator) -> None:
        storage = FakeStorage()
        run = make_orchestrator(services, storage=storage).start_run(product, ExecutionMode.INTERACTIVE)
        seen = []
        async for event in run.events():
            seen.append(event.category)
            run.cancel()

        assert seen == [IndexCategory.RELATED_NEWS]
        assert run.status == RunStatus.ABANDONED
        assert storage.saved == []

    @pytest.mark.asyncio
    async def test_closing_stream_early_abandons(self, product, services, make_orchestrator) -> None:
        storage = FakeStorage()
        run = make_orchestrator(services, storage=storage).start_run(product, ExecutionMode.INTERACTIVE)
        stream = run.events()
        await stream.__anext__()
        await stream.aclose()
        assert run.status == RunStatus.ABANDONED
        assert storage.saved == []

    @pytest.mark.asyncio
    async def test_no_current_category_after_completion(self, product, services, make_orchestrator) -> None:
        run = make_orchestrator(services).start_run(product, ExecutionMode.INTERACTIVE)
        assert run.current_category is None
        async for event in run.events():
            assert run.current_category == event.category
        assert run.status == RunStatus.COMPLETE
        assert run.current_category is None

    @pytest.mark.asyncio
    async def test_no_current_category_after_cancel(self, product, services, make_orchestrator) -> None:
        run = make_orchestrator(services).start_run(product, ExecutionMode.INTERACTIVE)
        async for event in run.events():
            assert run.current_category == IndexCategory.RELATED_NEWS
            run.cancel()
        assert run.status == RunStatus.ABANDONED
        assert run.current_category is None


# ── compute_many ──────────────────────────────────────────────────────────────

class BrokenForOneProduct(ScoreOrchestrator):
    def start_run(self, product, mode=ExecutionMode.BATCH):
        if product.product_id == "bad":
            raise RuntimeError("cannot start")
        return super().start_run(product, mode)


class TestComputeMany:
    @pytest.mark.asyncio
    async def test_failure_isolated(self, product, services) -> None:
        orchestrator = BrokenForOneProduct(services, PriceSeriesResolver(today=TODAY))
        bad = ProductInput("bad", "Broken Thing", 10.0)
        outcomes = await orchestrator.compute_many([bad, product])

        assert outcomes[0] == (bad, None)
        assert outcomes[1][0] is product
        assert outcomes[1][1].status == RunStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_pause_between_products(self, product, services, make_orchestrator, monkeypatch) -> None:
        pauses = []
        real_sleep = asyncio.sleep

        async def fake_sleep(seconds, *args, **kwargs):
            if seconds == 3:
                pauses.append(seconds)
                return
            await real_sleep(seconds, *args, **kwargs)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        orchestrator = make_orchestrator(services, product_delay_seconds=3)
        other = ProductInput("kb-002", "Logitech G915 Keyboard", 199.0)
        await orchestrator.compute_many([product, other])
        assert pauses == [3]
