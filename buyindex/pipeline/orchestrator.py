"""Score orchestrator — acquires every category score of a product and builds the index.

Flow per run:
  1. Producers run in the fixed evaluation order, one at a time (interactive)
     or in concurrent groups (batch).
  2. A producer that raises, or answers with an unusable score, is settled at
     the fallback score 50; the run never aborts.
  3. Each settled category is emitted as a :class:`CategoryEvent`.
  4. With all seven dynamic categories settled, the index is computed with
     ``predictedPrice`` fixed at 100 and handed to storage exactly once.

Runs can be abandoned with :meth:`ScoringRun.cancel`: in-flight producers are
cancelled, late results are dropped and nothing is persisted.
"""

import asyncio
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from buyindex.core.async_utils import call_collaborator
from buyindex.core.errors import MalformedResult
from buyindex.core.logger import logger
from buyindex.models.datatypes import (
    CategoryEvent, CategoryScore, CategoryStatus, ExecutionMode, IndexCategory,
    IndexResult, ProductInput, RunStatus,
)
from buyindex.pipeline.producers import (
    CategoryProducer, RunContext, ServiceRegistry, SharedPriceSeries,
    default_producers, validate_score,
)
from buyindex.scoring.index import calculate_index, calculate_partial_index
from buyindex.scoring.price_series import PriceSeriesResolver
from buyindex.scoring.virality import DEFAULT_MAX_ENGAGEMENT_RATE, DEFAULT_MAX_GROWTH_PER_HOUR

EVALUATION_ORDER: Tuple[IndexCategory, ...] = (
    IndexCategory.RELATED_NEWS,
    IndexCategory.LLM_SCORE,
    IndexCategory.SOCIAL_MEDIA_PRESENCE,
    IndexCategory.SEARCH_TREND,
    IndexCategory.VOLATILITY,
    IndexCategory.MOVING_AVERAGE,
    IndexCategory.INFLATION_SCORE,
)

# Categories inside a group are independent; groups run in sequence.
BATCH_GROUPS: Tuple[Tuple[IndexCategory, ...], ...] = (
    (IndexCategory.RELATED_NEWS, IndexCategory.INFLATION_SCORE, IndexCategory.LLM_SCORE),
    (IndexCategory.SOCIAL_MEDIA_PRESENCE,),
    (IndexCategory.SEARCH_TREND,),
    (IndexCategory.VOLATILITY, IndexCategory.MOVING_AVERAGE),
)

FALLBACK_SCORE = 50.0
RESERVED_PREDICTED_PRICE = 100.0

_CATEGORY_TRANSITIONS = {
    CategoryStatus.PENDING: {CategoryStatus.FETCHING},
    CategoryStatus.FETCHING: {CategoryStatus.RESOLVED, CategoryStatus.FAILED_FALLBACK},
    CategoryStatus.RESOLVED: {CategoryStatus.DONE},
    CategoryStatus.FAILED_FALLBACK: {CategoryStatus.DONE},
    CategoryStatus.DONE: set(),
}

_RUN_TRANSITIONS = {
    RunStatus.NOT_STARTED: {RunStatus.IN_PROGRESS, RunStatus.ABANDONED},
    RunStatus.IN_PROGRESS: {RunStatus.COMPLETE, RunStatus.ABANDONED},
    RunStatus.COMPLETE: set(),
    RunStatus.ABANDONED: set(),
}


class ScoringRun:
    """One product's scoring run.

    Consume :meth:`events` to drive it; the stream is finite and can only be
    consumed once. ``result`` holds the final :class:`IndexResult` once the
    run is COMPLETE.
    """

    def __init__(
        self,
        context: RunContext,
        producers: Sequence[CategoryProducer],
        mode: ExecutionMode = ExecutionMode.BATCH,
        storage=None,
    ) -> None:
        self.context = context
        self.mode = mode
        self.storage = storage
        self._producers: Dict[IndexCategory, CategoryProducer] = {p.category: p for p in producers}
        missing = [c for c in EVALUATION_ORDER if c not in self._producers]
        if missing:
            raise ValueError(f"no producer for {', '.join(c.value for c in missing)}")

        self.status = RunStatus.NOT_STARTED
        self.category_status: Dict[IndexCategory, CategoryStatus] = {
            c: CategoryStatus.PENDING for c in EVALUATION_ORDER
        }
        self.scores: Dict[IndexCategory, CategoryScore] = {}
        self.settled_status: Dict[IndexCategory, CategoryStatus] = {}
        self.current_category: Optional[IndexCategory] = None
        self.result: Optional[IndexResult] = None
        self.persisted: Optional[bool] = None
        self._stream_taken = False
        self._in_flight: List[asyncio.Task] = []

    # ── public ────────────────────────────────────────────────────────────────

    @property
    def product(self) -> ProductInput:
        return self.context.product

    @property
    def fallback_categories(self) -> List[IndexCategory]:
        return [
            c for c in EVALUATION_ORDER
            if self.settled_status.get(c) == CategoryStatus.FAILED_FALLBACK
        ]

    def events(self) -> AsyncIterator[CategoryEvent]:
        """Return the run's event stream. Raises RuntimeError when asked twice."""
        if self._stream_taken:
            raise RuntimeError("ScoringRun events can only be consumed once")
        if self.status == RunStatus.ABANDONED:
            raise RuntimeError("ScoringRun was abandoned before it started")
        self._stream_taken = True
        return self._stream()

    def cancel(self) -> None:
        """Abandon the run: cancel in-flight producers and drop anything that arrives later."""
        if self.status in (RunStatus.COMPLETE, RunStatus.ABANDONED):
            return
        self._set_status(RunStatus.ABANDONED)
        self.current_category = None
        for task in self._in_flight:
            if not task.done():
                task.cancel()
        self.context.price_series.cancel()
        logger.info(f"ScoringRun: {self.product.product_id} abandoned at {self._progress()}")

    def partial_index(self) -> IndexResult:
        """Index over the categories settled so far; the rest are flagged loading."""
        scores = {c: r.score for c, r in self.scores.items()}
        scores[IndexCategory.PREDICTED_PRICE] = RESERVED_PREDICTED_PRICE
        return calculate_partial_index(scores)

    # ── internal ──────────────────────────────────────────────────────────────

    @property
    def _abandoned(self) -> bool:
        return self.status == RunStatus.ABANDONED

    async def _stream(self) -> AsyncIterator[CategoryEvent]:
        self._set_status(RunStatus.IN_PROGRESS)
        logger.info(
            f"ScoringRun: {self.product.product_id} started ({self.mode.value}) "
            f"— {self.product.title[:50]!r}"
        )
        if self.mode == ExecutionMode.INTERACTIVE:
            groups = [(c,) for c in EVALUATION_ORDER]
        else:
            groups = list(BATCH_GROUPS)

        try:
            for group in groups:
                if self._abandoned:
                    return
                self._in_flight = [
                    asyncio.ensure_future(self._run_step(self._producers[c])) for c in group
                ]
                outcomes = await asyncio.gather(*self._in_flight, return_exceptions=True)
                self._in_flight = []
                if self._abandoned:
                    return
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
                    yield outcome
                    if self._abandoned:
                        return
            await self._finish()
        finally:
            # Consumer stopped early (break/aclose) or an error escaped.
            if self.status == RunStatus.IN_PROGRESS:
                self.cancel()

    async def _run_step(self, producer: CategoryProducer) -> CategoryEvent:
        category = producer.category
        self._transition(category, CategoryStatus.FETCHING)
        self.current_category = category
        try:
            result = await producer.produce(self.context)
            if not isinstance(result, CategoryScore):
                raise MalformedResult(f"producer returned {type(result).__name__}")
            validate_score(result.score, category.value)
            status = CategoryStatus.RESOLVED
            if result.error:
                logger.info(f"ScoringRun: {category.value} resolved with note: {result.error}")
        except Exception as exc:
            logger.warning(
                f"ScoringRun: {category.value} failed for {self.product.product_id} "
                f"— fallback {FALLBACK_SCORE:.0f} ({exc.__class__.__name__}: {exc})"
            )
            result = CategoryScore(
                score=FALLBACK_SCORE,
                rationale="Score unavailable; using neutral fallback.",
                error=str(exc) or exc.__class__.__name__,
            )
            status = CategoryStatus.FAILED_FALLBACK

        if self._abandoned:
            raise asyncio.CancelledError()

        self._transition(category, status)
        self.settled_status[category] = status
        self.scores[category] = result
        self._transition(category, CategoryStatus.DONE)
        logger.debug(f"ScoringRun: {category.value} = {result.score:.0f} ({status.value})")
        return CategoryEvent(category=category, result=result, status=status)

    async def _finish(self) -> None:
        if self._abandoned:
            return
        scores = {c: r.score for c, r in self.scores.items()}
        scores[IndexCategory.PREDICTED_PRICE] = RESERVED_PREDICTED_PRICE
        self.result = calculate_index(scores)
        self._set_status(RunStatus.COMPLETE)
        self.current_category = None
        logger.info(
            f"ScoringRun: {self.product.product_id} complete — index {self.result.total} "
            f"({len(self.fallback_categories)} fallback(s))"
        )
        await self._persist(self.result.total)

    async def _persist(self, total: int) -> None:
        if self.storage is None or self.persisted is not None:
            return
        try:
            ok = await call_collaborator(
                self.storage.persist_composite_score, self.product.product_id, total
            )
        except Exception as exc:
            logger.error(f"ScoringRun: persisting {self.product.product_id} raised: {exc}")
            ok = False
        if not ok:
            logger.error(f"ScoringRun: composite score for {self.product.product_id} not persisted")
        self.persisted = bool(ok)

    def _transition(self, category: IndexCategory, new: CategoryStatus) -> None:
        current = self.category_status[category]
        if new not in _CATEGORY_TRANSITIONS[current]:
            raise RuntimeError(f"{category.value}: illegal transition {current.value} → {new.value}")
        self.category_status[category] = new

    def _set_status(self, new: RunStatus) -> None:
        if new not in _RUN_TRANSITIONS[self.status]:
            raise RuntimeError(f"run: illegal transition {self.status.value} → {new.value}")
        self.status = new

    def _progress(self) -> str:
        return f"{len(self.scores)}/{len(EVALUATION_ORDER)} categories"


class ScoreOrchestrator:
    """Entry point of the engine: builds and drives :class:`ScoringRun`s.

    Args:
        services: External collaborators.
        resolver: Price series resolver shared by every run (stateless).
        storage: Optional ``ScoreStorage`` receiving final totals.
        max_engagement_rate: Virality engagement-rate ceiling.
        max_growth_per_hour: Virality growth ceiling.
        product_delay_seconds: Pause between products in :meth:`compute_many`.
    """

    def __init__(
        self,
        services: ServiceRegistry,
        resolver: Optional[PriceSeriesResolver] = None,
        storage=None,
        max_engagement_rate: float = DEFAULT_MAX_ENGAGEMENT_RATE,
        max_growth_per_hour: float = DEFAULT_MAX_GROWTH_PER_HOUR,
        product_delay_seconds: float = 0.0,
    ) -> None:
        self.services = services
        self.resolver = resolver or PriceSeriesResolver()
        self.storage = storage
        self.max_engagement_rate = max_engagement_rate
        self.max_growth_per_hour = max_growth_per_hour
        self.product_delay_seconds = product_delay_seconds

    def start_run(
        self, product: ProductInput, mode: ExecutionMode = ExecutionMode.BATCH
    ) -> ScoringRun:
        """Create a fresh run with its own memoized price series."""
        context = RunContext(
            product=product,
            services=self.services,
            price_series=SharedPriceSeries(self.resolver, product),
            max_engagement_rate=self.max_engagement_rate,
            max_growth_per_hour=self.max_growth_per_hour,
        )
        return ScoringRun(context, default_producers(), mode=mode, storage=self.storage)

    async def compute_index(
        self, product: ProductInput, mode: ExecutionMode = ExecutionMode.BATCH
    ) -> IndexResult:
        """Run every category for ``product`` and return the composite index."""
        run = self.start_run(product, mode)
        async for _ in run.events():
            pass
        return run.result

    async def compute_many(
        self, products: Sequence[ProductInput]
    ) -> List[Tuple[ProductInput, Optional[ScoringRun]]]:
        """Score products one after another in batch mode.

        A product whose run fails outright is logged and paired with None;
        the remaining products are still scored.
        """
        outcomes: List[Tuple[ProductInput, Optional[ScoringRun]]] = []
        for i, product in enumerate(products):
            if i and self.product_delay_seconds:
                await asyncio.sleep(self.product_delay_seconds)
            try:
                run = self.start_run(product, ExecutionMode.BATCH)
                async for _ in run.events():
                    pass
            except Exception as exc:
                logger.error(f"ScoreOrchestrator: {product.product_id} failed: {exc}")
                outcomes.append((product, None))
                continue
            outcomes.append((product, run))
            logger.info(
                f"ScoreOrchestrator: [{i + 1}/{len(products)}] {product.product_id} "
                f"→ {run.result.total}"
            )
        return outcomes
