"""Per-category score producers.

One producer class per dynamic :class:`IndexCategory`. Each turns the
answer of its collaborator into a validated :class:`CategoryScore`; any
exception it raises is converted to the fallback score by the orchestrator.

    RelatedNewsProducer     NewsService.score(title)
    LLMScoreProducer        LanguageModelJudge.score(title, description), averaged
    SocialMediaProducer     SocialService.score(title), blended with virality
    SearchTrendProducer     TrendService.score(title, category)
    VolatilityProducer      shared price series → volatility model
    MovingAverageProducer   shared price series → moving-average model
    InflationProducer       InflationService.score()
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from buyindex.core.async_utils import call_collaborator
from buyindex.core.errors import ConfigurationMissing, DataInsufficiency, MalformedResult
from buyindex.core.logger import logger
from buyindex.models.datatypes import (
    CategoryScore, IndexCategory, JudgeVerdict, PricePoint, ProductInput,
)
from buyindex.scoring.bounds import bounded_score, is_finite_number
from buyindex.scoring.moving_average import compute_moving_average
from buyindex.scoring.price_series import PriceSeriesResolver
from buyindex.scoring.virality import (
    DEFAULT_MAX_ENGAGEMENT_RATE, DEFAULT_MAX_GROWTH_PER_HOUR,
    blend_social_score, compute_virality,
)
from buyindex.scoring.volatility import compute_volatility

NEUTRAL_JUDGE_RATING = 5.0


@dataclass
class ServiceRegistry:
    """The external collaborators a run may call. Missing ones fail their category."""
    news: Any = None
    judge: Any = None
    social: Any = None
    trend: Any = None
    inflation: Any = None


class SharedPriceSeries:
    """The resolved price series of one run, computed at most once.

    The first caller starts resolution; concurrent and later callers await
    the same task.
    """

    def __init__(self, resolver: PriceSeriesResolver, product: ProductInput) -> None:
        self.resolver = resolver
        self.product = product
        self._task: Optional[asyncio.Task] = None

    async def get(self) -> List[PricePoint]:
        if self._task is None:
            self._task = asyncio.ensure_future(self.resolver.resolve_for_trend_models(self.product))
        return await asyncio.shield(self._task)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()


@dataclass
class RunContext:
    """Everything a producer may read during one scoring run."""
    product: ProductInput
    services: ServiceRegistry
    price_series: SharedPriceSeries
    max_engagement_rate: float = DEFAULT_MAX_ENGAGEMENT_RATE
    max_growth_per_hour: float = DEFAULT_MAX_GROWTH_PER_HOUR


def validate_score(value: Any, source: str) -> float:
    """Return ``value`` as a float, or raise MalformedResult unless it is finite and in [0, 100]."""
    if not is_finite_number(value) or not 0 <= value <= 100:
        raise MalformedResult(f"{source} returned an unusable score: {value!r}")
    return float(value)


def _require(service: Any, name: str) -> Any:
    if service is None:
        raise ConfigurationMissing(f"no {name} service configured")
    return service


def _from_service_score(result: Any, source: str) -> CategoryScore:
    """Adapt a ServiceScore-like answer; anything without a valid ``score`` is malformed."""
    score = validate_score(getattr(result, "score", None), source)
    return CategoryScore(
        score=score,
        rationale=getattr(result, "rationale", None),
        error=getattr(result, "error", None),
        details=dict(getattr(result, "details", None) or {}),
    )


def aggregate_judge_ratings(verdicts: List[JudgeVerdict]) -> CategoryScore:
    """Average the 1–10 ratings of successful judges and rescale to 0–100.

    Judges with an error or a rating outside 1–10 are ignored; with none
    left the neutral rating 5 is used.
    """
    ratings = [
        float(v.rating) for v in verdicts
        if v.error is None and is_finite_number(v.rating) and 1 <= v.rating <= 10
    ]
    if ratings:
        mean = sum(ratings) / len(ratings)
        rationale = f"{len(ratings)} of {len(verdicts)} judge(s) rated it {mean:.1f}/10 on average."
        error = None
    else:
        mean = NEUTRAL_JUDGE_RATING
        rationale = "No judge returned a rating; using a neutral 5/10."
        error = "no usable judge ratings"
    return CategoryScore(
        score=bounded_score(mean * 10),
        rationale=rationale,
        error=error,
        details={"verdicts": list(verdicts), "ratings": ratings},
    )


# ── producers ────────────────────────────────────────────────────────────────

class CategoryProducer(ABC):
    """Produces the score of exactly one category."""

    category: IndexCategory

    @abstractmethod
    async def produce(self, context: RunContext) -> CategoryScore:
        pass


class RelatedNewsProducer(CategoryProducer):
    category = IndexCategory.RELATED_NEWS

    async def produce(self, context: RunContext) -> CategoryScore:
        news = _require(context.services.news, "news")
        result = await call_collaborator(news.score, context.product.title)
        return _from_service_score(result, "news service")


class LLMScoreProducer(CategoryProducer):
    category = IndexCategory.LLM_SCORE

    async def produce(self, context: RunContext) -> CategoryScore:
        judge = _require(context.services.judge, "language-model judge")
        product = context.product
        verdicts = await call_collaborator(
            judge.score, product.title, product.description or product.title
        )
        if not isinstance(verdicts, (list, tuple)) or not all(
            isinstance(v, JudgeVerdict) for v in verdicts
        ):
            raise MalformedResult(f"judge returned {type(verdicts).__name__}, expected verdicts")
        return aggregate_judge_ratings(list(verdicts))


class SocialMediaProducer(CategoryProducer):
    """Presence score blended 40/60 with the virality composite of the posts."""

    category = IndexCategory.SOCIAL_MEDIA_PRESENCE

    async def produce(self, context: RunContext) -> CategoryScore:
        social = _require(context.services.social, "social")
        signal = await call_collaborator(social.score, context.product.title)
        presence = validate_score(getattr(signal, "score", None), "social service")
        posts = list(getattr(signal, "posts", None) or [])

        virality = None
        if posts:
            virality = compute_virality(
                posts,
                max_engagement_rate=context.max_engagement_rate,
                max_growth_per_hour=context.max_growth_per_hour,
            )
        score = blend_social_score(presence, virality)
        rationale = (
            f"Presence {presence:.0f}, virality {virality.composite_score} "
            f"across {virality.post_count} post(s)."
            if virality else f"Presence {presence:.0f}; no post data."
        )
        return CategoryScore(
            score=score,
            rationale=rationale,
            error=getattr(signal, "error", None),
            details={
                "presence_score": presence,
                "virality": virality,
                **dict(getattr(signal, "details", None) or {}),
            },
        )


class SearchTrendProducer(CategoryProducer):
    category = IndexCategory.SEARCH_TREND

    async def produce(self, context: RunContext) -> CategoryScore:
        trend = _require(context.services.trend, "trend")
        result = await call_collaborator(
            trend.score, context.product.title, context.product.category
        )
        return _from_service_score(result, "trend service")


class VolatilityProducer(CategoryProducer):
    category = IndexCategory.VOLATILITY

    async def produce(self, context: RunContext) -> CategoryScore:
        series = await context.price_series.get()
        result = compute_volatility([p.price for p in series])
        return CategoryScore(
            score=result.score,
            rationale=(
                f"Daily price returns vary by {result.volatility * 100:.2f}% "
                f"over {result.return_count} day(s)."
            ),
            details={"volatility": result},
        )


class MovingAverageProducer(CategoryProducer):
    category = IndexCategory.MOVING_AVERAGE

    async def produce(self, context: RunContext) -> CategoryScore:
        series = await context.price_series.get()
        result = compute_moving_average(series)
        if result is None:
            raise DataInsufficiency(f"{len(series)} price point(s) are too few for MA(7)")
        return CategoryScore(
            score=result.score,
            rationale=_describe_moving_average(result.current_price, result.ma7, result.ma60),
            details={"moving_average": result},
        )


class InflationProducer(CategoryProducer):
    category = IndexCategory.INFLATION_SCORE

    async def produce(self, context: RunContext) -> CategoryScore:
        inflation = _require(context.services.inflation, "inflation")
        result = await call_collaborator(inflation.score)
        return _from_service_score(result, "inflation service")


def _describe_moving_average(price: float, ma7: Optional[float], ma60: Optional[float]) -> str:
    parts = [f"Price {price:.2f}"]
    if ma7 is not None:
        parts.append(f"{'above' if price > ma7 else 'at or below'} MA(7) {ma7:.2f}")
    if ma60 is not None:
        parts.append(f"{'above' if price > ma60 else 'at or below'} MA(60) {ma60:.2f}")
    else:
        logger.debug("MovingAverageProducer: series shorter than 60 points, MA(60) neutral")
    return ", ".join(parts) + "."


def default_producers() -> List[CategoryProducer]:
    """One instance of every dynamic-category producer."""
    return [
        RelatedNewsProducer(),
        LLMScoreProducer(),
        SocialMediaProducer(),
        SearchTrendProducer(),
        VolatilityProducer(),
        MovingAverageProducer(),
        InflationProducer(),
    ]
