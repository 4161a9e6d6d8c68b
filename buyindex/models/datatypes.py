"""Data structures for the buy-index scoring engine."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class IndexCategory(str, Enum):
    """The eight scoring dimensions of the composite index.

    Values are the wire tags used by storage and presentation layers. A plain
    string such as ``"llmScore"`` compares equal to its member, and the index
    calculator accepts either as a mapping key.
    """
    RELATED_NEWS = "relatedNews"
    INFLATION_SCORE = "inflationScore"
    PREDICTED_PRICE = "predictedPrice"
    LLM_SCORE = "llmScore"
    MOVING_AVERAGE = "movingAverage"
    VOLATILITY = "volatility"
    SOCIAL_MEDIA_PRESENCE = "socialMediaPresence"
    SEARCH_TREND = "searchTrend"


class CategoryStatus(str, Enum):
    """Lifecycle of one category within a scoring run."""
    PENDING = "pending"
    FETCHING = "fetching"
    RESOLVED = "resolved"
    FAILED_FALLBACK = "failed_fallback"
    DONE = "done"


class RunStatus(str, Enum):
    """Lifecycle of a whole scoring run."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class ExecutionMode(str, Enum):
    """BATCH fans out independent categories; INTERACTIVE resolves one at a time."""
    BATCH = "batch"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class PricePoint:
    """One daily observation of a product price."""
    date: date
    price: float


@dataclass(frozen=True)
class PostMetric:
    """Engagement counters for a single social post or mention.

    Attributes:
        reach: Impressions (estimated or reported).
        likes: Like/favourite count.
        comments: Reply count.
        shares: Share/repost count.
        timestamp_ms: Publication time, milliseconds since the epoch.
    """
    reach: float
    likes: float
    comments: float
    shares: float
    timestamp_ms: float


@dataclass
class CategoryScore:
    """A bounded score for one category.

    Attributes:
        score: Value in ``[0, 100]``.
        rationale: Optional human-readable explanation.
        error: Set when the producer answered with a degraded or neutral value
            (e.g. an unconfigured provider). The score is still usable.
        details: Model-specific payload (e.g. a :class:`MovingAverageResult`).
    """
    score: float
    rationale: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IndexBreakdownRow:
    """One line of the composite index table."""
    category: IndexCategory
    label: str
    weight: int
    score: float
    weighted_score: float
    is_loading: bool = False


@dataclass
class IndexResult:
    """Composite index total with its per-category breakdown."""
    total: int
    breakdown: List[IndexBreakdownRow]

    def scores(self) -> Dict[IndexCategory, float]:
        """Return the category → score mapping the total was computed from."""
        return {row.category: row.score for row in self.breakdown}


@dataclass
class VolatilityResult:
    """Standard deviation of daily returns and its 0–100 stability score."""
    volatility: float
    score: int
    return_count: int


@dataclass
class MovingAveragePoint:
    """A price point annotated with its trailing MA(7) and MA(60)."""
    date: date
    price: float
    ma7: Optional[float]
    ma60: Optional[float]


@dataclass
class MovingAverageResult:
    """
    Short/long trend deviation of the latest price.

    ``ma60``, ``ma60_z_score`` and ``price_above_ma60`` are None when the
    series is shorter than 60 points.
    """
    current_price: float
    ma7: Optional[float]
    ma60: Optional[float]
    ma7_z_score: Optional[float]
    ma60_z_score: Optional[float]
    ma7_std_dev: float
    ma60_std_dev: float
    score: int
    price_above_ma7: Optional[bool]
    price_above_ma60: Optional[bool]
    points: List[MovingAveragePoint]


@dataclass
class ViralityResult:
    """Social virality metrics and their composite 0–100 score."""
    reach: float
    engagement: float
    engagement_rate: float
    growth_rate: float
    network_amplification: float
    composite_score: int
    post_count: int


@dataclass
class ProductInput:
    """A product to score.

    Attributes:
        product_id: Stable identifier; also seeds synthetic price history.
        title: Product title used for every text-based signal.
        current_price: Latest known price.
        description: Free-text description for the language-model judges.
        category: Product category (e.g. ``"Keyboards"``), if known.
        known_history: Stored price history, any order, possibly sparse.
    """
    product_id: str
    title: str
    current_price: float
    description: str = ""
    category: Optional[str] = None
    known_history: Optional[Sequence[PricePoint]] = None


# ── collaborator results ─────────────────────────────────────────────────────

@dataclass
class ServiceScore:
    """Answer of a news, trend or inflation collaborator."""
    score: float
    rationale: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SocialSignal:
    """Answer of a social collaborator.

    ``score`` is the forum/trend based presence score; ``posts`` feed the
    virality model when present.
    """
    score: float
    posts: List[PostMetric] = field(default_factory=list)
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class JudgeVerdict:
    """One language model's opinion of a product.

    Attributes:
        judge: Model identifier.
        rating: Buy rating on a 1–10 scale, None when the judge failed.
        text: The model's short assessment.
        error: Failure description, if any.
    """
    judge: str
    rating: Optional[float]
    text: str = ""
    error: Optional[str] = None


@dataclass
class CategoryEvent:
    """Emitted once per category when its score has been settled."""
    category: IndexCategory
    result: CategoryScore
    status: CategoryStatus


@dataclass
class SentimentResult:
    """Output of a single sentiment inference call.

    Attributes:
        label: Canonical label — ``"Positive"``, ``"Neutral"``, or ``"Negative"``.
        score: Continuous score in ``[-1.0, 1.0]``.
        raw_label: Original label string returned by the model.
        raw_score: Original softmax confidence returned by the model.
    """
    label: str
    score: float
    raw_label: str
    raw_score: float


@dataclass
class ReportRow:
    """One product line of the batch report CSV."""
    product_id: str
    title: str
    current_price: float
    scores: Dict[IndexCategory, float]
    total: int
    data_source_log: str
