"""Social virality metrics and composite score.

    E  = Σ (likes + 2·comments + 3·shares)      engagement
    R  = Σ reach                                reach
    ER = E / R                                  engagement rate
    G  = (E_latest - E_earliest) / hours        growth rate
    N  = min(1, Σ shares / R · 10)              network amplification

    V  = 0.5·ER_norm + 0.3·G_norm + 0.2·N_norm, scaled to 0–100
"""

from typing import Optional, Sequence

from buyindex.models.datatypes import PostMetric, ViralityResult
from buyindex.scoring.bounds import bounded_score, clamp, round_half_up

# Normalisation ceilings tuned for product and brand posts.
DEFAULT_MAX_ENGAGEMENT_RATE = 0.1
DEFAULT_MAX_GROWTH_PER_HOUR = 50.0
MAX_AMPLIFICATION = 1.0

_WEIGHT_ER = 0.5
_WEIGHT_GROWTH = 0.3
_WEIGHT_AMPLIFICATION = 0.2

# Shares of the final social score when post data exists.
SOCIAL_EXTENDED_SHARE = 0.4
SOCIAL_VIRALITY_SHARE = 0.6

_MS_PER_HOUR = 1000 * 60 * 60


def post_engagement(post: PostMetric) -> float:
    return post.likes + 2 * post.comments + 3 * post.shares


def compute_engagement(posts: Sequence[PostMetric]) -> float:
    return sum(post_engagement(p) for p in posts)


def compute_reach(posts: Sequence[PostMetric]) -> float:
    return sum(p.reach for p in posts)


def compute_engagement_rate(engagement: float, reach: float) -> float:
    if reach <= 0:
        return 0.0
    return engagement / reach


def compute_growth_rate(posts: Sequence[PostMetric]) -> float:
    """Engagement change per hour between the earliest and the latest post."""
    if len(posts) < 2:
        return 0.0
    ordered = sorted(posts, key=lambda p: p.timestamp_ms)
    first, last = ordered[0], ordered[-1]
    hours = (last.timestamp_ms - first.timestamp_ms) / _MS_PER_HOUR
    if hours <= 0:
        return 0.0
    return (post_engagement(last) - post_engagement(first)) / hours


def compute_network_amplification(posts: Sequence[PostMetric]) -> float:
    reach = compute_reach(posts)
    if reach <= 0:
        return 0.0
    shares = sum(p.shares for p in posts)
    return min(1.0, (shares / reach) * 10)


def _normalize(value: float, ceiling: float) -> float:
    if ceiling <= 0:
        return 0.0
    return clamp(value / ceiling, 0.0, 1.0)


def compute_virality(
    posts: Sequence[PostMetric],
    max_engagement_rate: float = DEFAULT_MAX_ENGAGEMENT_RATE,
    max_growth_per_hour: float = DEFAULT_MAX_GROWTH_PER_HOUR,
) -> ViralityResult:
    """Compute reach/engagement metrics and the composite virality score of posts."""
    reach = compute_reach(posts)
    engagement = compute_engagement(posts)
    engagement_rate = compute_engagement_rate(engagement, reach)
    growth_rate = compute_growth_rate(posts)
    amplification = compute_network_amplification(posts)

    raw = (
        _WEIGHT_ER * _normalize(engagement_rate, max_engagement_rate)
        + _WEIGHT_GROWTH * _normalize(growth_rate, max_growth_per_hour)
        + _WEIGHT_AMPLIFICATION * _normalize(amplification, MAX_AMPLIFICATION)
    )

    return ViralityResult(
        reach=reach,
        engagement=engagement,
        engagement_rate=engagement_rate,
        growth_rate=growth_rate,
        network_amplification=amplification,
        composite_score=bounded_score(raw * 100),
        post_count=len(posts),
    )


def blend_social_score(extended_score: float, virality: Optional[ViralityResult]) -> int:
    """Combine the forum/trend presence score with the virality composite.

    Without post data the extended score stands alone.
    """
    if virality is None or virality.post_count == 0:
        return bounded_score(extended_score)
    blended = (
        extended_score * SOCIAL_EXTENDED_SHARE
        + virality.composite_score * SOCIAL_VIRALITY_SHARE
    )
    return bounded_score(round_half_up(blended))
