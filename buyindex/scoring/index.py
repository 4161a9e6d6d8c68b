"""Composite buy index.

Each category score (0–100) is scaled by its weight and the weighted scores
are summed, clamped to [0, 100] and rounded:

    weighted = score / 100 * weight
    total    = round(clamp(Σ weighted, 0, 100))

Two distinct defaults exist and are kept apart on purpose:
  - a category missing from the input mapping counts as 100 (not yet
    implemented, full credit);
  - a category that was attempted and failed is set to 50 by the
    orchestrator before it calls in here.
"""

from typing import Any, Dict, List, Mapping, Optional

from buyindex.models.datatypes import IndexBreakdownRow, IndexCategory, IndexResult
from buyindex.scoring.bounds import bounded_score, is_finite_number

# Weight-table order is also the breakdown display order.
INDEX_WEIGHTS: Dict[IndexCategory, int] = {
    IndexCategory.RELATED_NEWS: 15,
    IndexCategory.INFLATION_SCORE: 5,
    IndexCategory.PREDICTED_PRICE: 20,
    IndexCategory.LLM_SCORE: 15,
    IndexCategory.MOVING_AVERAGE: 15,
    IndexCategory.VOLATILITY: 10,
    IndexCategory.SOCIAL_MEDIA_PRESENCE: 10,
    IndexCategory.SEARCH_TREND: 10,
}

CATEGORY_LABELS: Dict[IndexCategory, str] = {
    IndexCategory.RELATED_NEWS: "Related News",
    IndexCategory.INFLATION_SCORE: "Inflation Score",
    IndexCategory.PREDICTED_PRICE: "Predicted Price (OpenBy Model)",
    IndexCategory.LLM_SCORE: "LLM Score",
    IndexCategory.MOVING_AVERAGE: "Moving Average Score",
    IndexCategory.VOLATILITY: "Volatility Score",
    IndexCategory.SOCIAL_MEDIA_PRESENCE: "Social Media Presence",
    IndexCategory.SEARCH_TREND: "Search Trend",
}

ABSENT_CATEGORY_SCORE = 100.0


def _lookup(scores: Optional[Mapping[Any, Any]], category: IndexCategory) -> Optional[float]:
    """Return the finite score for ``category`` or None if absent/unusable."""
    if not scores:
        return None
    value = scores.get(category)
    if value is None:
        value = scores.get(category.value)
    return float(value) if is_finite_number(value) else None


def build_breakdown(scores: Optional[Mapping[Any, Any]]) -> List[IndexBreakdownRow]:
    """One row per category; absent categories score 100."""
    rows: List[IndexBreakdownRow] = []
    for category, weight in INDEX_WEIGHTS.items():
        score = _lookup(scores, category)
        if score is None:
            score = ABSENT_CATEGORY_SCORE
        rows.append(IndexBreakdownRow(
            category=category,
            label=CATEGORY_LABELS[category],
            weight=weight,
            score=score,
            weighted_score=score / 100 * weight,
        ))
    return rows


def total_from_breakdown(breakdown: List[IndexBreakdownRow]) -> int:
    return bounded_score(sum(row.weighted_score for row in breakdown))


def calculate_index(scores: Optional[Mapping[Any, Any]] = None) -> IndexResult:
    """Combine category scores into the composite index.

    Accepts any partial mapping keyed by :class:`IndexCategory` or its string
    tag. ``None`` and non-finite values count as absent. Never raises.
    """
    breakdown = build_breakdown(scores)
    return IndexResult(total=total_from_breakdown(breakdown), breakdown=breakdown)


def calculate_partial_index(scores: Optional[Mapping[Any, Any]] = None) -> IndexResult:
    """In-progress view: unresolved categories are flagged loading and add 0.

    For display while a run is still going; the persisted index always comes
    from :func:`calculate_index` over the complete set.
    """
    breakdown: List[IndexBreakdownRow] = []
    for category, weight in INDEX_WEIGHTS.items():
        score = _lookup(scores, category)
        loading = score is None
        breakdown.append(IndexBreakdownRow(
            category=category,
            label=CATEGORY_LABELS[category],
            weight=weight,
            score=0.0 if loading else score,
            weighted_score=0.0 if loading else score / 100 * weight,
            is_loading=loading,
        ))
    return IndexResult(total=total_from_breakdown(breakdown), breakdown=breakdown)
