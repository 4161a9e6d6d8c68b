"""Search-interest trend score from Google Trends (via SerpAPI)."""

import time
from typing import Any, Dict, List, Optional

from buyindex.core.errors import TransientFailure
from buyindex.core.logger import logger
from buyindex.core.text_utils import trend_keyword_candidates
from buyindex.models.datatypes import ServiceScore
from buyindex.providers.base import TrendService
from buyindex.providers.serpapi import SerpApiClient
from buyindex.scoring.bounds import bounded_score

NEUTRAL_TREND_SCORE = 50


def parse_timeline(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Extract ``{"date", "value"}`` points from a TIMESERIES response."""
    points = []
    for point in (body.get("interest_over_time") or {}).get("timeline_data") or []:
        values = point.get("values") or [{}]
        raw = values[0].get("extracted_value")
        if raw is None:
            try:
                raw = int(str(values[0].get("value", "")).strip())
            except ValueError:
                continue
        if raw >= 0:
            points.append({"date": point.get("date", ""), "value": raw})
    return points


class SerpApiTrendProvider(TrendService):
    """Past-month search interest, trying broad keywords before narrow ones.

    The first keyword that yields any timeline data wins. Its score is the
    API-reported average when present, otherwise the timeline mean.

    Args:
        client: Shared :class:`SerpApiClient`.
        keyword_delay_seconds: Pause between keyword attempts.
    """

    def __init__(self, client: SerpApiClient, keyword_delay_seconds: float = 0.2) -> None:
        self.client = client
        self.keyword_delay_seconds = keyword_delay_seconds

    def score(self, product_title: str, category: Optional[str] = None) -> ServiceScore:
        keywords = trend_keyword_candidates(product_title, category)
        if not self.client.configured:
            logger.warning("SerpApiTrendProvider: SERPAPI_API_KEY not set — neutral score")
            return ServiceScore(
                score=NEUTRAL_TREND_SCORE,
                error="SERPAPI_API_KEY is not configured",
                details={"keyword_used": keywords[0] if keywords else None},
            )

        for i, keyword in enumerate(keywords):
            if i and self.keyword_delay_seconds:
                time.sleep(self.keyword_delay_seconds)
            try:
                body = self.client.search({
                    "engine": "google_trends",
                    "q": keyword,
                    "data_type": "TIMESERIES",
                    "geo": self.client.geo,
                    "hl": self.client.hl,
                    "date": "today 1-m",
                })
            except TransientFailure as exc:
                logger.debug(f"SerpApiTrendProvider: no data for {keyword!r}: {exc}")
                continue

            points = parse_timeline(body)
            if not points:
                continue

            averages = (body.get("interest_over_time") or {}).get("averages") or []
            api_avg = averages[0].get("value") if averages else None
            if isinstance(api_avg, (int, float)):
                score = bounded_score(api_avg)
            else:
                score = bounded_score(sum(p["value"] for p in points) / len(points))

            logger.info(
                f"SerpApiTrendProvider: {product_title[:40]!r} keyword={keyword!r} "
                f"({len(points)} points) → {score}"
            )
            return ServiceScore(
                score=score,
                rationale=f"Search interest for \"{keyword}\" over the past month.",
                details={"keyword_used": keyword, "points": points},
            )

        logger.warning(f"SerpApiTrendProvider: no trend data for {product_title!r} — neutral score")
        return ServiceScore(
            score=NEUTRAL_TREND_SCORE,
            error="Could not fetch trend data. Using neutral score.",
            details={"keyword_used": keywords[0] if keywords else None, "points": []},
        )
