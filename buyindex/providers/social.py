"""Social-presence signal from SerpAPI.

Four independent lookups per product; each may fail on its own:

- Google results with ``twitter_results`` → tweets → estimated ``PostMetric``s
  for the virality model.
- ``google_forums`` → Reddit/Quora discussions and their comment counts.
- ``google_trends`` RELATED_QUERIES → top and rising related searches.
- ``google_trends`` TIMESERIES on YouTube → average YouTube search interest.

The last three feed :func:`compute_social_presence_score`.
"""

import math
import re
import time
from typing import Any, Dict, List, Optional

import pandas as pd

from buyindex.core.errors import BuyIndexError
from buyindex.core.logger import logger
from buyindex.core.text_utils import build_search_query
from buyindex.models.datatypes import PostMetric, SocialSignal
from buyindex.providers.base import SocialService
from buyindex.providers.serpapi import SerpApiClient
from buyindex.scoring.bounds import round_half_up

_COUNT_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*([KkMm])?\+?\s*(?:comments|answers)", re.IGNORECASE
)
_DAY_MS = 86_400_000
MAX_TWEETS = 6
MAX_FORUMS = 10


def parse_count(text: Optional[str]) -> int:
    """Parse ``"40+ comments"`` or ``"1.1K+ answers"`` into an integer (0 if absent)."""
    match = _COUNT_PATTERN.search(text or "")
    if not match:
        return 0
    n = float(match.group(1))
    suffix = (match.group(2) or "").lower()
    if suffix == "k":
        n *= 1_000
    elif suffix == "m":
        n *= 1_000_000
    return round_half_up(n)


def _timestamp_ms(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(ts):
        return None
    return ts.timestamp() * 1000


def tweets_to_post_metrics(tweets: List[Dict[str, Any]], now_ms: Optional[float] = None) -> List[PostMetric]:
    """Estimate engagement for search-result tweets.

    Search results carry no counters, so reach and engagement are estimated
    from result rank (higher is more visible) and snippet length. Tweets
    without a parseable date are spread one day apart, newest last.
    """
    now_ms = time.time() * 1000 if now_ms is None else now_ms
    metrics = []
    for i, tweet in enumerate(tweets):
        rank_factor = max(0.2, 1 - (i + 1) * 0.12)
        content_factor = min(1.5, 0.5 + len(tweet.get("snippet") or "") / 200)
        factor = rank_factor * content_factor
        timestamp = _timestamp_ms(tweet.get("published_date"))
        if timestamp is None:
            timestamp = now_ms - (len(tweets) - i) * _DAY_MS
        metrics.append(PostMetric(
            reach=round_half_up(300 * factor + 100),
            likes=round_half_up(15 * factor + 2),
            comments=round_half_up(4 * factor + 1),
            shares=round_half_up(3 * factor),
            timestamp_ms=timestamp,
        ))
    return metrics


def compute_social_presence_score(
    forum_count: int,
    total_comments: int,
    related_query_count: int,
    rising_query_count: int,
    youtube_interest: Optional[float],
) -> int:
    """Combine forum, query and YouTube signals into a 0–100 buzz score.

    Forums contribute up to 40, related/rising queries up to 30 (rising
    count double) and YouTube interest up to 30, or 15 when unknown.
    """
    forum_score = min(40, forum_count * 4 + min(20, math.log10(total_comments + 1) * 8))
    query_score = min(30, (related_query_count + rising_query_count * 2) * 3)
    if youtube_interest is None:
        trend_score = 15
    else:
        trend_score = min(30, youtube_interest / 100 * 30)
    return round_half_up(min(100, max(0, forum_score + query_score + trend_score)))


class SerpApiSocialProvider(SocialService):
    """Social buzz from tweets, forums and Google Trends via SerpAPI."""

    def __init__(self, client: SerpApiClient) -> None:
        self.client = client

    def score(self, product_title: str) -> SocialSignal:
        if not self.client.configured:
            logger.warning("SerpApiSocialProvider: SERPAPI_API_KEY not set — default presence score")
            return SocialSignal(
                score=compute_social_presence_score(0, 0, 0, 0, None),
                error="SERPAPI_API_KEY is not configured",
            )

        errors: List[str] = []
        tweets = self._guarded(self.fetch_tweets, product_title, errors, default=[])
        forums = self._guarded(self.fetch_forums, product_title, errors, default=[])
        queries = self._guarded(
            self.fetch_related_queries, product_title, errors, default={"top": [], "rising": []}
        )
        youtube = self._guarded(self.fetch_youtube_interest, product_title, errors, default=None)

        total_comments = sum(f["comment_count"] for f in forums)
        presence = compute_social_presence_score(
            forum_count=len(forums),
            total_comments=total_comments,
            related_query_count=len(queries["top"]),
            rising_query_count=len(queries["rising"]),
            youtube_interest=youtube,
        )
        posts = tweets_to_post_metrics(tweets)

        logger.info(
            f"SerpApiSocialProvider: {product_title[:40]!r} → {len(tweets)} tweet(s), "
            f"{len(forums)} forum(s), {len(queries['top'])}+{len(queries['rising'])} queries, "
            f"youtube={youtube} → presence {presence}"
        )
        return SocialSignal(
            score=presence,
            posts=posts,
            error="; ".join(errors) if len(errors) == 4 else None,
            details={
                "tweets": tweets,
                "forums": forums,
                "related_queries": queries["top"],
                "rising_queries": queries["rising"],
                "youtube_interest": youtube,
                "partial_errors": errors,
            },
        )

    # ── lookups ───────────────────────────────────────────────────────────────

    def fetch_tweets(self, product_title: str) -> List[Dict[str, Any]]:
        body = self.client.search({
            "engine": "google",
            "q": build_search_query(product_title, max_words=4, suffix="twitter"),
            "gl": self.client.geo.lower(),
            "hl": self.client.hl,
        })
        tweets = []
        for raw in (body.get("twitter_results") or {}).get("tweets") or []:
            link = raw.get("link") or raw.get("link_url")
            snippet = raw.get("snippet") or raw.get("title")
            if not link or not snippet:
                continue
            tweets.append({
                "link": str(link),
                "snippet": str(snippet),
                "published_date": raw.get("published_date"),
                "author": (raw.get("author") or {}).get("handle"),
            })
        return tweets[:MAX_TWEETS]

    def fetch_forums(self, product_title: str) -> List[Dict[str, Any]]:
        body = self.client.search({
            "engine": "google_forums",
            "q": build_search_query(
                product_title, max_words=4, suffix="review reddit", default="tech product",
            ),
            "gl": self.client.geo.lower(),
            "hl": self.client.hl,
        })
        forums = []
        for raw in (body.get("organic_results") or [])[:MAX_FORUMS]:
            if not raw.get("title") or not raw.get("link"):
                continue
            forums.append({
                "title": raw["title"],
                "link": raw["link"],
                "source": raw.get("source") or "Forum",
                "comment_count": parse_count(raw.get("displayed_meta")),
            })
        return forums

    def fetch_related_queries(self, product_title: str) -> Dict[str, List[Dict[str, Any]]]:
        body = self.client.search({
            "engine": "google_trends",
            "q": build_search_query(product_title, max_words=3, default="tech"),
            "data_type": "RELATED_QUERIES",
            "geo": self.client.geo,
            "hl": self.client.hl,
            "date": "today 3-m",
        })
        related = body.get("related_queries") or {}

        def _items(rows: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
            return [
                {"query": r["query"], "value": r.get("extracted_value", 0)}
                for r in rows[:limit] if r.get("query")
            ]

        return {
            "top": _items(related.get("top") or [], 8),
            "rising": _items(related.get("rising") or [], 6),
        }

    def fetch_youtube_interest(self, product_title: str) -> Optional[float]:
        body = self.client.search({
            "engine": "google_trends",
            "q": build_search_query(product_title, max_words=3, default="tech"),
            "data_type": "TIMESERIES",
            "gprop": "youtube",
            "geo": self.client.geo,
            "hl": self.client.hl,
            "date": "today 1-m",
        })
        return interest_from_timeseries(body)

    # ── internal ──────────────────────────────────────────────────────────────

    def _guarded(self, fetch, product_title: str, errors: List[str], default: Any) -> Any:
        try:
            return fetch(product_title)
        except BuyIndexError as exc:
            logger.warning(f"SerpApiSocialProvider: {fetch.__name__} failed: {exc}")
            errors.append(f"{fetch.__name__}: {exc}")
            return default


def interest_from_timeseries(body: Dict[str, Any]) -> Optional[float]:
    """Average search interest from a Google Trends TIMESERIES response.

    Uses the API-supplied average when present, else the mean of the positive
    timeline values. Returns None when there is no usable data.
    """
    interest = body.get("interest_over_time") or {}
    averages = interest.get("averages") or []
    if averages and isinstance(averages[0].get("value"), (int, float)):
        return float(min(100, max(0, averages[0]["value"])))

    values = [
        v.get("extracted_value") or 0
        for point in interest.get("timeline_data") or []
        for v in point.get("values") or []
    ]
    values = [v for v in values if v > 0]
    if not values:
        return None
    return float(min(100, max(0, round_half_up(sum(values) / len(values)))))
