"""Related-news score from Google News RSS headlines.

Per product:
  1. Query A — first meaningful words of the title, headline relevance filter ON.
  2. Query B — shorter lead phrase, filter OFF (the narrow query is the signal).
  3. Nothing found — neutral 50 with a rationale.

Headlines are classified with FinBERT. Newer headlines weigh more: the
newest counts 1.0, the next 0.85, then 0.85², and so on. The weighted mean
sentiment in [-1, 1] is mapped linearly onto [0, 100].
"""

import urllib.parse
from datetime import datetime
from typing import Any, Dict, List, Optional

import feedparser

from buyindex.core.cache import SQLiteCache
from buyindex.core.errors import TransientFailure
from buyindex.core.logger import logger
from buyindex.core.text_utils import build_search_query, is_relevant_title
from buyindex.models.datatypes import ServiceScore
from buyindex.providers.base import NewsService, SentimentProvider
from buyindex.providers.sentiment import FinBERTProvider
from buyindex.scoring.bounds import bounded_score

_GOOGLE_RSS_BASE = "https://news.google.com/rss/search"
_PUBDATE_FMT = "%Y-%m-%d %H:%M:%S"
_RECENCY_DECAY = 0.85
NEUTRAL_NEWS_SCORE = 50


def sentiment_to_score(sentiment: float) -> int:
    """Map a mean sentiment in [-1, 1] onto the 0–100 scale (0 → 50)."""
    return bounded_score(50 + 50 * sentiment)


def recency_weighted_mean(values: List[float], decay: float = _RECENCY_DECAY) -> float:
    """Weighted mean where ``values[0]`` is the newest item."""
    if not values:
        return 0.0
    weights = [decay ** i for i in range(len(values))]
    return sum(v * w for v, w in zip(values, weights)) / sum(weights)


class GoogleNewsProvider(NewsService):
    """Google News RSS provider scored with a sentiment model.

    Args:
        sentiment: Headline classifier (FinBERT by default, loaded lazily).
        cache_instance: Shared SQLite cache for raw feed entries.
        max_headlines: Number of most recent headlines to score.
        language: ``hl`` parameter of the feed, e.g. ``"en-US"``.
        country: ``gl`` parameter of the feed, e.g. ``"US"``.
    """

    def __init__(
        self,
        sentiment: Optional[SentimentProvider] = None,
        cache_instance: Optional[SQLiteCache] = None,
        max_headlines: int = 8,
        language: str = "en-US",
        country: str = "US",
    ) -> None:
        self.sentiment = sentiment or FinBERTProvider()
        self.cache = cache_instance
        self.max_headlines = max_headlines
        self.language = language
        self.country = country

    def score(self, product_title: str) -> ServiceScore:
        """Score the tone of the most recent related headlines."""
        entries = self._try_query(
            build_search_query(product_title, max_words=5),
            product_title, title_filter=True,
        )
        if not entries:
            entries = self._try_query(
                build_search_query(product_title, max_words=3),
                product_title, title_filter=False,
            )

        if not entries:
            logger.warning(
                f"GoogleNewsProvider: no headlines for {product_title!r} — neutral score"
            )
            return ServiceScore(
                score=NEUTRAL_NEWS_SCORE,
                rationale="No related news found.",
                details={"headlines": []},
            )

        headlines = [e["title"] for e in entries]
        results = self.sentiment.analyze_many(headlines)
        mean = recency_weighted_mean([r.score for r in results])
        positive = sum(1 for r in results if r.label == "Positive")
        negative = sum(1 for r in results if r.label == "Negative")
        score = sentiment_to_score(mean)

        logger.info(
            f"GoogleNewsProvider: {len(headlines)} headline(s) for {product_title!r} "
            f"→ sentiment {mean:+.3f} → score {score}"
        )
        return ServiceScore(
            score=score,
            rationale=(
                f"{len(headlines)} recent headline(s): {positive} positive, "
                f"{negative} negative, weighted sentiment {mean:+.2f}."
            ),
            details={"headlines": headlines, "entries": entries},
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _try_query(self, query: str, product_title: str, title_filter: bool) -> List[Dict[str, Any]]:
        """Run one RSS query (cache-aware) and return the newest relevant entries."""
        cache_key = f"gnews_{self.country}_{query.lower()}"
        entries = self.cache.get(cache_key) if self.cache else None
        if entries is None:
            entries = self._fetch_rss(query)
            if self.cache:
                self.cache.set(cache_key, entries)

        if title_filter:
            kept = [e for e in entries if is_relevant_title(e["title"], product_title)]
            logger.debug(
                f"GoogleNewsProvider: {len(kept)}/{len(entries)} entries relevant to {product_title!r}"
            )
            entries = kept

        entries = sorted(entries, key=lambda e: e.get("published_at", ""), reverse=True)
        return entries[: self.max_headlines]

    def _fetch_rss(self, query: str) -> List[Dict[str, Any]]:
        """Fetch and parse one Google News RSS feed into plain entry dicts."""
        encoded = urllib.parse.quote(f"{query} when:7d")
        lang = self.language.split("-")[0]
        url = (
            f"{_GOOGLE_RSS_BASE}?q={encoded}&hl={self.language}"
            f"&gl={self.country}&ceid={self.country}:{lang}"
        )
        logger.info(f"GoogleNewsProvider: fetching q={query!r}")

        try:
            feed = feedparser.parse(url)
        except Exception as exc:
            raise TransientFailure(f"Google News RSS fetch failed: {exc}") from exc

        if getattr(feed, "bozo", False) and not feed.entries:
            raise TransientFailure(
                f"Google News RSS unreadable: {getattr(feed, 'bozo_exception', 'unknown error')}"
            )

        entries = []
        for entry in feed.entries:
            title = (entry.get("title") or "").strip()
            if not title:
                continue
            pub_parsed = entry.get("published_parsed")
            entries.append({
                "title": title,
                "url": entry.get("link", ""),
                "published_at": (
                    datetime(*pub_parsed[:6]).strftime(_PUBDATE_FMT) if pub_parsed else ""
                ),
            })

        logger.info(f"GoogleNewsProvider: {len(entries)} entries for q={query!r}")
        return entries
