"""Abstract base classes for the engine's external collaborators.

Implementations may define these methods as plain functions (run in a worker
thread by the orchestrator) or as coroutines (awaited directly).
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from buyindex.models.datatypes import JudgeVerdict, SentimentResult, ServiceScore, SocialSignal


class NewsService(ABC):
    """Scores recent news coverage of a product."""

    @abstractmethod
    def score(self, product_title: str) -> ServiceScore:
        """
        Score the tone of recent related news.

        Args:
            product_title (str): The product title.

        Returns:
            ServiceScore: Score in [0, 100] with a rationale, or a neutral
                          score with ``error`` set when unconfigured.
        """
        pass


class LanguageModelJudge(ABC):
    """Asks one or more language models whether now is a good time to buy."""

    @abstractmethod
    def score(self, title: str, description: str) -> List[JudgeVerdict]:
        """
        Collect one verdict per distinct judge.

        Args:
            title (str): The product title.
            description (str): Free-text product description.

        Returns:
            List[JudgeVerdict]: Ratings on a 1–10 scale; failed judges carry
                                ``error`` and no rating.
        """
        pass


class SocialService(ABC):
    """Measures social buzz around a product."""

    @abstractmethod
    def score(self, product_title: str) -> SocialSignal:
        """
        Score social presence and return raw post metrics when available.

        Args:
            product_title (str): The product title.

        Returns:
            SocialSignal: Presence score in [0, 100] and optional posts.
        """
        pass


class TrendService(ABC):
    """Measures search-interest trend for a product."""

    @abstractmethod
    def score(self, product_title: str, category: Optional[str] = None) -> ServiceScore:
        """
        Score search interest over the past month.

        Args:
            product_title (str): The product title.
            category (Optional[str]): Product category, tried first as keyword.

        Returns:
            ServiceScore: Score in [0, 100].
        """
        pass


class InflationService(ABC):
    """Scores the macro inflation environment."""

    @abstractmethod
    def score(self) -> ServiceScore:
        """
        Score the latest inflation reading.

        Returns:
            ServiceScore: Score in [0, 100]; 100 when inflation sits on target.
        """
        pass


class PriceHistoryApproximator(ABC):
    """Produces an approximate price history when none is stored."""

    @abstractmethod
    def approximate(
        self, title: str, category: Optional[str], current_price: float, days: int
    ) -> str:
        """
        Request raw ``YYYY-MM-DD,price`` lines covering roughly ``days`` days.

        Returns:
            str: Unparsed reply text; parsing and validation happen in the resolver.
        """
        pass


class ScoreStorage(ABC):
    """Persists composite index values."""

    @abstractmethod
    def persist_composite_score(self, product_id: str, score: int) -> bool:
        """
        Store the final composite score of a product.

        Returns:
            bool: True on success.
        """
        pass


class SentimentProvider(ABC):
    """Abstract interface for classifying text sentiment."""

    @abstractmethod
    def analyze(self, text: str) -> SentimentResult:
        """
        Analyze the sentiment of a given text.

        Args:
            text (str): The text to analyze.

        Returns:
            SentimentResult: Label (Positive/Neutral/Negative) and score in [-1.0, 1.0].
        """
        pass

    def analyze_many(self, texts: List[str]) -> List[SentimentResult]:
        """Analyze several texts; implementations may batch the inference."""
        return [self.analyze(t) for t in texts]
