"""Headline tone classification with ``ProsusAI/finbert`` on CPU.

All headlines of a product go through the HuggingFace pipeline in one
batched call. Each result is folded into a signed score:

    positive (p) → +p
    negative (p) → -p
    neutral      →  0.0

Blank headlines never reach the model and come back Neutral / 0.0. The
``sentiment`` extra (transformers + torch) must be installed before the first
non-blank headline is classified.
"""

from typing import Any, Dict, List, Sequence

from buyindex.core.logger import logger
from buyindex.models.datatypes import SentimentResult
from buyindex.providers.base import SentimentProvider

_MODEL_NAME = "ProsusAI/finbert"
_BATCH_SIZE = 8

_CANONICAL = {
    "positive": "Positive",
    "negative": "Negative",
    "neutral": "Neutral",
}


def _neutral(raw_label: str = "neutral") -> SentimentResult:
    return SentimentResult(label="Neutral", score=0.0, raw_label=raw_label, raw_score=0.0)


class FinBERTProvider(SentimentProvider):
    """FinBERT headline classifier.

    transformers is imported on the first inference, not at module import;
    without the extra only the news category fails (and falls back).

    Args:
        model_name: HuggingFace model identifier.
        batch_size: Headlines per forward pass.
    """

    def __init__(self, model_name: str = _MODEL_NAME, batch_size: int = _BATCH_SIZE) -> None:
        self.model_name = model_name
        self.batch_size = batch_size
        self._pipeline = None

    def analyze(self, headline: str) -> SentimentResult:
        return self.analyze_many([headline])[0]

    def analyze_many(self, headlines: Sequence[str]) -> List[SentimentResult]:
        """Classify headlines in a single pipeline call, preserving order.

        An inference failure marks every non-blank headline Neutral with
        ``raw_label="error"`` rather than raising.
        """
        cleaned = [(h or "").strip() for h in headlines]
        results = [_neutral() for _ in cleaned]
        todo = [i for i, h in enumerate(cleaned) if h]
        if not todo:
            return results

        pipe = self._get_pipeline()
        try:
            raw = pipe(
                [cleaned[i] for i in todo],
                truncation=True, max_length=512, batch_size=self.batch_size,
            )
        except Exception as exc:
            logger.error(f"FinBERTProvider: inference failed for {len(todo)} headline(s): {exc}")
            for i in todo:
                results[i] = _neutral("error")
            return results

        for i, prediction in zip(todo, raw):
            results[i] = _to_result(prediction)
            logger.debug(
                f"FinBERTProvider: [{results[i].label} / {results[i].score:+.3f}] {cleaned[i][:60]!r}"
            )
        return results

    def _get_pipeline(self):
        if self._pipeline is None:
            from transformers import pipeline as hf_pipeline
            logger.info(f"FinBERTProvider: loading '{self.model_name}' on CPU (first use)")
            self._pipeline = hf_pipeline(
                task="text-classification",
                model=self.model_name,
                device=-1,
            )
        return self._pipeline


def _to_result(prediction: Any) -> SentimentResult:
    # top_k settings make some transformers versions wrap each prediction in a list
    if isinstance(prediction, list):
        prediction = prediction[0]
    top: Dict[str, Any] = prediction
    raw_label = str(top["label"]).lower()
    raw_score = float(top["score"])
    return SentimentResult(
        label=_CANONICAL.get(raw_label, "Neutral"),
        score=normalize_sentiment(raw_label, raw_score),
        raw_label=raw_label,
        raw_score=raw_score,
    )


def normalize_sentiment(raw_label: str, raw_score: float) -> float:
    """Signed score in [-1.0, 1.0] from a lowercase label and its confidence."""
    if raw_label == "positive":
        return round(raw_score, 4)
    if raw_label == "negative":
        return round(-raw_score, 4)
    return 0.0
