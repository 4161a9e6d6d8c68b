"""Language-model collaborators via the OpenRouter chat-completions API.

- ``OpenRouterJudgePanel`` asks several models for a 1–10 buy rating.
- ``OpenRouterPriceApproximator`` asks one model for an approximate daily
  price history as ``YYYY-MM-DD,price`` lines.

Both share ``OpenRouterClient``, which raises ``ConfigurationMissing`` when
``OPENROUTER_API_KEY`` is unset and ``TransientFailure`` on HTTP problems.
"""

import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

import requests

from buyindex.core.errors import ConfigurationMissing, TransientFailure
from buyindex.core.logger import logger
from buyindex.core.retry import with_retries
from buyindex.models.datatypes import JudgeVerdict
from buyindex.providers.base import LanguageModelJudge, PriceHistoryApproximator

_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_JUDGE_MODELS = (
    "openai/gpt-4o-mini",
    "google/gemini-2.0-flash-001",
    "anthropic/claude-3.5-sonnet",
)
DEFAULT_PRICE_MODEL = "google/gemini-2.0-flash-001"

_SCORE_LABEL = re.compile(r"score\s*[:=]\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_ANY_NUMBER = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)")

_JUDGE_SYSTEM_PROMPT = (
    "You are a consumer electronics pricing analyst. You judge whether now is "
    "a good time to buy a product, considering quality, demand and typical "
    "discount cycles."
)


class OpenRouterClient:
    """Minimal OpenRouter chat-completions client.

    Args:
        api_key: OpenRouter key; None means the client is unconfigured.
        timeout: Request timeout in seconds.
        referer: Value of the ``HTTP-Referer`` header OpenRouter asks for.
    """

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 30,
        referer: str = "https://openby.app",
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.referer = referer

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(
        self,
        prompt: str,
        model: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """Return the text of the first choice for a single-turn prompt."""
        if not self.configured:
            raise ConfigurationMissing("OPENROUTER_API_KEY is not configured")

        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            resp = self._post({
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            })
        except requests.RequestException as exc:
            raise TransientFailure(f"OpenRouter request failed: {exc}") from exc

        if resp.status_code != 200:
            raise TransientFailure(
                f"OpenRouter API error {resp.status_code}: {resp.text[:200]}"
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientFailure(f"OpenRouter returned invalid JSON: {exc}") from exc

        choices = data.get("choices") or [{}]
        return ((choices[0].get("message") or {}).get("content") or "").strip()

    @with_retries(max_retries=2, initial_delay=1, retry_on=(requests.ConnectionError, requests.Timeout))
    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        return requests.post(
            _OPENROUTER_URL,
            json=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": self.referer,
            },
            timeout=self.timeout,
        )


def parse_rating(text: str) -> Optional[float]:
    """Extract a 1–10 rating from a model reply.

    A labelled ``SCORE: 7`` wins; otherwise the first number in range is used.
    """
    text = text or ""
    labelled = _SCORE_LABEL.search(text)
    candidates = [labelled.group(1)] if labelled else []
    candidates += _ANY_NUMBER.findall(text)
    for raw in candidates:
        value = float(raw)
        if 1 <= value <= 10:
            return value
    return None


class OpenRouterJudgePanel(LanguageModelJudge):
    """Collects a buy rating from each configured model.

    Args:
        client: Shared :class:`OpenRouterClient`.
        models: One judge per model identifier.
        temperature: Sampling temperature for the judges.
    """

    def __init__(
        self,
        client: OpenRouterClient,
        models: Sequence[str] = DEFAULT_JUDGE_MODELS,
        temperature: float = 0.3,
    ) -> None:
        self.client = client
        self.models = list(models)
        self.temperature = temperature

    def score(self, title: str, description: str) -> List[JudgeVerdict]:
        """Ask every judge; a failing judge yields a verdict with ``error`` set."""
        if not self.client.configured:
            logger.warning("OpenRouterJudgePanel: OPENROUTER_API_KEY not set — no verdicts")
            return [
                JudgeVerdict(judge=m, rating=None, error="OPENROUTER_API_KEY is not configured")
                for m in self.models
            ]

        prompt = (
            f"Product: {title}\n"
            f"Description: {(description or title)[:1500]}\n\n"
            "On a scale of 1 to 10, how good a time is it to buy this product now? "
            "Answer with 'SCORE: <number>' on the first line, then one or two "
            "sentences explaining why."
        )
        verdicts = []
        for model in self.models:
            try:
                reply = self.client.complete(
                    prompt, model=model, system_prompt=_JUDGE_SYSTEM_PROMPT,
                    temperature=self.temperature, max_tokens=200,
                )
            except (TransientFailure, ConfigurationMissing) as exc:
                logger.error(f"OpenRouterJudgePanel: {model} failed: {exc}")
                verdicts.append(JudgeVerdict(judge=model, rating=None, error=str(exc)))
                continue

            rating = parse_rating(reply)
            if rating is None:
                logger.warning(f"OpenRouterJudgePanel: {model} gave no rating: {reply[:80]!r}")
                verdicts.append(JudgeVerdict(
                    judge=model, rating=None, text=reply, error="no rating in reply",
                ))
                continue

            logger.info(f"OpenRouterJudgePanel: {model} rated {title[:40]!r} {rating}/10")
            verdicts.append(JudgeVerdict(judge=model, rating=rating, text=reply))
        return verdicts


class OpenRouterPriceApproximator(PriceHistoryApproximator):
    """Asks a model for an approximate daily price history.

    The reply is returned raw; the resolver keeps only strict
    ``YYYY-MM-DD,price`` lines.
    """

    def __init__(self, client: OpenRouterClient, model: str = DEFAULT_PRICE_MODEL) -> None:
        self.client = client
        self.model = model

    def approximate(
        self, title: str, category: Optional[str], current_price: float, days: int
    ) -> str:
        today = date.today()
        start = today - timedelta(days=days)
        prompt = (
            f"Estimate the daily retail price in USD of \"{title}\""
            f"{f' ({category})' if category else ''} from {start.isoformat()} to "
            f"{today.isoformat()}. Today's price is {current_price:.2f}. "
            "Output only lines in the format YYYY-MM-DD,price with no header, "
            "currency symbols or commentary, one line per day, oldest first."
        )
        logger.info(f"OpenRouterPriceApproximator: requesting {days} days for {title[:40]!r}")
        return self.client.complete(
            prompt, model=self.model, temperature=0.2, max_tokens=4000,
        )
