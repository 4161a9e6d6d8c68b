"""Macro inflation score from the Bank of Canada Valet API (no key required)."""

from datetime import date, timedelta
from typing import List, Optional

import requests

from buyindex.core.cache import SQLiteCache
from buyindex.core.errors import TransientFailure
from buyindex.core.logger import logger
from buyindex.core.retry import with_retries
from buyindex.models.datatypes import ServiceScore
from buyindex.providers.base import InflationService
from buyindex.scoring.bounds import bounded_score

_VALET_BASE = "https://www.bankofcanada.ca/valet"
CPI_SERIES = "STATIC_TOTALCPICHANGE"  # total CPI, year-over-year %
INFLATION_TARGET = 2.0


def inflation_to_score(inflation: float) -> int:
    """100 on the 2% target, minus 15 points per percentage point of deviation (max 50)."""
    penalty = min(50.0, abs(inflation - INFLATION_TARGET) * 15)
    return bounded_score(max(0.0, 100 - penalty))


class BankOfCanadaInflationProvider(InflationService):
    """Scores the latest Canadian CPI year-over-year reading.

    Args:
        cache_instance: Optional cache for the observation list.
        timeout: Request timeout in seconds.
        lookback_days: Observation window requested from the API.
    """

    def __init__(
        self,
        cache_instance: Optional[SQLiteCache] = None,
        timeout: float = 15,
        lookback_days: int = 365,
    ) -> None:
        self.cache = cache_instance
        self.timeout = timeout
        self.lookback_days = lookback_days

    def score(self) -> ServiceScore:
        observations = self.fetch_observations()
        if not observations:
            raise TransientFailure(f"Bank of Canada returned no {CPI_SERIES} observations")

        latest_date, latest = observations[-1]
        score = inflation_to_score(latest)
        logger.info(f"BankOfCanadaInflationProvider: CPI {latest:.1f}% ({latest_date}) → {score}")
        return ServiceScore(
            score=score,
            rationale=f"Canadian CPI inflation at {latest:.1f}% vs the 2% target ({latest_date}).",
            details={
                "latest_value": latest,
                "points": [{"date": d, "value": v} for d, v in observations],
            },
        )

    def fetch_observations(self) -> List[tuple]:
        """Return ``(date, value)`` pairs sorted by date, oldest first."""
        end = date.today()
        start = end - timedelta(days=self.lookback_days)
        cache_key = f"boc_{CPI_SERIES}_{end.isoformat()}"

        body = self.cache.get(cache_key) if self.cache else None
        if body is None:
            try:
                resp = self._get(start.isoformat(), end.isoformat())
            except requests.RequestException as exc:
                raise TransientFailure(f"Bank of Canada request failed: {exc}") from exc
            if resp.status_code != 200:
                raise TransientFailure(f"Bank of Canada API error: {resp.status_code}")
            try:
                body = resp.json()
            except ValueError as exc:
                raise TransientFailure(f"Bank of Canada returned invalid JSON: {exc}") from exc
            if self.cache:
                self.cache.set(cache_key, body)

        observations = []
        for obs in body.get("observations") or []:
            raw = (obs.get(CPI_SERIES) or {}).get("v")
            try:
                value = float(raw)
            except (TypeError, ValueError):
                continue
            observations.append((obs.get("d", ""), value))
        return sorted(observations, key=lambda o: o[0])

    @with_retries(max_retries=2, initial_delay=1, retry_on=(requests.ConnectionError, requests.Timeout))
    def _get(self, start_date: str, end_date: str) -> requests.Response:
        return requests.get(
            f"{_VALET_BASE}/observations/{CPI_SERIES}/json",
            params={"start_date": start_date, "end_date": end_date},
            timeout=self.timeout,
        )
