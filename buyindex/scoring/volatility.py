"""Price volatility for the buy index.

Volatility is the sample standard deviation of day-over-day returns: it
measures how much the price swings, not which way it moves. Retail products
typically sit between 0.2 % and 3 % daily; the score maps ~0.001 to ~100,
0.02 to 50 and 0.04 or more to 0.
"""

from typing import List, Sequence

import pandas as pd

from buyindex.models.datatypes import VolatilityResult
from buyindex.scoring.bounds import bounded_score, is_finite_number

_SCORE_SCALE = 2500


def compute_daily_returns(prices: Sequence[float]) -> List[float]:
    """Fractional change between consecutive prices, skipping steps from a zero price."""
    series = pd.Series(list(prices), dtype="float64")
    previous = series.shift(1)
    valid = previous.notna() & (previous != 0)
    returns = (series[valid] - previous[valid]) / previous[valid]
    return [float(r) for r in returns]


def compute_volatility(prices: Sequence[float]) -> VolatilityResult:
    """Return the volatility of a price sequence and its 0–100 score.

    Fewer than two returns means no measurable dispersion: volatility 0,
    score 100.
    """
    returns = compute_daily_returns(prices)
    if len(returns) < 2:
        volatility = 0.0
    else:
        volatility = float(pd.Series(returns).std(ddof=1))
        if not is_finite_number(volatility):
            volatility = 0.0
    return VolatilityResult(
        volatility=volatility,
        score=volatility_to_score(volatility),
        return_count=len(returns),
    )


def volatility_to_score(volatility: float) -> int:
    """Higher volatility → lower score (riskier to buy now)."""
    if volatility <= 0:
        return 100
    return bounded_score(100 - min(100.0, volatility * _SCORE_SCALE))
