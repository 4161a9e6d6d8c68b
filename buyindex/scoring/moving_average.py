"""Moving-average (MA) trend deviation for the buy index.

MA(7) is the short-term trend, MA(60) the longer one. A current price below
its moving average is potentially a good buy; above it, potentially a reason
to wait. The z-score expresses the gap in standard deviations of the same
trailing window:

    z = -2  →  100  (two std devs below trend, excellent buy)
    z =  0  →   50  (at trend, neutral)
    z = +2  →    0  (two std devs above trend, wait)
"""

from typing import List, Optional, Sequence, Tuple

import pandas as pd

from buyindex.models.datatypes import MovingAveragePoint, MovingAverageResult, PricePoint
from buyindex.scoring.bounds import bounded_score, round_half_up

SHORT_WINDOW = 7
LONG_WINDOW = 60
NEUTRAL_WINDOW_SCORE = 50


def compute_ma(prices: Sequence[float], period: int) -> List[Optional[float]]:
    """Trailing simple moving average per index; None until ``period`` prices exist."""
    rolling = pd.Series(list(prices), dtype="float64").rolling(window=period)
    highs, lows = rolling.max(), rolling.min()
    # flat windows take the price itself; the float mean of e.g. 29.99 x 7 drifts
    means = rolling.mean().where(highs != lows, highs)
    return [None if pd.isna(v) else float(v) for v in means]


def window_mean(prices: Sequence[float], period: int) -> float:
    """Mean of the last ``period`` prices, exact when they are all equal."""
    window = pd.Series(list(prices)[-period:], dtype="float64")
    if window.max() == window.min():
        return float(window.iloc[0])
    return float(window.mean())


def window_std_dev(prices: Sequence[float], period: int) -> float:
    """Sample standard deviation of the last ``period`` prices; 0 with fewer than 2."""
    window = pd.Series(list(prices)[-period:], dtype="float64")
    if len(window) < 2 or window.max() == window.min():
        return 0.0
    return float(window.std(ddof=1))


def z_score(current_price: float, ma: float, std_dev: float) -> float:
    """Signed distance of the price from its MA in standard deviations (0 if std <= 0)."""
    if std_dev <= 0:
        return 0.0
    return (current_price - ma) / std_dev


def z_score_to_buy_score(z: float) -> int:
    """Map a z-score onto the 0–100 buy scale."""
    return bounded_score(50 - z * 25)


def _window_stats(
    prices: List[float], period: int, current_price: float
) -> Tuple[Optional[float], float, Optional[float], int]:
    """Return (ma, std_dev, z, window_score) for the trailing window of ``period``."""
    if len(prices) < period:
        return None, 0.0, None, NEUTRAL_WINDOW_SCORE
    ma = window_mean(prices, period)
    std_dev = window_std_dev(prices, period)
    z = z_score(current_price, ma, std_dev)
    return ma, std_dev, z, z_score_to_buy_score(z)


def compute_moving_average(series: Sequence[PricePoint]) -> Optional[MovingAverageResult]:
    """Analyse the latest price against MA(7) and MA(60).

    Returns None when the series holds fewer than 7 points. A window that is
    too long for the series scores a neutral 50 in the final average instead
    of being left out.
    """
    if len(series) < SHORT_WINDOW:
        return None

    prices = [float(p.price) for p in series]
    current_price = prices[-1]

    ma7, std7, z7, score7 = _window_stats(prices, SHORT_WINDOW, current_price)
    ma60, std60, z60, score60 = _window_stats(prices, LONG_WINDOW, current_price)
    score = bounded_score(round_half_up((score7 + score60) / 2))

    ma7_values = compute_ma(prices, SHORT_WINDOW)
    ma60_values = compute_ma(prices, LONG_WINDOW)
    points = [
        MovingAveragePoint(date=p.date, price=float(p.price), ma7=m7, ma60=m60)
        for p, m7, m60 in zip(series, ma7_values, ma60_values)
    ]

    return MovingAverageResult(
        current_price=current_price,
        ma7=ma7,
        ma60=ma60,
        ma7_z_score=z7,
        ma60_z_score=z60,
        ma7_std_dev=std7,
        ma60_std_dev=std60,
        score=score,
        price_above_ma7=None if ma7 is None else current_price > ma7,
        price_above_ma60=None if ma60 is None else current_price > ma60,
        points=points,
    )
