"""Price history resolution for the trend models.

Resolution order used by the orchestrator (``resolve_for_trend_models``):
  1. Stored history — used as is when it holds at least ``min_trend_points``
     valid points.
  2. Language-model approximation — ``YYYY-MM-DD,price`` lines for roughly
     the past 100 days, kept only if at least ``min_trend_points`` survive
     parsing.
  3. Deterministic synthesis — a plausible series seeded from the product id,
     so the same product always gets the same history.

Every approximated or synthesized series ends on the product's current price.
"""

import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional, Sequence

import pandas as pd

from buyindex.core.async_utils import call_collaborator
from buyindex.core.errors import DataInsufficiency
from buyindex.core.logger import logger
from buyindex.models.datatypes import PricePoint, ProductInput
from buyindex.scoring.bounds import is_finite_number

MIN_TREND_POINTS = 7
DEFAULT_SYNTHETIC_DAYS = 90
DEFAULT_APPROXIMATION_DAYS = 100

# Synthesis tuning: ±1.75 % daily noise, up to 6 % drift on the oldest day,
# never below 72 % of the current price.
_VARIANCE_SPAN = 0.035
_TREND_SPAN = 0.06
_PRICE_FLOOR = 0.72

_PRICE_LINE = re.compile(r"^\s*(\d{4}-\d{2}-\d{2})\s*,\s*(-?\d+(?:\.\d+)?)\s*$")


# ── validation ───────────────────────────────────────────────────────────────

def _coerce_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
        except ValueError:
            return None
    return None


def _coerce_point(raw: Any) -> Optional[PricePoint]:
    """Accept a PricePoint or a ``{"date": ..., "price": ...}`` row; None if unusable."""
    if isinstance(raw, PricePoint):
        day, price = raw.date, raw.price
    elif isinstance(raw, dict):
        day, price = raw.get("date"), raw.get("price")
    else:
        return None

    if isinstance(price, str):
        try:
            price = float(price)
        except ValueError:
            return None
    if not is_finite_number(price):
        return None
    parsed_day = _coerce_date(day)
    if parsed_day is None:
        return None
    return PricePoint(date=parsed_day, price=float(price))


def clean_history(history: Optional[Iterable[Any]]) -> List[PricePoint]:
    """Drop invalid points, keep the first point per date, sort ascending."""
    seen = set()
    points: List[PricePoint] = []
    for raw in history or []:
        point = _coerce_point(raw)
        if point is None or point.date in seen:
            continue
        seen.add(point.date)
        points.append(point)
    return sorted(points, key=lambda p: p.date)


# ── deterministic synthesis ──────────────────────────────────────────────────

def product_seed(product_id: str) -> int:
    """Sum of the character codes of the product id."""
    return sum(ord(ch) for ch in str(product_id))


def _sine_hash(seed: int, index: int) -> float:
    """Pseudo-random value in [0, 1) that depends only on (seed, index)."""
    x = math.sin(seed * 12.9898 + index * 78.233) * 43758.5453
    return x - math.floor(x)


def synthesize_price_series(
    product_id: str,
    current_price: float,
    days: int = DEFAULT_SYNTHETIC_DAYS,
    today: Optional[date] = None,
) -> List[PricePoint]:
    """Generate a deterministic daily price history ending today at ``current_price``.

    Args:
        product_id: Seeds the generator; equal ids give equal series.
        current_price: Price of the final (today) point.
        days: Number of daily points, today included.
        today: Calendar anchor; defaults to the local date.

    Returns:
        ``days`` points in ascending date order.
    """
    if not is_finite_number(current_price) or current_price <= 0:
        raise ValueError(f"current_price must be a positive number, got {current_price!r}")
    days = max(2, int(days))
    anchor = today or date.today()
    seed = product_seed(product_id)
    floor_price = current_price * _PRICE_FLOOR

    dates = pd.date_range(end=pd.Timestamp(anchor), periods=days, freq="D")
    points: List[PricePoint] = []
    for i, stamp in enumerate(dates):
        days_ago = days - 1 - i
        noise = _sine_hash(seed, 2 * i)
        drift = _sine_hash(seed, 2 * i + 1)
        variance = current_price * _VARIANCE_SPAN * (noise - 0.5)
        trend = current_price * _TREND_SPAN * (days_ago / days) * (drift - 0.3)
        price = round(max(current_price + variance + trend, floor_price), 2)
        points.append(PricePoint(date=stamp.date(), price=price))

    points[-1] = PricePoint(date=points[-1].date, price=current_price)
    return points


# ── language-model approximation ─────────────────────────────────────────────

def parse_price_lines(
    text: str,
    current_price: float,
    min_points: int = MIN_TREND_POINTS,
) -> List[PricePoint]:
    """Parse ``YYYY-MM-DD,price`` lines from a model reply.

    Lines that do not match the strict pattern, carry an impossible date or a
    non-positive price are dropped, as are repeated dates. The last point's
    price is replaced by ``current_price``.

    Raises:
        DataInsufficiency: Fewer than ``min_points`` lines survived.
    """
    seen = set()
    points: List[PricePoint] = []
    for line in (text or "").splitlines():
        match = _PRICE_LINE.match(line)
        if not match:
            continue
        day = _coerce_date(match.group(1))
        price = float(match.group(2))
        if day is None or price <= 0 or day in seen:
            continue
        seen.add(day)
        points.append(PricePoint(date=day, price=price))

    if len(points) < min_points:
        raise DataInsufficiency(
            f"only {len(points)} valid price lines, need {min_points}"
        )

    points.sort(key=lambda p: p.date)
    points[-1] = PricePoint(date=points[-1].date, price=current_price)
    return points


# ── resolver ─────────────────────────────────────────────────────────────────

class PriceSeriesResolver:
    """Obtains or synthesizes a chronological price series for a product.

    Args:
        approximator: Optional ``PriceHistoryApproximator`` collaborator.
        synthetic_days: Length of synthesized series.
        approximation_days: History length requested from the approximator.
        min_trend_points: Minimum points the trend models need.
        today: Calendar anchor for synthesis (tests pin it).
    """

    def __init__(
        self,
        approximator: Any = None,
        synthetic_days: int = DEFAULT_SYNTHETIC_DAYS,
        approximation_days: int = DEFAULT_APPROXIMATION_DAYS,
        min_trend_points: int = MIN_TREND_POINTS,
        today: Optional[date] = None,
    ) -> None:
        self.approximator = approximator
        self.synthetic_days = synthetic_days
        self.approximation_days = approximation_days
        self.min_trend_points = min_trend_points
        self.today = today

    def resolve(
        self,
        product_id: str,
        current_price: float,
        known_history: Optional[Sequence[Any]] = None,
        min_points: int = 2,
    ) -> List[PricePoint]:
        """Return the known history if it has ``min_points`` valid points, else synthesize."""
        history = clean_history(known_history)
        if len(history) >= min_points:
            return history
        logger.info(
            f"PriceSeriesResolver: {len(history)} known point(s) for {product_id} "
            f"(< {min_points}); synthesizing {self.synthetic_days} days"
        )
        return synthesize_price_series(
            product_id, current_price, days=self.synthetic_days, today=self.today
        )

    async def resolve_for_trend_models(self, product: ProductInput) -> List[PricePoint]:
        """Stored history → language-model approximation → deterministic synthesis."""
        history = clean_history(product.known_history)
        if len(history) >= self.min_trend_points:
            logger.info(
                f"PriceSeriesResolver: using {len(history)} stored points for {product.product_id}"
            )
            return history

        approximated = await self.approximate(product)
        if approximated:
            return approximated

        return synthesize_price_series(
            product.product_id, product.current_price,
            days=self.synthetic_days, today=self.today,
        )

    async def approximate(self, product: ProductInput) -> Optional[List[PricePoint]]:
        """Ask the approximator for history; None when unavailable or unusable."""
        if self.approximator is None:
            return None
        try:
            text = await call_collaborator(
                self.approximator.approximate,
                product.title, product.category, product.current_price, self.approximation_days,
            )
            points = parse_price_lines(text, product.current_price, self.min_trend_points)
        except DataInsufficiency as exc:
            logger.warning(
                f"PriceSeriesResolver: approximation discarded for {product.product_id}: {exc}"
            )
            return None
        except Exception as exc:
            logger.error(
                f"PriceSeriesResolver: approximation failed for {product.product_id}: {exc}"
            )
            return None

        logger.info(
            f"PriceSeriesResolver: approximated {len(points)} points for {product.product_id}"
        )
        return points
