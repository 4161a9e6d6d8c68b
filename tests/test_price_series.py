"""
Tests for price-series resolution (buyindex.scoring.price_series).

What we test
------------
1. ``clean_history``: invalid points dropped, first point per date kept,
   ascending order, dict rows accepted.
2. ``synthesize_price_series``: determinism, last point equals the current
   price, length, floor, input validation.
3. ``parse_price_lines``: strict line format, insufficiency.
4. ``PriceSeriesResolver``: known history → approximation → synthesis.
"""

import math
from datetime import date, timedelta

import pytest

from conftest import TODAY, FakeApproximator
from buyindex.core.errors import DataInsufficiency
from buyindex.models.datatypes import PricePoint, ProductInput
from buyindex.scoring.price_series import (
    PriceSeriesResolver, clean_history, parse_price_lines, synthesize_price_series,
)


def _lines(n: int, start: date = date(2026, 9, 1), price: float = 50.0) -> str:
    return "\n".join(f"{start + timedelta(days=i)},{price + i:.2f}" for i in range(n))


# ── clean_history ─────────────────────────────────────────────────────────────

class TestCleanHistory:
    def test_drops_invalid_and_sorts(self) -> None:
        raw = [
            {"date": "2026-09-03", "price": 12},
            {"date": "not-a-date", "price": 10},
            {"date": "2026-09-01", "price": math.nan},
            PricePoint(date=date(2026, 9, 2), price=11.0),
            {"date": "2026-09-01", "price": "9.5"},
        ]
        cleaned = clean_history(raw)
        assert [p.date.day for p in cleaned] == [1, 2, 3]
        assert cleaned[0].price == 9.5

    def test_first_point_per_date_wins(self) -> None:
        cleaned = clean_history([
            {"date": "2026-09-01", "price": 1},
            {"date": "2026-09-01", "price": 2},
        ])
        assert len(cleaned) == 1
        assert cleaned[0].price == 1

    def test_none_is_empty(self) -> None:
        assert clean_history(None) == []


# ── synthesis ─────────────────────────────────────────────────────────────────

class TestSynthesis:
    def test_deterministic(self) -> None:
        a = synthesize_price_series("sku-1", 199.99, today=TODAY)
        b = synthesize_price_series("sku-1", 199.99, today=TODAY)
        assert a == b

    def test_different_ids_differ(self) -> None:
        a = synthesize_price_series("sku-1", 199.99, today=TODAY)
        b = synthesize_price_series("sku-2", 199.99, today=TODAY)
        assert [p.price for p in a] != [p.price for p in b]

    def test_last_point_is_current_price_today(self) -> None:
        series = synthesize_price_series("sku-1", 199.99, today=TODAY)
        assert series[-1].price == 199.99
        assert series[-1].date == TODAY

    def test_length_and_daily_spacing(self) -> None:
        series = synthesize_price_series("sku-1", 50, days=90, today=TODAY)
        assert len(series) == 90
        assert series[0].date == TODAY - timedelta(days=89)
        assert all(b.date - a.date == timedelta(days=1) for a, b in zip(series, series[1:]))

    def test_floor_and_cents(self) -> None:
        series = synthesize_price_series("floor-check", 80, today=TODAY)
        assert all(p.price >= 80 * 0.72 for p in series)
        assert all(round(p.price, 2) == p.price for p in series)

    @pytest.mark.parametrize("price", [0, -5, math.nan, math.inf])
    def test_rejects_bad_price(self, price: float) -> None:
        with pytest.raises(ValueError):
            synthesize_price_series("sku-1", price, today=TODAY)


# ── parse_price_lines ─────────────────────────────────────────────────────────

class TestParsePriceLines:
    def test_keeps_strict_lines_only(self) -> None:
        text = "Here you go:\n" + _lines(7) + "\n2026-09-30, $55\n2026-13-01,10\n2026-09-20,-3"
        points = parse_price_lines(text, current_price=99.0)
        assert len(points) == 7
        assert points[-1].price == 99.0

    def test_insufficient_points(self) -> None:
        with pytest.raises(DataInsufficiency):
            parse_price_lines(_lines(6), current_price=10.0)


# ── resolver ──────────────────────────────────────────────────────────────────

def _product(history=None) -> ProductInput:
    return ProductInput("sku-9", "Logitech MX Master 3S Mouse", 99.0, known_history=history)


class TestResolver:
    def test_resolve_uses_known_history_with_two_points(self) -> None:
        history = [{"date": "2026-09-01", "price": 5}, {"date": "2026-09-02", "price": 6}]
        resolver = PriceSeriesResolver(today=TODAY)
        assert len(resolver.resolve("sku", 6, history)) == 2

    def test_resolve_synthesizes_when_sparse(self) -> None:
        resolver = PriceSeriesResolver(today=TODAY, synthetic_days=30)
        series = resolver.resolve("sku", 6, [{"date": "2026-09-01", "price": 5}])
        assert len(series) == 30

    @pytest.mark.asyncio
    async def test_trend_models_prefer_stored_history(self) -> None:
        approximator = FakeApproximator(lines=_lines(20))
        history = [{"date": f"2026-09-{d:02d}", "price": 90 + d} for d in range(1, 9)]
        resolver = PriceSeriesResolver(approximator=approximator, today=TODAY)
        series = await resolver.resolve_for_trend_models(_product(history))
        assert len(series) == 8
        assert approximator.calls == 0

    @pytest.mark.asyncio
    async def test_trend_models_use_approximation(self) -> None:
        approximator = FakeApproximator(lines=_lines(20))
        resolver = PriceSeriesResolver(approximator=approximator, today=TODAY)
        series = await resolver.resolve_for_trend_models(_product())
        assert len(series) == 20
        assert series[-1].price == 99.0
        assert approximator.calls == 1

    @pytest.mark.asyncio
    async def test_short_approximation_falls_back_to_synthesis(self) -> None:
        resolver = PriceSeriesResolver(
            approximator=FakeApproximator(lines=_lines(3)), today=TODAY, synthetic_days=90,
        )
        series = await resolver.resolve_for_trend_models(_product())
        assert len(series) == 90
        assert series == synthesize_price_series("sku-9", 99.0, days=90, today=TODAY)

    @pytest.mark.asyncio
    async def test_failing_approximator_falls_back_to_synthesis(self) -> None:
        resolver = PriceSeriesResolver(
            approximator=FakeApproximator(exc=RuntimeError("model down")), today=TODAY,
        )
        series = await resolver.resolve_for_trend_models(_product())
        assert series[-1].price == 99.0
        assert len(series) == 90
