"""Batch engine — recomputes the buy index of every configured product.

Flow:
  1. Build providers, price-series resolver, score store and orchestrator
     from config.yaml (+ API keys from the environment).
  2. Score each product in batch mode, one product at a time.
  3. Serialise one row per product to output/buy_index.csv, plus the scored
     price series of each product to output/prices_<id>.csv.

A product that fails outright is logged and left out of the report; the
engine always continues with the next product.
"""

import asyncio
import csv
import os
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from buyindex.core.cache import SQLiteCache
from buyindex.core.config import get_section, get_secret
from buyindex.core.logger import logger
from buyindex.models.datatypes import CategoryStatus, IndexCategory, ProductInput, ReportRow
from buyindex.pipeline.orchestrator import ScoreOrchestrator, ScoringRun
from buyindex.pipeline.producers import ServiceRegistry
from buyindex.pipeline.validator import CATEGORY_COLUMNS, REPORT_COLUMNS
from buyindex.providers.inflation import BankOfCanadaInflationProvider
from buyindex.providers.llm import (
    DEFAULT_JUDGE_MODELS, DEFAULT_PRICE_MODEL,
    OpenRouterClient, OpenRouterJudgePanel, OpenRouterPriceApproximator,
)
from buyindex.providers.news import GoogleNewsProvider
from buyindex.providers.serpapi import SerpApiClient
from buyindex.providers.social import SerpApiSocialProvider
from buyindex.providers.storage import SQLiteScoreStore
from buyindex.providers.trends import SerpApiTrendProvider
from buyindex.scoring.price_series import (
    DEFAULT_APPROXIMATION_DAYS, DEFAULT_SYNTHETIC_DAYS, MIN_TREND_POINTS,
    PriceSeriesResolver,
)
from buyindex.scoring.virality import DEFAULT_MAX_ENGAGEMENT_RATE, DEFAULT_MAX_GROWTH_PER_HOUR

REPORT_FILENAME = "buy_index.csv"


class IndexEngine:
    """Runs the buy-index batch over ``config["products"]``.

    Args:
        config: Parsed config.yaml dict (passed in; not re-loaded internally).
        output_dir: Directory where ``buy_index.csv`` is written.
        orchestrator: Pre-built orchestrator (tests inject fakes); built from
            config when omitted.
    """

    def __init__(
        self,
        config: dict,
        output_dir: str = "output",
        orchestrator: Optional[ScoreOrchestrator] = None,
    ) -> None:
        self.config = config
        self.output_dir = output_dir
        self.orchestrator = orchestrator or build_orchestrator(config, output_dir)

    # ── public ────────────────────────────────────────────────────────────────

    def run(self) -> List[ReportRow]:
        """Score all configured products and write the CSV report.

        Returns:
            List of :class:`ReportRow`, one per successfully scored product.
        """
        products = products_from_config(self.config)
        logger.info(f"IndexEngine: {len(products)} product(s) to score")

        outcomes = asyncio.run(self.orchestrator.compute_many(products))
        runs = [run for _, run in outcomes if run is not None and run.result]
        rows = [_report_row(run) for run in runs]

        self._write_csv(rows)
        self._write_price_series(runs)
        logger.info(
            f"IndexEngine: wrote {len(rows)}/{len(products)} rows to "
            f"{os.path.join(self.output_dir, REPORT_FILENAME)}"
        )
        return rows

    # ── internal ──────────────────────────────────────────────────────────────

    def _write_csv(self, rows: List[ReportRow]) -> None:
        """Write rows to output/buy_index.csv (overwrites each run)."""
        os.makedirs(self.output_dir, exist_ok=True)
        path = os.path.join(self.output_dir, REPORT_FILENAME)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=REPORT_COLUMNS)
            writer.writeheader()
            for row in rows:
                record: Dict[str, Any] = {
                    "Product_ID": row.product_id,
                    "Title": row.title,
                    "Current_Price": row.current_price,
                    "Index_Total": row.total,
                    "Data_Source_Log": row.data_source_log,
                }
                for category, column in CATEGORY_COLUMNS.items():
                    record[column] = row.scores.get(category, "")
                writer.writerow(record)

    def _write_price_series(self, runs: List[ScoringRun]) -> None:
        """Persist the price series each run scored against, for inspection.

        Writes ``output/prices_<PRODUCT_ID>.csv`` (Date, Price, MA7, MA60) for
        every run whose moving-average category resolved.
        """
        for run in runs:
            ma_score = run.scores.get(IndexCategory.MOVING_AVERAGE)
            result = ma_score.details.get("moving_average") if ma_score else None
            if result is None or not result.points:
                continue
            df = pd.DataFrame([
                {"Date": p.date.isoformat(), "Price": p.price, "MA7": p.ma7, "MA60": p.ma60}
                for p in result.points
            ])
            path = os.path.join(self.output_dir, f"prices_{_safe_filename(run.product.product_id)}.csv")
            df.to_csv(path, index=False)
            logger.info(f"IndexEngine: saved price series for {run.product.product_id} → {path}")


# ── builders ──────────────────────────────────────────────────────────────────

def build_orchestrator(config: dict, output_dir: str = "output") -> ScoreOrchestrator:
    """Wire the concrete providers described by config.yaml."""
    providers = get_section(config, "providers")
    serp_cfg = get_section(config, "providers", "serpapi")
    router_cfg = get_section(config, "providers", "openrouter")
    news_cfg = get_section(config, "providers", "news")
    series_cfg = get_section(config, "price_series")
    virality_cfg = get_section(config, "virality")

    cache = SQLiteCache(
        db_path=os.path.join(output_dir, ".cache.db"),
        ttl_seconds=int(providers.get("cache_ttl_seconds", 3600)),
    )
    serp = SerpApiClient(
        get_secret("SERPAPI_API_KEY"),
        cache_instance=cache,
        timeout=serp_cfg.get("timeout_seconds", 20),
        geo=serp_cfg.get("geo", "US"),
        hl=serp_cfg.get("hl", "en"),
    )
    router = OpenRouterClient(
        get_secret("OPENROUTER_API_KEY"),
        timeout=router_cfg.get("timeout_seconds", 30),
    )
    if not router.configured:
        logger.warning("IndexEngine: OPENROUTER_API_KEY not set — judges neutral, prices synthesized")
    if not serp.configured:
        logger.warning("IndexEngine: SERPAPI_API_KEY not set — social/trend scores neutral")

    services = ServiceRegistry(
        news=GoogleNewsProvider(
            cache_instance=cache,
            max_headlines=news_cfg.get("max_headlines", 8),
            language=news_cfg.get("language", "en-US"),
            country=news_cfg.get("country", "US"),
        ),
        judge=OpenRouterJudgePanel(router, models=router_cfg.get("judge_models") or DEFAULT_JUDGE_MODELS),
        social=SerpApiSocialProvider(serp),
        trend=SerpApiTrendProvider(serp),
        inflation=BankOfCanadaInflationProvider(
            cache_instance=cache,
            timeout=get_section(config, "providers", "inflation").get("timeout_seconds", 15),
        ),
    )
    approximator = None
    if router.configured:
        approximator = OpenRouterPriceApproximator(
            router, model=router_cfg.get("price_model") or DEFAULT_PRICE_MODEL
        )
    resolver = PriceSeriesResolver(
        approximator=approximator,
        synthetic_days=series_cfg.get("synthetic_days", DEFAULT_SYNTHETIC_DAYS),
        approximation_days=series_cfg.get("approximation_days", DEFAULT_APPROXIMATION_DAYS),
        min_trend_points=series_cfg.get("min_trend_points", MIN_TREND_POINTS),
    )
    storage = SQLiteScoreStore(
        db_path=get_section(config, "storage").get("db_path", os.path.join(output_dir, "scores.db"))
    )
    return ScoreOrchestrator(
        services=services,
        resolver=resolver,
        storage=storage,
        max_engagement_rate=virality_cfg.get("max_engagement_rate", DEFAULT_MAX_ENGAGEMENT_RATE),
        max_growth_per_hour=virality_cfg.get("max_growth_per_hour", DEFAULT_MAX_GROWTH_PER_HOUR),
        product_delay_seconds=get_section(config, "batch").get("product_delay_seconds", 0),
    )


def products_from_config(config: dict) -> List[ProductInput]:
    """Parse ``config["products"]``; entries without id, title or a positive price are skipped."""
    products: List[ProductInput] = []
    for i, entry in enumerate(config.get("products") or []):
        if not isinstance(entry, dict):
            logger.warning(f"IndexEngine: products[{i}] is not a mapping — skipped")
            continue
        product_id = str(entry.get("id") or "").strip()
        title = str(entry.get("title") or "").strip()
        try:
            price = float(entry.get("price"))
        except (TypeError, ValueError):
            price = 0.0
        if not product_id or not title or price <= 0:
            logger.warning(f"IndexEngine: products[{i}] needs id, title and a positive price — skipped")
            continue
        products.append(ProductInput(
            product_id=product_id,
            title=title,
            current_price=price,
            description=str(entry.get("description") or ""),
            category=entry.get("category"),
            known_history=entry.get("history"),
        ))
    return products


def _safe_filename(product_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", product_id)


def _report_row(run: ScoringRun) -> ReportRow:
    scores = run.result.scores()
    log_parts = []
    for category, status in run.settled_status.items():
        if status == CategoryStatus.FAILED_FALLBACK:
            note = "fallback"
        elif run.scores[category].error:
            note = "neutral"
        else:
            note = "ok"
        log_parts.append(f"{category.value}={note}")
    log_parts.append(f"{IndexCategory.PREDICTED_PRICE.value}=reserved")
    return ReportRow(
        product_id=run.product.product_id,
        title=run.product.title,
        current_price=run.product.current_price,
        scores=scores,
        total=run.result.total,
        data_source_log=" | ".join(log_parts),
    )
