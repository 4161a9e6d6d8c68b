"""
Provider smoke check — calls every live collaborator once for the first
configured product and prints what each returned.

Run with:
    PYTHONPATH=. python scripts/check_providers.py [config.yaml]
"""

import logging
import sys

from dotenv import load_dotenv

load_dotenv()

# Show INFO logs on console for verification
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(message)s",
    datefmt="%H:%M:%S",
)

from buyindex.core.config import load_config  # noqa: E402
from buyindex.pipeline.engine import build_orchestrator, products_from_config  # noqa: E402

DIVIDER = "=" * 70


def _show(name, call):
    print(f"\n{DIVIDER}\n{name}")
    try:
        result = call()
    except Exception as exc:
        print(f"  RAISED {exc.__class__.__name__}: {exc}")
        return
    for attr in ("score", "rationale", "error"):
        if hasattr(result, attr):
            print(f"  {attr:<10}: {getattr(result, attr)}")
    if isinstance(result, list):
        for verdict in result:
            print(f"  {verdict.judge:<32} rating={verdict.rating} error={verdict.error}")


def main():
    config = load_config(sys.argv[1] if len(sys.argv) > 1 else "config.yaml")
    products = products_from_config(config)
    if not products:
        print("ERROR: no valid products in config")
        return

    product = products[0]
    services = build_orchestrator(config).services
    print(f"Product: {product.title} ({product.product_id}) @ {product.current_price}")

    _show("relatedNews", lambda: services.news.score(product.title))
    _show("llmScore", lambda: services.judge.score(product.title, product.description))
    _show("socialMediaPresence", lambda: services.social.score(product.title))
    _show("searchTrend", lambda: services.trend.score(product.title, product.category))
    _show("inflationScore", lambda: services.inflation.score())
    print(DIVIDER)


if __name__ == "__main__":
    main()
