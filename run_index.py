"""Buy-index batch entry point.

Usage:
    python run_index.py [config.yaml]

Loads the config, wires all providers, runs IndexEngine over the configured
products and reports success/failure to stdout and the log.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()  # must precede buyindex imports so env vars are available at module load

from buyindex.core.config import load_config  # noqa: E402
from buyindex.core.logger import logger  # noqa: E402
from buyindex.pipeline.engine import REPORT_FILENAME, IndexEngine  # noqa: E402


def main() -> int:
    """Run the batch. Returns 0 on success, 1 on failure."""
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        logger.error(f"run_index: failed to load config: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    output_dir = config.get("output_dir", "output")

    try:
        engine = IndexEngine(config=config, output_dir=output_dir)
        rows = engine.run()
    except Exception as exc:
        logger.error(f"run_index: IndexEngine raised: {exc}", exc_info=True)
        print(f"ERROR: batch failed — {exc}", file=sys.stderr)
        return 1

    csv_path = os.path.join(output_dir, REPORT_FILENAME)
    for row in rows:
        print(f"  {row.total:>3}  {row.product_id}  {row.title[:60]}")
    print(f"SUCCESS: {len(rows)} rows written to {csv_path}")
    logger.info(f"run_index: completed — {len(rows)} rows → {csv_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
