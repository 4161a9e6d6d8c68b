"""Output validator for buy_index.csv.

Checks:
  1. At least one product row
  2. Every category score and Index_Total within [0, 100]
  3. Index_Total equals the rounded weighted sum of the category scores (±1)
  4. No empty Product_ID

Usage:
    python -m buyindex.pipeline.validator output/buy_index.csv
"""

import csv
import sys
from typing import Dict, List, Tuple

from buyindex.models.datatypes import IndexCategory
from buyindex.scoring.index import INDEX_WEIGHTS

CATEGORY_COLUMNS: Dict[IndexCategory, str] = {
    IndexCategory.RELATED_NEWS: "Related_News",
    IndexCategory.INFLATION_SCORE: "Inflation_Score",
    IndexCategory.PREDICTED_PRICE: "Predicted_Price",
    IndexCategory.LLM_SCORE: "LLM_Score",
    IndexCategory.MOVING_AVERAGE: "Moving_Average",
    IndexCategory.VOLATILITY: "Volatility",
    IndexCategory.SOCIAL_MEDIA_PRESENCE: "Social_Media_Presence",
    IndexCategory.SEARCH_TREND: "Search_Trend",
}

REPORT_COLUMNS: List[str] = (
    ["Product_ID", "Title", "Current_Price"]
    + list(CATEGORY_COLUMNS.values())
    + ["Index_Total", "Data_Source_Log"]
)

_TOTAL_TOLERANCE = 1


def validate(csv_path: str) -> Tuple[bool, List[str]]:
    """Run all validation checks against csv_path.

    Returns:
        Tuple of ``(passed: bool, messages: list[str])``.
        ``messages`` contains PASS/FAIL lines for each check.
    """
    messages: List[str] = []
    passed = True

    # ── load ──────────────────────────────────────────────────────────────────
    try:
        with open(csv_path, encoding="utf-8", newline="") as f:
            rows = list(csv.DictReader(f))
    except FileNotFoundError:
        return False, [f"FAIL  file not found: {csv_path}"]
    except (OSError, csv.Error) as exc:
        return False, [f"FAIL  could not read CSV: {exc}"]

    if not rows:
        return False, ["FAIL  CSV has no product rows"]
    missing = [c for c in REPORT_COLUMNS if c not in rows[0]]
    if missing:
        return False, [f"FAIL  missing columns: {missing}"]
    messages.append(f"PASS  {len(rows)} product row(s) with all {len(REPORT_COLUMNS)} columns")

    # ── check: scores in [0, 100] ─────────────────────────────────────────────
    out_of_range = []
    for i, row in enumerate(rows, start=2):
        for col in list(CATEGORY_COLUMNS.values()) + ["Index_Total"]:
            try:
                value = float(row[col])
            except ValueError:
                out_of_range.append((i, col, row[col]))
                continue
            if not 0 <= value <= 100:
                out_of_range.append((i, col, value))
    if not out_of_range:
        messages.append("PASS  all scores ∈ [0, 100]")
    else:
        messages.append(
            f"FAIL  {len(out_of_range)} score(s) missing or out of range: {out_of_range[:3]}"
        )
        passed = False

    # ── check: total = weighted sum ───────────────────────────────────────────
    mismatches = []
    for i, row in enumerate(rows, start=2):
        try:
            weighted = sum(
                float(row[CATEGORY_COLUMNS[c]]) / 100 * w for c, w in INDEX_WEIGHTS.items()
            )
            total = float(row["Index_Total"])
        except ValueError:
            continue  # already reported above
        if abs(total - weighted) > _TOTAL_TOLERANCE:
            mismatches.append((i, total, round(weighted, 2)))
    if not mismatches:
        messages.append("PASS  Index_Total matches the weighted category sum")
    else:
        messages.append(f"FAIL  Index_Total mismatch in {len(mismatches)} row(s): {mismatches[:3]}")
        passed = False

    # ── check: product ids ────────────────────────────────────────────────────
    blank_ids = [i for i, r in enumerate(rows, start=2) if not r.get("Product_ID", "").strip()]
    if not blank_ids:
        messages.append("PASS  Product_ID present for all rows")
    else:
        messages.append(f"FAIL  empty Product_ID at rows {blank_ids}")
        passed = False

    return passed, messages


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python -m buyindex.pipeline.validator <path_to_csv>")
        return 1
    passed, messages = validate(sys.argv[1])
    for msg in messages:
        print(msg)
    if passed:
        print("\nVALIDATION PASSED ✓")
        return 0
    print("\nVALIDATION FAILED ✗")
    return 1


if __name__ == "__main__":
    sys.exit(main())
