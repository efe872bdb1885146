"""
Command-line interface for classifying ads from a JSON export.

Input is a JSON array of ads::

    [{"id": "123", "cohort_key": "ag-1", "cohort_label": "Shoes",
      "campaign": "Search - Brand", "impressions": 1000, "clicks": 50,
      "conversions": 2}]

Output is a JSON document with one classification per ad and the report
table of winners and losers.
"""

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from adsplit.core.config import settings as default_settings
from adsplit.models import REPORT_COLUMNS, Item, OutcomeCounts
from adsplit.stats.engine import ExperimentResult, run_with_settings
from adsplit.stats.errors import EngineError

logger = logging.getLogger(__name__)


def parse_items(records: list) -> list[Item]:
    """
    Build items from decoded JSON records.

    Args:
        records: List of dicts, one per ad

    Returns:
        list: Items with the record id as handle
    """
    if not isinstance(records, list):
        raise ValueError("expected a JSON array of ads")
    items = []
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValueError(f"ad at position {position} is not a JSON object")
        items.append(
            Item(
                cohort_key=record["cohort_key"],
                cohort_label=record.get("cohort_label"),
                campaign=record.get("campaign"),
                handle=record.get("id"),
                counts=OutcomeCounts(
                    impressions=record.get("impressions", 0),
                    clicks=record.get("clicks", 0),
                    conversions=record.get("conversions", 0),
                ),
            )
        )
    return items


def render(result: ExperimentResult, title: str) -> dict:
    return {
        "classifications": [
            {"id": handle, "classification": classification.value}
            for handle, classification in result.outcomes()
        ],
        "report": {
            "title": title,
            "columns": list(REPORT_COLUMNS),
            "rows": [row.as_list() for row in result.report_rows],
        },
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Classify ads as winners, losers or inconclusive against their ad group control"
    )
    parser.add_argument("input", nargs="?", default="-",
                        help="JSON file of ads ('-' for stdin)")
    parser.add_argument("--conversion-threshold", type=int,
                        help="Conversions either ad must exceed before conversion rate is used")
    parser.add_argument("--decision-threshold", type=float,
                        help="Maximum expected loss for a decision")
    parser.add_argument("--probability-threshold", type=float,
                        help="Minimum probability for a decision, between 0.5 and 1")
    parser.add_argument("--min-impressions", type=int,
                        help="Ignore ads with this many impressions or fewer")
    parser.add_argument("--method", choices=["closed_form", "monte_carlo"],
                        help="Posterior comparison method")
    parser.add_argument("--title", default="A/B Testing Results",
                        help="Report title")
    parser.add_argument("--log-level", help="Logging level (default from settings)")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {
        "CONVERSION_THRESHOLD": args.conversion_threshold,
        "DECISION_THRESHOLD": args.decision_threshold,
        "PROBABILITY_THRESHOLD": args.probability_threshold,
        "MIN_IMPRESSIONS": args.min_impressions,
        "COMPARISON_METHOD": args.method,
        "LOG_LEVEL": args.log_level,
    }
    settings = default_settings.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.input == "-":
            records = json.load(sys.stdin)
        else:
            with open(args.input) as fh:
                records = json.load(fh)
        items = parse_items(records)
        result = run_with_settings(items, settings)
    except (OSError, KeyError, ValueError, ValidationError, EngineError) as e:
        logger.error("Cannot evaluate %s: %s", args.input, e)
        return 2

    json.dump(render(result, args.title), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
