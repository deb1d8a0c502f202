from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from bootstrap import ensure_schema, schema_report

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check the fest tables and the user numeric-id sequence, optionally creating what is missing."
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Create missing tables and seed the sequence row before checking.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON on stdout.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.apply:
        logger.info("Creating missing tables and seeding the user id sequence...")
        ensure_schema()

    report = schema_report()
    if args.json:
        print(json.dumps(report, indent=2))

    sequence = report["sequence"]
    if sequence:
        logger.info(
            "Next numeric id %s (%s remaining, highest issued %s)",
            sequence["next_numeric_id"],
            sequence["remaining"],
            sequence["highest_issued"],
        )
    for problem in report["problems"]:
        logger.error(problem)
    return 1 if report["problems"] else 0


if __name__ == "__main__":
    sys.exit(main())
