"""Extract statement balances from one account folder into a JSON report."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from portfolio_recon.config import get_settings
from portfolio_recon.core.logging import setup_logging
from portfolio_recon.pipeline import build_statement_report, write_document_atomic

logger = logging.getLogger("extract_statements")


def run(input_dir: Path, output: Path) -> int:
    if not input_dir.is_dir():
        logger.error("Statement directory %s not found", input_dir)
        return 1
    report = build_statement_report(input_dir, get_settings())
    write_document_atomic(report, output)
    earliest = report.date_range.earliest.isoformat() if report.date_range.earliest else "-"
    latest = report.date_range.latest.isoformat() if report.date_range.latest else "-"
    print(f"Extracted {report.total_statements} statements ({earliest} to {latest}) into {output}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract ending balances from PDF statements")
    parser.add_argument("--input-dir", type=Path, required=True)
    parser.add_argument("--output", type=Path, required=True)
    args = parser.parse_args()

    setup_logging(get_settings().log_level)
    sys.exit(run(args.input_dir, args.output))


if __name__ == "__main__":
    main()
