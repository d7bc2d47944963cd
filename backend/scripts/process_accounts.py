"""Rebuild the dashboard JSON from every account folder."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from portfolio_recon.config import get_settings
from portfolio_recon.core.logging import setup_logging
from portfolio_recon.core.telemetry import setup_telemetry, shutdown_telemetry
from portfolio_recon.ledger import LedgerError
from portfolio_recon.pipeline import (
    AccountProcessingError,
    PipelineError,
    process_account,
    process_accounts,
    resolve_registry,
    write_document_atomic,
)

logger = logging.getLogger("process_accounts")


def _run(input_dir: Path, output: Path, single: str | None) -> int:
    settings = get_settings()
    logger.info("Settings: %s", settings.dict_for_logging())
    registry = resolve_registry(settings)
    try:
        if single:
            result = process_account(single, input_dir / single, settings, registry)
            write_document_atomic(result.document, output)
            print(f"Processed {single}: value {result.metrics.current_value:,.2f}")
            return 0
        document = process_accounts(input_dir, settings, registry)
    except (PipelineError, AccountProcessingError, LedgerError) as exc:
        logger.error("%s", exc)
        return 1
    write_document_atomic(document, output)
    print(f"Processed {len(document.account_list)} accounts into {output}")
    for failure in document.failed_accounts:
        print(f"  failed: {failure.account}: {failure.reason}")
    return 0


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Reconcile statements and ledgers into dashboard JSON")
    parser.add_argument("--input-dir", type=Path, default=settings.input_dir)
    parser.add_argument("--output", type=Path, default=settings.output_path)
    parser.add_argument("--single", metavar="ACCOUNT", help="Process one account folder only")
    args = parser.parse_args()

    setup_logging(settings.log_level)
    setup_telemetry(settings)
    try:
        code = _run(args.input_dir, args.output, args.single)
    finally:
        shutdown_telemetry()
    sys.exit(code)


if __name__ == "__main__":
    main()
