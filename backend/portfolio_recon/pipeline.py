"""Per-account orchestration: ledgers and statements in, JSON documents out."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Sequence

from opentelemetry import metrics, trace
from pydantic import BaseModel

from .benchmarks import BenchmarkRegistry, load_registry
from .classifier import classify_rows
from .config import AppSettings
from .ledger import LedgerError, find_ledger_file, find_positions_file, load_positions, load_transactions
from .metrics import AccountMetrics, compute_account_metrics, finite_or_zero
from .models import ClassifiedTransaction, Position, StatementBalance, TimeSeriesPoint
from .schemas import (
    AccountDocumentSchema,
    AccountSchema,
    BenchmarkComparisonSchema,
    BenchmarkMetricsSchema,
    DateRangeSchema,
    FailedAccountSchema,
    LargeFeeSchema,
    MultiAccountDocumentSchema,
    PerformanceSchema,
    PositionSchema,
    StatementReportEntrySchema,
    StatementReportSchema,
    SummarySchema,
    TimeSeriesPointSchema,
    TransactionSchema,
)
from .statements import StatementExtractor, read_pdf_text, with_floors
from .timeseries import build_time_series

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)
meter = metrics.get_meter(__name__)
statement_outcomes = meter.create_counter(
    "portfolio_recon.statements",
    unit="1",
    description="Statements processed, by outcome",
)

ACCOUNT_TYPE = "BROKERAGE"

TextReader = Callable[[Path], str]
Clock = Callable[[], datetime]


class AccountProcessingError(RuntimeError):
    """Raised when one account cannot produce a time series."""


class PipelineError(RuntimeError):
    """Raised when the run as a whole cannot proceed."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AccountResult:
    name: str
    document: AccountDocumentSchema
    series: List[TimeSeriesPoint]
    metrics: AccountMetrics


def account_id_for(name: str) -> str:
    return "_".join(name.split()).upper()


def discover_accounts(root: Path) -> List[Path]:
    """Return account folders under ``root``; hidden folders are ignored."""

    if not root.is_dir():
        raise PipelineError(f"Input directory {root} not found")
    folders = sorted(
        item for item in root.iterdir() if item.is_dir() and not item.name.startswith(".")
    )
    if not folders:
        raise PipelineError(f"No account folders found in {root}")
    logger.info("Found %d account folders: %s", len(folders), ", ".join(f.name for f in folders))
    return folders


def build_extractor(
    settings: AppSettings,
    *,
    text_reader: TextReader | None = None,
    account_name: str = "",
) -> StatementExtractor:
    def record(outcome: str) -> None:
        statement_outcomes.add(1, {"account": account_name, "outcome": outcome})

    return StatementExtractor(
        text_reader=text_reader or read_pdf_text,
        patterns=with_floors(settings.labelled_balance_floor, settings.generic_balance_floor),
        drop_ratio=settings.anomaly_drop_ratio,
        drop_floor=settings.anomaly_value_floor,
        max_workers=settings.statement_workers,
        on_outcome=record,
    )


def load_account_transactions(account_path: Path) -> List[ClassifiedTransaction]:
    ledger_file = find_ledger_file(account_path)
    if ledger_file is None:
        logger.warning("No transactions file found in %s", account_path.name)
        return []
    return classify_rows(load_transactions(ledger_file))


def load_account_positions(account_path: Path) -> List[Position]:
    positions_file = find_positions_file(account_path)
    if positions_file is None:
        logger.warning("No positions file found in %s", account_path.name)
        return []
    return load_positions(positions_file)


# Document assembly

def _point_schema(point: TimeSeriesPoint, registry: BenchmarkRegistry) -> TimeSeriesPointSchema:
    legacy: Dict[str, float] = {}
    for benchmark in registry:
        if benchmark.legacy_key:
            legacy[benchmark.legacy_key] = finite_or_zero(point.benchmark_values.get(benchmark.id, 0.0))
    return TimeSeriesPointSchema(
        date=point.date,
        account_value=point.account_value,
        portfolio_value=point.account_value,
        principal_invested=point.principal_invested,
        deposits=point.deposits,
        withdrawals=point.withdrawals,
        fees=point.fees,
        benchmark_values=dict(point.benchmark_values),
        large_fees=[
            LargeFeeSchema(amount=fee.amount, date=fee.date, description=fee.description)
            for fee in point.large_fees
        ],
        is_estimated=point.estimated,
        statement_date=point.statement_date,
        **legacy,
    )


def _transaction_schema(tx: ClassifiedTransaction) -> TransactionSchema:
    return TransactionSchema(
        id=tx.id,
        date=tx.date,
        description=tx.description,
        amount=tx.amount,
        type=tx.type.value,
        symbol=tx.symbol,
        quantity=tx.quantity,
        price=tx.price,
        fees=tx.fees,
        net_amount=tx.net_amount,
    )


def _position_schema(position: Position) -> PositionSchema:
    return PositionSchema(
        symbol=position.symbol,
        description=position.description,
        quantity=position.quantity,
        market_value=position.market_value,
        average_cost=position.average_cost,
        total_cost=position.total_cost,
        unrealized_gain_loss=position.unrealized_gain_loss,
        unrealized_gain_loss_percent=position.unrealized_gain_loss_percent,
        day_change=position.day_change,
        day_change_percent=position.day_change_percent,
    )


def _benchmark_comparison(account_metrics: AccountMetrics, primary_benchmark: str) -> BenchmarkComparisonSchema:
    primary = account_metrics.benchmarks.get(primary_benchmark)
    if primary is None:
        logger.warning("Primary benchmark %s is not active; comparison left empty", primary_benchmark)
        return BenchmarkComparisonSchema()
    return BenchmarkComparisonSchema(
        sp500_return=primary.gains,
        sp500_return_percent=primary.return_percent,
        sp500_value=primary.value,
        outperformance=primary.outperformance,
        outperformance_percent=primary.outperformance_percent,
    )


def build_account_document(
    name: str,
    *,
    positions: Sequence[Position],
    transactions: Sequence[ClassifiedTransaction],
    balances: Mapping[date, StatementBalance],
    series: Sequence[TimeSeriesPoint],
    account_metrics: AccountMetrics,
    registry: BenchmarkRegistry,
    primary_benchmark: str,
    last_updated: datetime,
) -> AccountDocumentSchema:
    account_id = account_id_for(name)
    latest_statement: StatementBalance | None = balances[max(balances)] if balances else None
    available_cash = latest_statement.cash_balance if latest_statement is not None else 0.0

    account = AccountSchema(
        account_id=account_id,
        account_type=ACCOUNT_TYPE,
        account_name=name,
        current_balance=account_metrics.current_value,
        available_cash=available_cash,
        total_securities=max(0.0, account_metrics.current_value - available_cash),
        total_return=account_metrics.real_return,
        total_return_percent=account_metrics.real_return_percent,
        positions=[_position_schema(position) for position in positions],
    )
    performance = PerformanceSchema(
        account_id=account_id,
        time_series_data=[_point_schema(point, registry) for point in series],
        total_return=account_metrics.real_return,
        total_return_percent=account_metrics.real_return_percent,
        annualized_return=account_metrics.annualized_return,
        deposits=account_metrics.cash_flows.deposits,
        withdrawals=account_metrics.cash_flows.withdrawals,
        fees=account_metrics.cash_flows.fees,
        net_contributions=account_metrics.principal,
        real_return=account_metrics.real_return,
        real_return_percent=account_metrics.real_return_percent,
        net_return_after_fees=account_metrics.net_return_after_fees,
        net_return_after_fees_percent=account_metrics.net_return_after_fees_percent,
        portfolio_without_fees_value=account_metrics.fee_free_value,
        portfolio_without_fees_gains=account_metrics.fee_free_gains,
        portfolio_without_fees_return=account_metrics.fee_free_annualized_return,
        benchmark_comparison=_benchmark_comparison(account_metrics, primary_benchmark),
        benchmarks={
            benchmark_id: BenchmarkMetricsSchema(
                id=item.id,
                name=item.name,
                value=item.value,
                gains=item.gains,
                return_percent=item.return_percent,
                outperformance=item.outperformance,
                outperformance_percent=item.outperformance_percent,
                lump_sum_value=item.lump_sum_value,
                lump_sum_return_percent=item.lump_sum_return_percent,
            )
            for benchmark_id, item in account_metrics.benchmarks.items()
        },
        best_performing_benchmark=account_metrics.best_benchmark,
        worst_performing_benchmark=account_metrics.worst_benchmark,
    )
    summary = SummarySchema(
        total_positions=len(positions),
        total_transactions=len(transactions),
        portfolio_value=account_metrics.current_value,
        total_invested=account_metrics.principal,
        total_gains=account_metrics.net_return_after_fees,
        total_feespaid=account_metrics.cash_flows.fees,
        years_invested=account_metrics.years,
        annualized_return=account_metrics.annualized_return,
    )
    return AccountDocumentSchema(
        last_updated=last_updated,
        account_name=name,
        account=account,
        performance=performance,
        transactions=[_transaction_schema(tx) for tx in transactions],
        summary=summary,
    )


def process_account(
    name: str,
    account_path: Path,
    settings: AppSettings,
    registry: BenchmarkRegistry,
    *,
    text_reader: TextReader | None = None,
    now: Clock = utc_now,
) -> AccountResult:
    """Reconcile one account folder into its output document.

    Raises :class:`LedgerError` when the ledger cannot be read and
    :class:`AccountProcessingError` when no statement survives extraction.
    """

    with tracer.start_as_current_span("process_account") as span:
        span.set_attribute("account.name", name)
        logger.info("Processing account %s (%s)", name, account_path)
        if not account_path.is_dir():
            raise AccountProcessingError(f"Account folder {account_path} not found")

        transactions = load_account_transactions(account_path)
        positions = load_account_positions(account_path)
        extractor = build_extractor(settings, text_reader=text_reader, account_name=name)
        balances = extractor.extract_directory(account_path)
        span.set_attribute("account.transactions", len(transactions))
        span.set_attribute("account.statements", len(balances))
        if not balances:
            raise AccountProcessingError(f"No accepted statements for account {name}")

        opening_balance = settings.opening_balance_for(name)
        if opening_balance is not None:
            logger.info("Using configured opening balance %.2f for %s", opening_balance, name)
        series = build_time_series(
            transactions,
            balances,
            registry,
            opening_balance=opening_balance,
            large_fee_threshold=settings.large_fee_threshold,
        )
        account_metrics = compute_account_metrics(
            series,
            transactions,
            registry,
            min_years=settings.min_years_for_annualized,
        )
        document = build_account_document(
            name,
            positions=positions,
            transactions=transactions,
            balances=balances,
            series=series,
            account_metrics=account_metrics,
            registry=registry,
            primary_benchmark=settings.primary_benchmark,
            last_updated=now(),
        )
        logger.info(
            "Account %s: value %.2f, principal %.2f, real return %.2f, annualized %.2f%%, %d positions, %d transactions",
            name,
            account_metrics.current_value,
            account_metrics.principal,
            account_metrics.real_return,
            account_metrics.annualized_return,
            len(positions),
            len(transactions),
        )
        return AccountResult(name=name, document=document, series=series, metrics=account_metrics)


def resolve_registry(settings: AppSettings) -> BenchmarkRegistry:
    return load_registry(settings.benchmarks_path).restrict(settings.active_benchmarks)


def process_accounts(
    root: Path,
    settings: AppSettings,
    registry: BenchmarkRegistry | None = None,
    *,
    text_reader: TextReader | None = None,
    now: Clock = utc_now,
) -> MultiAccountDocumentSchema:
    """Process every account folder under ``root`` into one envelope document."""

    registry = registry if registry is not None else resolve_registry(settings)
    with tracer.start_as_current_span("process_accounts") as span:
        folders = discover_accounts(root)
        span.set_attribute("accounts.discovered", len(folders))

        documents: Dict[str, AccountDocumentSchema] = {}
        failed: List[FailedAccountSchema] = []
        for folder in folders:
            try:
                result = process_account(
                    folder.name, folder, settings, registry, text_reader=text_reader, now=now
                )
            except (AccountProcessingError, LedgerError) as exc:
                logger.error("Account %s failed: %s", folder.name, exc)
                failed.append(FailedAccountSchema(account=folder.name, reason=str(exc)))
                continue
            documents[folder.name] = result.document

        span.set_attribute("accounts.processed", len(documents))
        span.set_attribute("accounts.failed", len(failed))
        if not documents:
            raise PipelineError(f"No accounts could be processed under {root}")

        return MultiAccountDocumentSchema(
            last_updated=now(),
            accounts=documents,
            account_list=list(documents),
            failed_accounts=failed,
        )


def build_statement_report(
    account_path: Path,
    settings: AppSettings,
    *,
    text_reader: TextReader | None = None,
    now: Clock = utc_now,
) -> StatementReportSchema:
    """Summarise the accepted statements of one folder without a ledger."""

    extractor = build_extractor(settings, text_reader=text_reader, account_name=account_path.name)
    balances = extractor.extract_directory(account_path)
    entries = [
        StatementReportEntrySchema(
            date=item.date,
            filename=item.source_file,
            account_balance=item.account_value,
            cash_balance=item.cash_balance,
            securities_value=item.securities_value,
        )
        for item in balances.values()
    ]
    return StatementReportSchema(
        last_updated=now(),
        total_statements=len(entries),
        date_range=DateRangeSchema(
            earliest=min(balances) if balances else None,
            latest=max(balances) if balances else None,
        ),
        statements=entries,
    )


def serialize_document(document: BaseModel) -> str:
    payload = document.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(payload, indent=2, allow_nan=False) + "\n"


def write_document_atomic(document: BaseModel, path: Path) -> Path:
    """Write ``document`` as JSON, replacing ``path`` only once fully written."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = serialize_document(document)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.info("Wrote %s (%d bytes)", path, len(text.encode("utf-8")))
    return path


__all__ = [
    "AccountProcessingError",
    "AccountResult",
    "PipelineError",
    "account_id_for",
    "build_account_document",
    "build_extractor",
    "build_statement_report",
    "discover_accounts",
    "process_account",
    "process_accounts",
    "resolve_registry",
    "serialize_document",
    "utc_now",
    "write_document_atomic",
]
