"""Account-level performance metrics derived from a reconciled time series."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from .benchmarks import BenchmarkPerformance, BenchmarkRegistry, calculate_benchmark_performance
from .models import ClassifiedTransaction, TimeSeriesPoint, TransactionType

logger = logging.getLogger(__name__)

MIN_PRINCIPAL_FOR_CALCULATION = 1.0
MIN_YEARS_FOR_ANNUALIZED = 0.1
DAYS_PER_YEAR = 365.25


def finite_or_zero(value: float) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0 or not math.isfinite(denominator) or not math.isfinite(numerator):
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def percent_of(amount: float, base: float) -> float:
    return safe_divide(amount, base) * 100 if base > 0 else 0.0


def years_between(start: date, end: date) -> float:
    if end <= start:
        return 0.0
    return (end - start).days / DAYS_PER_YEAR


def annualized_return(
    final_value: float,
    initial_value: float,
    years: float,
    *,
    min_years: float = MIN_YEARS_FOR_ANNUALIZED,
) -> float:
    """Compound annual growth rate in percent, or ``0.0`` when undefined."""

    if initial_value <= MIN_PRINCIPAL_FOR_CALCULATION or years < min_years:
        return 0.0
    if final_value < 0 or initial_value < 0 or years <= 0:
        return 0.0
    ratio = safe_divide(final_value, initial_value, 1.0)
    if ratio <= 0:
        return 0.0
    try:
        result = (ratio ** (1 / years) - 1) * 100
    except OverflowError:
        return 0.0
    return finite_or_zero(result)


@dataclass(frozen=True)
class BenchmarkMetrics:
    id: str
    name: str
    value: float
    gains: float
    return_percent: float
    outperformance: float
    outperformance_percent: float
    lump_sum_value: float
    lump_sum_return_percent: float


@dataclass(frozen=True)
class CashFlowTotals:
    deposits: float = 0.0
    withdrawals: float = 0.0
    fees: float = 0.0

    @property
    def net_contributions(self) -> float:
        return self.deposits - self.withdrawals


@dataclass(frozen=True)
class AccountMetrics:
    """Headline figures for one account; every benchmark shares ``principal``."""

    current_value: float
    principal: float
    real_return: float
    real_return_percent: float
    cash_flows: CashFlowTotals
    net_return_after_fees: float
    net_return_after_fees_percent: float
    years: float
    annualized_return: float
    fee_free_value: float
    fee_free_gains: float
    fee_free_annualized_return: float
    benchmarks: Dict[str, BenchmarkMetrics] = field(default_factory=dict)
    best_benchmark: Optional[str] = None
    worst_benchmark: Optional[str] = None


def total_cash_flows(transactions: Iterable[ClassifiedTransaction]) -> CashFlowTotals:
    deposits = withdrawals = fees = 0.0
    for tx in transactions:
        if tx.type is TransactionType.DEPOSIT:
            deposits += tx.cash_amount
        elif tx.type is TransactionType.WITHDRAWAL:
            withdrawals += tx.cash_amount
        elif tx.type is TransactionType.FEE:
            fees += tx.cash_amount
    return CashFlowTotals(deposits=deposits, withdrawals=withdrawals, fees=fees)


def compute_account_metrics(
    series: Sequence[TimeSeriesPoint],
    transactions: Iterable[ClassifiedTransaction],
    registry: BenchmarkRegistry,
    *,
    min_years: float = MIN_YEARS_FOR_ANNUALIZED,
) -> AccountMetrics:
    cash_flows = total_cash_flows(transactions)
    if series:
        first, last = series[0], series[-1]
        current_value = finite_or_zero(last.account_value)
        principal = finite_or_zero(last.principal_invested)
        years = years_between(first.date, last.date)
        real_return = finite_or_zero(last.real_return)
    else:
        current_value = principal = years = real_return = 0.0

    real_return_percent = percent_of(real_return, principal)
    net_after_fees = real_return - cash_flows.fees
    fee_free_value = current_value + cash_flows.fees

    benchmarks: Dict[str, BenchmarkMetrics] = {}
    for benchmark in registry:
        if series:
            value = finite_or_zero(last.benchmark_values.get(benchmark.id, principal))
            lump_sum = calculate_benchmark_performance(benchmark, first.date, last.date, principal)
        else:
            value = principal
            lump_sum = BenchmarkPerformance(value=0.0, total_return_percent=0.0)
        gains = value - principal
        return_percent = percent_of(gains, principal)
        benchmarks[benchmark.id] = BenchmarkMetrics(
            id=benchmark.id,
            name=benchmark.name,
            value=value,
            gains=gains,
            return_percent=return_percent,
            outperformance=real_return - gains,
            outperformance_percent=real_return_percent - return_percent,
            lump_sum_value=finite_or_zero(lump_sum.value),
            lump_sum_return_percent=finite_or_zero(lump_sum.total_return_percent),
        )

    ranked: List[BenchmarkMetrics] = sorted(benchmarks.values(), key=lambda item: item.outperformance)
    metrics = AccountMetrics(
        current_value=current_value,
        principal=principal,
        real_return=real_return,
        real_return_percent=real_return_percent,
        cash_flows=cash_flows,
        net_return_after_fees=net_after_fees,
        net_return_after_fees_percent=percent_of(net_after_fees, principal),
        years=years,
        annualized_return=annualized_return(current_value, principal, years, min_years=min_years),
        fee_free_value=fee_free_value,
        fee_free_gains=fee_free_value - principal,
        fee_free_annualized_return=annualized_return(fee_free_value, principal, years, min_years=min_years),
        benchmarks=benchmarks,
        # Outperformance is portfolio minus benchmark, so the benchmark the
        # portfolio beat by the least is the best performing one.
        best_benchmark=ranked[0].id if ranked else None,
        worst_benchmark=ranked[-1].id if ranked else None,
    )
    logger.debug(
        "Metrics: value=%.2f principal=%.2f real_return=%.2f annualized=%.2f%%",
        metrics.current_value,
        metrics.principal,
        metrics.real_return,
        metrics.annualized_return,
    )
    return metrics


__all__ = [
    "AccountMetrics",
    "BenchmarkMetrics",
    "CashFlowTotals",
    "annualized_return",
    "compute_account_metrics",
    "finite_or_zero",
    "percent_of",
    "safe_divide",
    "total_cash_flows",
    "years_between",
]
