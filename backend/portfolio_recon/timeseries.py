"""Monthly reconciliation of ledger cash flows against statement balances."""
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Mapping, Sequence

from .benchmarks import BenchmarkRegistry
from .classifier import sort_ascending
from .models import ClassifiedTransaction, LargeFee, StatementBalance, TimeSeriesPoint, TransactionType
from .parsers import iter_months, month_key

logger = logging.getLogger(__name__)

DEFAULT_LARGE_FEE_THRESHOLD = 1000.0


def _balances_by_month(balances: Mapping[date, StatementBalance]) -> Dict[str, StatementBalance]:
    by_month: Dict[str, StatementBalance] = {}
    for statement_date in sorted(balances):
        # Later statements in the same month overwrite earlier ones.
        by_month[month_key(statement_date)] = balances[statement_date]
    return by_month


def _statement_for(month_end_date: date, balances: Mapping[date, StatementBalance], by_month: Mapping[str, StatementBalance]) -> StatementBalance | None:
    if month_end_date in balances:
        return balances[month_end_date]
    return by_month.get(month_key(month_end_date))


def _rate_to_date(point: TimeSeriesPoint | None) -> float:
    if point is None or point.principal_invested <= 0:
        return 0.0
    return point.account_value / point.principal_invested - 1


def build_time_series(
    transactions: Sequence[ClassifiedTransaction],
    balances: Mapping[date, StatementBalance],
    registry: BenchmarkRegistry,
    *,
    opening_balance: float | None = None,
    large_fee_threshold: float = DEFAULT_LARGE_FEE_THRESHOLD,
) -> List[TimeSeriesPoint]:
    """Emit one point per calendar month between the first and last statement.

    Principal starts at ``opening_balance`` (or the first statement balance)
    and then moves only by the month's deposits and withdrawals. Months with
    no accepted statement are estimated from the return of the most recent
    statement-backed month and flagged as such.
    """

    if not balances:
        logger.info("No statement balances; time series is empty")
        return []

    ordered = sort_ascending(transactions)
    by_month = _balances_by_month(balances)
    statement_dates = sorted(balances)
    first_statement = balances[statement_dates[0]]

    points: List[TimeSeriesPoint] = []
    last_backed: TimeSeriesPoint | None = None
    tx_index = 0
    cumulative_deposits = 0.0
    cumulative_withdrawals = 0.0
    principal = 0.0

    # Flows dated before the first statement month only seed the running totals
    first_month_start = statement_dates[0].replace(day=1)
    while tx_index < len(ordered) and ordered[tx_index].date < first_month_start:
        tx = ordered[tx_index]
        tx_index += 1
        if tx.type is TransactionType.DEPOSIT:
            cumulative_deposits += tx.cash_amount
        elif tx.type is TransactionType.WITHDRAWAL:
            cumulative_withdrawals += tx.cash_amount

    for month_end_date in iter_months(statement_dates[0], statement_dates[-1]):
        previous_deposits = cumulative_deposits
        previous_withdrawals = cumulative_withdrawals
        month_fees = 0.0
        large_fees: List[LargeFee] = []

        # Advance through every transaction dated on or before the month end
        while tx_index < len(ordered) and ordered[tx_index].date <= month_end_date:
            tx = ordered[tx_index]
            tx_index += 1
            if tx.type is TransactionType.DEPOSIT:
                cumulative_deposits += tx.cash_amount
            elif tx.type is TransactionType.WITHDRAWAL:
                cumulative_withdrawals += tx.cash_amount
            elif tx.type is TransactionType.FEE:
                month_fees += tx.cash_amount
                if tx.cash_amount >= large_fee_threshold:
                    large_fees.append(LargeFee(amount=tx.cash_amount, date=tx.date, description=tx.description))

        deposits_delta = cumulative_deposits - previous_deposits
        withdrawals_delta = cumulative_withdrawals - previous_withdrawals

        if not points:
            principal = opening_balance if opening_balance is not None else first_statement.account_value
        else:
            principal = principal + deposits_delta - withdrawals_delta

        if not points:
            statement: StatementBalance | None = first_statement
        else:
            statement = _statement_for(month_end_date, balances, by_month)
        if statement is not None:
            account_value = statement.account_value
            estimated = False
        else:
            account_value = principal * (1 + _rate_to_date(last_backed))
            estimated = True
            logger.debug("No statement for %s; estimated value %.2f", month_key(month_end_date), account_value)

        benchmark_values: Dict[str, float] = {}
        for benchmark in registry:
            if not points:
                value = principal
            else:
                previous = points[-1]
                value = previous.benchmark_values[benchmark.id] * (1 + benchmark.monthly_return(month_end_date))
                value += principal - previous.principal_invested
            benchmark_values[benchmark.id] = max(0.0, value)

        point = TimeSeriesPoint(
            date=month_end_date,
            account_value=max(0.0, account_value),
            principal_invested=principal,
            deposits=deposits_delta,
            withdrawals=withdrawals_delta,
            fees=month_fees,
            benchmark_values=benchmark_values,
            large_fees=large_fees,
            estimated=estimated,
            statement_date=statement.date if statement is not None else None,
        )
        points.append(point)
        if not estimated:
            last_backed = point

    estimated_count = sum(1 for point in points if point.estimated)
    logger.info(
        "Built %d monthly points (%d estimated) from %s to %s",
        len(points),
        estimated_count,
        points[0].date.isoformat(),
        points[-1].date.isoformat(),
    )
    return points


__all__ = ["DEFAULT_LARGE_FEE_THRESHOLD", "build_time_series"]
