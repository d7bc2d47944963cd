from datetime import date

import pytest

from portfolio_recon.benchmarks import BenchmarkDefinition, BenchmarkRegistry
from portfolio_recon.metrics import (
    annualized_return,
    compute_account_metrics,
    finite_or_zero,
    safe_divide,
    total_cash_flows,
    years_between,
)
from portfolio_recon.models import ClassifiedTransaction, StatementBalance, TransactionType
from portfolio_recon.timeseries import build_time_series


def _tx(day, tx_type, amount):
    return ClassifiedTransaction(id=f"{day.isoformat()}_1", date=day, type=tx_type, description="", amount=amount)


def _clean_account():
    transactions = [
        _tx(date(2024, 2, 15), TransactionType.DEPOSIT, 5000.0),
        _tx(date(2024, 2, 20), TransactionType.FEE, -250.0),
    ]
    balances = {
        day: StatementBalance(date=day, account_value=value, source_file="s.pdf")
        for day, value in ((date(2024, 1, 31), 100000.0), (date(2024, 2, 29), 110000.0))
    }
    registry = BenchmarkRegistry(
        [
            BenchmarkDefinition(id="FLAT", name="Flat"),
            BenchmarkDefinition(id="UP", name="Up", monthly_returns={"2024-02": 0.10}),
        ]
    )
    return transactions, build_time_series(transactions, balances, registry), registry


def test_annualized_return_with_zero_principal():
    assert annualized_return(110.0, 0.0, 2.0) == 0.0


@pytest.mark.parametrize(
    "final, initial, years",
    [(110000.0, 100000.0, 0.05), (-5.0, 100.0, 2.0), (100.0, 1.0, 2.0), (1e308, 2.0, 0.1)],
)
def test_annualized_return_guards(final, initial, years):
    assert annualized_return(final, initial, years) == 0.0


def test_annualized_return_compounds():
    assert annualized_return(121.0, 100.0, 2.0) == pytest.approx(10.0)


def test_safe_helpers():
    assert safe_divide(1.0, 0.0) == 0.0
    assert safe_divide(1.0, float("nan"), default=-1.0) == -1.0
    assert safe_divide(6.0, 3.0) == pytest.approx(2.0)
    assert finite_or_zero(float("inf")) == 0.0
    assert finite_or_zero(None) == 0.0


def test_years_between():
    assert years_between(date(2024, 1, 1), date(2024, 1, 1)) == 0.0
    assert years_between(date(2024, 2, 1), date(2024, 1, 1)) == 0.0
    assert years_between(date(2024, 1, 1), date(2025, 1, 1)) == pytest.approx(366 / 365.25)


def test_cash_flow_totals_use_absolute_amounts():
    totals = total_cash_flows(
        [
            _tx(date(2024, 1, 1), TransactionType.DEPOSIT, 1000.0),
            _tx(date(2024, 1, 2), TransactionType.WITHDRAWAL, -400.0),
            _tx(date(2024, 1, 3), TransactionType.FEE, -25.0),
            _tx(date(2024, 1, 4), TransactionType.BUY, -500.0),
        ]
    )
    assert totals.deposits == pytest.approx(1000.0)
    assert totals.withdrawals == pytest.approx(400.0)
    assert totals.fees == pytest.approx(25.0)
    assert totals.net_contributions == pytest.approx(600.0)


def test_account_metrics_for_clean_account():
    transactions, series, registry = _clean_account()
    metrics = compute_account_metrics(series, transactions, registry)

    assert metrics.current_value == pytest.approx(110000.0)
    assert metrics.principal == pytest.approx(105000.0)
    assert metrics.real_return == pytest.approx(5000.0)
    assert metrics.real_return_percent == pytest.approx(5000.0 / 105000.0 * 100)
    assert metrics.net_return_after_fees == pytest.approx(4750.0)
    assert metrics.fee_free_value == pytest.approx(110250.0)
    # Under five weeks of history is too short to annualize
    assert metrics.annualized_return == 0.0

    flat = metrics.benchmarks["FLAT"]
    assert flat.value == pytest.approx(105000.0)
    assert flat.gains == pytest.approx(0.0)
    assert flat.outperformance == pytest.approx(5000.0)

    up = metrics.benchmarks["UP"]
    assert up.value == pytest.approx(100000.0 * 1.10 + 5000.0)
    assert up.outperformance == pytest.approx(5000.0 - 10000.0)
    assert up.lump_sum_value == pytest.approx(105000.0 * 1.10)
    assert metrics.best_benchmark == "UP"
    assert metrics.worst_benchmark == "FLAT"


def test_account_metrics_for_empty_series():
    registry = BenchmarkRegistry([BenchmarkDefinition(id="FLAT", name="Flat")])
    metrics = compute_account_metrics([], [], registry)
    assert metrics.current_value == 0.0
    assert metrics.real_return_percent == 0.0
    assert metrics.benchmarks["FLAT"].value == 0.0
    assert metrics.benchmarks["FLAT"].lump_sum_value == 0.0
