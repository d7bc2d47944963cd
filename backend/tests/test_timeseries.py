from datetime import date
from pathlib import Path

import pytest

from portfolio_recon.benchmarks import BenchmarkDefinition, BenchmarkRegistry
from portfolio_recon.models import ClassifiedTransaction, StatementBalance, TransactionType
from portfolio_recon.statements import StatementExtractor
from portfolio_recon.timeseries import build_time_series


def _tx(day, tx_type, amount, description=""):
    return ClassifiedTransaction(
        id=f"{day.isoformat()}_1",
        date=day,
        type=tx_type,
        description=description or tx_type.value,
        amount=amount,
    )


def _balances(*items):
    return {
        day: StatementBalance(date=day, account_value=value, source_file=f"Statement_{day.isoformat()}.pdf")
        for day, value in items
    }


def _registry(*benchmarks):
    if not benchmarks:
        benchmarks = (BenchmarkDefinition(id="FLAT", name="Flat", monthly_returns={}),)
    return BenchmarkRegistry(benchmarks)


def _month_index(d):
    return d.year * 12 + d.month


def test_single_clean_account():
    series = build_time_series(
        [_tx(date(2024, 2, 15), TransactionType.DEPOSIT, 5000.0)],
        _balances((date(2024, 1, 31), 100000.0), (date(2024, 2, 29), 110000.0)),
        _registry(),
    )
    assert len(series) == 2
    first, second = series
    assert first.principal_invested == pytest.approx(100000.0)
    assert first.account_value == pytest.approx(100000.0)
    assert second.principal_invested == pytest.approx(105000.0)
    assert second.account_value == pytest.approx(110000.0)
    assert second.real_return == pytest.approx(5000.0)
    assert second.deposits == pytest.approx(5000.0)
    assert not second.estimated
    assert second.statement_date == date(2024, 2, 29)


def test_rejected_anomalous_statement_is_estimated():
    balances = StatementExtractor().extract_from_texts(
        [
            (Path("Statement_2024-01-31.pdf"), "Ending Account Value $200,000.00"),
            (Path("Statement_2024-02-29.pdf"), "Ending Account Value $500.00"),
            (Path("Statement_2024-03-31.pdf"), "Ending Account Value $210,000.00"),
        ]
    )
    assert date(2024, 2, 29) not in balances

    series = build_time_series([], balances, _registry(), opening_balance=160000.0)
    february = series[1]
    assert february.estimated
    assert february.statement_date is None
    # Return to date from January (200k on 160k principal) applied to February's principal
    assert february.account_value == pytest.approx(200000.0)
    assert february.account_value != pytest.approx(500.0)


def test_estimate_tracks_principal_changes():
    series = build_time_series(
        [_tx(date(2024, 2, 10), TransactionType.DEPOSIT, 4000.0)],
        _balances((date(2024, 1, 31), 100000.0), (date(2024, 3, 31), 108000.0)),
        _registry(),
        opening_balance=80000.0,
    )
    february = series[1]
    assert february.principal_invested == pytest.approx(84000.0)
    assert february.account_value == pytest.approx(84000.0 * 1.25)


def test_months_are_contiguous():
    series = build_time_series(
        [_tx(date(2024, 3, 3), TransactionType.DEPOSIT, 1000.0)],
        _balances((date(2023, 11, 30), 50000.0), (date(2024, 4, 30), 56000.0)),
        _registry(),
    )
    assert [p.date for p in series] == [
        date(2023, 11, 30),
        date(2023, 12, 31),
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    ]
    for previous, current in zip(series, series[1:]):
        assert _month_index(current.date) - _month_index(previous.date) == 1


def test_principal_changes_only_by_flows():
    transactions = [
        _tx(date(2024, 1, 20), TransactionType.DEPOSIT, 2500.0),
        _tx(date(2024, 2, 5), TransactionType.WITHDRAWAL, -1200.0),
        _tx(date(2024, 2, 6), TransactionType.BUY, -9000.0),
        _tx(date(2024, 3, 12), TransactionType.DEPOSIT, 300.0),
        _tx(date(2024, 3, 28), TransactionType.FEE, -45.0),
        _tx(date(2024, 5, 1), TransactionType.WITHDRAWAL, -700.0),
    ]
    series = build_time_series(
        list(reversed(transactions)),
        _balances((date(2024, 1, 31), 40000.0), (date(2024, 5, 31), 43000.0)),
        _registry(),
    )
    for previous, current in zip(series, series[1:]):
        delta = current.principal_invested - previous.principal_invested
        assert delta == pytest.approx(current.deposits - current.withdrawals)
    assert series[-1].principal_invested == pytest.approx(40000.0 - 1200.0 + 300.0 - 700.0)


def test_zero_return_benchmark_tracks_principal():
    transactions = [
        _tx(date(2024, 2, 14), TransactionType.DEPOSIT, 3000.0),
        _tx(date(2024, 4, 2), TransactionType.WITHDRAWAL, -1000.0),
    ]
    series = build_time_series(
        transactions,
        _balances((date(2024, 1, 31), 20000.0), (date(2024, 4, 30), 25000.0)),
        _registry(),
    )
    for point in series:
        assert point.benchmark_values["FLAT"] == pytest.approx(point.principal_invested)


def test_benchmark_compounds_monthly():
    registry = _registry(
        BenchmarkDefinition(id="IDX", name="Index", monthly_returns={"2024-02": 0.10, "2024-03": -0.05})
    )
    series = build_time_series(
        [],
        _balances((date(2024, 1, 31), 10000.0), (date(2024, 3, 31), 10500.0)),
        registry,
    )
    assert series[0].benchmark_values["IDX"] == pytest.approx(10000.0)
    assert series[1].benchmark_values["IDX"] == pytest.approx(11000.0)
    assert series[-1].benchmark_values["IDX"] == pytest.approx(10450.0)


def test_benchmark_adds_new_principal():
    registry = _registry(BenchmarkDefinition(id="IDX", name="Index", monthly_returns={"2024-02": 0.10}))
    series = build_time_series(
        [_tx(date(2024, 2, 20), TransactionType.DEPOSIT, 1000.0)],
        _balances((date(2024, 1, 31), 10000.0), (date(2024, 2, 29), 12000.0)),
        registry,
    )
    assert series[1].benchmark_values["IDX"] == pytest.approx(10000.0 * 1.10 + 1000.0)


def test_fees_and_large_fees():
    transactions = [
        _tx(date(2024, 2, 10), TransactionType.FEE, -1500.0, "Advisor Fee QUARTERLY"),
        _tx(date(2024, 2, 11), TransactionType.FEE, -20.0, "Advisor Fee"),
    ]
    series = build_time_series(
        transactions,
        _balances((date(2024, 1, 31), 90000.0), (date(2024, 2, 29), 91000.0)),
        _registry(),
    )
    assert series[0].fees == 0.0
    february = series[1]
    assert february.fees == pytest.approx(1520.0)
    assert len(february.large_fees) == 1
    assert february.large_fees[0].amount == pytest.approx(1500.0)
    assert february.large_fees[0].description == "Advisor Fee QUARTERLY"
    assert february.principal_invested == pytest.approx(90000.0)


def test_flows_before_first_statement_only_seed_totals():
    series = build_time_series(
        [_tx(date(2023, 12, 1), TransactionType.DEPOSIT, 5000.0)],
        _balances((date(2024, 1, 31), 5100.0), (date(2024, 2, 29), 5200.0)),
        _registry(),
    )
    assert series[0].deposits == 0.0
    assert series[1].principal_invested == pytest.approx(5100.0)


def test_empty_balances_give_empty_series():
    assert build_time_series([_tx(date(2024, 1, 2), TransactionType.DEPOSIT, 10.0)], {}, _registry()) == []
