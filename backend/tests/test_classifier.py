from datetime import date

import pytest

from portfolio_recon.classifier import classify_rows, classify_transaction, resolve_type, sort_ascending
from portfolio_recon.models import RawTransaction, TransactionType


def _raw(action, amount, *, day=date(2024, 2, 15), row=1, fee=0.0, description="", symbol=None):
    return RawTransaction(
        date=day,
        action=action,
        description=description,
        gross_amount=amount,
        fee_amount=fee,
        symbol=symbol,
        row_number=row,
    )


@pytest.mark.parametrize(
    "action, amount, expected",
    [
        ("Qualified Dividend", 12.5, TransactionType.DIVIDEND),
        ("Bank Interest", 0.42, TransactionType.DIVIDEND),
        ("Reinvest Dividend", -30.0, TransactionType.DIVIDEND),
        ("MoneyLink Transfer", 5000.0, TransactionType.DEPOSIT),
        ("MoneyLink Transfer", -2000.0, TransactionType.WITHDRAWAL),
        ("Funds Transfer", 0.0, TransactionType.WITHDRAWAL),
        ("Buy", -2500.0, TransactionType.BUY),
        ("Sell", 3100.0, TransactionType.SELL),
        ("Advisor Fee", -150.0, TransactionType.FEE),
        ("MgmtFee", -75.0, TransactionType.FEE),
        ("Journal", 10.0, None),
        ("Stock Split", 0.0, None),
    ],
)
def test_resolve_type(action, amount, expected):
    assert resolve_type(action, amount) == expected


def test_interest_wins_over_transfer():
    # "Interest" is matched before the transfer rule
    assert resolve_type("Transfer of Interest", -5.0) is TransactionType.DIVIDEND


def test_classified_fields():
    tx = classify_transaction(
        _raw("Buy", -2505.0, fee=5.0, description="VANGUARD TOTAL STOCK", symbol="VTI", row=7)
    )
    assert tx is not None
    assert tx.id == "2024-02-15_7"
    assert tx.type is TransactionType.BUY
    assert tx.description == "Buy VANGUARD TOTAL STOCK"
    assert tx.symbol == "VTI"
    assert tx.net_amount == pytest.approx(-2510.0)


def test_unmodelled_rows_are_dropped_and_sorted_descending():
    rows = [
        _raw("MoneyLink Transfer", 1000.0, day=date(2024, 1, 5), row=1),
        _raw("Journal", 10.0, day=date(2024, 1, 6), row=2),
        _raw("Advisor Fee", -25.0, day=date(2024, 3, 1), row=3),
    ]
    classified = classify_rows(rows)
    assert [tx.id for tx in classified] == ["2024-03-01_3", "2024-01-05_1"]
    assert [tx.date for tx in sort_ascending(classified)] == [date(2024, 1, 5), date(2024, 3, 1)]
