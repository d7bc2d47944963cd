from datetime import date
from pathlib import Path

import pytest

from portfolio_recon.models import StatementBalance
from portfolio_recon.parsers import DateParseError
from portfolio_recon.statements import (
    ACCOUNT_VALUE_PATTERNS,
    AnomalousBalanceError,
    BalanceNotFoundError,
    StatementBook,
    StatementExtractor,
    TransferStatementError,
    extract_cash_balance,
    extract_statement_balance,
    first_accepted_match,
    is_transfer_statement,
    with_floors,
)


def _balance(day, value, name=None):
    return StatementBalance(date=day, account_value=value, source_file=name or f"Statement_{day.isoformat()}.pdf")


def test_cascade_skips_values_below_floor():
    text = "Ending Value $50.00\nTotal Account Value $120,000.00"
    value, pattern = first_accepted_match(text, ACCOUNT_VALUE_PATTERNS)
    assert value == pytest.approx(120000.0)
    assert pattern.name == "Total Account Value"


def test_floor_is_strict():
    assert first_accepted_match("Account Value: $100.00", ACCOUNT_VALUE_PATTERNS) is None


def test_generic_fallback_uses_higher_floor():
    value, pattern = first_accepted_match("Total for this account is $5,432.10", ACCOUNT_VALUE_PATTERNS)
    assert value == pytest.approx(5432.10)
    assert pattern.name == "total..account"
    assert first_accepted_match("Total for this account is $999.99", ACCOUNT_VALUE_PATTERNS) is None


def test_with_floors_replaces_both_tiers():
    patterns = with_floors(5000.0, 20000.0)
    assert len(patterns) == len(ACCOUNT_VALUE_PATTERNS)
    assert {p.min_value for p in patterns} == {5000.0, 20000.0}
    assert first_accepted_match("Ending Account Value $4,000.00", patterns) is None


def test_schwab_compact_label():
    value, pattern = first_accepted_match("EndingAccountValue$87,654.32", ACCOUNT_VALUE_PATTERNS)
    assert value == pytest.approx(87654.32)
    assert pattern.name == "EndingAccountValue"


def test_transfer_markers():
    assert is_transfer_statement("Your Account Transferred to another firm")
    assert is_transfer_statement("This account has a ZERO BALANCE AND NO POSITIONS")
    assert not is_transfer_statement("Ending Account Value $1,000.00")


def test_extract_statement_balance():
    text = "Ending Account Value $100,000.00\nCash & Cash Investments $2,500.00"
    balance = extract_statement_balance(text, "Brokerage Statement_2024-01-31_056.PDF")
    assert balance.date == date(2024, 1, 31)
    assert balance.account_value == pytest.approx(100000.0)
    assert balance.cash_balance == pytest.approx(2500.0)
    assert balance.securities_value == pytest.approx(97500.0)
    assert balance.matched_pattern == "Ending Account Value"


def test_cash_defaults_to_zero():
    assert extract_cash_balance("Ending Account Value $1,000.00") == 0.0


def test_extract_statement_balance_failures():
    with pytest.raises(DateParseError):
        extract_statement_balance("Ending Account Value $1,000.00", "Statement.pdf")
    with pytest.raises(TransferStatementError):
        extract_statement_balance("Account transferred. Ending Account Value $0.00", "Statement_2024-01-31.pdf")
    with pytest.raises(BalanceNotFoundError):
        extract_statement_balance("Nothing useful here", "Statement_2024-01-31.pdf")


def test_book_rejects_collapse_below_floor():
    book = StatementBook()
    assert book.add(_balance(date(2024, 1, 31), 200000.0))
    with pytest.raises(AnomalousBalanceError):
        book.add(_balance(date(2024, 2, 29), 500.0))
    assert list(book.balances()) == [date(2024, 1, 31)]


def test_book_keeps_large_drop_above_floor():
    book = StatementBook()
    book.add(_balance(date(2024, 1, 31), 200000.0))
    assert book.add(_balance(date(2024, 2, 29), 15000.0))
    assert len(book) == 2


def test_book_keeps_later_statement_in_month():
    book = StatementBook()
    book.add(_balance(date(2024, 1, 15), 100000.0))
    book.add(_balance(date(2024, 1, 31), 101000.0))
    assert not book.add(_balance(date(2024, 1, 20), 99000.0))
    balances = book.balances()
    assert list(balances) == [date(2024, 1, 31)]
    assert balances[date(2024, 1, 31)].account_value == pytest.approx(101000.0)


def test_extractor_reads_directory(tmp_path, stub_reader):
    texts = {
        "Statement_2024-01-31.pdf": "Ending Account Value $200,000.00",
        "Statement_2024-02-29.pdf": "Ending Account Value $500.00",
        "Statement_2024-03-31.pdf": "Ending Account Value $210,000.00\nCash Balance $1,000.00",
        "Statement_2024-04-30.pdf": "Account transferred",
        "Closing letter.pdf": "Ending Account Value $1,000.00",
    }
    for name in list(texts) + ["Statement_2024-05-31.pdf"]:
        (tmp_path / name).write_bytes(b"%PDF-1.4")
    (tmp_path / "transactions.csv").write_text("", encoding="utf-8")

    outcomes = []
    extractor = StatementExtractor(text_reader=stub_reader(texts), max_workers=2, on_outcome=outcomes.append)
    balances = extractor.extract_directory(tmp_path)

    assert list(balances) == [date(2024, 1, 31), date(2024, 3, 31)]
    assert balances[date(2024, 3, 31)].cash_balance == pytest.approx(1000.0)
    assert sorted(outcomes) == sorted(
        ["unreadable", "undated", "transfer", "anomalous", "accepted", "accepted"]
    )


def test_extractor_without_statements(tmp_path):
    assert StatementExtractor(text_reader=lambda path: "").extract_directory(tmp_path) == {}


def test_extract_from_texts_orders_by_date():
    extractor = StatementExtractor()
    balances = extractor.extract_from_texts(
        [
            (Path("Statement_2024-03-31.pdf"), "Ending Account Value $30,000.00"),
            (Path("Statement_2024-01-31.pdf"), "Ending Account Value $10,000.00"),
        ]
    )
    assert list(balances) == [date(2024, 1, 31), date(2024, 3, 31)]
