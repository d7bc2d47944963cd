"""Statement balance extraction from periodic PDF statements.

Statement text is scanned with an ordered cascade of labelled-value patterns;
each pattern carries the minimum value it must exceed to be believed. A
:class:`StatementBook` then applies the acceptance rules that need history
(implausible collapses, one balance per month) in chronological order.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

import pdfplumber

from .models import StatementBalance
from .parsers import DateParseError, month_key, parse_currency, parse_filename_date

logger = logging.getLogger(__name__)

LABELLED_MIN_VALUE = 100.0
GENERIC_MIN_VALUE = 1000.0
DEFAULT_DROP_RATIO = 0.9
DEFAULT_DROP_FLOOR = 10000.0

TRANSFER_MARKERS = (
    "account transferred",
    "successfully transferred",
    "zero balance and no positions",
)

_AMOUNT = r"([0-9,]+\.?\d*)"
_CENTS = r"([0-9,]+\.[0-9]{2})"


class StatementError(ValueError):
    """Raised when a statement cannot yield a trustworthy balance."""


class TransferStatementError(StatementError):
    """The statement documents an account transfer or closure."""


class BalanceNotFoundError(StatementError):
    """No pattern in the cascade produced a plausible balance."""


class AnomalousBalanceError(StatementError):
    """The balance collapsed implausibly versus the previous statement."""


@dataclass(frozen=True)
class BalancePattern:
    name: str
    regex: re.Pattern[str]
    min_value: float


def _pattern(name: str, expression: str, min_value: float, flags: int = re.IGNORECASE) -> BalancePattern:
    return BalancePattern(name=name, regex=re.compile(expression, flags), min_value=min_value)


ACCOUNT_VALUE_PATTERNS: Tuple[BalancePattern, ...] = (
    # Schwab summary labels
    _pattern("EndingAccountValue", r"EndingAccountValue\s*\$?\s*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Ending Account Value", r"Ending\s+Account\s+Value\s*\$?\s*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("EndingValue", r"EndingValue\s*\$?\s*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Ending Value", r"Ending\s+Value\s*\$?\s*" + _AMOUNT, LABELLED_MIN_VALUE),
    # TD Ameritrade labels
    _pattern("Total Account Value", r"Total\s+Account\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Account Value", r"Account\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Total Market Value", r"Total\s+Market\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Portfolio Value", r"Portfolio\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Net Account Value", r"Net\s+Account\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Total Securities", r"Total\s+Securities[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Account Summary Total", r"Account\s+Summary.*?Total[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE, re.IGNORECASE | re.DOTALL),
    _pattern("Total Long Market Value", r"Total\s+Long\s+Market\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Market Value", r"Market\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Account Total", r"Account\s+Total[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Total Value", r"Total\s+Value[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    _pattern("Balance", r"Balance[:\s$]*" + _AMOUNT, LABELLED_MIN_VALUE),
    # Loose fallbacks for text where labels and figures drifted apart
    _pattern("total..account", r"total.*?account.*?\$?" + _CENTS, GENERIC_MIN_VALUE),
    _pattern("ending..value", r"ending.*?value.*?\$?" + _CENTS, GENERIC_MIN_VALUE),
    _pattern("account..value", r"account.*?value.*?\$?" + _CENTS, GENERIC_MIN_VALUE),
    _pattern("value..amount", r"value.*?\$?" + _CENTS, GENERIC_MIN_VALUE),
    _pattern("EndingValue$", r"EndingValue\$" + _CENTS, GENERIC_MIN_VALUE),
)

CASH_BALANCE_PATTERNS: Tuple[BalancePattern, ...] = (
    _pattern("Cash & Cash Investments", r"Cash\s+&\s+Cash\s+Investments[:\s$]*" + _AMOUNT, 0.0),
    _pattern("Available Cash", r"Available\s+Cash[:\s$]*" + _AMOUNT, 0.0),
    _pattern("Cash Balance", r"Cash\s+Balance[:\s$]*" + _AMOUNT, 0.0),
    _pattern("Money Market", r"Money\s+Market[:\s$]*" + _AMOUNT, 0.0),
)


def with_floors(
    labelled_floor: float,
    generic_floor: float,
    patterns: Sequence[BalancePattern] = ACCOUNT_VALUE_PATTERNS,
) -> Tuple[BalancePattern, ...]:
    """Return ``patterns`` with the labelled and generic floors replaced."""

    floors = {LABELLED_MIN_VALUE: labelled_floor, GENERIC_MIN_VALUE: generic_floor}
    return tuple(
        replace(pattern, min_value=floors.get(pattern.min_value, pattern.min_value))
        for pattern in patterns
    )


def first_accepted_match(
    text: str, patterns: Sequence[BalancePattern]
) -> Tuple[float, BalancePattern] | None:
    """Return the value of the first pattern whose first match clears its floor."""

    for pattern in patterns:
        match = pattern.regex.search(text)
        if not match:
            continue
        value = parse_currency(match.group(1))
        if value > pattern.min_value:
            return value, pattern
    return None


def is_transfer_statement(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in TRANSFER_MARKERS)


def extract_cash_balance(text: str) -> float:
    for pattern in CASH_BALANCE_PATTERNS:
        match = pattern.regex.search(text)
        if match:
            return parse_currency(match.group(1))
    return 0.0


def extract_statement_balance(
    text: str,
    filename: str,
    patterns: Sequence[BalancePattern] = ACCOUNT_VALUE_PATTERNS,
) -> StatementBalance:
    """Recover the period-end balance from one statement's text.

    Raises :class:`DateParseError` when the filename carries no date and a
    :class:`StatementError` subclass when the text yields no usable balance.
    """

    statement_date = parse_filename_date(filename)
    if is_transfer_statement(text):
        raise TransferStatementError("transfer or closure statement")
    found = first_accepted_match(text, patterns)
    if found is None:
        raise BalanceNotFoundError("no account value pattern matched above its floor")
    value, pattern = found
    return StatementBalance(
        date=statement_date,
        account_value=value,
        source_file=filename,
        cash_balance=extract_cash_balance(text),
        matched_pattern=pattern.name,
    )


def read_pdf_text(path: Path) -> str:
    """Concatenate the extracted text of every page in a PDF."""

    with pdfplumber.open(str(path)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


def list_statement_files(account_path: Path) -> List[Path]:
    return sorted(
        candidate
        for candidate in account_path.iterdir()
        if candidate.is_file() and candidate.suffix.lower() == ".pdf"
    )


class StatementBook:
    """Accepted statement balances, at most one per calendar month."""

    def __init__(
        self,
        *,
        drop_ratio: float = DEFAULT_DROP_RATIO,
        drop_floor: float = DEFAULT_DROP_FLOOR,
    ) -> None:
        self.drop_ratio = drop_ratio
        self.drop_floor = drop_floor
        self._by_month: Dict[str, StatementBalance] = {}
        self._last_accepted: StatementBalance | None = None

    def check_anomaly(self, balance: StatementBalance) -> None:
        previous = self._last_accepted
        if previous is None or previous.account_value <= 0:
            return
        drop = (previous.account_value - balance.account_value) / previous.account_value
        if drop > self.drop_ratio and balance.account_value < self.drop_floor:
            raise AnomalousBalanceError(
                f"balance fell from {previous.account_value:,.2f} to {balance.account_value:,.2f}"
            )

    def add(self, balance: StatementBalance) -> bool:
        """Accept ``balance`` unless it is anomalous or superseded in its month."""

        self.check_anomaly(balance)
        key = month_key(balance.date)
        existing = self._by_month.get(key)
        if existing is not None and existing.date > balance.date:
            logger.info(
                "Keeping %s over %s for %s (later statement wins)",
                existing.source_file,
                balance.source_file,
                key,
            )
            return False
        self._by_month[key] = balance
        self._last_accepted = balance
        return True

    def balances(self) -> Dict[date, StatementBalance]:
        return {item.date: item for item in sorted(self._by_month.values(), key=lambda b: b.date)}

    def __len__(self) -> int:
        return len(self._by_month)


class StatementExtractor:
    """Read a folder of statements and build the accepted balance map."""

    def __init__(
        self,
        *,
        text_reader: Callable[[Path], str] = read_pdf_text,
        patterns: Sequence[BalancePattern] = ACCOUNT_VALUE_PATTERNS,
        drop_ratio: float = DEFAULT_DROP_RATIO,
        drop_floor: float = DEFAULT_DROP_FLOOR,
        max_workers: int = 4,
        on_outcome: Callable[[str], None] | None = None,
    ) -> None:
        self.text_reader = text_reader
        self.patterns = patterns
        self.drop_ratio = drop_ratio
        self.drop_floor = drop_floor
        self.max_workers = max(1, max_workers)
        self.on_outcome = on_outcome

    def _record(self, outcome: str) -> None:
        if self.on_outcome is not None:
            self.on_outcome(outcome)

    def _read(self, path: Path) -> Tuple[Path, str | None]:
        try:
            return path, self.text_reader(path)
        except Exception as exc:  # pdf backends raise a wide range of errors
            logger.warning("Could not read statement %s: %s", path.name, exc)
            return path, None

    def read_texts(self, paths: Iterable[Path]) -> List[Tuple[Path, str | None]]:
        paths = list(paths)
        if self.max_workers == 1 or len(paths) <= 1:
            return [self._read(path) for path in paths]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(self._read, paths))

    def parse(self, texts: Iterable[Tuple[Path, str | None]]) -> List[StatementBalance]:
        parsed: List[StatementBalance] = []
        for path, text in texts:
            if text is None:
                self._record("unreadable")
                continue
            try:
                parsed.append(extract_statement_balance(text, path.name, self.patterns))
            except DateParseError as exc:
                logger.warning("Skipping statement %s: %s", path.name, exc)
                self._record("undated")
            except TransferStatementError as exc:
                logger.info("Skipping statement %s: %s", path.name, exc)
                self._record("transfer")
            except StatementError as exc:
                logger.warning("Skipping statement %s: %s", path.name, exc)
                self._record("no_balance")
        return parsed

    def accept(self, parsed: Iterable[StatementBalance]) -> StatementBook:
        book = StatementBook(drop_ratio=self.drop_ratio, drop_floor=self.drop_floor)
        for balance in sorted(parsed, key=lambda b: (b.date, b.source_file)):
            try:
                accepted = book.add(balance)
            except AnomalousBalanceError as exc:
                logger.warning("Rejecting statement %s: %s", balance.source_file, exc)
                self._record("anomalous")
                continue
            if accepted:
                logger.info(
                    "Accepted %s: %s = %.2f via %s",
                    balance.source_file,
                    balance.date.isoformat(),
                    balance.account_value,
                    balance.matched_pattern,
                )
                self._record("accepted")
            else:
                self._record("superseded")
        return book

    def extract_from_texts(self, texts: Iterable[Tuple[Path, str | None]]) -> Dict[date, StatementBalance]:
        return self.accept(self.parse(texts)).balances()

    def extract_directory(self, account_path: Path) -> Dict[date, StatementBalance]:
        files = list_statement_files(account_path)
        if not files:
            logger.warning("No PDF statements found in %s", account_path.name)
            return {}
        balances = self.extract_from_texts(self.read_texts(files))
        logger.info("Extracted %d statement balances from %s", len(balances), account_path.name)
        return balances


__all__ = [
    "ACCOUNT_VALUE_PATTERNS",
    "AnomalousBalanceError",
    "BalanceNotFoundError",
    "BalancePattern",
    "CASH_BALANCE_PATTERNS",
    "StatementBook",
    "StatementError",
    "StatementExtractor",
    "TransferStatementError",
    "extract_cash_balance",
    "extract_statement_balance",
    "first_accepted_match",
    "is_transfer_statement",
    "list_statement_files",
    "read_pdf_text",
    "with_floors",
]
