"""Readers for brokerage CSV exports: transaction ledgers and positions."""

from __future__ import annotations

import csv
import enum
import io
import logging
from pathlib import Path
from typing import Callable, List, Sequence, Tuple

import pandas as pd

from .models import Position, RawTransaction
from .parsers import DateParseError, parse_currency, parse_quantity, parse_statement_date

logger = logging.getLogger(__name__)

HEADER_SEARCH_LINES = 10
LEDGER_MIN_COLUMNS = 8
SUMMARY_MIN_COLUMNS = 17
DETAIL_MIN_COLUMNS = 12
_SKIPPED_SYMBOLS = {"symbol", "account total", "totals"}


class LedgerError(RuntimeError):
    """Raised when a transaction ledger cannot be read at all."""


class PositionsLayout(str, enum.Enum):
    """Known column orderings of the positions export."""

    SUMMARY = "SUMMARY"
    DETAIL = "DETAIL"


def find_ledger_file(account_path: Path) -> Path | None:
    for candidate in sorted(account_path.iterdir()):
        name = candidate.name.lower()
        if candidate.is_file() and "transactions" in name and name.endswith(".csv"):
            return candidate
    return None


def find_positions_file(account_path: Path) -> Path | None:
    for candidate in sorted(account_path.iterdir()):
        if candidate.is_file() and "Positions" in candidate.name and candidate.name.lower().endswith(".csv"):
            return candidate
    return None


def _read_lines(path: Path) -> List[str]:
    try:
        return path.read_text(encoding="utf-8-sig").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise LedgerError(f"Could not read {path.name}: {exc}") from exc


def _find_header(lines: Sequence[str], predicate: Callable[[str], bool]) -> int | None:
    for index, line in enumerate(lines[:HEADER_SEARCH_LINES]):
        if predicate(line):
            return index
    return None


def _read_frame(source: io.StringIO, skiprows: int) -> pd.DataFrame:
    frame = pd.read_csv(
        source,
        skiprows=skiprows,
        header=0,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        on_bad_lines="skip",
    )
    return frame


def _cell(row: Sequence[str], index: int) -> str:
    if index >= len(row):
        return ""
    return str(row[index]).strip()


def _full_rows(lines: Sequence[str], header_index: int, min_cells: int) -> Tuple[str, List[int], int]:
    """Re-emit the CSV from the header on, dropping rows with fewer than ``min_cells`` cells.

    pandas pads short rows to the header width, so they are filtered on the
    raw records. Returns the CSV text, the source line number of every kept
    data row and the header width.
    """

    reader = csv.reader(lines[header_index:])
    header = next(reader, [])
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    line_numbers: List[int] = []
    for record in reader:
        if not any(cell.strip() for cell in record):
            continue
        line_number = header_index + reader.line_num - 1
        if len(record) < min_cells:
            logger.info("Skipping short ledger row %d (%d cells)", line_number, len(record))
            continue
        writer.writerow(record[: len(header)])
        line_numbers.append(line_number)
    return buffer.getvalue(), line_numbers, len(header)


def load_transactions(path: Path) -> List[RawTransaction]:
    """Read raw ledger rows from a transactions CSV export.

    The header row is located among the first lines by looking for both a
    ``date`` and an ``action`` column. Rows with fewer than eight cells, and
    rows whose date cell cannot be parsed (totals, footers, malformed rows),
    are logged and skipped.
    """

    lines = _read_lines(path)
    header_index = _find_header(
        lines, lambda line: "date" in line.lower() and "action" in line.lower()
    )
    if header_index is None:
        raise LedgerError(f"Could not find header row in transactions file {path.name}")
    try:
        text, line_numbers, width = _full_rows(lines, header_index, LEDGER_MIN_COLUMNS)
    except csv.Error as exc:
        raise LedgerError(f"Could not parse transactions file {path.name}: {exc}") from exc
    if width < LEDGER_MIN_COLUMNS:
        raise LedgerError(
            f"Transactions file {path.name} has {width} columns, expected {LEDGER_MIN_COLUMNS}"
        )
    try:
        frame = _read_frame(io.StringIO(text), 0).fillna("")
    except (ValueError, pd.errors.ParserError) as exc:
        raise LedgerError(f"Could not parse transactions file {path.name}: {exc}") from exc

    rows: List[RawTransaction] = []
    for line_number, values in zip(line_numbers, frame.itertuples(index=False, name=None)):
        date_cell = _cell(values, 0)
        if not date_cell:
            continue
        try:
            tx_date = parse_statement_date(date_cell)
        except DateParseError as exc:
            logger.info("Skipping ledger row %d in %s: %s", line_number, path.name, exc)
            continue
        rows.append(
            RawTransaction(
                date=tx_date,
                action=_cell(values, 1),
                symbol=_cell(values, 2) or None,
                description=_cell(values, 3),
                quantity=parse_quantity(_cell(values, 4)),
                price=parse_currency(_cell(values, 5)) or None,
                fee_amount=parse_currency(_cell(values, 6)),
                gross_amount=parse_currency(_cell(values, 7)),
                row_number=line_number,
            )
        )
    logger.info("Read %d ledger rows from %s", len(rows), path.name)
    return rows


def _detect_layout(columns: Sequence[str]) -> PositionsLayout:
    if len(columns) > 3 and str(columns[3]).strip().lower().startswith("price"):
        return PositionsLayout.DETAIL
    return PositionsLayout.SUMMARY


def _skip_position(symbol: str, description: str) -> bool:
    lowered = symbol.lower()
    return (
        not symbol
        or lowered in _SKIPPED_SYMBOLS
        or "total" in lowered
        or "cash" in lowered
        or description == "Description"
    )


def _position_from_row(values: Sequence[str], layout: PositionsLayout) -> Position:
    symbol = _cell(values, 0)
    description = _cell(values, 1)
    quantity = parse_quantity(_cell(values, 2)) or 0.0
    if layout is PositionsLayout.DETAIL:
        return Position(
            symbol=symbol,
            description=description,
            quantity=quantity,
            market_value=parse_currency(_cell(values, 6)),
            average_cost=parse_currency(_cell(values, 3)),
            total_cost=parse_currency(_cell(values, 9)),
            unrealized_gain_loss=parse_currency(_cell(values, 10)),
            unrealized_gain_loss_percent=parse_currency(_cell(values, 11)),
            day_change=parse_currency(_cell(values, 7)),
            day_change_percent=parse_currency(_cell(values, 8)),
        )
    return Position(
        symbol=symbol,
        description=description,
        quantity=quantity,
        market_value=parse_currency(_cell(values, 3)),
        average_cost=parse_currency(_cell(values, 4)),
        total_cost=parse_currency(_cell(values, 5)),
        unrealized_gain_loss=parse_currency(_cell(values, 6)),
        unrealized_gain_loss_percent=parse_currency(_cell(values, 7)),
        day_change=parse_currency(_cell(values, 8)),
        day_change_percent=parse_currency(_cell(values, 9)),
    )


def load_positions(path: Path) -> List[Position]:
    """Read holdings from a positions export in either known layout."""

    try:
        lines = _read_lines(path)
    except LedgerError as exc:
        logger.warning("Skipping positions file %s: %s", path.name, exc)
        return []
    header_index = _find_header(lines, lambda line: line.strip().strip('"').lower().startswith("symbol"))
    if header_index is None:
        header_index = 2
    try:
        frame = _read_frame(io.StringIO("\n".join(lines)), header_index)
    except (ValueError, pd.errors.ParserError) as exc:
        logger.warning("Could not parse positions file %s: %s", path.name, exc)
        return []

    frame = frame.fillna("")
    layout = _detect_layout(list(frame.columns))
    min_columns = DETAIL_MIN_COLUMNS if layout is PositionsLayout.DETAIL else SUMMARY_MIN_COLUMNS
    if frame.shape[1] < min_columns:
        logger.warning(
            "Positions file %s has %d columns; %s layout needs %d",
            path.name,
            frame.shape[1],
            layout.value,
            min_columns,
        )
        return []

    positions: List[Position] = []
    for values in frame.itertuples(index=False, name=None):
        if _skip_position(_cell(values, 0), _cell(values, 1)):
            continue
        positions.append(_position_from_row(values, layout))
    logger.info("Read %d positions from %s (%s layout)", len(positions), path.name, layout.value)
    return positions


__all__ = [
    "LedgerError",
    "PositionsLayout",
    "find_ledger_file",
    "find_positions_file",
    "load_positions",
    "load_transactions",
]
