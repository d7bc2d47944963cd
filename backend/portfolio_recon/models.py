"""Domain models used by the portfolio reconciliation pipeline."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    FEE = "FEE"


@dataclass(frozen=True)
class RawTransaction:
    """One ledger row as read from a brokerage CSV export."""

    date: date
    action: str
    description: str
    gross_amount: float
    fee_amount: float = 0.0
    symbol: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None
    row_number: int = 0


@dataclass(frozen=True)
class ClassifiedTransaction:
    """A ledger row mapped onto one of the modelled transaction types."""

    id: str
    date: date
    type: TransactionType
    description: str
    amount: float
    fees: float = 0.0
    symbol: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None

    @property
    def net_amount(self) -> float:
        return self.amount - self.fees

    @property
    def cash_amount(self) -> float:
        """Absolute cash moved, used for deposit/withdrawal/fee totals."""

        return abs(self.amount)


@dataclass(frozen=True)
class Position:
    """Holding row from a positions export."""

    symbol: str
    description: str
    quantity: float
    market_value: float
    average_cost: float = 0.0
    total_cost: float = 0.0
    unrealized_gain_loss: float = 0.0
    unrealized_gain_loss_percent: float = 0.0
    day_change: float = 0.0
    day_change_percent: float = 0.0


@dataclass(frozen=True)
class StatementBalance:
    """Ending account value recovered from one periodic statement."""

    date: date
    account_value: float
    source_file: str
    cash_balance: float = 0.0
    matched_pattern: Optional[str] = None

    @property
    def securities_value(self) -> float:
        return self.account_value - self.cash_balance


@dataclass(frozen=True)
class LargeFee:
    amount: float
    date: date
    description: str


@dataclass(frozen=True)
class TimeSeriesPoint:
    """Canonical month-end record of account value versus principal."""

    date: date
    account_value: float
    principal_invested: float
    deposits: float
    withdrawals: float
    fees: float
    benchmark_values: Dict[str, float] = field(default_factory=dict)
    large_fees: List[LargeFee] = field(default_factory=list)
    estimated: bool = False
    statement_date: Optional[date] = None

    @property
    def real_return(self) -> float:
        return self.account_value - self.principal_invested
