"""Pydantic schemas for benchmark reference data and the output documents."""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


def finite_or_zero(value: Any) -> Any:
    """Replace NaN/Infinity floats (also inside mappings) with ``0.0``."""

    if isinstance(value, float) and not math.isfinite(value):
        return 0.0
    if isinstance(value, dict):
        return {key: finite_or_zero(item) for key, item in value.items()}
    return value


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True
        alias_generator = to_camel


class OutputModel(CamelModel):
    """Base for anything written to the output JSON; never carries NaN."""

    @field_validator("*", mode="before")
    @classmethod
    def _finite_numbers(cls, value: Any) -> Any:
        return finite_or_zero(value)


class BenchmarkConfigSchema(CamelModel):
    id: str
    name: str
    short_name: str = ""
    description: str = ""
    color: str = ""
    category: str = "OTHER"
    provider: str = "OTHER"
    legacy_key: Optional[str] = None


class BenchmarkFileSchema(CamelModel):
    benchmarks: list[BenchmarkConfigSchema] = Field(default_factory=list)
    monthly_returns: dict[str, dict[str, float]] = Field(default_factory=dict)


class PositionSchema(OutputModel):
    symbol: str
    description: str
    quantity: float
    market_value: float
    average_cost: float
    total_cost: float
    unrealized_gain_loss: float
    unrealized_gain_loss_percent: float
    day_change: float
    day_change_percent: float


class TransactionSchema(OutputModel):
    id: str
    date: date
    description: str
    amount: float
    type: str
    symbol: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None
    fees: float
    net_amount: float


class LargeFeeSchema(OutputModel):
    amount: float
    date: date
    description: str


class TimeSeriesPointSchema(OutputModel):
    date: date
    account_value: float
    portfolio_value: float
    principal_invested: float
    deposits: float
    withdrawals: float
    fees: float
    benchmark_values: dict[str, float] = Field(default_factory=dict)
    large_fees: list[LargeFeeSchema] = Field(default_factory=list)
    is_estimated: bool = False
    statement_date: Optional[date] = None

    class Config:
        populate_by_name = True
        alias_generator = to_camel
        # Flat per-benchmark keys such as ``spyValue`` for older consumers.
        extra = "allow"
        json_schema_extra = {
            "example": {
                "date": "2024-02-29",
                "accountValue": 110000.0,
                "portfolioValue": 110000.0,
                "principalInvested": 105000.0,
                "deposits": 5000.0,
                "withdrawals": 0.0,
                "fees": 0.0,
                "benchmarkValues": {"SP500": 110300.0},
                "largeFees": [],
                "isEstimated": False,
                "statementDate": "2024-02-29",
                "spyValue": 110300.0,
            }
        }


class BenchmarkMetricsSchema(OutputModel):
    id: str
    name: str
    value: float
    gains: float
    return_percent: float
    outperformance: float
    outperformance_percent: float
    lump_sum_value: float
    lump_sum_return_percent: float


class BenchmarkComparisonSchema(OutputModel):
    sp500_return: float = 0.0
    sp500_return_percent: float = 0.0
    sp500_value: float = 0.0
    outperformance: float = 0.0
    outperformance_percent: float = 0.0


class AccountSchema(OutputModel):
    account_id: str
    account_type: str = "BROKERAGE"
    account_name: str
    current_balance: float
    available_cash: float = 0.0
    total_securities: float
    day_change: float = 0.0
    day_change_percent: float = 0.0
    total_return: float
    total_return_percent: float
    positions: list[PositionSchema] = Field(default_factory=list)


class PerformanceSchema(OutputModel):
    account_id: str
    time_series_data: list[TimeSeriesPointSchema]
    total_return: float
    total_return_percent: float
    annualized_return: float
    deposits: float
    withdrawals: float
    fees: float
    net_contributions: float
    real_return: float
    real_return_percent: float
    net_return_after_fees: float
    net_return_after_fees_percent: float
    portfolio_without_fees_value: float
    portfolio_without_fees_gains: float
    portfolio_without_fees_return: float
    benchmark_comparison: BenchmarkComparisonSchema
    benchmarks: dict[str, BenchmarkMetricsSchema] = Field(default_factory=dict)
    best_performing_benchmark: Optional[str] = None
    worst_performing_benchmark: Optional[str] = None


class SummarySchema(OutputModel):
    total_positions: int
    total_transactions: int
    portfolio_value: float
    total_invested: float
    total_gains: float
    total_feespaid: float
    years_invested: float
    annualized_return: float


class AccountDocumentSchema(OutputModel):
    last_updated: datetime
    account_name: str
    account: AccountSchema
    performance: PerformanceSchema
    transactions: list[TransactionSchema]
    summary: SummarySchema


class FailedAccountSchema(OutputModel):
    account: str
    reason: str


class MultiAccountDocumentSchema(OutputModel):
    last_updated: datetime
    accounts: dict[str, AccountDocumentSchema]
    account_list: list[str]
    failed_accounts: list[FailedAccountSchema] = Field(default_factory=list)


class StatementReportEntrySchema(OutputModel):
    date: date
    filename: str
    account_balance: float
    cash_balance: float
    securities_value: float


class DateRangeSchema(OutputModel):
    earliest: Optional[date] = None
    latest: Optional[date] = None


class StatementReportSchema(OutputModel):
    last_updated: datetime
    total_statements: int
    date_range: DateRangeSchema
    statements: list[StatementReportEntrySchema]


__all__ = [
    "AccountDocumentSchema",
    "AccountSchema",
    "BenchmarkComparisonSchema",
    "BenchmarkConfigSchema",
    "BenchmarkFileSchema",
    "BenchmarkMetricsSchema",
    "DateRangeSchema",
    "FailedAccountSchema",
    "LargeFeeSchema",
    "MultiAccountDocumentSchema",
    "PerformanceSchema",
    "PositionSchema",
    "StatementReportEntrySchema",
    "StatementReportSchema",
    "SummarySchema",
    "TimeSeriesPointSchema",
    "TransactionSchema",
    "finite_or_zero",
]
