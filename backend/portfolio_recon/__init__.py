"""Statement reconciliation and benchmark time-series pipeline."""

from .benchmarks import BenchmarkDefinition, BenchmarkRegistry, load_registry
from .models import ClassifiedTransaction, StatementBalance, TimeSeriesPoint, TransactionType
from .pipeline import AccountProcessingError, PipelineError, process_account, process_accounts
from .timeseries import build_time_series

__all__ = [
    "AccountProcessingError",
    "BenchmarkDefinition",
    "BenchmarkRegistry",
    "ClassifiedTransaction",
    "PipelineError",
    "StatementBalance",
    "TimeSeriesPoint",
    "TransactionType",
    "build_time_series",
    "load_registry",
    "process_account",
    "process_accounts",
]
