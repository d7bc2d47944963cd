"""Pipeline configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_PRIMARY_BENCHMARK = "SP500"


class AppSettings(BaseSettings):
    """Configuration options for the statement reconciliation pipeline."""

    input_dir: Path = Field(default=Path("data/accounts"))
    output_path: Path = Field(default=Path("data/multi-account-data.json"))
    benchmarks_path: Path | None = Field(
        default=None,
        description="Benchmark reference data; the packaged table is used when unset.",
    )
    active_benchmarks: list[str] = Field(default_factory=list)
    primary_benchmark: str = Field(default=DEFAULT_PRIMARY_BENCHMARK)

    opening_balance_overrides: dict[str, float] = Field(
        default_factory=dict,
        description="Starting principal per account name, replacing the first statement balance.",
    )
    large_fee_threshold: float = Field(default=1000.0, ge=0.0)

    labelled_balance_floor: float = Field(default=100.0)
    generic_balance_floor: float = Field(default=1000.0)
    anomaly_drop_ratio: float = Field(default=0.9, gt=0.0, le=1.0)
    anomaly_value_floor: float = Field(default=10000.0)
    min_years_for_annualized: float = Field(default=0.1, ge=0.0)

    statement_workers: int = Field(default=4, ge=1)
    cache_ttl_seconds: float = Field(default=300.0, ge=0.0)
    log_level: str = Field(default="INFO")

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="portfolio-recon")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_prefix = "PORTFOLIO_RECON_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def opening_balance_for(self, account_name: str) -> float | None:
        return self.opening_balance_overrides.get(account_name)

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"telemetry_otlp_endpoint"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_PRIMARY_BENCHMARK",
    "get_settings",
]
