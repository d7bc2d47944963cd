"""Benchmark reference data and monthly-return compounding."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from importlib import resources
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping

from .parsers import iter_months, month_key
from .schemas import BenchmarkFileSchema

logger = logging.getLogger(__name__)

PACKAGED_BENCHMARKS = "benchmarks.json"


@dataclass(frozen=True)
class BenchmarkDefinition:
    """A reference index or portfolio with its historical monthly returns."""

    id: str
    name: str
    monthly_returns: Mapping[str, float] = field(default_factory=dict)
    short_name: str = ""
    description: str = ""
    color: str = ""
    category: str = "OTHER"
    provider: str = "OTHER"
    legacy_key: str | None = None

    def monthly_return(self, month: date) -> float:
        """Return the fractional return for ``month``; missing months are flat."""

        return self.monthly_returns.get(month_key(month), 0.0)


@dataclass(frozen=True)
class BenchmarkPerformance:
    value: float
    total_return_percent: float


class BenchmarkRegistry:
    """Benchmark definitions keyed by id, resolved once at start-up."""

    def __init__(self, definitions: Iterable[BenchmarkDefinition]):
        self._definitions: Dict[str, BenchmarkDefinition] = {}
        for definition in definitions:
            self._definitions[definition.id] = definition

    @classmethod
    def from_payload(cls, payload: Mapping) -> "BenchmarkRegistry":
        parsed = BenchmarkFileSchema.model_validate(payload)
        definitions: List[BenchmarkDefinition] = []
        for config in parsed.benchmarks:
            returns = parsed.monthly_returns.get(config.id)
            if returns is None:
                logger.warning("Benchmark %s has no monthly returns table; not registered", config.id)
                continue
            definitions.append(
                BenchmarkDefinition(
                    id=config.id,
                    name=config.name,
                    short_name=config.short_name or config.id,
                    description=config.description,
                    color=config.color,
                    category=config.category,
                    provider=config.provider,
                    legacy_key=config.legacy_key,
                    monthly_returns=dict(returns),
                )
            )
        orphaned = set(parsed.monthly_returns) - {config.id for config in parsed.benchmarks}
        for benchmark_id in sorted(orphaned):
            logger.warning("Monthly returns for %s have no display config; not registered", benchmark_id)
        return cls(definitions)

    @classmethod
    def from_file(cls, path: Path | str) -> "BenchmarkRegistry":
        with Path(path).open("r", encoding="utf-8") as handle:
            return cls.from_payload(json.load(handle))

    def get(self, benchmark_id: str) -> BenchmarkDefinition:
        if benchmark_id not in self._definitions:
            raise KeyError(f"Unknown benchmark {benchmark_id}")
        return self._definitions[benchmark_id]

    def restrict(self, benchmark_ids: Iterable[str] | None) -> "BenchmarkRegistry":
        """Return a registry holding only ``benchmark_ids`` (all when empty)."""

        wanted = list(benchmark_ids or [])
        if not wanted:
            return self
        selected: List[BenchmarkDefinition] = []
        for benchmark_id in wanted:
            if benchmark_id not in self._definitions:
                logger.warning("Ignoring unknown benchmark %s", benchmark_id)
                continue
            selected.append(self._definitions[benchmark_id])
        return BenchmarkRegistry(selected)

    def ids(self) -> List[str]:
        return list(self._definitions)

    def __iter__(self) -> Iterator[BenchmarkDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, benchmark_id: object) -> bool:
        return benchmark_id in self._definitions


def load_registry(path: Path | str | None = None) -> BenchmarkRegistry:
    """Load benchmark reference data from ``path`` or the packaged table."""

    if path is not None:
        registry = BenchmarkRegistry.from_file(path)
    else:
        source = resources.files(__package__).joinpath("data").joinpath(PACKAGED_BENCHMARKS)
        registry = BenchmarkRegistry.from_payload(json.loads(source.read_text(encoding="utf-8")))
    logger.info("Loaded %d benchmarks: %s", len(registry), ", ".join(registry.ids()))
    return registry


def compound(benchmark: BenchmarkDefinition, start: date, end: date, principal: float) -> float:
    """Grow ``principal`` through each month from ``start`` to ``end`` inclusive."""

    value = principal
    for month in iter_months(start, end):
        value *= 1 + benchmark.monthly_return(month)
    return value


def calculate_benchmark_performance(
    benchmark: BenchmarkDefinition, start: date, end: date, principal: float
) -> BenchmarkPerformance:
    if principal <= 0:
        return BenchmarkPerformance(value=max(0.0, principal), total_return_percent=0.0)
    value = compound(benchmark, start, end, principal)
    return BenchmarkPerformance(
        value=max(0.0, value),
        total_return_percent=(value / principal - 1) * 100,
    )


__all__ = [
    "BenchmarkDefinition",
    "BenchmarkPerformance",
    "BenchmarkRegistry",
    "calculate_benchmark_performance",
    "compound",
    "load_registry",
]
