"""Update the benchmark baseline TOML from criterion estimates."""

from __future__ import annotations

import argparse
import json
import math
import sys
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, fields
from datetime import date
from pathlib import Path
from typing import Any, Callable

import tomli_w

_U64_MAX = 2**64 - 1


class BaselineError(ValueError):
    """The baseline file or criterion data is missing or malformed."""


def _as_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise BaselineError(f"{where}: expected a string")
    return value


def _as_float(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BaselineError(f"{where}: expected a number")
    return float(value)


def _as_u64(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U64_MAX:
        raise BaselineError(f"{where}: expected a non-negative integer")
    return value


_CONVERTERS: dict[str, Callable[[Any, str], Any]] = {
    "str": _as_str,
    "float": _as_float,
    "int": _as_u64,
}


def _table(data: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise BaselineError(f"{where}: expected a table")
    return data


def _record(cls: type, data: Any, where: str) -> Any:
    table = _table(data, where)
    values = {}
    for f in fields(cls):
        if f.name not in table:
            raise BaselineError(f"{where}: missing field {f.name!r}")
        values[f.name] = _CONVERTERS[f.type](table[f.name], f"{where}.{f.name}")
    return cls(**values)


@dataclass
class Metadata:
    """Where and when the baseline was recorded."""

    version: str
    date: str
    platform: str
    cpu: str
    rust_version: str
    notes: str


@dataclass
class BenchEntry:
    """One benchmark: its criterion location, timings and allocations per op."""

    criterion_path: str
    description: str
    mean_ns: float
    median_ns: float
    alloc_bytes: int
    alloc_count: int


@dataclass
class ResourceBudget:
    """CPU budget at a target request rate and the derived verdict."""

    target_ops_per_sec: int
    cpu_budget_percent: float
    memory_budget_mb: float
    weighted_mean_ns: float
    total_cpu_percent: float
    verdict: str


@dataclass
class Baseline:
    """The whole baseline document."""

    metadata: Metadata
    benchmarks: dict[str, BenchEntry]
    axum_benchmarks: dict[str, BenchEntry]
    traffic_weights: dict[str, float]
    resource_budget: ResourceBudget

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Baseline:
        """Build from parsed TOML; raise BaselineError on missing or mistyped fields."""
        table = _table(data, "baseline")
        for name in ("metadata", "benchmarks", "axum_benchmarks", "traffic_weights",
                     "resource_budget"):
            if name not in table:
                raise BaselineError(f"baseline: missing field {name!r}")

        def entries(name: str) -> dict[str, BenchEntry]:
            return {
                key: _record(BenchEntry, value, f"{name}.{key}")
                for key, value in sorted(_table(table[name], name).items())
            }

        return cls(
            metadata=_record(Metadata, table["metadata"], "metadata"),
            benchmarks=entries("benchmarks"),
            axum_benchmarks=entries("axum_benchmarks"),
            traffic_weights={
                key: _as_float(value, f"traffic_weights.{key}")
                for key, value in sorted(_table(table["traffic_weights"], "traffic_weights").items())
            },
            resource_budget=_record(ResourceBudget, table["resource_budget"], "resource_budget"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain nested dicts with keys sorted, ready for TOML output."""
        return {
            "metadata": asdict(self.metadata),
            "benchmarks": {k: asdict(self.benchmarks[k]) for k in sorted(self.benchmarks)},
            "axum_benchmarks": {
                k: asdict(self.axum_benchmarks[k]) for k in sorted(self.axum_benchmarks)
            },
            "traffic_weights": {k: self.traffic_weights[k] for k in sorted(self.traffic_weights)},
            "resource_budget": asdict(self.resource_budget),
        }


def load_baseline(path: str | Path) -> Baseline:
    """Read and validate a baseline TOML file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BaselineError(f"cannot read {path}: {exc}") from exc
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise BaselineError(f"cannot parse TOML: {exc}") from exc
    return Baseline.from_dict(data)


def save_baseline(baseline: Baseline, path: str | Path) -> None:
    """Write a baseline back as TOML."""
    path = Path(path)
    try:
        path.write_text(tomli_w.dumps(baseline.to_dict()), encoding="utf-8")
    except OSError as exc:
        raise BaselineError(f"cannot write {path}: {exc}") from exc


def read_estimates(path: str | Path) -> tuple[float, float]:
    """Return (mean, median) point estimates from a criterion estimates.json."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BaselineError(f"error reading {path}: {exc}") from exc
    except ValueError as exc:
        raise BaselineError(f"error parsing JSON in {path}: {exc}") from exc
    try:
        return (
            _as_float(_table(data["mean"], "mean")["point_estimate"], "mean.point_estimate"),
            _as_float(
                _table(data["median"], "median")["point_estimate"], "median.point_estimate"
            ),
        )
    except (KeyError, TypeError) as exc:
        raise BaselineError(f"error parsing JSON in {path}: missing {exc}") from exc


def _update_entries(
    entries: Mapping[str, BenchEntry], criterion_base: Path
) -> tuple[int, int]:
    updated = missing = 0
    for name in sorted(entries):
        entry = entries[name]
        estimates_path = criterion_base / entry.criterion_path / "new" / "estimates.json"
        if not estimates_path.exists():
            print(f"  skip {name}: no criterion data at {estimates_path}", file=sys.stderr)
            missing += 1
            continue
        entry.mean_ns, entry.median_ns = read_estimates(estimates_path)
        updated += 1
        print(f"  {name}: mean={entry.mean_ns:.1f} ns, median={entry.median_ns:.1f} ns")
    return updated, missing


def update_from_criterion(baseline: Baseline, criterion_base: str | Path) -> tuple[int, int]:
    """Fill mean/median timings from criterion output; return (updated, missing)."""
    base = Path(criterion_base)
    updated, missing = _update_entries(baseline.benchmarks, base)
    print("\nAxum benchmarks:")
    axum_updated, axum_missing = _update_entries(baseline.axum_benchmarks, base)
    return updated + axum_updated, missing + axum_missing


def compute_budget(baseline: Baseline) -> ResourceBudget:
    """Recompute the weighted mean, CPU percentage and verdict in place."""
    budget = baseline.resource_budget
    weighted_sum = 0.0
    weight_sum = 0.0
    for key in sorted(baseline.traffic_weights):
        weight = baseline.traffic_weights[key]
        entry = baseline.benchmarks.get(key)
        if entry is None:
            print(f"  warning: traffic weight key '{key}' not found in benchmarks",
                  file=sys.stderr)
            continue
        weighted_sum += entry.mean_ns * weight
        weight_sum += weight

    if weight_sum > 0.0:
        budget.weighted_mean_ns = weighted_sum / weight_sum

    budget.total_cpu_percent = (
        budget.weighted_mean_ns * float(budget.target_ops_per_sec) / 1e9 * 100.0
    )
    if budget.total_cpu_percent < budget.cpu_budget_percent:
        budget.verdict = "PASS"
    elif budget.total_cpu_percent == 0.0:
        budget.verdict = "PENDING"
    else:
        budget.verdict = "FAIL"
    return budget


def _display(x: float) -> str:
    if math.isfinite(x) and x == math.floor(x):
        return str(int(x))
    return repr(x)


def main(argv: Sequence[str] | None = None) -> int:
    """Update the baseline file from criterion results and report the budget."""
    parser = argparse.ArgumentParser(
        prog="update-baseline",
        description="Fill baseline.toml timings from criterion estimates.",
    )
    parser.add_argument("--baseline", type=Path, default=Path("benches/baseline.toml"),
                        help="baseline TOML file (default benches/baseline.toml)")
    parser.add_argument("--criterion", type=Path, default=None,
                        help="criterion output directory (default ../target/criterion "
                             "next to the baseline's package)")
    args = parser.parse_args(argv)

    toml_path: Path = args.baseline
    criterion_base: Path = (
        args.criterion
        if args.criterion is not None
        else toml_path.parent.parent / ".." / "target" / "criterion"
    )

    try:
        baseline = load_baseline(toml_path)
        baseline.metadata.date = date.today().isoformat()
        updated, missing = update_from_criterion(baseline, criterion_base)
        budget = compute_budget(baseline)
        save_baseline(baseline, toml_path)
    except BaselineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print()
    print(f"Updated {updated} benchmarks ({missing} missing criterion data)")
    print(f"Weighted mean: {budget.weighted_mean_ns:.1f} ns")
    print(
        f"CPU at {budget.target_ops_per_sec} ops/s: {budget.total_cpu_percent:.2f}% "
        f"(budget: {_display(budget.cpu_budget_percent)}%)"
    )
    print(f"Verdict: {budget.verdict}")
    print(f"Written: {toml_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())