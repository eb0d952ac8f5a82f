"""Paired statistical comparison of two HTTP servers under concurrent load."""

from __future__ import annotations

import argparse
import asyncio
import math
import re
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass

from .client import run_concurrent

CONCURRENCY = 32
REQS_PER_CONN = 10
ROUNDS_PER_TRIAL = 50
WARMUP_ROUNDS = 10
DEFAULT_TRIALS = 30

_Z_CRIT = 1.96
_Z_ALPHA = 1.96
_Z_BETA = 0.842
_MIN_EFFECT = 0.001
_REQUIRED_N_LIMIT = 10_000
_ALPHA = 0.05
_TRIALS_PATTERN = re.compile(r"\+?[0-9]+")


def _div(a: float, b: float) -> float:
    """IEEE-754 division: a zero divisor yields inf or nan instead of raising."""
    try:
        return a / b
    except ZeroDivisionError:
        if math.isnan(a) or a == 0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _fmt(value: float, spec: str) -> str:
    return "NaN" if math.isnan(value) else format(value, spec)


def mean(xs: Sequence[float]) -> float:
    """Arithmetic mean; nan for an empty sequence."""
    return _div(sum(xs), float(len(xs)))


def std_dev(xs: Sequence[float]) -> float:
    """Sample standard deviation (n - 1 denominator); nan for a single value."""
    m = mean(xs)
    var = _div(sum((x - m) ** 2 for x in xs), float(len(xs)) - 1.0)
    return math.sqrt(var) if not math.isnan(var) else math.nan


def normal_cdf(x: float) -> float:
    """Standard normal CDF by the Abramowitz & Stegun 26.2.17 approximation."""
    t = 1.0 / (1.0 + 0.2316419 * abs(x))
    d = 0.3989422804014327
    p = d * math.exp(-x * x / 2.0)
    poly = t * (
        0.319381530
        + t * (-0.356563782 + t * (1.781477937 + t * (-1.821255978 + t * 1.330274429)))
    )
    return 1.0 - p * poly if x >= 0.0 else p * poly


@dataclass(frozen=True)
class PairedAnalysis:
    """Result of a paired comparison of Harrow and Axum timings (ms)."""

    harrow_mean: float
    harrow_std: float
    axum_mean: float
    axum_std: float
    diff_mean: float
    diff_std: float
    rel_diff_percent: float
    t_stat: float
    p_value: float
    ci_low: float
    ci_high: float
    cohens_d: float
    required_n: int | None

    @property
    def significant(self) -> bool:
        """Whether the difference is significant at alpha = 0.05."""
        return self.p_value < _ALPHA


def analyze(harrow: Sequence[float], axum: Sequence[float]) -> PairedAnalysis:
    """Paired t-test, 95% confidence interval, effect size and required sample size."""
    n = float(len(harrow))
    sqrt_n = math.sqrt(n)

    h_mean, a_mean = mean(harrow), mean(axum)
    h_std, a_std = std_dev(harrow), std_dev(axum)

    diffs = [h - a for h, a in zip(harrow, axum)]
    d_mean = mean(diffs)
    d_std = std_dev(diffs)

    t_stat = _div(d_mean, _div(d_std, sqrt_n))
    p_value = 2.0 * normal_cdf(-abs(t_stat))

    margin = _div(_Z_CRIT * d_std, sqrt_n)
    cohens_d = _div(d_mean, d_std)

    required_n: int | None = None
    if abs(cohens_d) > _MIN_EFFECT:
        required_n = math.ceil(((_Z_ALPHA + _Z_BETA) / cohens_d) ** 2)

    return PairedAnalysis(
        harrow_mean=h_mean,
        harrow_std=h_std,
        axum_mean=a_mean,
        axum_std=a_std,
        diff_mean=d_mean,
        diff_std=d_std,
        rel_diff_percent=_div(h_mean - a_mean, a_mean) * 100.0,
        t_stat=t_stat,
        p_value=p_value,
        ci_low=d_mean - margin,
        ci_high=d_mean + margin,
        cohens_d=cohens_d,
        required_n=required_n,
    )


def format_analysis(analysis: PairedAnalysis) -> str:
    """Render an analysis as the indented report lines."""
    a = analysis
    lines = [
        f"  Harrow:  {_fmt(a.harrow_mean, '.3f')} ± {_fmt(a.harrow_std, '.3f')} ms",
        f"  Axum:    {_fmt(a.axum_mean, '.3f')} ± {_fmt(a.axum_std, '.3f')} ms",
        f"  Diff:    {_fmt(a.diff_mean, '+.3f')} ms ({_fmt(a.rel_diff_percent, '+.2f')}%)",
        f"  95% CI:  [{_fmt(a.ci_low, '+.3f')}, {_fmt(a.ci_high, '+.3f')}] ms",
        f"  t={_fmt(a.t_stat, '.3f')}, p={_fmt(a.p_value, '.4f')}, "
        f"Cohen's d={_fmt(a.cohens_d, '.3f')}",
    ]
    if a.required_n is not None and a.required_n < _REQUIRED_N_LIMIT:
        lines.append(f"  Required n for 80% power: {a.required_n} trials")
    else:
        lines.append("  Required n for 80% power: >10000 (effect too small to detect)")
    lines.append(f"  Significant at α=0.05? {'YES' if a.significant else 'no'}")
    return "\n".join(lines)


def measure_trial(host: str, port: int, path: str) -> float:
    """Run ROUNDS_PER_TRIAL load rounds and return the average ms per round."""

    async def rounds() -> float:
        start = time.perf_counter()
        for _ in range(ROUNDS_PER_TRIAL):
            await run_concurrent(host, port, path, CONCURRENCY, REQS_PER_CONN)
        return (time.perf_counter() - start) * 1000.0 / ROUNDS_PER_TRIAL

    return asyncio.run(rounds())


def run_paired_trials(
    harrow_addr: tuple[str, int],
    axum_addr: tuple[str, int],
    path: str,
    trials: int,
) -> tuple[list[float], list[float]]:
    """Run paired trials, alternating the order each time to cancel drift."""

    async def warmup() -> None:
        for _ in range(WARMUP_ROUNDS):
            await run_concurrent(*harrow_addr, path, CONCURRENCY, REQS_PER_CONN)
            await run_concurrent(*axum_addr, path, CONCURRENCY, REQS_PER_CONN)

    asyncio.run(warmup())

    harrow_times: list[float] = []
    axum_times: list[float] = []
    for i in range(trials):
        if i % 2 == 0:
            harrow_times.append(measure_trial(*harrow_addr, path))
            axum_times.append(measure_trial(*axum_addr, path))
        else:
            axum_times.append(measure_trial(*axum_addr, path))
            harrow_times.append(measure_trial(*harrow_addr, path))
        if (i + 1) % 10 == 0:
            print(f"  {i + 1}/{trials} trials done", end="\r", file=sys.stderr)
    print(f"  {trials}/{trials} trials done    ", file=sys.stderr)
    return harrow_times, axum_times


def _address(text: str) -> tuple[str, int]:
    host, sep, port = text.rpartition(":")
    if not sep or not host or not port.isdigit() or int(port) > 0xFFFF:
        raise argparse.ArgumentTypeError(f"invalid address {text!r}, expected HOST:PORT")
    return host.strip("[]"), int(port)


def _parse_trials(text: str | None) -> int:
    if text is not None and _TRIALS_PATTERN.fullmatch(text):
        return int(text)
    return DEFAULT_TRIALS


def main(argv: Sequence[str] | None = None) -> int:
    """Compare two running servers with paired trials and print the statistics."""
    parser = argparse.ArgumentParser(
        prog="stat-bench",
        description="Paired statistical benchmark of two HTTP servers.",
    )
    parser.add_argument("harrow", type=_address, help="HOST:PORT of the Harrow server")
    parser.add_argument("axum", type=_address, help="HOST:PORT of the Axum server")
    parser.add_argument("trials", nargs="?", default=None, help="number of trials (default 30)")
    parser.add_argument("--path", default="/echo", help="request path (default /echo)")
    args = parser.parse_args(argv)
    trials = _parse_trials(args.trials)

    print(
        f"Running {trials} paired trials ({ROUNDS_PER_TRIAL} rounds × {CONCURRENCY} conn "
        f"× {REQS_PER_CONN} rpc each)\n"
    )
    harrow_times, axum_times = run_paired_trials(args.harrow, args.axum, args.path, trials)
    print(f"=== {args.path} ===")
    print(format_analysis(analyze(harrow_times, axum_times)))
    print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())