"""SVG bar charts comparing Harrow and Axum benchmark results."""

from __future__ import annotations

import json
import math
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

HARROW_COLOR = "#3B82F6"
AXUM_COLOR = "#F97316"
BG_COLOR = "#FFFFFF"
GRID_COLOR = "#E5E7EB"
TEXT_COLOR = "#374151"
LABEL_COLOR = "#6B7280"

WIDTH = 1200.0
HEIGHT = 600.0
MARGIN_TOP = 80.0
MARGIN_RIGHT = 40.0
MARGIN_BOTTOM = 100.0
MARGIN_LEFT = 90.0

FRAMEWORKS = ("harrow", "axum")

CHARTS = (
    ("rps", "Harrow vs Axum — Throughput (requests/sec)", "Requests per second", "throughput.svg"),
    ("latency_p50_ms", "Harrow vs Axum — p50 Latency (ms)", "Latency (ms)", "latency-p50.svg"),
    (
        "latency_p99_ms",
        "Harrow vs Axum — p99 Tail Latency (ms)",
        "Latency (ms)",
        "latency-p99.svg",
    ),
)


@dataclass(frozen=True)
class Scenario:
    """One chart group: a label and the metric value of each framework."""

    label: str
    harrow: float
    axum: float


def load_results(directory: str | Path) -> dict[str, dict[str, Any]]:
    """Read ``<framework>_<scenario>_c<N>.json`` files, keyed by label then framework."""
    results: dict[str, dict[str, Any]] = {}
    try:
        entries = list(Path(directory).iterdir())
    except OSError:
        return results

    for path in entries:
        if path.suffix != ".json":
            continue
        framework, sep, rest = path.stem.partition("_")
        if not sep or framework not in FRAMEWORKS:
            continue
        c_pos = rest.rfind("_c")
        if c_pos < 0:
            c_pos = len(rest)
        label = f"{rest[:c_pos]}\n{rest[c_pos:]}"
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError):
            continue
        results.setdefault(label, {})[framework] = data

    return {label: results[label] for label in sorted(results)}


def _metric(data: Any, metric: str) -> float:
    if not isinstance(data, Mapping):
        return 0.0
    value = data.get(metric)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def extract_scenarios(
    results: Mapping[str, Mapping[str, Any]], metric: str
) -> list[Scenario]:
    """Pick one metric per framework for every label; missing values become 0."""
    return [
        Scenario(
            label=label,
            harrow=_metric(frameworks.get("harrow"), metric),
            axum=_metric(frameworks.get("axum"), metric),
        )
        for label, frameworks in results.items()
    ]


def nice_ticks(max_val: float, n: int) -> list[float]:
    """Axis ticks from 0 in round steps (1, 2, 2.5, 5, 10 × 10^k) past max_val."""
    if math.isnan(max_val):
        return []
    if max_val <= 0.0:
        return [0.0]
    if math.isinf(max_val):
        raise ValueError("cannot place ticks up to an infinite value")
    raw = max_val / float(n)
    mag = 10.0 ** math.floor(math.log10(raw))
    step = mag
    for c in (1.0, 2.0, 2.5, 5.0, 10.0):
        if c * mag >= raw:
            step = c * mag
            break
    ticks = []
    v = 0.0
    while v <= max_val * 1.05:
        ticks.append(v)
        v += step
    return ticks


def fmt_number(val: float) -> str:
    """Compact label for a value: M and K suffixes, integers without decimals."""
    if math.isnan(val):
        return "NaN"
    if val >= 1_000_000.0:
        return f"{val / 1_000_000.0:.1f}M"
    if val >= 1_000.0:
        return f"{val / 1_000.0:.0f}K"
    if val == math.floor(val) and abs(val) < 1e12:
        return str(int(val))
    if val < 1.0:
        return f"{val:.3f}"
    return f"{val:.1f}"


def escape_xml(s: str) -> str:
    """Escape &, <, > and double quotes for XML text and attributes."""
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _display(x: float) -> str:
    """Shortest plain decimal form of a float, without a trailing '.0'."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    text = repr(x)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    return text[:-2] if text.endswith(".0") else text


def _f1(x: float) -> str:
    return "NaN" if math.isnan(x) else f"{x:.1f}"


def bar_chart_svg(scenarios: Sequence[Scenario], title: str, y_label: str) -> str:
    """Grouped bar chart of Harrow vs Axum; empty string when there is no data."""
    if not scenarios:
        return ""

    chart_w = WIDTH - MARGIN_LEFT - MARGIN_RIGHT
    chart_h = HEIGHT - MARGIN_TOP - MARGIN_BOTTOM

    values = [v for sc in scenarios for v in (sc.harrow, sc.axum) if not math.isnan(v)]
    y_max_raw = max([0.0, *values])
    ticks = nice_ticks(y_max_raw, 5)
    y_max = ticks[-1] if ticks and ticks[-1] > 0 else 1.0

    gw = chart_w / len(scenarios)
    bw = gw * 0.35
    gap = gw * 0.05

    w, h = _display(WIDTH), _display(HEIGHT)
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {w} {h}" width="{w}" '
        f'height="{h}" font-family="system-ui,-apple-system,sans-serif">\n'
        f'<rect width="{w}" height="{h}" fill="{BG_COLOR}"/>\n',
        f'<text x="{_display(WIDTH / 2.0)}" y="35" text-anchor="middle" font-size="20" '
        f'font-weight="600" fill="{TEXT_COLOR}">{escape_xml(title)}</text>\n',
    ]

    lx = WIDTH / 2.0 - 100.0
    ly = 58.0
    parts.append(
        f'<rect x="{_display(lx)}" y="{_display(ly - 10.0)}" width="14" height="14" rx="2" '
        f'fill="{HARROW_COLOR}"/>\n'
        f'<text x="{_display(lx + 20.0)}" y="{_display(ly)}" font-size="13" '
        f'fill="{LABEL_COLOR}">Harrow</text>\n'
        f'<rect x="{_display(lx + 100.0)}" y="{_display(ly - 10.0)}" width="14" height="14" '
        f'rx="2" fill="{AXUM_COLOR}"/>\n'
        f'<text x="{_display(lx + 120.0)}" y="{_display(ly)}" font-size="13" '
        f'fill="{LABEL_COLOR}">Axum</text>\n'
    )

    parts.append(f'<g transform="translate({_display(MARGIN_LEFT)},{_display(MARGIN_TOP)})">')

    for t in ticks:
        y = chart_h - (t / y_max * chart_h)
        parts.append(
            f'\n<line x1="0" y1="{_f1(y)}" x2="{_display(chart_w)}" y2="{_f1(y)}" '
            f'stroke="{GRID_COLOR}" stroke-dasharray="4,4"/>'
            f'\n<text x="-10" y="{_f1(y + 4.0)}" text-anchor="end" font-size="11" '
            f'fill="{LABEL_COLOR}">{fmt_number(t)}</text>'
        )

    half = _f1(chart_h / 2.0)
    parts.append(
        f'\n<text x="-60" y="{half}" text-anchor="middle" font-size="13" fill="{TEXT_COLOR}" '
        f'transform="rotate(-90,-60,{half})">{escape_xml(y_label)}</text>'
    )
    parts.append(
        f'\n<line x1="0" y1="{_display(chart_h)}" x2="{_display(chart_w)}" '
        f'y2="{_display(chart_h)}" stroke="{GRID_COLOR}"/>'
    )

    for i, sc in enumerate(scenarios):
        x0 = i * gw + gap
        parts.extend(_bar(x0, sc.harrow, "Harrow", HARROW_COLOR, bw, chart_h, y_max))
        ax = x0 + bw + gap
        parts.extend(_bar(ax, sc.axum, "Axum", AXUM_COLOR, bw, chart_h, y_max))

        cx = x0 + bw + gap / 2.0
        for j, part in enumerate(sc.label.split("\n")):
            parts.append(
                f'\n<text x="{_f1(cx)}" y="{_f1(chart_h + 18.0 + j * 15.0)}" '
                f'text-anchor="middle" font-size="11" fill="{LABEL_COLOR}">'
                f"{escape_xml(part)}</text>"
            )

    parts.append("\n</g>\n</svg>\n")
    return "".join(parts)


def _bar(
    x: float, value: float, name: str, color: str, bw: float, chart_h: float, y_max: float
) -> list[str]:
    height = value / y_max * chart_h
    top = chart_h - height
    label = fmt_number(value)
    out = [
        f'\n<rect x="{_f1(x)}" y="{_f1(top)}" width="{_f1(bw)}" height="{_f1(height)}" '
        f'rx="3" fill="{color}" opacity="0.9"><title>{name}: {label}</title></rect>'
    ]
    if height > 20.0:
        out.append(
            f'\n<text x="{_f1(x + bw / 2.0)}" y="{_f1(top + 15.0)}" text-anchor="middle" '
            f'font-size="10" font-weight="500" fill="white">{label}</text>'
        )
    return out


def main(argv: Sequence[str] | None = None) -> int:
    """Write throughput and latency charts into the given results directory."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: generate-histogram <data-directory>", file=sys.stderr)
        return 1

    directory = Path(args[0])
    if not directory.is_dir():
        print(f"error: {directory} is not a directory", file=sys.stderr)
        return 1

    results = load_results(directory)
    if not results:
        print(f"No benchmark JSON files found in {directory}", file=sys.stderr)
        return 1

    print(f"Loaded {len(results)} scenarios from {directory}")
    for metric, title, y_label, filename in CHARTS:
        svg = bar_chart_svg(extract_scenarios(results, metric), title, y_label)
        if not svg:
            print(f"  No data for {metric}, skipping {filename}")
            continue
        out = directory / filename
        out.write_text(svg, encoding="utf-8")
        print(f"  Written: {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())