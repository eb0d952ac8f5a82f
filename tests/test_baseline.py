import json
import math
from datetime import date

import pytest

from harrowbench.baseline import (
    Baseline,
    BaselineError,
    BenchEntry,
    compute_budget,
    load_baseline,
    main,
    read_estimates,
    save_baseline,
    update_from_criterion,
)

SAMPLE = """\
[metadata]
version = "0.2.0"
date = "2024-01-01"
platform = "linux"
cpu = "test-cpu"
rust_version = "1.85"
notes = "fixture"

[benchmarks.echo_text]
criterion_path = "echo_tcp/text_no_mw"
description = "text echo"
mean_ns = 0.0
median_ns = 0.0
alloc_bytes = 0
alloc_count = 0

[benchmarks.echo_json]
criterion_path = "echo_tcp/json_no_mw"
description = "json echo"
mean_ns = 0.0
median_ns = 0.0
alloc_bytes = 10
alloc_count = 2

[axum_benchmarks.echo_text]
criterion_path = "axum_echo_tcp/text_no_mw"
description = "axum text echo"
mean_ns = 0.0
median_ns = 0.0
alloc_bytes = 0
alloc_count = 0

[traffic_weights]
echo_text = 0.5
echo_json = 0.5

[resource_budget]
target_ops_per_sec = 10000
cpu_budget_percent = 5.0
memory_budget_mb = 64.0
weighted_mean_ns = 0.0
total_cpu_percent = 0.0
verdict = "PENDING"
"""


@pytest.fixture
def baseline_path(tmp_path):
    path = tmp_path / "harrow-bench" / "benches" / "baseline.toml"
    path.parent.mkdir(parents=True)
    path.write_text(SAMPLE, encoding="utf-8")
    return path


@pytest.fixture
def baseline(baseline_path):
    return load_baseline(baseline_path)


def _estimates(base, criterion_path, mean, median):
    target = base / criterion_path / "new" / "estimates.json"
    target.parent.mkdir(parents=True)
    target.write_text(
        json.dumps({"mean": {"point_estimate": mean}, "median": {"point_estimate": median}}),
        encoding="utf-8",
    )
    return target


def test_load_parses_fields(baseline):
    assert baseline.metadata.version == "0.2.0"
    assert sorted(baseline.benchmarks) == ["echo_json", "echo_text"]
    assert baseline.benchmarks["echo_json"].alloc_bytes == 10
    assert baseline.resource_budget.target_ops_per_sec == 10000


def test_save_load_round_trip(baseline, tmp_path):
    out = tmp_path / "copy.toml"
    save_baseline(baseline, out)
    assert load_baseline(out) == baseline


def test_dict_round_trip(baseline):
    assert Baseline.from_dict(baseline.to_dict()) == baseline


def test_missing_section_rejected(baseline):
    data = baseline.to_dict()
    del data["resource_budget"]
    with pytest.raises(BaselineError, match="resource_budget"):
        Baseline.from_dict(data)


def test_field_types_checked(baseline):
    data = baseline.to_dict()
    data["benchmarks"]["echo_text"]["alloc_bytes"] = -1
    with pytest.raises(BaselineError, match="alloc_bytes"):
        Baseline.from_dict(data)
    data = baseline.to_dict()
    data["benchmarks"]["echo_text"]["mean_ns"] = "fast"
    with pytest.raises(BaselineError, match="mean_ns"):
        Baseline.from_dict(data)


def test_integer_timing_accepted_as_float(baseline):
    data = baseline.to_dict()
    data["benchmarks"]["echo_text"]["mean_ns"] = 5
    loaded = Baseline.from_dict(data)
    assert loaded.benchmarks["echo_text"].mean_ns == 5.0
    assert isinstance(loaded.benchmarks["echo_text"].mean_ns, float)


def test_load_invalid_toml(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("[metadata\n", encoding="utf-8")
    with pytest.raises(BaselineError, match="cannot parse TOML"):
        load_baseline(path)


def test_read_estimates(tmp_path):
    path = _estimates(tmp_path, "x", 123.5, 120.25)
    assert read_estimates(path) == (123.5, 120.25)


def test_read_estimates_errors(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(BaselineError):
        read_estimates(bad)
    partial = tmp_path / "partial.json"
    partial.write_text(json.dumps({"mean": {"point_estimate": 1.0}}), encoding="utf-8")
    with pytest.raises(BaselineError, match="median"):
        read_estimates(partial)
    with pytest.raises(BaselineError, match="error reading"):
        read_estimates(tmp_path / "absent.json")


def test_update_from_criterion(baseline, tmp_path):
    base = tmp_path / "criterion"
    _estimates(base, "echo_tcp/text_no_mw", 123.5, 120.25)
    counts = update_from_criterion(baseline, base)
    entry = baseline.benchmarks["echo_text"]
    assert (entry.mean_ns, entry.median_ns) == (123.5, 120.25)
    assert baseline.benchmarks["echo_json"].mean_ns == 0.0
    assert counts == (1, 2)


def test_compute_budget_equal_means(baseline):
    for entry in baseline.benchmarks.values():
        entry.mean_ns = 200.0
    baseline.resource_budget.cpu_budget_percent = 100.0
    budget = compute_budget(baseline)
    assert math.isclose(budget.weighted_mean_ns, 200.0)
    assert budget.verdict == "PASS"


def test_compute_budget_pending_and_fail(baseline):
    baseline.resource_budget.cpu_budget_percent = 0.0
    assert compute_budget(baseline).verdict == "PENDING"
    for entry in baseline.benchmarks.values():
        entry.mean_ns = 200.0
    assert compute_budget(baseline).verdict == "FAIL"


def test_compute_budget_scales_with_target(baseline):
    for entry in baseline.benchmarks.values():
        entry.mean_ns = 300.0
    first = compute_budget(baseline).total_cpu_percent
    baseline.resource_budget.target_ops_per_sec *= 2
    second = compute_budget(baseline).total_cpu_percent
    assert first > 0
    assert math.isclose(second, 2 * first)


def test_compute_budget_ignores_unknown_weight(baseline):
    baseline.traffic_weights = {"echo_text": 1.0, "ghost": 5.0}
    baseline.benchmarks["echo_text"].mean_ns = 250.0
    assert compute_budget(baseline).weighted_mean_ns == 250.0


def test_compute_budget_keeps_mean_without_weights(baseline):
    baseline.traffic_weights = {}
    baseline.resource_budget.weighted_mean_ns = 77.0
    assert compute_budget(baseline).weighted_mean_ns == 77.0


def test_main_updates_file(baseline_path, tmp_path):
    base = tmp_path / "criterion"
    _estimates(base, "echo_tcp/json_no_mw", 410.0, 400.0)
    rc = main(["--baseline", str(baseline_path), "--criterion", str(base)])
    reloaded = load_baseline(baseline_path)
    assert rc == 0
    assert reloaded.metadata.date == date.today().isoformat()
    assert reloaded.benchmarks["echo_json"].mean_ns == 410.0
    assert reloaded.resource_budget.verdict in {"PASS", "FAIL", "PENDING"}
    assert isinstance(reloaded.benchmarks["echo_json"], BenchEntry)


def test_main_default_criterion_location(baseline_path, tmp_path):
    base = tmp_path / "target" / "criterion"
    _estimates(base, "echo_tcp/text_no_mw", 90.0, 85.0)
    assert main(["--baseline", str(baseline_path)]) == 0
    assert load_baseline(baseline_path).benchmarks["echo_text"].median_ns == 85.0


def test_main_missing_file(tmp_path):
    assert main(["--baseline", str(tmp_path / "none.toml")]) == 1