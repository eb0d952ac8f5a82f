import json
import re
import signal
import socket
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from harrowbench import compare
from harrowbench.compare import (
    Args,
    CompareError,
    generate_report,
    kill_server,
    main,
    parse_args,
    render_report,
    run_bench,
    start_server,
    utc_now,
    val_str,
    wait_for_server,
)


def _script(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(0o755)
    return path


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("BENCH_BIN", raising=False)
    monkeypatch.delenv("SERVER_HOST", raising=False)


@pytest.fixture
def bench_script(tmp_path):
    return _script(
        tmp_path / "bench",
        "import json, sys\n"
        "print(json.dumps({'rps': 1000, 'latency_p50_ms': 0.5, 'latency_p99_ms': 2.0,"
        " 'args': sys.argv[1:]}))\n",
    )


def test_parse_args_defaults(clean_env, bench_script):
    args = parse_args(["--bench-bin", str(bench_script)])
    assert args == Args(bench_bin=bench_script)
    assert args.duration == 60
    assert args.warmup == 5
    assert args.server_host == "127.0.0.1"


def test_parse_args_all_options(clean_env, bench_script):
    args = parse_args(
        [
            "--bench-bin", str(bench_script),
            "--remote",
            "--server-host", "10.0.1.5",
            "--bind", "0.0.0.0",
            "--duration", "30",
            "--warmup", "2",
        ]
    )
    assert args.remote is True
    assert args.server_host == "10.0.1.5"
    assert args.bind == "0.0.0.0"
    assert (args.duration, args.warmup) == (30, 2)


def test_parse_args_env(monkeypatch, bench_script):
    monkeypatch.setenv("BENCH_BIN", str(bench_script))
    monkeypatch.setenv("SERVER_HOST", "10.0.1.5")
    args = parse_args([])
    assert args.bench_bin == bench_script
    assert args.server_host == "10.0.1.5"


def test_parse_args_unknown_option(clean_env, bench_script):
    with pytest.raises(CompareError, match="unknown option: --fast"):
        parse_args(["--bench-bin", str(bench_script), "--fast"])


def test_parse_args_invalid_duration(clean_env, bench_script):
    with pytest.raises(CompareError, match="invalid --duration"):
        parse_args(["--bench-bin", str(bench_script), "--duration", "soon"])


def test_parse_args_missing_value(clean_env):
    with pytest.raises(CompareError, match="--bench-bin requires a value"):
        parse_args(["--bench-bin"])


def test_parse_args_bench_not_found(clean_env, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CompareError, match="bench binary not found"):
        parse_args([])
    with pytest.raises(CompareError, match="bench binary not found at"):
        parse_args(["--bench-bin", str(tmp_path / "missing")])


def test_val_str_numbers_and_values():
    data = {"rps": 42.0, "p50": 1.23456, "n": 3, "s": "x", "b": True, "z": None}
    assert val_str(data, "rps") == "42"
    assert val_str(data, "p50") == "1.235"
    assert val_str(data, "n") == "3"
    assert val_str(data, "s") == '"x"'
    assert val_str(data, "b") == "true"
    assert val_str(data, "z") == "null"
    assert val_str(data, "missing") == "N/A"
    assert val_str([1, 2], "rps") == "N/A"


def test_render_report_structure():
    results = {"harrow_root_c1": {"rps": 1234.0, "failed_requests": 0}}
    report = render_report(results, 60, 5, "2024-01-01 00:00 UTC")
    assert report.startswith("# Harrow vs Axum — Framework Comparison\n")
    assert "**Generated:** 2024-01-01 00:00 UTC\n" in report
    assert "| 1 | harrow | 1234 | N/A | N/A | N/A | 0 |\n" in report
    assert "| 1 | axum | N/A | N/A | N/A | N/A | N/A |\n" in report
    assert report.count("## Endpoint:") == len(compare.ENDPOINTS)
    rows = [line for line in report.splitlines() if re.match(r"\| \d+ \| ", line)]
    assert len(rows) == len(compare.ENDPOINTS) * len(compare.CONCURRENCY_LEVELS) * 2
    assert report.endswith("*Raw JSON results are in `target/comparison/`.*\n")


def test_utc_now_format():
    stamp = utc_now()
    parsed = datetime.strptime(stamp, "%Y-%m-%d %H:%M UTC").replace(tzinfo=timezone.utc)
    assert abs(datetime.now(timezone.utc) - parsed) < timedelta(minutes=2)
    assert stamp.endswith(" UTC")
    assert len(stamp) == 20


def test_generate_report_writes_file(tmp_path):
    path = generate_report({}, tmp_path, 10, 1)
    assert path == tmp_path / "comparison-report.md"
    text = path.read_text(encoding="utf-8")
    assert "**Duration:** 10 seconds per test, 1 seconds warmup" in text


def test_run_bench_success(bench_script):
    data = run_bench(bench_script, "http://127.0.0.1:3090/", 8, 3, 1)
    assert data["rps"] == 1000
    assert data["args"] == [
        "-u", "http://127.0.0.1:3090/", "-M", "-c", "8", "-d", "3", "-w", "1", "-j", "-q",
    ]


def test_run_bench_failure(tmp_path):
    failing = _script(tmp_path / "fail", "import sys\nsys.exit(2)\n")
    assert run_bench(failing, "http://127.0.0.1:1/", 1, 1, 1) is None
    assert run_bench(tmp_path / "missing", "http://127.0.0.1:1/", 1, 1, 1) is None


def test_wait_for_server_connects():
    with socket.socket() as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen()
        port = listener.getsockname()[1]
        result = wait_for_server("127.0.0.1", port, 2.0)
        listener.settimeout(1.0)
        conn, peer = listener.accept()
        conn.close()
        assert result is None
        assert peer[0] == "127.0.0.1"


def test_wait_for_server_times_out():
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
    with pytest.raises(TimeoutError, match="did not start"):
        wait_for_server("127.0.0.1", port, 0.3)


def test_start_and_kill_server(tmp_path):
    record = tmp_path / "args.json"
    server = _script(
        tmp_path / "server",
        "import json, sys, time, pathlib\n"
        f"pathlib.Path({str(record)!r}).write_text(json.dumps(sys.argv[1:]))\n"
        "time.sleep(30)\n",
    )
    child = start_server(str(server), 4321, "0.0.0.0")
    deadline = time.monotonic() + 10
    while not record.exists() and time.monotonic() < deadline:
        time.sleep(0.05)
    time.sleep(0.05)
    kill_server(child)
    assert json.loads(record.read_text()) == ["--port", "4321", "--bind", "0.0.0.0"]
    assert child.returncode == -signal.SIGKILL


def test_start_server_missing_binary(tmp_path):
    with pytest.raises(RuntimeError, match="failed to start"):
        start_server(str(tmp_path / "nope"), 4321)


def test_main_remote_run(clean_env, bench_script, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    rc = main(["--bench-bin", str(bench_script), "--remote", "--duration", "1", "--warmup", "0"])
    outdir = tmp_path / "target" / "comparison"
    assert rc == 0
    data = json.loads((outdir / "harrow_root_c1.json").read_text(encoding="utf-8"))
    assert data["rps"] == 1000
    assert (outdir / "comparison-report.md").exists()
    assert (outdir / "throughput.svg").read_text(encoding="utf-8").startswith("<svg")


def test_main_usage_error(clean_env, bench_script):
    assert main(["--bench-bin", str(bench_script), "--what"]) == 1