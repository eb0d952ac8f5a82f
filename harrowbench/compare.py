"""Harrow vs Axum load-test comparison runner.

Starts both servers (unless they run remotely), drives the external ``bench``
load tool against each endpoint at several concurrency levels, and writes a
markdown report, the raw JSON results and SVG charts.
"""

from __future__ import annotations

import json
import os
import re
import socket
import subprocess
import sys
import time
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .histogram import main as histogram_main

HARROW_PORT = 3090
AXUM_PORT = 3091

ENDPOINTS = (
    ("/", "root"),
    ("/greet/bench", "greet_bench"),
    ("/health", "health"),
    ("/nonexistent", "404_miss"),
)

CONCURRENCY_LEVELS = (1, 8, 32, 128)

FRAMEWORK_SERVERS = (
    ("harrow", HARROW_PORT, "target/release/harrow-server"),
    ("axum", AXUM_PORT, "target/release/axum-server"),
)

BENCH_CANDIDATES = (
    "../mcp-servers/target/release/bench",
    "../mcp-load-tester/target/release/bench",
)

OUTDIR = Path("target/comparison")

USAGE = (
    "usage: compare-frameworks --bench-bin PATH [--remote] "
    "[--server-host HOST] [--bind ADDR] [--duration SECS] [--warmup SECS]"
)

_U32 = re.compile(r"\+?[0-9]+")
_U32_MAX = 0xFFFF_FFFF


class CompareError(Exception):
    """Invalid command line or missing bench tool."""


@dataclass(frozen=True)
class Args:
    """Settings of one comparison run."""

    bench_bin: Path
    remote: bool = False
    server_host: str = "127.0.0.1"
    bind: str | None = None
    duration: int = 60
    warmup: int = 5


def _value(it: Iterator[str], option: str) -> str:
    try:
        return next(it)
    except StopIteration:
        raise CompareError(f"{option} requires a value") from None


def _u32(text: str, option: str) -> int:
    if not _U32.fullmatch(text) or int(text) > _U32_MAX:
        raise CompareError(f"invalid {option}")
    return int(text)


def parse_args(argv: Sequence[str] | None = None) -> Args:
    """Parse options; BENCH_BIN and SERVER_HOST supply defaults from the environment."""
    args = list(sys.argv[1:] if argv is None else argv)
    env_bin = os.environ.get("BENCH_BIN")
    bench_bin: Path | None = Path(env_bin) if env_bin is not None else None
    remote = False
    server_host = os.environ.get("SERVER_HOST", "127.0.0.1")
    bind: str | None = None
    duration = 60
    warmup = 5

    it = iter(args)
    for option in it:
        match option:
            case "--bench-bin":
                bench_bin = Path(_value(it, option))
            case "--remote":
                remote = True
            case "--server-host":
                server_host = _value(it, option)
            case "--bind":
                bind = _value(it, option)
            case "--duration":
                duration = _u32(_value(it, option), option)
            case "--warmup":
                warmup = _u32(_value(it, option), option)
            case _:
                raise CompareError(f"unknown option: {option}\n{USAGE}")

    if bench_bin is None:
        # The repository root is taken to be the working directory.
        for candidate in (Path.cwd() / c for c in BENCH_CANDIDATES):
            if candidate.exists():
                try:
                    bench_bin = candidate.resolve(strict=True)
                except OSError:
                    bench_bin = candidate
                break

    if bench_bin is None:
        raise CompareError("bench binary not found. Use --bench-bin or set BENCH_BIN.")
    if not bench_bin.exists():
        raise CompareError(f"bench binary not found at {bench_bin}")

    return Args(
        bench_bin=bench_bin,
        remote=remote,
        server_host=server_host,
        bind=bind,
        duration=duration,
        warmup=warmup,
    )


def wait_for_server(host: str, port: int, timeout: float = 10.0) -> None:
    """Poll until a TCP connection succeeds; raise TimeoutError after ``timeout`` seconds."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.2):
                return
        except OSError:
            pass
        time.sleep(0.1)
    raise TimeoutError(f"server on {host}:{port} did not start within {timeout:g}s")


def start_server(binary: str, port: int, bind: str | None = None) -> subprocess.Popen[bytes]:
    """Launch a server binary with ``--port`` (and ``--bind``), output discarded."""
    cmd = [binary, "--port", str(port)]
    if bind is not None:
        cmd += ["--bind", bind]
    try:
        return subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as exc:
        raise RuntimeError(f"failed to start {binary}: {exc}") from exc


def kill_server(child: subprocess.Popen[bytes]) -> None:
    """Kill a server process and reap it."""
    try:
        child.kill()
    except OSError:
        pass
    try:
        child.wait()
    except OSError:
        pass


def run_bench(
    bench_bin: str | Path, url: str, concurrency: int, duration: int, warmup: int
) -> Any | None:
    """Run the bench tool in max-throughput JSON mode; None if it fails."""
    cmd = [
        str(bench_bin),
        "-u", url,
        "-M",
        "-c", str(concurrency),
        "-d", str(duration),
        "-w", str(warmup),
        "-j",
        "-q",
    ]
    try:
        proc = subprocess.run(cmd, capture_output=True, check=False)
    except OSError as exc:
        print(f"    failed to run bench: {exc}", file=sys.stderr)
        return None
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        print(f"    bench failed (exit {proc.returncode}): {stderr}", file=sys.stderr)
        return None
    try:
        return json.loads(proc.stdout)
    except ValueError:
        return None


def val_str(value: Any, key: str) -> str:
    """Render one field of a result: whole numbers bare, others with 3 decimals."""
    if not isinstance(value, Mapping) or key not in value:
        return "N/A"
    item = value[key]
    if isinstance(item, (int, float)) and not isinstance(item, bool):
        f = float(item)
        if f == f // 1 if f == f and abs(f) != float("inf") else False:
            if abs(f) < 1e15:
                return str(int(f))
        return f"{f:.3f}"
    return json.dumps(item, ensure_ascii=False, separators=(",", ":"))


def render_report(
    results: Mapping[str, Any], duration: int, warmup: int, now: str
) -> str:
    """Build the markdown comparison report."""
    parts = [
        "# Harrow vs Axum — Framework Comparison\n"
        "\n"
        f"**Generated:** {now}\n"
        f"**Duration:** {duration} seconds per test, {warmup} seconds warmup\n"
        "**Tool:** mcp-load-tester bench (max-throughput mode)\n"
        f"**Target requests:** ~2M ({duration}s x high concurrency)\n"
        "\n"
        "---\n"
    ]
    for path, name in ENDPOINTS:
        parts.append(f"\n## Endpoint: `{path}`\n\n")
        parts.append(
            "| Concurrency | Framework | Req/s | p50 (ms) | p99 (ms) | p999 (ms) | Errors |\n"
        )
        parts.append(
            "|-------------|-----------|-------|----------|----------|-----------|--------|\n"
        )
        for c in CONCURRENCY_LEVELS:
            for fw in ("harrow", "axum"):
                key = f"{fw}_{name}_c{c}"
                if key in results:
                    v = results[key]
                    cells = [
                        val_str(v, "rps"),
                        val_str(v, "latency_p50_ms"),
                        val_str(v, "latency_p99_ms"),
                        val_str(v, "latency_p999_ms"),
                        val_str(v, "failed_requests"),
                    ]
                else:
                    cells = ["N/A"] * 5
                parts.append(f"| {c} | {fw} | {' | '.join(cells)} |\n")
    parts.append("\n---\n\n*Raw JSON results are in `target/comparison/`.*\n")
    return "".join(parts)


def utc_now() -> str:
    """Current UTC time as ``YYYY-MM-DD HH:MM UTC``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def generate_report(
    results: Mapping[str, Any], outdir: str | Path, duration: int, warmup: int
) -> Path:
    """Write ``comparison-report.md`` into ``outdir`` and return its path."""
    report_path = Path(outdir) / "comparison-report.md"
    report_path.write_text(render_report(results, duration, warmup, utc_now()), encoding="utf-8")
    print(f"Report written to: {report_path}")
    return report_path


def _build_servers() -> bool:
    print("Building both servers in release mode...")
    try:
        proc = subprocess.run(
            ["cargo", "build", "--release", "--bin", "harrow-server", "--bin", "axum-server"],
            check=False,
        )
    except OSError as exc:
        print(f"failed to run cargo build: {exc}", file=sys.stderr)
        return False
    if proc.returncode != 0:
        print("cargo build failed", file=sys.stderr)
        return False
    return True


def main(argv: Sequence[str] | None = None) -> int:
    """Run the full comparison and write report, JSON results and charts."""
    try:
        args = parse_args(argv)
    except CompareError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(f"Using bench binary: {args.bench_bin}")
    if not args.remote and not _build_servers():
        return 1

    OUTDIR.mkdir(parents=True, exist_ok=True)
    total = len(ENDPOINTS) * len(CONCURRENCY_LEVELS) * len(FRAMEWORK_SERVERS)
    current = 0
    results: dict[str, Any] = {}

    mode = f"remote (servers on {args.server_host})" if args.remote else "local"
    endpoint_list = ", ".join(f'"{path}"' for path, _ in ENDPOINTS)
    print()
    print("Starting framework comparison...")
    print(f"  Mode: {mode}")
    print(f"  Duration: {args.duration}s per test, {args.warmup}s warmup")
    print(f"  Concurrency: {list(CONCURRENCY_LEVELS)}")
    print(f"  Endpoints: [{endpoint_list}]")
    print()

    for path, name in ENDPOINTS:
        for conc in CONCURRENCY_LEVELS:
            print(f"--- Endpoint: {path}, Concurrency: {conc} ---")
            for fw, port, binary in FRAMEWORK_SERVERS:
                server = None
                if not args.remote:
                    child = start_server(binary, port, args.bind)
                    try:
                        wait_for_server(args.server_host, port, 10.0)
                    except TimeoutError as exc:
                        print(f"  {exc}", file=sys.stderr)
                        kill_server(child)
                        continue
                    server = child

                current += 1
                key = f"{fw}_{name}_c{conc}"
                url = f"http://{args.server_host}:{port}{path}"
                print(f"  [{current}/{total}] Bench {fw}: {path} c={conc}")

                data = run_bench(args.bench_bin, url, conc, args.duration, args.warmup)
                if data is not None:
                    (OUTDIR / f"{key}.json").write_text(
                        json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8"
                    )
                    results[key] = data
                else:
                    results[key] = {}

                if server is not None:
                    kill_server(server)
                    time.sleep(0.3)
            print()

    generate_report(results, OUTDIR, args.duration, args.warmup)
    print(f"Raw JSON results in: {OUTDIR}")

    print()
    print("Generating SVG comparison charts...")
    if histogram_main([str(OUTDIR)]) == 0:
        print(f"SVG charts written to {OUTDIR}/")
    else:
        print("generate-histogram failed", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())