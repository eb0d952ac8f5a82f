# harrowbench

Tooling for measuring and comparing the performance of two HTTP servers,
called "harrow" and "axum" throughout, that expose the same endpoints.

- `harrowbench.client`: a minimal keep-alive HTTP/1.1 client
  (`BenchClient`) and concurrent load drivers (`run_concurrent`,
  `run_concurrent_mixed`, `run_concurrent_with_headers`).
- `harrowbench.payloads`: JSON payloads of fixed shape (`user_payload`,
  `json_1kb`, `json_10kb`).
- `harrowbench.stats`: paired trials with a t-test, a 95% confidence
  interval, Cohen's d and the sample size needed for 80% power.
- `harrowbench.histogram`: SVG bar charts built from benchmark JSON results.
- `harrowbench.compare`: a runner that starts both servers, drives an
  external load tool and writes a markdown report.
- `harrowbench.baseline`: an updater for a baseline TOML file that reads
  criterion estimates and computes a CPU budget verdict.

## Installation

```
pip install .
```

Python 3.11 or later is required. The only runtime dependency is `tomli-w`.

## Command-line tools

### `compare-frameworks`

Unless `--remote` is given, first runs
`cargo build --release --bin harrow-server --bin axum-server`, then for every
endpoint (`/`, `/greet/bench`, `/health`, `/nonexistent`) and every
concurrency level (1, 8, 32, 128) starts `target/release/harrow-server` on
port 3090 and `target/release/axum-server` on port 3091 in turn, waits up to
10 seconds for each to accept connections, and runs the bench tool as

```
<bench> -u <url> -M -c <concurrency> -d <duration> -w <warmup> -j -q
```

Each JSON result is saved as `target/comparison/<framework>_<name>_c<N>.json`,
a markdown table is written to `target/comparison/comparison-report.md`, and
the SVG charts of `generate-histogram` are written to the same directory.

```
compare-frameworks --bench-bin /path/to/bench
compare-frameworks --remote --server-host 10.0.1.5 --bench-bin /path/to/bench
compare-frameworks --bench-bin /path/to/bench --duration 30 --warmup 5
```

Options: `--bench-bin PATH`, `--remote`, `--server-host HOST`
(default `127.0.0.1`), `--bind ADDR` (passed to the servers as `--bind`),
`--duration SECS` (default 60), `--warmup SECS` (default 5). The bench tool
may also be given through the `BENCH_BIN` environment variable and the host
through `SERVER_HOST`. Without either, `../mcp-servers/target/release/bench`
and `../mcp-load-tester/target/release/bench` relative to the working
directory are tried.

### `generate-histogram`

Reads the `<framework>_<scenario>_c<N>.json` files in a directory and writes
`throughput.svg` (`rps`), `latency-p50.svg` (`latency_p50_ms`) and
`latency-p99.svg` (`latency_p99_ms`) next to them.

```
generate-histogram target/comparison/
```

### `stat-bench`

Runs paired trials against two servers that are already running, alternating
which one is hit first. Each trial is 50 rounds of 32 connections × 10
requests; ten warm-up rounds come first. It prints means and standard
deviations, the paired difference with a 95% confidence interval, the
t-statistic, the p-value, Cohen's d and the number of trials needed for 80%
power.

```
stat-bench 127.0.0.1:3090 127.0.0.1:3091
stat-bench 127.0.0.1:3090 127.0.0.1:3091 50 --path /health
```

The positional arguments are the harrow address, the axum address and the
number of trials (30 by default). `--path` sets the request path (default
`/echo`).

### `update-baseline`

Fills in `mean_ns` and `median_ns` of every entry under `benchmarks` and
`axum_benchmarks` in a baseline TOML file from criterion
`<criterion_path>/new/estimates.json` files, sets the metadata date to
today, then recomputes the traffic-weighted mean, the CPU percentage at
`target_ops_per_sec` and the `PASS` / `FAIL` / `PENDING` verdict, and writes
the file back.

```
update-baseline
update-baseline --baseline benches/baseline.toml --criterion ../target/criterion
```

`--baseline` defaults to `benches/baseline.toml`; `--criterion` defaults to
`../target/criterion` next to the directory that holds `benches/`.

## Library use

```python
from harrowbench.client import BenchClient, run_concurrent
from harrowbench.payloads import json_1kb

async with await BenchClient.connect("127.0.0.1", 3000) as client:
    status, body_len = await client.get("/health")
    status, body_len = await client.get_with_headers(
        "/echo", [("accept-encoding", "gzip")]
    )

# One list of (status, body length) pairs per connection.
results = await run_concurrent("127.0.0.1", 3000, "/health", 32, 10)
```

`BenchClient` reads `Content-Length` and chunked bodies in full and reports
the body length; for other responses it reports 0.

Statistics can be computed on your own samples:

```python
from harrowbench.stats import analyze, format_analysis

result = analyze([1.02, 0.98, 1.01], [1.10, 1.07, 1.12])
print(format_analysis(result))
print(result.p_value, result.significant)
```

## What this package does not do

It contains no HTTP servers and no load tool of its own: `compare-frameworks`
expects the `harrow-server` and `axum-server` binaries and an external
`bench` program, and `stat-bench` expects both servers to be running
already. It does not run criterion benchmarks, measure memory allocations or
profile servers; `update-baseline` only reads criterion output that already
exists.

## Running the tests

```
pip install .[test]
pytest
```