[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "harrowbench"
version = "0.2.0"
description = "Load drivers, paired statistics, SVG charts and baseline tooling for comparing two HTTP servers"
requires-python = ">=3.11"
dependencies = [
    "tomli-w",
]
keywords = [
    "benchmark",
    "http",
    "load-testing",
    "latency",
    "throughput",
    "statistics",
    "svg",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
stat-bench = "harrowbench.stats:main"
generate-histogram = "harrowbench.histogram:main"
compare-frameworks = "harrowbench.compare:main"
update-baseline = "harrowbench.baseline:main"

[tool.hatch.build.targets.wheel]
packages = ["harrowbench"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
strict = true
