"""Keep-alive HTTP load drivers, paired statistics, SVG charts and baseline tools for benchmarks."""

__version__ = "0.2.0"