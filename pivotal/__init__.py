"""pivotal - fractal pivot signal engine and portfolio backtester."""

__version__ = "0.1.0"
