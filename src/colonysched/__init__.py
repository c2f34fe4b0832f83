"""Task scheduling and collaboration engine for colony simulations."""

__version__ = "0.1.0"
