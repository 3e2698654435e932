"""Shard-based ACH file handling: cutoff scheduling, merge storage, cleanup and output formatting."""

__version__ = "0.1.0"