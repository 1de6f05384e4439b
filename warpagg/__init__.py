"""Aggregation, live statistics and text reports for S3 benchmark operations."""

__version__ = "0.1.0"
__all__ = ["units", "ops", "mapasslice", "ttfb", "throughput", "requests", "live", "report"]