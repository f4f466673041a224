"""Request-rate buckets, queue counters, routing tables and endpoint helpers for scaling HTTP workloads."""

__version__ = "0.1.0"