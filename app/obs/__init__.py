"""Observability package.

Structured JSON logging, in-process counters/histograms/gauges, request-scoped
context and the ASGI timing middleware.
"""

__all__ = [
    "middleware",
    "metrics",
    "logger",
    "context",
]
