"""Prometheus metrics definitions for Homestock."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "homestock_http_requests_total",
    "Total number of HTTP requests processed by the Homestock API",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "homestock_http_request_duration_seconds",
    "Latency of HTTP requests processed by the Homestock API",
    ["method", "path"],
)

RECONCILIATIONS = Counter(
    "homestock_reconciliations_total",
    "Shopping list reconciliation attempts by outcome",
    ["outcome"],
)

RECONCILIATION_FAILURES = Counter(
    "homestock_reconciliation_failures_total",
    "Reconciliation merges rolled back after an error",
)

SWEEP_RUNS = Counter(
    "homestock_reconcile_sweeps_total",
    "Number of reconciliation sweep iterations executed",
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "RECONCILIATIONS",
    "RECONCILIATION_FAILURES",
    "SWEEP_RUNS",
]
