"""Prometheus metrics definitions and duration measurement decorator.

Histograms time each stage of the daily cycle; counters track what the
stages produced so a scrape shows both latency and volume.
"""

import functools

from prometheus_client import Counter, Histogram

generation_duration_seconds = Histogram(
    "rent_generation_duration_seconds", "Duration of rent obligation generation"
)
late_sweep_duration_seconds = Histogram(
    "rent_late_sweep_duration_seconds", "Duration of the pending-to-late sweep"
)
escalation_duration_seconds = Histogram(
    "rent_escalation_duration_seconds", "Duration of the escalation sweep"
)
daily_cycle_duration_seconds = Histogram(
    "rent_daily_cycle_duration_seconds", "Duration of the full daily rent cycle"
)
dispatch_duration_seconds = Histogram(
    "notification_dispatch_duration_seconds", "Duration of a single notification dispatch"
)

obligations_generated_total = Counter(
    "rent_obligations_generated_total", "Rent obligations created by the generator"
)
obligations_late_total = Counter(
    "rent_obligations_late_total", "Rent obligations transitioned to late"
)
payments_recorded_total = Counter(
    "rent_payments_recorded_total", "Payments applied to obligations", ["status"]
)
escalations_total = Counter(
    "rent_escalations_total", "Escalation events emitted", ["form"]
)
notifications_total = Counter(
    "notifications_total", "Notification dispatch outcomes", ["type", "outcome"]
)
batch_failures_total = Counter(
    "rent_batch_failures_total", "Per-item failures inside daily batches", ["stage"]
)


def measure_duration(metric):
    """Decorator to measure execution duration of a function using the provided Prometheus Histogram metric.

    Args:
        metric (Histogram): Prometheus Histogram to record execution time.

    Returns:
        Callable: A decorator that wraps a function to measure and record its execution duration.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with metric.time():
                return func(*args, **kwargs)

        return wrapper

    return decorator
