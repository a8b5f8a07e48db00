import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram


TRANSFER_REQUESTS_TOTAL = Counter(
    "transfer_requests_total",
    "Total number of ledger operations",
    ["operation", "status", "error_code"],
)

TRANSFER_DURATION_SECONDS = Histogram(
    "transfer_duration_seconds",
    "Ledger send processing duration",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

RATE_LIMIT_EXCEEDED_TOTAL = Counter(
    "rate_limit_exceeded_total",
    "Total number of rate limited requests",
    ["identifier_type"],
)

VERIFICATION_CHECKS_TOTAL = Counter(
    "verification_checks_total",
    "Verification code checks by outcome",
    ["outcome"],
)

DELIVERY_ATTEMPTS_TOTAL = Counter(
    "delivery_attempts_total",
    "Individual mailer send attempts",
    ["notification_type", "outcome"],
)

DELIVERIES_TOTAL = Counter(
    "deliveries_total",
    "Deliveries that reached a terminal outcome",
    ["notification_type", "status"],
)

DELIVERY_PENDING_RETRIES = Gauge(
    "delivery_pending_retries",
    "Permanently failed deliveries awaiting manual replay",
)

BACKGROUND_TASK_FAILURES = Counter(
    "background_task_failures_total",
    "Supervised background tasks that raised",
    ["task"],
)


P = ParamSpec("P")
R = TypeVar("R")


def track_transfer_duration(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration = time.perf_counter() - start
            TRANSFER_DURATION_SECONDS.observe(duration)

    return wrapper
