import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog
from ulid import ULID

from transfer_service.domain.exceptions import DeliveryFailedError, PendingRetryNotFoundError
from transfer_service.domain.models import (
    DeliveryAttemptError,
    DeliveryAttemptLog,
    DeliveryStatus,
    EmailMessage,
    NotificationType,
    PendingRetryEntry,
)
from transfer_service.domain.ports import Clock, DeliveryLogStore, Mailer, PendingRetryStore
from transfer_service.infrastructure.clock import SystemClock
from transfer_service.infrastructure.metrics import (
    DELIVERIES_TOTAL,
    DELIVERY_ATTEMPTS_TOTAL,
    DELIVERY_PENDING_RETRIES,
)


logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    Deterministic delay schedule between delivery attempts.

    The first attempt goes out immediately; attempt ``n > 1`` waits
    ``base_delay * multiplier ** (n - 2)`` seconds. Defaults give 0, 2, 8.
    """

    base_delay: float = 2.0
    multiplier: float = 4.0

    def delay_for(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError(f"Attempts are numbered from 1, got {attempt}")
        if attempt == 1:
            return 0.0
        return self.base_delay * self.multiplier ** (attempt - 2)

    def schedule(self, max_attempts: int) -> list[float]:
        return [self.delay_for(attempt) for attempt in range(1, max_attempts + 1)]


@dataclass
class DeliveryResult:
    delivery_id: str
    attempts: int


@dataclass
class TypeStats:
    total: int = 0
    successful: int = 0
    failed: int = 0


@dataclass
class DeliveryStats:
    total: int
    successful: int
    failed: int
    pending_retries: int
    by_type: dict[str, TypeStats] = field(default_factory=dict)
    recent_activity: list[DeliveryAttemptLog] = field(default_factory=list)


class DeliveryPipeline:
    """
    Sends notifications through the mailer with bounded retries.

    Every delivery gets a log that records each failed attempt. Logs are
    appended to the log store once terminal. Messages that exhaust their
    attempts are parked as pending retry entries for operator replay.
    """

    RECENT_ACTIVITY_SIZE = 10

    def __init__(
        self,
        mailer: Mailer,
        logs: DeliveryLogStore,
        pending: PendingRetryStore,
        clock: Clock | None = None,
        backoff: ExponentialBackoff | None = None,
        sleep: Sleep = asyncio.sleep,
        max_attempts: int = 3,
        send_timeout: float | None = 30.0,
        stats_window: int = 1000,
        id_factory: Callable[[], str] = lambda: str(ULID()),
    ) -> None:
        self._mailer = mailer
        self._logs = logs
        self._pending = pending
        self._clock = clock or SystemClock()
        self._backoff = backoff or ExponentialBackoff()
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._send_timeout = send_timeout
        self._stats_window = stats_window
        self._new_id = id_factory

    @property
    def backoff(self) -> ExponentialBackoff:
        return self._backoff

    async def deliver(
        self,
        message: EmailMessage,
        notification_type: NotificationType,
        max_attempts: int | None = None,
    ) -> DeliveryResult:
        if max_attempts is None:
            max_attempts = self._max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        log = DeliveryAttemptLog(
            id=self._new_id(),
            to=message.to,
            type=notification_type,
            created_at=self._clock.now(),
        )
        bound = logger.bind(delivery_id=log.id, to=message.to, notification_type=notification_type.value)

        for attempt in range(1, max_attempts + 1):
            log.attempts = attempt
            delay = self._backoff.delay_for(attempt)
            if delay > 0:
                bound.info("delivery_retry_scheduled", attempt=attempt, delay_seconds=delay)
                await self._sleep(delay)

            try:
                await self._send(message)
            except Exception as e:
                error = str(e) or type(e).__name__
                log.errors.append(DeliveryAttemptError(attempt=attempt, error=error, timestamp=self._clock.now()))
                DELIVERY_ATTEMPTS_TOTAL.labels(notification_type=notification_type.value, outcome="failure").inc()
                bound.warning("delivery_attempt_failed", attempt=attempt, max_attempts=max_attempts, error=error)
                if attempt == max_attempts:
                    await self._park(log, message)
                    raise DeliveryFailedError(log.id, attempt, error) from e
                continue

            DELIVERY_ATTEMPTS_TOTAL.labels(notification_type=notification_type.value, outcome="success").inc()
            log.status = DeliveryStatus.SUCCESS
            log.completed_at = self._clock.now()
            await self._logs.append(log)
            await self._pending.delete(log.id)
            DELIVERIES_TOTAL.labels(notification_type=notification_type.value, status="success").inc()
            bound.info("delivery_succeeded", attempts=attempt)
            return DeliveryResult(delivery_id=log.id, attempts=attempt)

        raise AssertionError("the final attempt either returns or raises")

    async def _send(self, message: EmailMessage) -> None:
        if self._send_timeout is None:
            await self._mailer.send(message)
            return
        try:
            async with asyncio.timeout(self._send_timeout):
                await self._mailer.send(message)
        except TimeoutError as e:
            raise TimeoutError(f"Mailer did not respond within {self._send_timeout:g}s") from e

    async def _park(self, log: DeliveryAttemptLog, message: EmailMessage) -> None:
        log.status = DeliveryStatus.FAILED
        log.completed_at = self._clock.now()
        await self._logs.append(log)
        await self._pending.set(log.id, PendingRetryEntry(id=log.id, message=message, type=log.type, log=log))
        DELIVERIES_TOTAL.labels(notification_type=log.type.value, status="failed").inc()
        DELIVERY_PENDING_RETRIES.inc()
        logger.error(
            "delivery_permanently_failed",
            delivery_id=log.id,
            to=log.to,
            notification_type=log.type.value,
            attempts=log.attempts,
        )

    async def retry(self, delivery_id: str) -> DeliveryResult:
        """Replay a parked message as a fresh delivery with a new id."""
        entry = await self._pending.get(delivery_id)
        if entry is None:
            raise PendingRetryNotFoundError(delivery_id)

        logger.info("delivery_manual_retry", delivery_id=delivery_id, to=entry.message.to)
        try:
            result = await self.deliver(entry.message, entry.type)
        except DeliveryFailedError as e:
            # the replay parked its own entry, which supersedes this one
            await self._drop_pending(delivery_id)
            logger.warning("delivery_manual_retry_failed", delivery_id=delivery_id, replacement_id=e.delivery_id)
            raise
        await self._drop_pending(delivery_id)
        logger.info("delivery_manual_retry_succeeded", delivery_id=delivery_id, replacement_id=result.delivery_id)
        return result

    async def _drop_pending(self, delivery_id: str) -> None:
        if await self._pending.get(delivery_id) is not None:
            await self._pending.delete(delivery_id)
            DELIVERY_PENDING_RETRIES.dec()

    async def logs(self, limit: int = 100) -> list[DeliveryAttemptLog]:
        return await self._logs.recent(limit)

    async def pending(self) -> list[PendingRetryEntry]:
        return await self._pending.values()

    async def stats(self) -> DeliveryStats:
        logs = await self._logs.recent(self._stats_window)
        pending = await self._pending.values()

        by_type: dict[str, TypeStats] = {}
        for log in logs:
            bucket = by_type.setdefault(log.type.value, TypeStats())
            bucket.total += 1
            if log.success:
                bucket.successful += 1
            else:
                bucket.failed += 1

        successful = sum(1 for log in logs if log.success)
        return DeliveryStats(
            total=len(logs),
            successful=successful,
            failed=len(logs) - successful,
            pending_retries=len(pending),
            by_type=by_type,
            recent_activity=logs[: self.RECENT_ACTIVITY_SIZE],
        )
