import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from transfer_service.application.delivery import DeliveryPipeline
from transfer_service.application.notifications import NotificationComposer
from transfer_service.domain.exceptions import (
    AttemptsExhaustedError,
    InvalidCodeError,
    VerificationExpiredError,
    VerificationNotFoundError,
)
from transfer_service.domain.models import NotificationType, VerificationRecord
from transfer_service.domain.ports import Clock, RandomSource, RateLimiter, VerificationStore
from transfer_service.infrastructure.locks import KeyedLock
from transfer_service.infrastructure.metrics import VERIFICATION_CHECKS_TOTAL


logger = structlog.get_logger()


@dataclass(frozen=True)
class VerificationPolicy:
    code_length: int = 6
    ttl: timedelta = timedelta(minutes=10)
    max_attempts: int = 3
    issue_window_seconds: float = 3600
    issue_max_requests: int = 3


@dataclass
class IssuedCode:
    expires_at: datetime
    delivery_id: str


class VerificationCodeManager:
    """
    Issues and checks one-time codes.

    Per email: NoCode -> Issued -> Verified | Expired | AttemptsExhausted.
    Re-issuing replaces the live record and discards its attempt count.
    """

    def __init__(
        self,
        store: VerificationStore,
        rate_limiter: RateLimiter,
        pipeline: DeliveryPipeline,
        composer: NotificationComposer,
        clock: Clock,
        random_source: RandomSource,
        policy: VerificationPolicy | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._pipeline = pipeline
        self._composer = composer
        self._clock = clock
        self._random = random_source
        self._policy = policy or VerificationPolicy()
        self._locks = locks or KeyedLock()

    async def issue(self, email: str, purpose: str = "verification", name: str | None = None) -> IssuedCode:
        # same lock as check() so a replacement never races a stale attempt write
        async with self._locks.hold(email):
            await self._rate_limiter.check(
                f"{email}:{purpose}",
                self._policy.issue_window_seconds,
                self._policy.issue_max_requests,
            )
            now = self._clock.now()
            record = VerificationRecord(
                email=email,
                code=self._random.digits(self._policy.code_length),
                expires_at=now + self._policy.ttl,
                purpose=purpose,
                issued_at=now,
            )
            await self._store.set(email, record)

        logger.info("verification_code_issued", email=email, purpose=purpose, expires_at=record.expires_at.isoformat())

        message = self._composer.verification(email, name or email.split("@")[0], record.code)
        result = await self._pipeline.deliver(message, NotificationType.VERIFICATION)
        return IssuedCode(expires_at=record.expires_at, delivery_id=result.delivery_id)

    async def check(self, email: str, code: str) -> None:
        """Consume the live code for ``email`` or raise why it cannot be used."""
        async with self._locks.hold(email):
            record = await self._store.get(email)
            if record is None:
                VERIFICATION_CHECKS_TOTAL.labels(outcome="not_found").inc()
                raise VerificationNotFoundError(email)

            if record.is_expired(self._clock.now()):
                await self._store.delete(email)
                VERIFICATION_CHECKS_TOTAL.labels(outcome="expired").inc()
                logger.info("verification_code_expired", email=email)
                raise VerificationExpiredError(email, record.expires_at)

            if record.attempts >= self._policy.max_attempts:
                await self._store.delete(email)
                VERIFICATION_CHECKS_TOTAL.labels(outcome="exhausted").inc()
                raise AttemptsExhaustedError(email, record.attempts)

            if not hmac.compare_digest(record.code.encode(), str(code).strip().encode()):
                record.attempts += 1
                if record.attempts >= self._policy.max_attempts:
                    await self._store.delete(email)
                    logger.warning("verification_attempts_exhausted", email=email, attempts=record.attempts)
                else:
                    await self._store.set(email, record)
                VERIFICATION_CHECKS_TOTAL.labels(outcome="invalid").inc()
                raise InvalidCodeError(email, self._policy.max_attempts - record.attempts)

            await self._store.delete(email)
            VERIFICATION_CHECKS_TOTAL.labels(outcome="verified").inc()
            logger.info("verification_code_accepted", email=email)
