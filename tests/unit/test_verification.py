"""Unit tests for VerificationCodeManager."""

from datetime import timedelta

import pytest

from transfer_service.application.delivery import DeliveryPipeline
from transfer_service.application.notifications import NotificationComposer
from transfer_service.application.verification import VerificationCodeManager, VerificationPolicy
from transfer_service.container import Stores
from transfer_service.domain.exceptions import (
    AttemptsExhaustedError,
    DeliveryFailedError,
    InvalidCodeError,
    RateLimitExceededError,
    VerificationExpiredError,
    VerificationNotFoundError,
)
from transfer_service.domain.models import NotificationType, VerificationRecord
from transfer_service.infrastructure.rate_limiter import InMemoryRateLimiter
from tests.conftest import FakeClock, FakeRandomSource, ScriptedMailer


EMAIL = "alice@example.com"


@pytest.fixture
def manager(
    stores: Stores,
    rate_limiter: InMemoryRateLimiter,
    pipeline: DeliveryPipeline,
    composer: NotificationComposer,
    clock: FakeClock,
    random_source: FakeRandomSource,
) -> VerificationCodeManager:
    return VerificationCodeManager(
        store=stores.verifications,
        rate_limiter=rate_limiter,
        pipeline=pipeline,
        composer=composer,
        clock=clock,
        random_source=random_source,
    )


class TestIssue:
    """Tests for code issuance."""

    @pytest.mark.asyncio
    async def test_issue_stores_record_and_sends_code(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        mailer: ScriptedMailer,
        clock: FakeClock,
    ) -> None:
        issued = await manager.issue(EMAIL, name="Alice")

        assert issued.expires_at == clock.now() + timedelta(minutes=10)
        record = await stores.verifications.get(EMAIL)
        assert record is not None
        assert record.code == "123456"
        assert record.attempts == 0
        assert len(mailer.sent) == 1
        assert "123456" in mailer.sent[0].text
        assert "Hi Alice" in mailer.sent[0].text

        logs = await stores.delivery_logs.recent(10)
        assert logs[0].type is NotificationType.VERIFICATION
        assert logs[0].id == issued.delivery_id

    @pytest.mark.asyncio
    async def test_issue_zero_pads_code(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        random_source: FakeRandomSource,
    ) -> None:
        random_source.codes = ["42"]

        await manager.issue(EMAIL)

        record = await stores.verifications.get(EMAIL)
        assert record is not None
        assert record.code == "000042"

    @pytest.mark.asyncio
    async def test_reissue_replaces_record_and_resets_attempts(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        random_source: FakeRandomSource,
    ) -> None:
        random_source.codes = ["111111", "222222"]
        await manager.issue(EMAIL)
        with pytest.raises(InvalidCodeError):
            await manager.check(EMAIL, "999999")

        await manager.issue(EMAIL)

        record = await stores.verifications.get(EMAIL)
        assert record is not None
        assert record.code == "222222"
        assert record.attempts == 0
        with pytest.raises(InvalidCodeError):
            await manager.check(EMAIL, "111111")

    @pytest.mark.asyncio
    async def test_fourth_issue_within_hour_is_rate_limited(
        self,
        manager: VerificationCodeManager,
        clock: FakeClock,
    ) -> None:
        for _ in range(3):
            await manager.issue(EMAIL)
            clock.advance(minutes=5)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await manager.issue(EMAIL)
        assert exc_info.value.key == f"{EMAIL}:verification"

        # the first issuance falls out of the window
        clock.advance(minutes=46)
        await manager.issue(EMAIL)

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_purpose(self, manager: VerificationCodeManager) -> None:
        for _ in range(3):
            await manager.issue(EMAIL)

        await manager.issue(EMAIL, purpose="password_reset")

    @pytest.mark.asyncio
    async def test_rejected_issue_keeps_live_record(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        random_source: FakeRandomSource,
    ) -> None:
        random_source.codes = ["111111", "222222", "333333", "444444"]
        for _ in range(3):
            await manager.issue(EMAIL)

        with pytest.raises(RateLimitExceededError):
            await manager.issue(EMAIL)

        record = await stores.verifications.get(EMAIL)
        assert record is not None
        assert record.code == "333333"

    @pytest.mark.asyncio
    async def test_undelivered_code_stays_live(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        mailer: ScriptedMailer,
    ) -> None:
        mailer.failures = 3

        with pytest.raises(DeliveryFailedError):
            await manager.issue(EMAIL)

        assert await stores.verifications.get(EMAIL) is not None
        assert len(await stores.pending_retries.values()) == 1


class TestCheck:
    """Tests for code checks."""

    @pytest.mark.asyncio
    async def test_correct_code_consumes_record(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
    ) -> None:
        await manager.issue(EMAIL)

        await manager.check(EMAIL, "123456")

        assert await stores.verifications.get(EMAIL) is None
        with pytest.raises(VerificationNotFoundError):
            await manager.check(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_no_record(self, manager: VerificationCodeManager) -> None:
        with pytest.raises(VerificationNotFoundError):
            await manager.check(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_wrong_code_increments_attempts(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
    ) -> None:
        await manager.issue(EMAIL)

        with pytest.raises(InvalidCodeError) as exc_info:
            await manager.check(EMAIL, "000000")

        assert exc_info.value.attempts_remaining == 2
        record = await stores.verifications.get(EMAIL)
        assert record is not None
        assert record.attempts == 1

    @pytest.mark.asyncio
    async def test_three_wrong_codes_purge_record(self, manager: VerificationCodeManager) -> None:
        """After three misses even the right code reports the record as gone."""
        await manager.issue(EMAIL)
        for _ in range(3):
            with pytest.raises(InvalidCodeError):
                await manager.check(EMAIL, "000000")

        with pytest.raises(VerificationNotFoundError):
            await manager.check(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_expired_code_rejected_even_if_correct(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        clock: FakeClock,
    ) -> None:
        await manager.issue(EMAIL)
        clock.advance(minutes=10, seconds=1)

        with pytest.raises(VerificationExpiredError):
            await manager.check(EMAIL, "123456")

        assert await stores.verifications.get(EMAIL) is None

    @pytest.mark.asyncio
    async def test_code_valid_at_exact_expiry(
        self,
        manager: VerificationCodeManager,
        clock: FakeClock,
    ) -> None:
        await manager.issue(EMAIL)
        clock.advance(minutes=10)

        await manager.check(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_record_at_attempt_ceiling_is_exhausted(
        self,
        manager: VerificationCodeManager,
        stores: Stores,
        clock: FakeClock,
    ) -> None:
        await stores.verifications.set(
            EMAIL,
            VerificationRecord(
                email=EMAIL,
                code="123456",
                expires_at=clock.now() + timedelta(minutes=5),
                attempts=3,
            ),
        )

        with pytest.raises(AttemptsExhaustedError):
            await manager.check(EMAIL, "123456")

        assert await stores.verifications.get(EMAIL) is None

    @pytest.mark.asyncio
    async def test_custom_policy(
        self,
        stores: Stores,
        rate_limiter: InMemoryRateLimiter,
        pipeline: DeliveryPipeline,
        composer: NotificationComposer,
        clock: FakeClock,
        random_source: FakeRandomSource,
    ) -> None:
        manager = VerificationCodeManager(
            store=stores.verifications,
            rate_limiter=rate_limiter,
            pipeline=pipeline,
            composer=composer,
            clock=clock,
            random_source=random_source,
            policy=VerificationPolicy(max_attempts=1, ttl=timedelta(minutes=1)),
        )
        await manager.issue(EMAIL)

        with pytest.raises(InvalidCodeError) as exc_info:
            await manager.check(EMAIL, "000000")

        assert exc_info.value.attempts_remaining == 0
        assert await stores.verifications.get(EMAIL) is None
