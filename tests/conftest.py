"""Shared pytest fixtures for transfer service tests."""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from transfer_service.application.delivery import DeliveryPipeline, ExponentialBackoff
from transfer_service.application.notifications import NotificationComposer
from transfer_service.config import Settings
from transfer_service.container import Container, Stores
from transfer_service.domain.models import Account, EmailAddress, EmailMessage
from transfer_service.infrastructure.rate_limiter import InMemoryRateLimiter
from transfer_service.infrastructure.repositories.accounts import AccountRepository


START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class FakeRandomSource:
    """Hands out queued codes, then a fixed default; ids count upwards."""

    def __init__(self, codes: list[str] | None = None, default_code: str = "123456") -> None:
        self.codes = list(codes or [])
        self.default_code = default_code
        self._counter = 0

    def digits(self, length: int) -> str:
        code = self.codes.pop(0) if self.codes else self.default_code
        return code.zfill(length)

    def token_hex(self, nbytes: int) -> str:
        self._counter += 1
        return f"{self._counter:0{nbytes * 2}x}"


class TransportError(Exception):
    pass


class ScriptedMailer:
    """Fails the next ``failures`` sends, then accepts everything."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransportError(f"transport unavailable (call {self.calls})")
        self.sent.append(message)

    def sent_to(self, email: str) -> list[EmailMessage]:
        return [m for m in self.sent if m.to == email]


class RecordingSleep:
    """Stands in for asyncio.sleep: records delays and moves the clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds=seconds)


class YieldingAccountRepository(AccountRepository):
    """Suspends on every call so concurrent tasks interleave as they would against a database."""

    async def get(self, email: str) -> Account | None:
        await asyncio.sleep(0)
        return await super().get(email)

    async def has(self, email: str) -> bool:
        await asyncio.sleep(0)
        return await super().has(email)

    async def add(self, account: Account) -> None:
        await asyncio.sleep(0)
        await super().add(account)

    async def transfer(self, sender: Account, recipient: Account | None, amount: Decimal) -> Account:
        await asyncio.sleep(0)
        return await super().transfer(sender, recipient, amount)

    async def mark_verified(self, email: str) -> Account:
        await asyncio.sleep(0)
        return await super().mark_verified(email)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def random_source() -> FakeRandomSource:
    return FakeRandomSource()


@pytest.fixture
def mailer() -> ScriptedMailer:
    return ScriptedMailer()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def stores() -> Stores:
    return Stores()


@pytest.fixture
def rate_limiter(clock: FakeClock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(clock=clock)


@pytest.fixture
def composer() -> NotificationComposer:
    return NotificationComposer(sender=EmailAddress("noreply@example.com", "Zelle"))


@pytest.fixture
def pipeline(
    mailer: ScriptedMailer,
    stores: Stores,
    clock: FakeClock,
    sleep: RecordingSleep,
) -> DeliveryPipeline:
    return DeliveryPipeline(
        mailer=mailer,
        logs=stores.delivery_logs,
        pending=stores.pending_retries,
        clock=clock,
        backoff=ExponentialBackoff(base_delay=2.0, multiplier=4.0),
        sleep=sleep,
        max_attempts=3,
        send_timeout=None,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, admin_emails="ops@example.com")


@pytest.fixture
def container(
    settings: Settings,
    mailer: ScriptedMailer,
    rate_limiter: InMemoryRateLimiter,
    clock: FakeClock,
    random_source: FakeRandomSource,
    stores: Stores,
    pipeline: DeliveryPipeline,
) -> Container:
    return Container(
        settings=settings,
        mailer=mailer,
        rate_limiter=rate_limiter,
        clock=clock,
        random_source=random_source,
        stores=stores,
        pipeline=pipeline,
    )


async def seed_account(
    stores: Stores,
    email: str,
    name: str = "Test User",
    balance: str = "0.00",
    verified: bool = True,
) -> Account:
    """Helper to store an account directly, bypassing registration."""
    account = Account(email=email, name=name, verified=verified, balance=Decimal(balance), created_at=START)
    await stores.accounts.add(account)
    return account
