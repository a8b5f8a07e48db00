from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

import structlog

from transfer_service.application.accounts import AccountService, RegistrationResult
from transfer_service.application.admin import (
    AdminService,
    DeliveryLogPage,
    FailedDeliveries,
    StaticAdminPolicy,
)
from transfer_service.application.delivery import (
    DeliveryPipeline,
    DeliveryResult,
    DeliveryStats,
    ExponentialBackoff,
)
from transfer_service.application.ledger import LedgerService, LedgerThrottle, TransferResult
from transfer_service.application.notifications import NotificationComposer
from transfer_service.application.verification import (
    IssuedCode,
    VerificationCodeManager,
    VerificationPolicy,
)
from transfer_service.config import Settings
from transfer_service.domain.models import Account, EmailAddress, Transaction, TransactionView
from transfer_service.domain.ports import AdminPolicy, Clock, Mailer, RandomSource, RateLimiter
from transfer_service.infrastructure.clock import SecretsRandomSource, SystemClock
from transfer_service.infrastructure.locks import KeyedLock
from transfer_service.infrastructure.mailers import ConsoleMailer, SendGridMailer
from transfer_service.infrastructure.rate_limiter import InMemoryRateLimiter, SlidingWindowRateLimiter
from transfer_service.infrastructure.redis_client import RedisClient
from transfer_service.infrastructure.repositories import (
    AccountRepository,
    DeliveryLogRepository,
    PendingRetryRepository,
    TransactionRepository,
    VerificationRepository,
)
from transfer_service.infrastructure.tasks import TaskSupervisor


logger = structlog.get_logger()


@dataclass
class Stores:
    accounts: AccountRepository = field(default_factory=AccountRepository)
    verifications: VerificationRepository = field(default_factory=VerificationRepository)
    transactions: TransactionRepository = field(default_factory=TransactionRepository)
    delivery_logs: DeliveryLogRepository = field(default_factory=DeliveryLogRepository)
    pending_retries: PendingRetryRepository = field(default_factory=PendingRetryRepository)


class Container:
    """
    Wires settings, ports and services together.

    Exposes the service operations as plain async methods; transport layers
    call these after authenticating the caller.
    """

    def __init__(
        self,
        settings: Settings,
        mailer: Mailer,
        rate_limiter: RateLimiter,
        clock: Clock | None = None,
        random_source: RandomSource | None = None,
        admin_policy: AdminPolicy | None = None,
        stores: Stores | None = None,
        pipeline: DeliveryPipeline | None = None,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClock()
        self.random_source = random_source or SecretsRandomSource()
        self.stores = stores or Stores()
        self.supervisor = TaskSupervisor()
        self.mailer = mailer
        self.rate_limiter = rate_limiter
        self._redis: RedisClient | None = None

        locks = KeyedLock()
        composer = NotificationComposer(
            sender=EmailAddress(settings.mail_from_email, settings.mail_from_name),
            brand=settings.mail_from_name,
            code_ttl_minutes=settings.verification_ttl_seconds // 60,
        )
        self.pipeline = pipeline or DeliveryPipeline(
            mailer=mailer,
            logs=self.stores.delivery_logs,
            pending=self.stores.pending_retries,
            clock=self.clock,
            backoff=ExponentialBackoff(
                base_delay=settings.delivery_base_delay_seconds,
                multiplier=settings.delivery_backoff_multiplier,
            ),
            max_attempts=settings.delivery_max_attempts,
            send_timeout=settings.delivery_send_timeout_seconds,
            stats_window=settings.delivery_stats_window,
        )
        self.verification = VerificationCodeManager(
            store=self.stores.verifications,
            rate_limiter=rate_limiter,
            pipeline=self.pipeline,
            composer=composer,
            clock=self.clock,
            random_source=self.random_source,
            policy=VerificationPolicy(
                code_length=settings.verification_code_length,
                ttl=timedelta(seconds=settings.verification_ttl_seconds),
                max_attempts=settings.verification_max_attempts,
                issue_window_seconds=settings.verification_issue_window_seconds,
                issue_max_requests=settings.verification_issue_max_requests,
            ),
            locks=locks,
        )
        self.ledger = LedgerService(
            accounts=self.stores.accounts,
            transactions=self.stores.transactions,
            pipeline=self.pipeline,
            composer=composer,
            supervisor=self.supervisor,
            rate_limiter=rate_limiter,
            clock=self.clock,
            random_source=self.random_source,
            throttle=LedgerThrottle(
                window_seconds=settings.ledger_rate_limit_window_seconds,
                max_requests=settings.ledger_rate_limit_max_requests,
            ),
            locks=locks,
        )
        self.accounts = AccountService(
            accounts=self.stores.accounts,
            verification=self.verification,
            pipeline=self.pipeline,
            composer=composer,
            supervisor=self.supervisor,
            clock=self.clock,
            locks=locks,
        )
        self.admin = AdminService(
            pipeline=self.pipeline,
            policy=admin_policy or StaticAdminPolicy(settings.admin_email_set),
            composer=composer,
        )

    @classmethod
    async def from_settings(cls, settings: Settings) -> "Container":
        """Build a container with the adapters selected in settings."""
        clock = SystemClock()

        mailer: Mailer
        if settings.mailer_backend == "sendgrid":
            mailer = SendGridMailer(api_key=settings.sendgrid_api_key, api_url=settings.sendgrid_api_url)
        else:
            mailer = ConsoleMailer()

        redis_client: RedisClient | None = None
        rate_limiter: RateLimiter
        if settings.rate_limit_backend == "redis":
            redis_client = RedisClient(settings.redis_url)
            await redis_client.connect()
            rate_limiter = SlidingWindowRateLimiter(redis_client.client, clock=clock)
        else:
            rate_limiter = InMemoryRateLimiter(clock=clock)

        container = cls(settings=settings, mailer=mailer, rate_limiter=rate_limiter, clock=clock)
        container._redis = redis_client
        logger.info(
            "container_started",
            mailer_backend=settings.mailer_backend,
            rate_limit_backend=settings.rate_limit_backend,
            delivery_max_attempts=settings.delivery_max_attempts,
        )
        return container

    async def close(self) -> None:
        """Wait for background notifications, then release connections."""
        await self.supervisor.drain()
        if isinstance(self.mailer, SendGridMailer):
            await self.mailer.close()
        if self._redis is not None:
            await self._redis.close()
        logger.info("container_stopped")

    async def register_account(self, name: str, email: str, phone: str | None = None) -> RegistrationResult:
        return await self.accounts.register(name, email, phone)

    async def issue_verification(self, email: str) -> IssuedCode:
        return await self.accounts.resend_verification(email)

    async def check_verification(self, email: str, code: str) -> Account:
        return await self.accounts.verify(email, code)

    async def ledger_send(
        self, sender_email: str, recipient_email: str, amount: object, note: str | None = None
    ) -> TransferResult:
        return await self.ledger.send(sender_email, recipient_email, amount, note)

    async def ledger_request(
        self, requester_email: str, requestee_email: str, amount: object, note: str | None = None
    ) -> Transaction:
        return await self.ledger.request(requester_email, requestee_email, amount, note)

    async def ledger_history(self, email: str) -> list[TransactionView]:
        return await self.ledger.history(email)

    async def ledger_get(self, transaction_id: str, requesting_email: str) -> TransactionView:
        return await self.ledger.get(transaction_id, requesting_email)

    async def account_balance(self, email: str) -> Decimal:
        return await self.ledger.balance(email)

    async def delivery_retry(self, actor_email: str, delivery_id: str) -> DeliveryResult:
        return await self.admin.delivery_retry(actor_email, delivery_id)

    async def delivery_logs(self, actor_email: str, limit: int = 100) -> DeliveryLogPage:
        return await self.admin.delivery_logs(actor_email, limit)

    async def delivery_failed(self, actor_email: str) -> FailedDeliveries:
        return await self.admin.delivery_failed(actor_email)

    async def delivery_stats(self, actor_email: str) -> DeliveryStats:
        return await self.admin.delivery_stats(actor_email)
