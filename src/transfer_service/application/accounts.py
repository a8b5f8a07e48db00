from dataclasses import dataclass
from datetime import datetime

import structlog

from transfer_service.application.delivery import DeliveryPipeline
from transfer_service.application.ledger import normalize_email
from transfer_service.application.notifications import NotificationComposer
from transfer_service.application.verification import IssuedCode, VerificationCodeManager
from transfer_service.domain.exceptions import (
    AccountAlreadyExistsError,
    AccountAlreadyVerifiedError,
    AccountNotFoundError,
    DeliveryFailedError,
    ValidationError,
)
from transfer_service.domain.models import Account, NotificationType
from transfer_service.domain.ports import AccountStore, Clock
from transfer_service.infrastructure.locks import KeyedLock
from transfer_service.infrastructure.tasks import TaskSupervisor


logger = structlog.get_logger()


@dataclass
class RegistrationResult:
    account: Account
    verification_sent: bool
    expires_at: datetime | None = None


class AccountService:
    """Registration and email verification of accounts."""

    def __init__(
        self,
        accounts: AccountStore,
        verification: VerificationCodeManager,
        pipeline: DeliveryPipeline,
        composer: NotificationComposer,
        supervisor: TaskSupervisor,
        clock: Clock,
        locks: KeyedLock | None = None,
    ) -> None:
        self._accounts = accounts
        self._verification = verification
        self._pipeline = pipeline
        self._composer = composer
        self._supervisor = supervisor
        self._clock = clock
        self._locks = locks or KeyedLock()

    async def register(self, name: str | None, email: str | None, phone: str | None = None) -> RegistrationResult:
        display_name = (name or "").strip()
        if not display_name:
            raise ValidationError("Name is required", field="name")
        key = normalize_email(email)

        if await self._accounts.has(key):
            raise AccountAlreadyExistsError(key)

        account = Account(email=key, name=display_name, phone=phone, created_at=self._clock.now())
        await self._accounts.add(account)
        logger.info("account_registered", email=key)

        try:
            issued = await self._verification.issue(key, name=display_name)
        except DeliveryFailedError as e:
            logger.warning("registration_code_undelivered", email=key, delivery_id=e.delivery_id)
            return RegistrationResult(account=account, verification_sent=False)

        return RegistrationResult(account=account, verification_sent=True, expires_at=issued.expires_at)

    async def _unverified(self, email: str | None) -> Account:
        key = normalize_email(email)
        account = await self._accounts.get(key)
        if account is None:
            raise AccountNotFoundError(key)
        if account.verified:
            raise AccountAlreadyVerifiedError(key)
        return account

    async def verify(self, email: str | None, code: str | None) -> Account:
        if not code:
            raise ValidationError("Verification code is required", field="code")
        account = await self._unverified(email)

        await self._verification.check(account.email, code)
        # bumps the version the ledger compares against
        async with self._locks.hold(account.email):
            verified = await self._accounts.mark_verified(account.email)
        logger.info("account_verified", email=verified.email)

        self._supervisor.spawn(self._send_welcome(verified), name=f"welcome:{verified.email}")
        return verified

    async def _send_welcome(self, account: Account) -> None:
        try:
            await self._pipeline.deliver(self._composer.welcome(account.email, account.name), NotificationType.WELCOME)
        except DeliveryFailedError as e:
            logger.warning("welcome_delivery_failed", email=account.email, delivery_id=e.delivery_id)

    async def resend_verification(self, email: str | None) -> IssuedCode:
        account = await self._unverified(email)
        return await self._verification.issue(account.email, name=account.name)

    async def profile(self, email: str | None) -> Account:
        key = normalize_email(email)
        account = await self._accounts.get(key)
        if account is None:
            raise AccountNotFoundError(key)
        return account
