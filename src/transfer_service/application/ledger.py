from dataclasses import dataclass
from decimal import Decimal

import structlog

from transfer_service.application.delivery import DeliveryPipeline
from transfer_service.application.notifications import NotificationComposer, ReceiptDetails
from transfer_service.domain.exceptions import (
    AccessDeniedError,
    AccountNotFoundError,
    DeliveryFailedError,
    DomainError,
    EmailNotVerifiedError,
    InsufficientFundsError,
    SameAccountError,
    TransactionNotFoundError,
    ValidationError,
)
from transfer_service.domain.models import (
    Account,
    NotificationType,
    Transaction,
    TransactionDirection,
    TransactionStatus,
    TransactionView,
    parse_amount,
)
from transfer_service.domain.ports import AccountStore, Clock, RandomSource, RateLimiter, TransactionStore
from transfer_service.infrastructure.locks import KeyedLock
from transfer_service.infrastructure.metrics import TRANSFER_REQUESTS_TOTAL, track_transfer_duration
from transfer_service.infrastructure.tasks import TaskSupervisor


logger = structlog.get_logger()


@dataclass(frozen=True)
class LedgerThrottle:
    window_seconds: float = 900
    max_requests: int = 100


@dataclass
class TransferResult:
    transaction: Transaction
    new_balance: Decimal


def normalize_email(email: str | None, field: str = "email") -> str:
    normalized = (email or "").strip().lower()
    local, sep, domain = normalized.partition("@")
    if not local or not sep or "." not in domain or " " in normalized:
        raise ValidationError(f"A valid {field.replace('_', ' ')} is required", field=field)
    return normalized


class LedgerService:
    """
    Applies transfers between accounts and serves per-account history.

    Eligibility checks and the balance mutation run under the locks of both
    parties. Receipts are handed to the delivery pipeline in supervised
    background tasks once the transaction is stored.
    """

    def __init__(
        self,
        accounts: AccountStore,
        transactions: TransactionStore,
        pipeline: DeliveryPipeline,
        composer: NotificationComposer,
        supervisor: TaskSupervisor,
        rate_limiter: RateLimiter,
        clock: Clock,
        random_source: RandomSource,
        throttle: LedgerThrottle | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._accounts = accounts
        self._transactions = transactions
        self._pipeline = pipeline
        self._composer = composer
        self._supervisor = supervisor
        self._rate_limiter = rate_limiter
        self._clock = clock
        self._random = random_source
        self._throttle = throttle or LedgerThrottle()
        self._locks = locks or KeyedLock()

    def _new_transaction_id(self) -> str:
        return f"TX-{self._random.token_hex(6).upper()}"

    async def _eligible_sender(self, email: str) -> Account:
        account = await self._accounts.get(email)
        if account is None:
            raise AccountNotFoundError(email)
        if not account.verified:
            raise EmailNotVerifiedError(email)
        return account

    def _validate(
        self, own_email: str, other_email: str | None, amount: object, other_field: str
    ) -> tuple[str, str, Decimal]:
        value = parse_amount(amount)
        own = normalize_email(own_email)
        other = normalize_email(other_email, field=other_field)
        if own == other:
            raise SameAccountError(own)
        return own, other, value

    @track_transfer_duration
    async def send(
        self,
        sender_email: str,
        recipient_email: str | None,
        amount: object,
        note: str | None = None,
    ) -> TransferResult:
        try:
            result = await self._send(sender_email, recipient_email, amount, note)
        except DomainError as e:
            TRANSFER_REQUESTS_TOTAL.labels(operation="send", status="declined", error_code=e.code).inc()
            raise
        TRANSFER_REQUESTS_TOTAL.labels(operation="send", status="completed", error_code="").inc()
        return result

    async def _send(
        self,
        sender_email: str,
        recipient_email: str | None,
        amount: object,
        note: str | None,
    ) -> TransferResult:
        sender_key, recipient_key, value = self._validate(sender_email, recipient_email, amount, "recipient_email")
        log = logger.bind(sender=sender_key, recipient=recipient_key, amount=str(value))

        await self._rate_limiter.check(
            f"{sender_key}:ledger", self._throttle.window_seconds, self._throttle.max_requests
        )

        async with self._locks.hold(sender_key, recipient_key):
            sender = await self._eligible_sender(sender_key)
            if sender.balance < value:
                log.info("transfer_declined", reason="INSUFFICIENT_FUNDS", available=str(sender.balance))
                raise InsufficientFundsError(sender_key, value, sender.balance)

            recipient = await self._accounts.get(recipient_key)
            transaction = Transaction(
                id=self._new_transaction_id(),
                sender_email=sender_key,
                sender_name=sender.name,
                recipient_email=recipient_key,
                recipient_name=recipient.name if recipient else recipient_key.split("@")[0],
                amount=value,
                note=note or "",
                status=TransactionStatus.COMPLETED,
                created_at=self._clock.now(),
            )

            debited = await self._accounts.transfer(sender, recipient, value)
            await self._transactions.add(transaction)

        log.info(
            "transfer_completed",
            transaction_id=transaction.id,
            sender_balance_after=str(debited.balance),
            recipient_credited=recipient is not None,
        )

        self._spawn_receipt(transaction, TransactionDirection.SENT)
        if recipient is not None:
            self._spawn_receipt(transaction, TransactionDirection.RECEIVED)

        return TransferResult(transaction=transaction, new_balance=debited.balance)

    def _spawn_receipt(self, transaction: Transaction, direction: TransactionDirection) -> None:
        self._supervisor.spawn(
            self._deliver_receipt(transaction, direction),
            name=f"receipt:{transaction.id}:{direction.value}",
        )

    async def _deliver_receipt(self, transaction: Transaction, direction: TransactionDirection) -> None:
        message = self._composer.receipt(ReceiptDetails.from_transaction(transaction, direction))
        try:
            await self._pipeline.deliver(message, NotificationType.RECEIPT)
        except DeliveryFailedError as e:
            # parked for operator replay; the transfer itself stands
            logger.warning(
                "receipt_delivery_failed",
                transaction_id=transaction.id,
                direction=direction.value,
                delivery_id=e.delivery_id,
            )

    async def request(
        self,
        requester_email: str,
        requestee_email: str | None,
        amount: object,
        note: str | None = None,
    ) -> Transaction:
        """Record a one-way money request. Requests stay ``pending``."""
        try:
            requester_key, requestee_key, value = self._validate(
                requester_email, requestee_email, amount, "requestee_email"
            )
            await self._rate_limiter.check(
                f"{requester_key}:ledger", self._throttle.window_seconds, self._throttle.max_requests
            )
            async with self._locks.hold(requester_key):
                requester = await self._eligible_sender(requester_key)
                requestee = await self._accounts.get(requestee_key)
                transaction = Transaction(
                    id=self._new_transaction_id(),
                    sender_email=requester_key,
                    sender_name=requester.name,
                    recipient_email=requestee_key,
                    recipient_name=requestee.name if requestee else requestee_key.split("@")[0],
                    amount=value,
                    note=note or "",
                    status=TransactionStatus.PENDING,
                    created_at=self._clock.now(),
                )
                await self._transactions.add(transaction)
        except DomainError as e:
            TRANSFER_REQUESTS_TOTAL.labels(operation="request", status="declined", error_code=e.code).inc()
            raise

        TRANSFER_REQUESTS_TOTAL.labels(operation="request", status="pending", error_code="").inc()
        logger.info(
            "money_request_created",
            transaction_id=transaction.id,
            requester=requester_key,
            requestee=requestee_key,
            amount=str(value),
        )
        return transaction

    async def history(self, email: str) -> list[TransactionView]:
        key = normalize_email(email)
        # reversed so same-instant transactions list the latest stored first
        views = [t.view_for(key) for t in reversed(await self._transactions.for_account(key))]
        views.sort(key=lambda v: v.timestamp, reverse=True)
        return views

    async def get(self, transaction_id: str, requesting_email: str) -> TransactionView:
        transaction = await self._transactions.get(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        key = normalize_email(requesting_email)
        if not transaction.involves(key):
            logger.warning("transaction_access_denied", transaction_id=transaction_id, email=key)
            raise AccessDeniedError(key, f"transaction {transaction_id}")
        return transaction.view_for(key)

    async def balance(self, email: str) -> Decimal:
        account = await self._accounts.get(normalize_email(email))
        if account is None:
            raise AccountNotFoundError(email)
        return account.balance
