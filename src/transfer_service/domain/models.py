from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from transfer_service.domain.exceptions import InvalidAmountError


CENT = Decimal("0.01")


def parse_amount(value: object) -> Decimal:
    """Coerce user input into a positive two-decimal amount.

    Floats go through ``str`` so that 10.10 stays 10.10 instead of its
    binary approximation.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(value, "amount is required")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(value, "not a number") from None
    if not amount.is_finite():
        raise InvalidAmountError(value, "not a number")
    if amount <= 0:
        raise InvalidAmountError(value, "must be greater than 0")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidAmountError(value, "too large") from None
    if amount != quantized:
        raise InvalidAmountError(value, "at most two decimal places")
    return quantized


def format_amount(amount: Decimal) -> str:
    return f"${amount.quantize(CENT)}"


class TransactionStatus(Enum):
    COMPLETED = "completed"
    PENDING = "pending"


class TransactionDirection(Enum):
    SENT = "sent"
    RECEIVED = "received"


class NotificationType(Enum):
    VERIFICATION = "verification"
    RECEIPT = "receipt"
    WELCOME = "welcome"


class DeliveryStatus(Enum):
    IN_FLIGHT = "in_flight"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class Account:
    email: str
    name: str
    phone: str | None = None
    verified: bool = False
    balance: Decimal = Decimal("0.00")
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class VerificationRecord:
    email: str
    code: str
    expires_at: datetime
    purpose: str = "verification"
    attempts: int = 0
    issued_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class Transaction:
    id: str
    sender_email: str
    sender_name: str
    recipient_email: str
    recipient_name: str
    amount: Decimal
    status: TransactionStatus
    note: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def involves(self, email: str) -> bool:
        return email in (self.sender_email, self.recipient_email)

    def view_for(self, email: str) -> "TransactionView":
        """Project the record from one party's side."""
        received = self.recipient_email == email and self.sender_email != email
        return TransactionView(
            id=self.id,
            type=TransactionDirection.RECEIVED if received else TransactionDirection.SENT,
            counterparty_name=self.sender_name if received else self.recipient_name,
            counterparty_email=self.sender_email if received else self.recipient_email,
            amount=self.amount,
            note=self.note,
            timestamp=self.created_at,
            status=self.status,
        )


@dataclass(frozen=True)
class TransactionView:
    id: str
    type: TransactionDirection
    counterparty_name: str
    counterparty_email: str
    amount: Decimal
    note: str
    timestamp: datetime
    status: TransactionStatus


@dataclass(frozen=True)
class EmailAddress:
    email: str
    name: str | None = None


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    sender: EmailAddress


@dataclass(frozen=True)
class DeliveryAttemptError:
    attempt: int
    error: str
    timestamp: datetime


@dataclass
class DeliveryAttemptLog:
    id: str
    to: str
    type: NotificationType
    created_at: datetime
    attempts: int = 0
    errors: list[DeliveryAttemptError] = field(default_factory=list)
    status: DeliveryStatus = DeliveryStatus.IN_FLIGHT
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status is DeliveryStatus.SUCCESS

    @property
    def is_terminal(self) -> bool:
        return self.status is not DeliveryStatus.IN_FLIGHT


@dataclass(frozen=True)
class PendingRetryEntry:
    id: str
    message: EmailMessage
    type: NotificationType
    log: DeliveryAttemptLog
