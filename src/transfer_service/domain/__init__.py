"""Domain layer - business entities, rules and ports."""

from transfer_service.domain.exceptions import (
    AccessDeniedError,
    AccountAlreadyExistsError,
    AccountAlreadyVerifiedError,
    AccountNotFoundError,
    AdminAccessRequiredError,
    AttemptsExhaustedError,
    DeliveryFailedError,
    DomainError,
    EmailNotVerifiedError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidCodeError,
    NotFoundError,
    OptimisticLockError,
    PendingRetryNotFoundError,
    PolicyViolationError,
    RateLimitExceededError,
    SameAccountError,
    StateConflictError,
    TransactionNotFoundError,
    ValidationError,
    VerificationExpiredError,
    VerificationNotFoundError,
)
from transfer_service.domain.models import (
    Account,
    DeliveryAttemptError,
    DeliveryAttemptLog,
    DeliveryStatus,
    EmailAddress,
    EmailMessage,
    NotificationType,
    PendingRetryEntry,
    Transaction,
    TransactionDirection,
    TransactionStatus,
    TransactionView,
    VerificationRecord,
)


__all__ = [
    "AccessDeniedError",
    "Account",
    "AccountAlreadyExistsError",
    "AccountAlreadyVerifiedError",
    "AccountNotFoundError",
    "AdminAccessRequiredError",
    "AttemptsExhaustedError",
    "DeliveryAttemptError",
    "DeliveryAttemptLog",
    "DeliveryFailedError",
    "DeliveryStatus",
    "DomainError",
    "EmailAddress",
    "EmailMessage",
    "EmailNotVerifiedError",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidCodeError",
    "NotFoundError",
    "NotificationType",
    "OptimisticLockError",
    "PendingRetryEntry",
    "PendingRetryNotFoundError",
    "PolicyViolationError",
    "RateLimitExceededError",
    "SameAccountError",
    "StateConflictError",
    "Transaction",
    "TransactionDirection",
    "TransactionNotFoundError",
    "TransactionStatus",
    "TransactionView",
    "ValidationError",
    "VerificationExpiredError",
    "VerificationNotFoundError",
    "VerificationRecord",
]
