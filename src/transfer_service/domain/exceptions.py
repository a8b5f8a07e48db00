from datetime import datetime
from decimal import Decimal


class DomainError(Exception):
    """Base exception for domain errors."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Raised for malformed or missing input. Never retried."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when an account, transaction or record does not exist."""

    code = "NOT_FOUND"


class StateConflictError(DomainError):
    """Raised when the target is in a state that forbids the operation."""

    code = "STATE_CONFLICT"


class PolicyViolationError(DomainError):
    """Raised when a business rule refuses the operation."""

    code = "POLICY_VIOLATION"


class InvalidAmountError(ValidationError):
    """Raised when transfer amount is invalid."""

    code = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str) -> None:
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}", field="amount")


class SameAccountError(ValidationError):
    """Raised when sender and recipient are the same account."""

    code = "SAME_ACCOUNT"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Cannot transfer to the same account: {email}", field="recipient_email")


class AccountNotFoundError(NotFoundError):
    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Account {email} not found")


class TransactionNotFoundError(NotFoundError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class VerificationNotFoundError(NotFoundError):
    code = "VERIFICATION_NOT_FOUND"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"No verification code found for {email}. Please request a new one.")


class PendingRetryNotFoundError(NotFoundError):
    code = "PENDING_RETRY_NOT_FOUND"

    def __init__(self, delivery_id: str) -> None:
        self.delivery_id = delivery_id
        super().__init__(f"Failed delivery {delivery_id} not found")


class AccountAlreadyExistsError(StateConflictError):
    code = "ACCOUNT_EXISTS"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Account {email} already exists")


class AccountAlreadyVerifiedError(StateConflictError):
    code = "ALREADY_VERIFIED"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Account {email} is already verified")


class OptimisticLockError(StateConflictError):
    """Raised when optimistic locking conflict occurs."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"Optimistic lock failed for {entity} {entity_id}")


class EmailNotVerifiedError(PolicyViolationError):
    """Raised when an unverified account tries to move money."""

    code = "EMAIL_NOT_VERIFIED"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Account {email} must verify its email address before transacting")


class InsufficientFundsError(PolicyViolationError):
    """Raised when account has insufficient funds for a transaction."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, email: str, required: Decimal, available: Decimal) -> None:
        self.email = email
        self.required = required
        self.available = available
        super().__init__(f"Account {email} has insufficient funds: required {required}, available {available}")


class AccessDeniedError(PolicyViolationError):
    code = "ACCESS_DENIED"

    def __init__(self, email: str, resource: str) -> None:
        self.email = email
        self.resource = resource
        super().__init__(f"Account {email} may not access {resource}")


class AdminAccessRequiredError(PolicyViolationError):
    code = "ADMIN_REQUIRED"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Admin access required, {email} is not an operator")


class VerificationExpiredError(PolicyViolationError):
    code = "CODE_EXPIRED"

    def __init__(self, email: str, expired_at: datetime) -> None:
        self.email = email
        self.expired_at = expired_at
        super().__init__("Verification code has expired. Please request a new one.")


class AttemptsExhaustedError(PolicyViolationError):
    code = "ATTEMPTS_EXHAUSTED"

    def __init__(self, email: str, attempts: int) -> None:
        self.email = email
        self.attempts = attempts
        super().__init__("Too many failed attempts. Please request a new code.")


class InvalidCodeError(PolicyViolationError):
    code = "INVALID_CODE"

    def __init__(self, email: str, attempts_remaining: int) -> None:
        self.email = email
        self.attempts_remaining = attempts_remaining
        super().__init__("Invalid verification code.")


class RateLimitExceededError(DomainError):
    """Raised when a sliding window has no free slot for the key."""

    code = "RATE_LIMITED"

    def __init__(self, key: str, max_requests: int, window_seconds: float) -> None:
        self.key = key
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        super().__init__(f"Rate limit exceeded for {key}: {max_requests} per {window_seconds:g}s")


class DeliveryFailedError(DomainError):
    """Raised when a notification exhausted its delivery attempts."""

    code = "DELIVERY_FAILED"

    def __init__(self, delivery_id: str, attempts: int, last_error: str) -> None:
        self.delivery_id = delivery_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed to deliver {delivery_id} after {attempts} attempts: {last_error}")
