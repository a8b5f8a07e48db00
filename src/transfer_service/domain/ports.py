"""
Port interfaces - Protocol definitions for infrastructure abstraction.

The application layer depends only on these protocols. Adapters under
``transfer_service.infrastructure`` implement them structurally; a database
backed store or a real mail transport can be swapped in without touching
business logic.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from transfer_service.domain.models import (
    Account,
    DeliveryAttemptLog,
    EmailMessage,
    PendingRetryEntry,
    Transaction,
    VerificationRecord,
)


class Clock(Protocol):
    """Source of the current instant. All timestamps are timezone-aware UTC."""

    def now(self) -> datetime: ...


class RandomSource(Protocol):
    def digits(self, length: int) -> str:
        """Return a uniformly distributed, zero-padded numeric string."""
        ...

    def token_hex(self, nbytes: int) -> str:
        """Return ``nbytes`` of cryptographically secure randomness as hex."""
        ...


class Mailer(Protocol):
    """Outbound mail transport.

    ``send`` either returns or raises. Implementations must tolerate the
    same message being sent again on retry.
    """

    async def send(self, message: EmailMessage) -> None: ...


class RateLimiter(Protocol):
    async def check(self, key: str, window_seconds: float, max_requests: int) -> None:
        """Consume one slot for ``key`` or raise RateLimitExceededError."""
        ...


class AdminPolicy(Protocol):
    def is_admin(self, email: str) -> bool: ...


class AccountStore(Protocol):
    async def get(self, email: str) -> Account | None: ...

    async def has(self, email: str) -> bool: ...

    async def add(self, account: Account) -> None: ...

    async def transfer(self, sender: Account, recipient: Account | None, amount: Decimal) -> Account:
        """Apply debit and credit together; raises OptimisticLockError if either snapshot is stale."""
        ...

    async def mark_verified(self, email: str) -> Account: ...


class VerificationStore(Protocol):
    async def get(self, email: str) -> VerificationRecord | None: ...

    async def set(self, email: str, record: VerificationRecord) -> None: ...

    async def delete(self, email: str) -> None: ...


class TransactionStore(Protocol):
    async def get(self, transaction_id: str) -> Transaction | None: ...

    async def add(self, transaction: Transaction) -> None: ...

    async def for_account(self, email: str) -> list[Transaction]: ...


class DeliveryLogStore(Protocol):
    async def append(self, log: DeliveryAttemptLog) -> None: ...

    async def recent(self, limit: int) -> list[DeliveryAttemptLog]:
        """Most recent terminal logs, newest first."""
        ...


class PendingRetryStore(Protocol):
    async def get(self, delivery_id: str) -> PendingRetryEntry | None: ...

    async def set(self, delivery_id: str, entry: PendingRetryEntry) -> None: ...

    async def delete(self, delivery_id: str) -> None: ...

    async def values(self) -> list[PendingRetryEntry]: ...
