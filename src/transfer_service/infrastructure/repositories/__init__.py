"""In-memory repository implementations of the domain store ports."""

from transfer_service.infrastructure.repositories.accounts import AccountRepository
from transfer_service.infrastructure.repositories.delivery import (
    DeliveryLogRepository,
    PendingRetryRepository,
)
from transfer_service.infrastructure.repositories.memory import InMemoryRepository
from transfer_service.infrastructure.repositories.transactions import TransactionRepository
from transfer_service.infrastructure.repositories.verification import VerificationRepository


__all__ = [
    "AccountRepository",
    "DeliveryLogRepository",
    "InMemoryRepository",
    "PendingRetryRepository",
    "TransactionRepository",
    "VerificationRepository",
]
