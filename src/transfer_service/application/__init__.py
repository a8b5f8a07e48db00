"""Application layer - services and use cases."""

from transfer_service.application.accounts import AccountService, RegistrationResult
from transfer_service.application.admin import AdminService, StaticAdminPolicy
from transfer_service.application.delivery import (
    DeliveryPipeline,
    DeliveryResult,
    DeliveryStats,
    ExponentialBackoff,
)
from transfer_service.application.ledger import LedgerService, LedgerThrottle, TransferResult
from transfer_service.application.notifications import NotificationComposer, ReceiptDetails
from transfer_service.application.verification import (
    IssuedCode,
    VerificationCodeManager,
    VerificationPolicy,
)


__all__ = [
    "AccountService",
    "AdminService",
    "DeliveryPipeline",
    "DeliveryResult",
    "DeliveryStats",
    "ExponentialBackoff",
    "IssuedCode",
    "LedgerService",
    "LedgerThrottle",
    "NotificationComposer",
    "ReceiptDetails",
    "RegistrationResult",
    "StaticAdminPolicy",
    "TransferResult",
    "VerificationCodeManager",
    "VerificationPolicy",
]
